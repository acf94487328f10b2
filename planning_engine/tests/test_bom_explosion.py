"""
Testes da explosão de BOM: quantidades, phantoms, scrap, ciclos e validação.
"""
from datetime import date, timedelta

import pytest

from ..core.effectivity import Effectivity
from ..exceptions import CircularStructureException, StructureNotFound
from ..mrp.bom_explosion import BomExplosion, ValidationSeverity
from ..structures.bom import Bom, BomLine, BomType, StructureStatus


class TestExplosionQuantities:
    """Quantidades multi-nível."""

    def test_two_level_quantity(self, store, make_bom, config):
        """5 A x 2 B/A x 3 C/B = 30 C ao nível 2."""
        make_bom("A", [BomLine("B", 2)])
        make_bom("B", [BomLine("C", 3)])

        rows = BomExplosion(store, config).explode("BOM-A", 5)

        by_product = {r.product_id: r for r in rows}
        assert by_product["B"].quantity == pytest.approx(10)
        assert by_product["B"].level == 1
        assert by_product["C"].quantity == pytest.approx(30)
        assert by_product["C"].level == 2
        assert by_product["C"].parent_product_id == "B"

    def test_scrap_inflates_quantity(self, store, make_bom, config):
        """10 por unidade com 10% de scrap dá 11."""
        make_bom("A", [BomLine("X", 10, scrap_percentage=10)])

        rows = BomExplosion(store, config).explode("BOM-A", 1)

        assert rows[0].quantity == pytest.approx(11)

    def test_line_order_is_preserved(self, store, make_bom, config):
        make_bom("A", [BomLine("Z", 1, line_number=10), BomLine("Y", 1, line_number=20)])

        rows = BomExplosion(store, config).explode("BOM-A")

        assert [r.product_id for r in rows] == ["Z", "Y"]

    def test_leaf_requirements_aggregate_shared_components(self, store, make_bom, config):
        make_bom("A", [BomLine("B", 1), BomLine("C", 2)])
        make_bom("B", [BomLine("R", 3)])
        make_bom("C", [BomLine("R", 1)])

        leaves = BomExplosion(store, config).leaf_requirements("BOM-A", 2)

        # 2 x 1 x 3 + 2 x 2 x 1
        assert leaves == {"R": pytest.approx(10)}

    def test_to_dataframe(self, store, make_bom, config):
        make_bom("A", [BomLine("B", 2)])
        make_bom("B", [BomLine("C", 3)])

        df = BomExplosion(store, config).to_dataframe("BOM-A", 1)

        assert list(df["product_id"]) == ["B", "C"]
        assert list(df["level"]) == [1, 2]


class TestPhantoms:
    """Phantoms são substituídos pelos seus componentes."""

    def test_phantom_components_are_spliced_at_current_level(self, store, make_bom, config):
        make_bom("A", [BomLine("P", 2)])
        make_bom("P", [BomLine("C", 3)], bom_type=BomType.PHANTOM)

        rows = BomExplosion(store, config).explode("BOM-A", 1)

        assert [r.product_id for r in rows] == ["C"]
        assert rows[0].level == 1
        assert rows[0].quantity == pytest.approx(6)
        assert rows[0].is_phantom_source
        assert rows[0].parent_product_id == "A"

    def test_phantom_line_flag(self, store, make_bom, config):
        make_bom("A", [BomLine("P", 1, is_phantom=True)])
        make_bom("P", [BomLine("C", 4)])

        rows = BomExplosion(store, config).explode("BOM-A", 1)

        assert [(r.product_id, r.level) for r in rows] == [("C", 1)]

    def test_phantom_without_bom_is_a_regular_component(self, store, make_bom, config):
        make_bom("A", [BomLine("P", 2, is_phantom=True)])

        rows = BomExplosion(store, config).explode("BOM-A", 1)

        assert [r.product_id for r in rows] == ["P"]
        assert not rows[0].has_structure


class TestEffectivityAndLimits:

    def test_line_effectivity_is_checked_independently(self, store, make_bom, config):
        future = date(2030, 1, 1)
        make_bom("A", [
            BomLine("OLD", 1, effectivity=Effectivity(None, future - timedelta(days=1))),
            BomLine("NEW", 1, effectivity=Effectivity(future)),
        ])
        explosion = BomExplosion(store, config)

        assert [r.product_id for r in explosion.explode("BOM-A", as_of=date(2025, 1, 1))] == ["OLD"]
        assert [r.product_id for r in explosion.explode("BOM-A", as_of=future)] == ["NEW"]

    def test_max_levels_stops_descent(self, store, make_bom, config):
        make_bom("A", [BomLine("B", 1)])
        make_bom("B", [BomLine("C", 1)])
        make_bom("C", [BomLine("D", 1)])

        rows = BomExplosion(store, config).explode("BOM-A", max_levels=2)

        assert [r.product_id for r in rows] == ["B", "C"]

    def test_unknown_bom_raises(self, store, config):
        with pytest.raises(StructureNotFound):
            BomExplosion(store, config).explode("BOM-NOPE")

    def test_explode_product_without_effective_bom(self, store, config):
        with pytest.raises(StructureNotFound) as exc:
            BomExplosion(store, config).explode_product("GHOST", as_of=date(2025, 1, 1))
        assert exc.value.product_id == "GHOST"


class TestCycles:
    """Deteção de ciclos por caminho de antepassados."""

    def test_cycle_raises_on_explode(self, store, make_bom, config):
        make_bom("A", [BomLine("B", 1)])
        make_bom("B", [BomLine("A", 1)])

        with pytest.raises(CircularStructureException) as exc:
            BomExplosion(store, config).explode("BOM-A")

        assert exc.value.path[0] == "A"
        assert exc.value.path[-1] == "A"

    def test_cycle_raises_on_validate(self, store, make_bom, config):
        make_bom("A", [BomLine("B", 1)])
        make_bom("B", [BomLine("A", 1)])

        with pytest.raises(CircularStructureException):
            BomExplosion(store, config).validate("BOM-A")

    def test_cycle_recorded_when_not_raising(self, store, make_bom, config):
        make_bom("A", [BomLine("B", 1)])
        make_bom("B", [BomLine("A", 1)])

        result = BomExplosion(store, config).validate("BOM-A", raise_on_cycle=False)

        assert not result.valid
        assert "BOM_CYCLE" in result.codes()

    def test_diamond_is_not_a_cycle(self, store, make_bom, config):
        """D reached through B and through C is a revisit, not a cycle."""
        make_bom("A", [BomLine("B", 1), BomLine("C", 1)])
        make_bom("B", [BomLine("D", 1)])
        make_bom("C", [BomLine("D", 1)])

        rows = BomExplosion(store, config).explode("BOM-A")

        assert [r.product_id for r in rows].count("D") == 2

    def test_creates_cycle(self, store, make_bom, config):
        make_bom("A", [BomLine("B", 1)])
        make_bom("B", [BomLine("C", 1)])
        explosion = BomExplosion(store, config)

        assert explosion.creates_cycle("C", "A") == ["C", "A", "B", "C"]
        assert explosion.creates_cycle("A", "X") is None


class TestLowLevelCodes:

    def test_component_takes_its_deepest_level(self, store, make_bom, config):
        make_bom("A", [BomLine("B", 1), BomLine("D", 1)])
        make_bom("B", [BomLine("C", 1)])
        make_bom("C", [BomLine("D", 1)])

        codes = BomExplosion(store, config).low_level_codes("A")

        assert codes == {"A": 0, "B": 1, "C": 2, "D": 3}

    def test_cycle_raises_with_path(self, store, make_bom, config):
        make_bom("A", [BomLine("C", 1), BomLine("D", 1)])
        make_bom("D", [BomLine("A", 1)])

        with pytest.raises(CircularStructureException) as exc_info:
            BomExplosion(store, config).low_level_codes("A")

        assert exc_info.value.path == ["A", "D", "A"]


class TestValidationAndWhereUsed:

    def test_missing_component_master_data(self, store, config):
        store.save_bom(Bom("BOM-A", "A", lines=[BomLine("UNKNOWN", 1)], status=StructureStatus.RELEASED))

        result = BomExplosion(store, config).validate("BOM-A")

        assert not result.valid
        assert result.codes() == ["BOM_MISSING_COMPONENT"]

    def test_empty_bom_is_a_warning(self, store, make_bom, config):
        make_bom("A", [])

        result = BomExplosion(store, config).validate("BOM-A")

        assert result.valid
        assert result.issues[0].code == "BOM_NO_LINES"
        assert result.issues[0].severity == ValidationSeverity.WARNING

    def test_where_used(self, store, make_bom, config):
        make_bom("A", [BomLine("C", 2)])
        make_bom("B", [BomLine("C", 5)])
        make_bom("TOP", [BomLine("A", 1)])
        explosion = BomExplosion(store, config)

        used = explosion.where_used("C")

        assert sorted(u.product_id for u in used) == ["A", "B"]
        assert {u.product_id: u.line.quantity for u in used} == {"A": 2, "B": 5}
        assert explosion.where_used_all_levels("C") == ["A", "B", "TOP"]
