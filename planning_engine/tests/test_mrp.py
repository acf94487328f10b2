"""
Testes do MRP: netting, lot sizing, lead time, recursão e motor.
"""
from datetime import date, timedelta

import pytest

from ..config import LotSizingStrategy, PlanningConfig
from ..core.horizon import PlanningHorizon
from ..forecasting.demand_forecasting import DemandForecaster, HistoricalForecastFallback
from ..mrp.lot_sizing import LotSizingRule, apply_lot_sizing
from ..mrp.mrp_calculator import add_lead_time, offset_for_lead_time
from ..mrp.mrp_engine import MrpEngine
from ..mrp.types import OrderType, PlannedOrder, RequirementSource
from ..providers.base import ReplenishmentType
from ..providers.memory import InMemoryDemandHistory
from ..structures.bom import BomLine


def _weekday(d: date) -> bool:
    return d.weekday() < 5


@pytest.fixture
def engine(store, inventory, demand, planned_orders, config):
    return MrpEngine(store, inventory, demand, planned_orders, config=config)


class TestLotSizing:
    """Políticas de lot sizing."""

    def test_lot_for_lot_has_no_excess(self):
        assert apply_lot_sizing(37, LotSizingStrategy.LOT_FOR_LOT) == 37

    def test_fixed_order_quantity_rounds_up_to_multiple(self):
        assert apply_lot_sizing(90, LotSizingStrategy.FIXED_ORDER_QUANTITY, {"multiple": 50}) == 100
        assert apply_lot_sizing(100, LotSizingStrategy.FIXED_ORDER_QUANTITY, {"multiple": 50}) == 100

    def test_periods_of_supply_covers_following_buckets(self):
        quantity = apply_lot_sizing(10, LotSizingStrategy.PERIODS_OF_SUPPLY, {"periods": 3}, [5, 7, 9])
        assert quantity == 22

    def test_economic_order_quantity(self):
        quantity = apply_lot_sizing(
            10, LotSizingStrategy.ECONOMIC_ORDER_QUANTITY,
            {"annual_demand": 1200, "ordering_cost": 100, "holding_cost": 10},
        )
        assert quantity == pytest.approx(154.919, abs=1e-3)

    def test_economic_order_quantity_never_below_net(self):
        quantity = apply_lot_sizing(
            500, LotSizingStrategy.ECONOMIC_ORDER_QUANTITY,
            {"annual_demand": 1200, "ordering_cost": 100, "holding_cost": 10},
        )
        assert quantity == 500

    def test_least_unit_cost_grows_while_unit_cost_falls(self):
        quantity = apply_lot_sizing(
            10, LotSizingStrategy.LEAST_UNIT_COST,
            {"ordering_cost": 50, "holding_cost_per_period": 0.25}, [10, 10],
        )
        assert quantity == 30

    def test_zero_net_orders_nothing(self):
        assert LotSizingRule(LotSizingStrategy.FIXED_ORDER_QUANTITY, {"multiple": 50}).apply(0) == 0


class TestLeadTime:
    """Offset de lead time."""

    def test_calendar_round_trip(self, today):
        for lead_time in (0, 1, 5, 13):
            assert add_lead_time(offset_for_lead_time(today, lead_time), lead_time) == today

    def test_working_day_round_trip(self):
        friday = date(2025, 3, 14)
        order_date = offset_for_lead_time(friday, 3, _weekday)
        assert order_date == date(2025, 3, 11)
        assert add_lead_time(order_date, 3, _weekday) == friday

    def test_working_day_offset_skips_weekend(self):
        monday = date(2025, 3, 10)
        assert offset_for_lead_time(monday, 1, _weekday) == date(2025, 3, 7)


class TestNetting:
    """Cálculo de necessidades líquidas."""

    def test_end_to_end_scenario(self, engine, inventory, demand, planned_orders, daily_horizon, today):
        """On-hand 20, SS 10, procura 100 ao dia 20, FOQ 50, LT 5 -> 100 encomendados no dia 15."""
        inventory.set_item("P", on_hand=20, safety_stock=10, lead_time_days=5)
        demand.add_demand("P", today + timedelta(days=20), 100, source_reference="SO-1")

        results = engine.run(
            ["P"], daily_horizon,
            lot_sizing=LotSizingStrategy.FIXED_ORDER_QUANTITY,
            lot_sizing_parameters={"multiple": 50},
        )

        result = results["P"]
        assert result.is_successful
        assert len(result.planned_orders) == 1
        order = result.planned_orders[0]
        assert result.material_requirements[0].net_requirement == pytest.approx(90)
        assert order.original_requirement == pytest.approx(90)
        assert order.quantity == pytest.approx(100)
        assert order.start_date == today + timedelta(days=15)
        assert order.due_date == today + timedelta(days=20)
        assert order.order_type == OrderType.PURCHASE
        assert not order.is_past_due
        assert any("excess" in w for w in result.warnings)
        assert len(planned_orders.find_planned_orders(product_id="P")) == 1

    def test_netting_identity_holds_on_every_record(self, engine, inventory, demand, daily_horizon, today):
        inventory.set_item("P", on_hand=35, safety_stock=5, lead_time_days=2)
        inventory.add_scheduled_receipt("P", today + timedelta(days=8), 40)
        for day, quantity in ((3, 20), (6, 25), (9, 30), (15, 60)):
            demand.add_demand("P", today + timedelta(days=day), quantity)

        result = engine.calculate("P", daily_horizon)

        assert len(result.material_requirements) == 4
        for req in result.material_requirements:
            expected = max(0.0, req.gross_requirement - (req.on_hand + req.scheduled_receipts - req.safety_stock))
            assert req.net_requirement == pytest.approx(expected)

    def test_stock_is_consumed_left_to_right(self, engine, inventory, demand, daily_horizon, today):
        inventory.set_item("P", on_hand=50, lead_time_days=1)
        demand.add_demand("P", today + timedelta(days=5), 30)
        demand.add_demand("P", today + timedelta(days=10), 30)

        result = engine.calculate("P", daily_horizon)

        assert [r.net_requirement for r in result.material_requirements] == [0, 10]

    def test_later_receipt_is_not_borrowed(self, engine, inventory, demand, daily_horizon, today):
        inventory.set_item("P", on_hand=0, lead_time_days=1)
        inventory.add_scheduled_receipt("P", today + timedelta(days=8), 40)
        demand.add_demand("P", today + timedelta(days=5), 30)
        demand.add_demand("P", today + timedelta(days=10), 30)

        result = engine.calculate("P", daily_horizon)

        assert [r.net_requirement for r in result.material_requirements] == [30, 0]

    def test_past_due_order_is_flagged_not_clamped(self, engine, inventory, demand, daily_horizon, today):
        inventory.set_item("P", lead_time_days=5)
        demand.add_demand("P", today + timedelta(days=2), 50)

        result = engine.calculate("P", daily_horizon)

        order = result.planned_orders[0]
        assert order.is_past_due
        assert order.start_date == today - timedelta(days=3)
        assert any("Past-due" in w for w in result.warnings)

    def test_zero_lead_time_uses_default(self, engine, inventory, demand, daily_horizon, today):
        inventory.set_item("P", lead_time_days=0)
        demand.add_demand("P", today + timedelta(days=10), 5)

        result = engine.calculate("P", daily_horizon)

        assert result.planned_orders[0].lead_time_days == 1
        assert result.planned_orders[0].start_date == today + timedelta(days=9)
        assert any("default lead time" in w for w in result.warnings)

    def test_periods_of_supply_looks_ahead_at_net_demand(self, engine, inventory, demand, daily_horizon, today):
        """A receção do dia 6 cobre esse dia: o lote cobre 5 e 7, não 5, 6 e 7."""
        inventory.set_item("P", on_hand=0, lead_time_days=1)
        inventory.add_scheduled_receipt("P", today + timedelta(days=6), 10)
        for day in (5, 6, 7):
            demand.add_demand("P", today + timedelta(days=day), 10)

        result = engine.calculate(
            "P", daily_horizon,
            lot_sizing=LotSizingStrategy.PERIODS_OF_SUPPLY,
            lot_sizing_parameters={"periods": 3},
        )

        assert [o.quantity for o in result.planned_orders] == [20]
        assert result.planned_orders[0].due_date == today + timedelta(days=5)
        assert [r.net_requirement for r in result.material_requirements] == [10, 0, 0]


class TestMultiLevel:
    """Recursão nos componentes."""

    def test_dependent_demand_on_parent_start_date(self, engine, store, make_bom, inventory, demand,
                                                   daily_horizon, today):
        make_bom("FG", [BomLine("C", 2)])
        inventory.set_item("FG", lead_time_days=2, replenishment=ReplenishmentType.MANUFACTURE)
        inventory.set_item("C", lead_time_days=3)
        demand.add_demand("FG", today + timedelta(days=10), 10)

        result = engine.calculate("FG", daily_horizon)

        fg = result.orders_for("FG")[0]
        component = result.orders_for("C")[0]
        assert fg.is_manufacturing
        assert fg.start_date == today + timedelta(days=8)
        assert component.quantity == pytest.approx(20)
        assert component.due_date == fg.start_date
        assert component.start_date == today + timedelta(days=5)
        assert component.level == 1
        assert component.parent_product_id == "FG"
        assert component.source_reference == fg.order_id
        assert [r.product_id for r in fg.component_requirements] == ["C"]

    def test_missing_bom_is_an_error_on_the_result(self, engine, inventory, demand, daily_horizon, today):
        inventory.set_item("FG", lead_time_days=1, replenishment=ReplenishmentType.MANUFACTURE)
        demand.add_demand("FG", today + timedelta(days=10), 10)

        result = engine.calculate("FG", daily_horizon)

        assert not result.is_successful
        assert "No effective BOM" in result.errors[0]
        assert len(result.planned_orders) == 1

    def test_cycle_aborts_product_with_path(self, engine, make_bom, inventory, demand, daily_horizon, today):
        make_bom("A", [BomLine("B", 1)])
        make_bom("B", [BomLine("A", 1)])
        for product_id in ("A", "B"):
            inventory.set_item(product_id, lead_time_days=1, replenishment=ReplenishmentType.MANUFACTURE)
        demand.add_demand("A", today + timedelta(days=20), 10)

        result = engine.calculate("A", daily_horizon)

        assert not result.is_successful
        assert result.planned_orders == []
        assert result.parameters["cycle_path"] == ["A", "B", "A"]


class TestMrpEngine:
    """Orquestração: isolamento, concorrência, regenerate e net change."""

    def test_failure_is_isolated_per_product(self, engine, make_bom, inventory, demand, daily_horizon, today):
        make_bom("A", [BomLine("B", 1)])
        make_bom("B", [BomLine("A", 1)])
        for product_id in ("A", "B"):
            inventory.set_item(product_id, lead_time_days=1, replenishment=ReplenishmentType.MANUFACTURE)
        inventory.set_item("OK", lead_time_days=1)
        demand.add_demand("A", today + timedelta(days=20), 10)
        demand.add_demand("OK", today + timedelta(days=20), 10)

        results = engine.calculate_multiple(["A", "OK"], daily_horizon)

        assert list(results) == ["A", "OK"]
        assert not results["A"].is_successful
        assert results["OK"].is_successful
        assert results["OK"].total_planned_quantity == pytest.approx(10)

    @pytest.mark.parametrize("workers", [1, 4])
    def test_shared_component_is_netted_once(self, engine, make_bom, inventory, demand, daily_horizon,
                                             today, workers):
        """Dois pais partilham 100 de stock de C: só falta 20, com ou sem workers."""
        make_bom("A", [BomLine("C", 1)])
        make_bom("B", [BomLine("C", 1)])
        for product_id in ("A", "B"):
            inventory.set_item(product_id, lead_time_days=1, replenishment=ReplenishmentType.MANUFACTURE)
        inventory.set_item("C", on_hand=100, lead_time_days=1)
        demand.add_demand("A", today + timedelta(days=10), 60)
        demand.add_demand("B", today + timedelta(days=12), 60)

        results = engine.calculate_multiple(["A", "B"], daily_horizon, max_workers=workers)

        component_quantity = sum(
            o.quantity for r in results.values() for o in r.orders_for("C")
        )
        assert component_quantity == pytest.approx(20)

    def test_shared_component_gross_is_summed_per_bucket(self, engine, make_bom, inventory, demand,
                                                         daily_horizon, today):
        make_bom("A", [BomLine("C", 1)])
        make_bom("B", [BomLine("C", 1)])
        for product_id in ("A", "B"):
            inventory.set_item(product_id, lead_time_days=1, replenishment=ReplenishmentType.MANUFACTURE)
        inventory.set_item("C", lead_time_days=1)
        demand.add_demand("A", today + timedelta(days=10), 10)
        demand.add_demand("B", today + timedelta(days=10), 10)

        results = engine.calculate_multiple(["A", "B"], daily_horizon)

        requirements = [
            r for result in results.values() for r in result.material_requirements if r.product_id == "C"
        ]
        orders = [o for result in results.values() for o in result.orders_for("C")]
        assert len(requirements) == 1
        assert requirements[0].gross_requirement == pytest.approx(20)
        assert requirements[0].level == 1
        assert len(orders) == 1
        assert orders[0].quantity == pytest.approx(20)
        assert orders[0].due_date == today + timedelta(days=9)
        assert results["B"].orders_for("C") == []

    @pytest.mark.parametrize("product_ids,workers", [
        (["A", "B"], 1),
        (["B", "A"], 1),
        (["A", "B"], 4),
        (["B", "A"], 4),
    ])
    def test_plan_does_not_depend_on_order_or_workers(self, engine, make_bom, inventory, demand,
                                                       daily_horizon, today, product_ids, workers):
        make_bom("A", [BomLine("C", 1)])
        make_bom("B", [BomLine("C", 1)])
        for product_id in ("A", "B"):
            inventory.set_item(product_id, lead_time_days=1, replenishment=ReplenishmentType.MANUFACTURE)
        inventory.set_item("C", on_hand=100, lead_time_days=1)
        demand.add_demand("A", today + timedelta(days=10), 60)
        demand.add_demand("B", today + timedelta(days=12), 60)

        def plan(ids, max_workers):
            results = engine.calculate_multiple(ids, daily_horizon, max_workers=max_workers)
            return sorted(
                (o.product_id, o.quantity, o.start_date, o.due_date)
                for r in results.values() for o in r.planned_orders
            )

        signature = plan(product_ids, workers)

        assert signature == plan(["A", "B"], 1)
        assert [s for s in signature if s[0] == "C"] == [
            ("C", 20, today + timedelta(days=10), today + timedelta(days=11)),
        ]

    def test_cyclic_product_books_nothing_for_its_siblings(self, engine, make_bom, inventory, demand,
                                                          daily_horizon, today):
        make_bom("A", [BomLine("C", 1), BomLine("D", 1)])
        make_bom("D", [BomLine("A", 1)])
        make_bom("B", [BomLine("C", 1)])
        for product_id in ("A", "B", "D"):
            inventory.set_item(product_id, lead_time_days=1, replenishment=ReplenishmentType.MANUFACTURE)
        inventory.set_item("C", on_hand=100, lead_time_days=1)
        demand.add_demand("A", today + timedelta(days=10), 60)
        demand.add_demand("B", today + timedelta(days=10), 60)

        results = engine.calculate_multiple(["A", "B"], daily_horizon)

        assert results["A"].parameters["cycle_path"] == ["A", "D", "A"]
        assert results["A"].planned_orders == []
        assert results["A"].material_requirements == []
        component = [r for r in results["B"].material_requirements if r.product_id == "C"]
        assert len(component) == 1
        assert component[0].net_requirement == 0
        assert results["B"].orders_for("C") == []

    def test_net_change_keeps_untouched_products(self, engine, inventory, demand, planned_orders,
                                                 daily_horizon, today):
        planned_orders.save_planned_order(PlannedOrder(
            "PLO-Z", "Z", 10, today + timedelta(days=3), today + timedelta(days=5), OrderType.PURCHASE,
        ))
        inventory.set_item("P", lead_time_days=1)
        demand.add_demand("P", today + timedelta(days=20), 100)

        engine.net_change(["P"], daily_horizon)

        assert len(planned_orders.find_planned_orders(product_id="Z")) == 1
        assert len(planned_orders.find_planned_orders(product_id="P")) == 1

    def test_regenerate_purges_the_horizon(self, engine, inventory, demand, planned_orders,
                                           daily_horizon, today):
        planned_orders.save_planned_order(PlannedOrder(
            "PLO-Z", "Z", 10, today + timedelta(days=3), today + timedelta(days=5), OrderType.PURCHASE,
        ))
        inventory.set_item("P", lead_time_days=1)
        demand.add_demand("P", today + timedelta(days=20), 100)

        engine.regenerate(daily_horizon, ["P"])
        engine.regenerate(daily_horizon, ["P"])

        assert planned_orders.find_planned_orders(product_id="Z") == []
        assert len(planned_orders.find_planned_orders(product_id="P")) == 1

    def test_run_defaults_to_master_scheduled_products(self, engine, inventory, demand, daily_horizon, today):
        inventory.set_item("P", lead_time_days=1)
        inventory.set_item("Q", lead_time_days=1)
        demand.add_demand("P", today + timedelta(days=5), 1)
        demand.add_demand("Q", today + timedelta(days=6), 1)

        results = engine.run(None, daily_horizon)

        assert sorted(results) == ["P", "Q"]

    def test_forecast_supplies_missing_demand(self, store, inventory, demand, planned_orders, config, today):
        history = InMemoryDemandHistory({"F": [(today - timedelta(days=i), 10.0) for i in range(1, 6)]})
        forecaster = DemandForecaster(None, HistoricalForecastFallback(history, config), config)
        engine = MrpEngine(store, inventory, demand, planned_orders, forecaster=forecaster, config=config)
        inventory.set_item("F", lead_time_days=1)
        horizon = PlanningHorizon(today, today + timedelta(days=5), 0, 0)

        try:
            result = engine.calculate("F", horizon)
        finally:
            forecaster.close()

        assert result.total_planned_quantity == pytest.approx(50)
        assert all(r.source == RequirementSource.FORECAST for r in result.material_requirements)
        assert result.parameters["forecast"]["source"] == "historical"
        assert any("ML forecast unavailable" in w for w in result.warnings)

    def test_pegging_through_where_used(self, engine, make_bom, demand, today):
        make_bom("A", [BomLine("C", 2)])
        on = today + timedelta(days=4)
        demand.add_demand("A", on, 60, source_reference="SO-1")

        entries = engine.pegging("C", on)

        assert len(entries) == 1
        assert entries[0].source_type == "derived_from_sales_order"
        assert entries[0].source_id == "SO-1"
        assert entries[0].quantity == pytest.approx(120)
        assert entries[0].parent_product_id == "A"

    def test_result_dataframe(self, engine, inventory, demand, daily_horizon, today):
        inventory.set_item("P", lead_time_days=1)
        demand.add_demand("P", today + timedelta(days=5), 3)
        demand.add_demand("P", today + timedelta(days=9), 4)

        df = engine.calculate("P", daily_horizon).to_dataframe()

        assert list(df["quantity"]) == [3, 4]
        assert set(df["order_type"]) == {"purchase"}


class TestWorkerConfig:

    def test_engine_uses_configured_workers(self, store, inventory, demand, planned_orders, daily_horizon, today):
        config = PlanningConfig(mrp_max_workers=3)
        engine = MrpEngine(store, inventory, demand, planned_orders, config=config)
        for product_id in ("P1", "P2", "P3"):
            inventory.set_item(product_id, lead_time_days=1)
            demand.add_demand(product_id, today + timedelta(days=5), 7)

        results = engine.calculate_multiple(["P1", "P2", "P3"], daily_horizon)

        assert [r.total_planned_quantity for r in results.values()] == [7, 7, 7]
