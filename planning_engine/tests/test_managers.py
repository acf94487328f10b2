"""
Testes dos gestores: BOM, roteiros, ordens de produção e ECOs.
"""
from datetime import date, timedelta

import pytest

from ..exceptions import CircularStructureException, InvalidStatus, InvalidVersion, StructureNotFound
from ..managers import (
    BomManager,
    ChangeOrderManager,
    RoutingManager,
    WorkCenterManager,
    WorkOrderManager,
    next_version,
)
from ..mrp.types import OrderType, PlannedOrder
from ..structures.bom import BomLine, StructureStatus
from ..structures.change_order import ChangeAction, ChangeOrderStatus, StructureChange
from ..structures.routing import Operation
from ..structures.work_center import WorkCenter
from ..structures.work_order import WorkOrder, WorkOrderStatus


JAN = date(2025, 1, 1)
JUN = date(2025, 6, 1)


@pytest.fixture
def boms(store, config):
    for product_id in ("C1", "C2", "C3", "FG"):
        store.add_product(product_id)
    return BomManager(store, config)


@pytest.fixture
def routings(store, config):
    return RoutingManager(store, config)


@pytest.fixture
def released_fg(boms):
    bom = boms.create("FG", lines=[BomLine("C1", 2), BomLine("C2", 1)])
    return boms.release(bom.bom_id, JAN)


class TestVersioning:

    @pytest.mark.parametrize("version, expected", [("1.0", "2.0"), ("3", "4.0"), ("A", "A.1")])
    def test_next_version(self, version, expected):
        assert next_version(version) == expected


class TestBomManager:
    """Ciclo de vida das BOMs."""

    def test_create_assigns_line_numbers(self, boms):
        bom = boms.create("FG", lines=[BomLine("C1", 2), BomLine("C2", 1)])

        assert bom.bom_id == "BOM-FG-1.0"
        assert bom.status == StructureStatus.DRAFT
        assert [line.line_number for line in bom.lines] == [10, 20]

    def test_duplicate_version_is_rejected(self, boms):
        boms.create("FG", lines=[BomLine("C1", 1)])

        with pytest.raises(InvalidVersion):
            boms.create("FG", lines=[BomLine("C2", 1)])

    def test_released_bom_cannot_be_edited(self, boms, released_fg):
        assert released_fg.effectivity.effective_from == JAN

        with pytest.raises(InvalidVersion):
            boms.add_line(released_fg.bom_id, BomLine("C3", 1))
        with pytest.raises(InvalidStatus):
            boms.release(released_fg.bom_id)

    def test_empty_bom_cannot_be_released(self, boms):
        bom = boms.create("FG")

        with pytest.raises(InvalidVersion):
            boms.release(bom.bom_id, JAN)

    def test_new_version_closes_previous_effectivity(self, boms, released_fg):
        draft = boms.create_version(released_fg.bom_id)
        boms.update_line_quantity(draft.bom_id, 10, 3)
        boms.release(draft.bom_id, JUN)

        assert draft.bom_id == "BOM-FG-2.0"
        assert draft.previous_version_id == released_fg.bom_id
        assert draft.is_latest and not released_fg.is_latest
        assert released_fg.status == StructureStatus.RELEASED
        assert released_fg.effectivity.effective_to == JUN - timedelta(days=1)
        assert boms.find_effective("FG", date(2025, 3, 1)).bom_id == "BOM-FG-1.0"
        assert boms.find_effective("FG", date(2025, 7, 1)).bom_id == "BOM-FG-2.0"

    def test_version_starting_same_day_obsoletes_previous(self, boms, released_fg):
        second = boms.create_version(released_fg.bom_id)
        boms.release(second.bom_id, JUN)
        third = boms.create_version(second.bom_id)
        boms.release(third.bom_id, JUN)

        assert second.status == StructureStatus.OBSOLETE
        assert boms.find_effective("FG", JUN).bom_id == third.bom_id

    def test_compare(self, boms, released_fg):
        draft = boms.create_version(released_fg.bom_id)
        boms.update_line_quantity(draft.bom_id, 10, 3)
        boms.remove_line(draft.bom_id, 20)
        boms.add_line(draft.bom_id, BomLine("C3", 5))

        diff = boms.compare(released_fg.bom_id, draft.bom_id)

        assert diff.has_differences
        assert diff.added == [{"product_id": "C3", "quantity": 5}]
        assert diff.removed == [{"product_id": "C2", "quantity": 1}]
        assert diff.changed[0]["product_id"] == "C1"
        assert diff.changed[0]["new_quantity"] == 3

    def test_cycle_is_rejected_on_create(self, boms):
        boms.create("A", lines=[BomLine("B", 1)])

        with pytest.raises(CircularStructureException) as exc:
            boms.create("B", lines=[BomLine("A", 1)])

        assert exc.value.path == ["B", "A", "B"]

    def test_find_effective_missing(self, boms):
        with pytest.raises(StructureNotFound):
            boms.find_effective("GHOST", JAN)

    def test_get_missing(self, boms):
        with pytest.raises(StructureNotFound):
            boms.get("BOM-NOPE")


class TestRoutingManager:
    """Lead time e capacidade a partir do roteiro."""

    def test_lead_time_rounds_up_to_days(self, routings):
        routing = routings.create("FG", operations=[Operation(10, "WC-A", run_time_minutes=60)])

        assert routings.calculate_lead_time_minutes(routing.routing_id, 4) == pytest.approx(240)
        assert routings.calculate_lead_time(routing.routing_id, 4) == 1

    def test_overlap_shortens_lead_time(self, routings):
        routing = routings.create("FG", operations=[
            Operation(10, "WC-A", run_time_minutes=120, overlap_percentage=50),
            Operation(20, "WC-B", run_time_minutes=120),
        ])

        assert routings.calculate_lead_time_minutes(routing.routing_id, 1) == pytest.approx(180)
        assert routings.calculate_capacity_requirement(routing.routing_id, 1) == {
            "WC-A": pytest.approx(2),
            "WC-B": pytest.approx(2),
        }

    def test_duplicate_operation_numbers(self, routings):
        with pytest.raises(ValueError):
            routings.create("FG", operations=[Operation(10, "WC-A"), Operation(10, "WC-B")])

    def test_release_and_version(self, routings):
        routing = routings.create("FG", operations=[Operation(10, "WC-A", run_time_minutes=5)])
        routings.release(routing.routing_id, JAN)
        draft = routings.create_version(routing.routing_id)
        routings.add_operation(draft.routing_id, Operation(20, "WC-B", run_time_minutes=1))
        routings.release(draft.routing_id, JUN)

        assert routings.find_effective("FG", JUN).routing_id == "RTG-FG-2.0"
        assert [a["operation_number"] for a in routings.compare(routing.routing_id, draft.routing_id)["added"]] == [20]


class TestWorkOrderManager:
    """Transições de estado das ordens de produção."""

    @pytest.fixture
    def manager(self, work_orders, store, config):
        return WorkOrderManager(work_orders, store, config)

    def test_create_copies_routing_operations(self, manager, make_routing, today):
        make_routing("FG", [Operation(10, "WC-A", setup_time_minutes=30, run_time_minutes=6)])

        wo = manager.create("FG", 10, today, today + timedelta(days=4))

        assert wo.routing_id == "RTG-FG"
        assert len(wo.operations) == 1
        assert wo.operations[0].planned_setup_hours == pytest.approx(0.5)
        assert wo.operations[0].planned_run_hours == pytest.approx(1)

    def test_full_lifecycle(self, manager, today):
        wo = manager.create("FG", 10, today, today + timedelta(days=4))

        manager.release(wo.work_order_id)
        manager.start(wo.work_order_id)
        manager.put_on_hold(wo.work_order_id, "waiting for material")
        assert wo.status == WorkOrderStatus.ON_HOLD
        manager.resume(wo.work_order_id)
        assert wo.status == WorkOrderStatus.IN_PROGRESS
        manager.complete(wo.work_order_id, scrapped_quantity=1)
        manager.close(wo.work_order_id)

        assert wo.status == WorkOrderStatus.CLOSED
        assert wo.completed_quantity == 9
        assert wo.actual_end is not None

    def test_resume_before_start_goes_back_to_released(self, manager, today):
        wo = manager.create("FG", 10, today, today + timedelta(days=4))
        manager.release(wo.work_order_id)
        manager.put_on_hold(wo.work_order_id)

        assert manager.resume(wo.work_order_id).status == WorkOrderStatus.RELEASED

    def test_illegal_transitions(self, manager, today):
        wo = manager.create("FG", 10, today, today + timedelta(days=4))

        with pytest.raises(InvalidStatus):
            manager.start(wo.work_order_id)
        with pytest.raises(InvalidStatus):
            manager.put_on_hold(wo.work_order_id)

        manager.cancel(wo.work_order_id, "no longer needed")
        with pytest.raises(InvalidStatus):
            manager.cancel(wo.work_order_id)

    def test_get_missing(self, manager):
        with pytest.raises(ValueError):
            manager.get("WO-NOPE")

    def test_reschedule_keeps_duration(self, manager, make_routing, today):
        make_routing("FG", [Operation(10, "WC-A", run_time_minutes=6)])
        wo = manager.create("FG", 10, today, today + timedelta(days=4))

        manager.reschedule(wo.work_order_id, today + timedelta(days=7))

        assert wo.planned_end_date == today + timedelta(days=11)
        assert wo.operations[0].scheduled_date == today + timedelta(days=7)

    def test_reassign_operation(self, manager, make_routing, today):
        make_routing("FG", [Operation(10, "WC-A", run_time_minutes=6)])
        wo = manager.create("FG", 10, today, today + timedelta(days=4))

        manager.reassign_operation(wo.work_order_id, 10, "WC-B")

        assert wo.get_operation(10).work_center_id == "WC-B"
        with pytest.raises(ValueError):
            manager.reassign_operation(wo.work_order_id, 99, "WC-B")

    def test_firm_planned_order(self, manager, today):
        manufacturing = PlannedOrder("PLO-1", "FG", 5, today, today + timedelta(days=2), OrderType.MANUFACTURING)
        purchase = PlannedOrder("PLO-2", "C1", 5, today, today + timedelta(days=2), OrderType.PURCHASE)

        wo = manager.create_from_planned_order(manufacturing)

        assert wo.source_reference == "PLO-1"
        with pytest.raises(ValueError):
            manager.create_from_planned_order(purchase)

    def test_overdue(self, manager, today):
        wo = manager.create("FG", 10, today, today + timedelta(days=4))

        assert manager.find_overdue(on=today + timedelta(days=10)) == [wo]
        assert manager.days_late(wo.work_order_id, on=today + timedelta(days=10)) == 6


class TestChangeOrderManager:
    """ECO: submit, approve, implement."""

    @pytest.fixture
    def released_routing(self, routings):
        routing = routings.create("FG", operations=[
            Operation(10, "WC-A", run_time_minutes=5),
            Operation(20, "WC-B", run_time_minutes=3),
        ])
        return routings.release(routing.routing_id, JAN)

    @pytest.fixture
    def changes(self, boms, routings, work_orders):
        return ChangeOrderManager(boms, routings, work_orders)

    def test_implement_releases_new_versions(self, changes, boms, routings, released_fg, released_routing):
        eco = changes.create(
            "FG", "Replace C2 with C3",
            effective_date=JUN,
            affected_bom_ids=[released_fg.bom_id],
            affected_routing_ids=[released_routing.routing_id],
            bom_changes=[
                StructureChange(ChangeAction.UPDATE, "C1", 2, 3),
                StructureChange(ChangeAction.REMOVE, "C2"),
                StructureChange(ChangeAction.ADD, "C3", new_value=4),
            ],
            routing_changes=[StructureChange(ChangeAction.UPDATE, "10", 5, 4)],
        )

        changes.submit(eco.change_order_id)
        changes.approve(eco.change_order_id, approved_by="eng")
        changes.implement(eco.change_order_id)

        assert eco.status == ChangeOrderStatus.IMPLEMENTED
        new_bom = boms.find_effective("FG", date(2025, 7, 1))
        assert new_bom.bom_id == "BOM-FG-2.0"
        assert {l.product_id: l.quantity for l in new_bom.lines} == {"C1": 3, "C3": 4}
        assert boms.find_effective("FG", date(2025, 3, 1)).bom_id == released_fg.bom_id
        new_routing = routings.find_effective("FG", date(2025, 7, 1))
        assert new_routing.operations[0].run_time_minutes == 4

    def test_submit_requires_changes(self, changes):
        eco = changes.create("FG", "Nothing")

        with pytest.raises(ValueError):
            changes.submit(eco.change_order_id)
        assert eco.status == ChangeOrderStatus.DRAFT

    def test_validate_reports_unknown_component(self, changes, released_fg):
        eco = changes.create(
            "FG", "Bad", affected_bom_ids=[released_fg.bom_id],
            bom_changes=[StructureChange(ChangeAction.UPDATE, "NOPE", 1, 2)],
        )

        assert changes.validate(eco.change_order_id) == [f"Component NOPE not on BOM {released_fg.bom_id}"]

    def test_reject_and_cancel(self, changes, released_fg):
        update = [StructureChange(ChangeAction.UPDATE, "C1", 2, 5)]
        first = changes.create("FG", "More C1", affected_bom_ids=[released_fg.bom_id], bom_changes=update)
        second = changes.create("FG", "Even more C1", affected_bom_ids=[released_fg.bom_id], bom_changes=update)

        with pytest.raises(InvalidStatus):
            changes.approve(first.change_order_id)
        changes.submit(first.change_order_id)
        changes.reject(first.change_order_id, "too expensive")
        changes.cancel(second.change_order_id)

        assert first.status == ChangeOrderStatus.REJECTED
        assert first.rejection_reason == "too expensive"
        assert changes.list(ChangeOrderStatus.CANCELLED) == [second]
        with pytest.raises(InvalidStatus):
            changes.cancel(second.change_order_id)
        with pytest.raises(InvalidStatus):
            changes.implement(first.change_order_id)

    def test_get_missing(self, changes):
        with pytest.raises(ValueError):
            changes.get("ECO-NOPE")

    def test_impact_analysis(self, changes, boms, work_orders, released_fg, today):
        top = boms.create("TOP", lines=[BomLine("FG", 1)])
        boms.release(top.bom_id, JAN)
        for wo_id, product_id, status in (
            ("WO-1", "FG", WorkOrderStatus.PLANNED),
            ("WO-2", "TOP", WorkOrderStatus.COMPLETED),
            ("WO-3", "TOP", WorkOrderStatus.RELEASED),
        ):
            work_orders.save(WorkOrder(wo_id, product_id, 1, today, today + timedelta(days=1), status=status))
        eco = changes.create(
            "FG", "More C1", affected_bom_ids=[released_fg.bom_id],
            bom_changes=[StructureChange(ChangeAction.UPDATE, "C1", 2, 5)],
        )

        impact = changes.analyze_impact(eco.change_order_id)

        assert impact.affected_products == ["FG", "TOP"]
        assert impact.affected_boms == ["BOM-FG-1.0", "BOM-TOP-1.0"]
        assert impact.open_work_orders == ["WO-1", "WO-3"]
        assert impact.total_affected_count == 4


class TestWorkCenterManager:
    """Dados mestre, calendário e capacidade nominal dos centros de trabalho."""

    @pytest.fixture
    def manager(self, work_centers, config):
        return WorkCenterManager(work_centers, config)

    def test_create_rejects_duplicate_id_and_code(self, manager):
        created = manager.create("WC-D", "DRILL", work_center_type="drill", hours_per_day=16, capacity_units=2)

        assert created.is_active
        assert manager.find_by_code("DRILL").work_center_id == "WC-D"
        with pytest.raises(ValueError):
            manager.create("WC-D", "OTHER")
        with pytest.raises(ValueError):
            manager.create("WC-E", "CNC-A")

    def test_deactivate_and_activate(self, manager, work_centers, today):
        manager.deactivate("WC-A")

        assert [wc.work_center_id for wc in manager.find_active()] == ["WC-B", "WC-C", "WC-P"]
        assert manager.get_available_hours("WC-A", today) == 0

        manager.activate("WC-A")

        assert work_centers.get_work_center("WC-A").is_active
        assert manager.get_available_hours("WC-A", today) == pytest.approx(8)

    def test_nominal_capacity(self, manager):
        manager.create("WC-D", "DRILL", hours_per_day=10, capacity_units=2, efficiency=90)

        assert manager.calculate_daily_capacity("WC-D") == pytest.approx(18)
        assert manager.calculate_weekly_capacity("WC-D") == pytest.approx(90)

    def test_closures_change_available_hours(self, manager, today):
        """Semana de 40h; feriado na terça e 3h de manutenção na quinta."""
        tuesday = today + timedelta(days=1)
        thursday = today + timedelta(days=3)

        manager.add_closure("WC-A", tuesday, "Public holiday")
        partial = manager.add_closure("WC-A", thursday, "Maintenance", hours_unavailable=3)

        assert partial.available_hours == pytest.approx(5)
        assert manager.get_available_hours("WC-A", tuesday) == 0
        assert manager.get_available_hours_for_period("WC-A", today, today + timedelta(days=7)) == pytest.approx(29)
        assert [e.date for e in manager.get_closures("WC-A", today, today + timedelta(days=7))] == [tuesday, thursday]

        assert manager.remove_closure("WC-A", tuesday)
        assert not manager.remove_closure("WC-A", tuesday)
        assert manager.get_available_hours_for_period("WC-A", today, today + timedelta(days=7)) == pytest.approx(37)

    def test_alternatives_must_exist(self, manager):
        manager.set_alternatives("WC-A", ["WC-C", "WC-B", "WC-C"])

        assert manager.get("WC-A").alternative_ids == ["WC-C", "WC-B"]
        with pytest.raises(ValueError):
            manager.set_alternatives("WC-A", ["WC-X"])
        with pytest.raises(ValueError):
            manager.set_alternatives("WC-A", ["WC-A"])

    def test_get_alternatives_skips_inactive_and_missing(self, manager, work_centers):
        work_centers.save_work_center(WorkCenter("WC-A", "CNC-A", alternative_ids=["WC-B", "WC-GONE", "WC-C"]))
        manager.deactivate("WC-C")

        assert [wc.work_center_id for wc in manager.get_alternatives("WC-A")] == ["WC-B"]

    def test_find_by_type(self, manager):
        manager.deactivate("WC-C")

        assert [wc.work_center_id for wc in manager.find_by_type("cnc")] == ["WC-A", "WC-B", "WC-C"]
        assert [wc.work_center_id for wc in manager.find_by_type("cnc", active_only=True)] == ["WC-A", "WC-B"]
        assert manager.find_by_type("lathe") == []

    def test_unknown_work_center(self, manager, today):
        with pytest.raises(ValueError):
            manager.calculate_daily_capacity("WC-NOPE")
        with pytest.raises(ValueError):
            manager.add_closure("WC-NOPE", today, "x")
