"""
Testes do planeamento de capacidade (CRP).
"""
from datetime import timedelta

import pytest

from ..capacity.capacity_planner import CapacityPlanner
from ..core.horizon import PlanningHorizon
from ..mrp.types import OrderType, PlannedOrder
from ..structures.routing import Operation, OperationType
from ..structures.work_center import WorkCenter
from ..structures.work_order import WorkOrder, WorkOrderOperation, WorkOrderStatus


def _work_order(work_order_id, work_center_id, hours, start, end=None, status=WorkOrderStatus.PLANNED):
    """Ordem com uma única operação de horas explícitas."""
    return WorkOrder(
        work_order_id=work_order_id,
        product_id="X",
        quantity=1,
        planned_start_date=start,
        planned_end_date=end or start + timedelta(days=4),
        status=status,
        operations=[WorkOrderOperation(10, work_center_id, planned_run_hours=hours, scheduled_date=start)],
    )


def _planned(order_id, product_id, quantity, start, due, order_type=OrderType.MANUFACTURING):
    return PlannedOrder(order_id, product_id, quantity, start, due, order_type)


@pytest.fixture
def planner(store, work_centers, config):
    return CapacityPlanner(store, work_centers, config=config)


class TestRequirements:
    """Cargas a partir de ordens e roteiros."""

    def test_loads_are_conserved_into_profiles(self, planner, make_routing, weekly_horizon, today):
        make_routing("X", [
            Operation(10, "WC-A", setup_time_minutes=60, run_time_minutes=6),
            Operation(20, "WC-P", run_time_minutes=3),
        ])
        orders = [_planned("PLO-1", "X", 100, today, today + timedelta(days=4))]

        requirements = planner.calculate_requirements(orders)
        profiles = planner.get_all_capacity_profiles(weekly_horizon, orders)

        assert requirements.total_hours == pytest.approx(16)
        assert requirements.hours_by_work_center() == {"WC-A": pytest.approx(11), "WC-P": pytest.approx(5)}
        assert sum(p.total_loaded_hours for p in profiles.values()) == pytest.approx(requirements.total_hours)

    def test_purchase_orders_place_no_load(self, planner, make_routing, today):
        make_routing("X", [Operation(10, "WC-A", run_time_minutes=60)])
        orders = [_planned("PLO-1", "X", 5, today, today + timedelta(days=2), OrderType.PURCHASE)]

        assert planner.calculate_requirements(orders).loads == []

    def test_missing_routing_is_reported(self, planner, today):
        orders = [_planned("PLO-1", "NOROUTE", 5, today, today + timedelta(days=2))]

        requirements = planner.calculate_requirements(orders)

        assert requirements.loads == []
        assert "NOROUTE" in requirements.errors[0]

    def test_queue_and_move_operations_place_zero_hours(self, planner, make_routing, today):
        make_routing("X", [
            Operation(10, "WC-A", operation_type=OperationType.QUEUE, run_time_minutes=30),
            Operation(20, "WC-A", operation_type=OperationType.MOVE, run_time_minutes=30),
            Operation(30, "WC-B", run_time_minutes=30),
        ])

        requirements = planner.calculate_requirements([_planned("PLO-1", "X", 4, today, today + timedelta(days=3))])

        assert [(l.work_center_id, l.hours) for l in requirements.loads] == [("WC-B", pytest.approx(2))]
        assert planner.calculate_load_for_product("X", 4, today) == {"WC-B": pytest.approx(2)}

    def test_closed_work_orders_place_no_load(self, planner, today):
        wo = _work_order("WO-1", "WC-A", 10, today, status=WorkOrderStatus.COMPLETED)

        assert planner.calculate_requirements([wo]).loads == []

    def test_default_orders_combine_repositories(self, store, work_centers, planned_orders, work_orders,
                                                 make_routing, config, weekly_horizon, today):
        make_routing("X", [Operation(10, "WC-A", run_time_minutes=60)])
        planned_orders.save_planned_order(_planned("PLO-1", "X", 3, today, today + timedelta(days=2)))
        work_orders.save(_work_order("WO-1", "WC-A", 4, today))
        planner = CapacityPlanner(store, work_centers, planned_orders, work_orders, config)

        profile = planner.get_capacity_profile("WC-A", weekly_horizon)

        assert profile.total_loaded_hours == pytest.approx(7)


class TestSequencing:
    """Datas das operações dentro da janela da ordem."""

    def test_next_operation_starts_after_processing(self, planner, today):
        ops = [Operation(10, "WC-A", run_time_minutes=60), Operation(20, "WC-B", run_time_minutes=10)]

        dated = planner.sequence_operations(ops, 8, today, today + timedelta(days=5))

        assert [d for _, d in dated] == [today, today + timedelta(days=1)]

    def test_overlap_shortens_elapsed_time_only(self, planner, make_routing, today):
        ops = [
            Operation(10, "WC-A", run_time_minutes=60, overlap_percentage=50),
            Operation(20, "WC-B", run_time_minutes=10),
        ]

        dated = planner.sequence_operations(ops, 8, today, today + timedelta(days=5))

        assert [d for _, d in dated] == [today, today]
        make_routing("X", ops)
        assert planner.calculate_load_for_product("X", 8, today)["WC-A"] == pytest.approx(8)

    def test_dates_are_clamped_to_due_date(self, planner, today):
        ops = [
            Operation(10, "WC-A", run_time_minutes=480),
            Operation(20, "WC-B", queue_time_minutes=960, run_time_minutes=10),
        ]

        dated = planner.sequence_operations(ops, 3, today, today + timedelta(days=1))

        assert [d for _, d in dated] == [today, today + timedelta(days=1)]


class TestProfilesAndBottlenecks:

    def test_overload_and_utilization(self, planner, weekly_horizon, today):
        """40h disponíveis, 50h carregadas: 10h de excesso, 125%."""
        wo = _work_order("WO-1", "WC-A", 50, today)

        period = planner.get_capacity_profile("WC-A", weekly_horizon, [wo]).periods[0]

        assert period.available_hours == pytest.approx(40)
        assert period.loaded_hours == pytest.approx(50)
        assert period.overload_hours == pytest.approx(10)
        assert period.utilization == pytest.approx(125)
        assert period.remaining_hours == 0

    def test_zero_capacity_does_not_raise(self, planner, work_centers, weekly_horizon, today):
        work_centers.save_work_center(WorkCenter("WC-Z", "IDLE", days_per_week=0))
        wo = _work_order("WO-1", "WC-Z", 5, today)

        period = planner.get_capacity_profile("WC-Z", weekly_horizon, [wo]).periods[0]

        assert period.available_hours == 0
        assert period.utilization == 100.0
        assert period.remaining_hours == 0
        assert period.overload_hours == pytest.approx(5)

    def test_identify_bottlenecks(self, planner, weekly_horizon, today):
        orders = [
            _work_order("WO-1", "WC-A", 50, today),
            _work_order("WO-2", "WC-B", 36, today + timedelta(days=7)),
            _work_order("WO-3", "WC-C", 20, today),
        ]

        bottlenecks = planner.identify_bottlenecks(weekly_horizon, orders=orders)

        assert [(b.work_center_id, b.period_start) for b in bottlenecks] == [
            ("WC-A", today),
            ("WC-B", today + timedelta(days=7)),
        ]
        assert bottlenecks[0].is_hard
        assert bottlenecks[0].overload_hours == pytest.approx(10)
        # 36/40 = 0.9 reaches the threshold without exceeding capacity.
        assert not bottlenecks[1].is_hard

    def test_overloaded_work_centers_ranked_by_excess(self, planner, weekly_horizon, today):
        orders = [_work_order("WO-1", "WC-A", 50, today), _work_order("WO-2", "WC-B", 60, today)]

        overloaded = planner.get_overloaded_work_centers(weekly_horizon, orders)

        assert [o["work_center_id"] for o in overloaded] == ["WC-B", "WC-A"]
        assert overloaded[0]["excess_hours"] == pytest.approx(20)

    def test_profile_dataframe(self, planner, weekly_horizon, today):
        df = planner.get_capacity_profile("WC-A", weekly_horizon, [_work_order("WO-1", "WC-A", 20, today)]).to_dataframe()

        assert len(df) == 4
        assert df.loc[0, "loaded_hours"] == pytest.approx(20)
        assert df.loc[0, "utilization"] == pytest.approx(50)
        assert df["load_count"].tolist() == [1, 0, 0, 0]


class TestLevelLoad:
    """Nivelamento guloso."""

    @pytest.fixture
    def open_horizon(self, today):
        return PlanningHorizon(today, today + timedelta(days=14), 0, 0)

    @pytest.fixture
    def two_orders(self, make_routing, today):
        make_routing("L", [Operation(10, "WC-A", run_time_minutes=360)])
        return [
            _planned("PLO-2", "L", 1, today, today + timedelta(days=5)),
            _planned("PLO-1", "L", 1, today, today + timedelta(days=5)),
        ]

    def test_overload_moves_to_next_day(self, planner, open_horizon, two_orders, today):
        result = planner.level_load(open_horizon, two_orders)

        assert len(result.moves) == 1
        move = result.moves[0]
        assert move.source_id == "PLO-1"
        assert move.delta_days == 1
        assert move.to_date == today + timedelta(days=1)
        assert result.is_feasible
        assert result.profiles["WC-A"].periods[0].loaded_hours == pytest.approx(6)
        assert result.profiles["WC-A"].periods[1].loaded_hours == pytest.approx(6)

    def test_firm_loads_never_move(self, planner, open_horizon, today):
        wo = _work_order("WO-1", "WC-A", 12, today, status=WorkOrderStatus.RELEASED)

        result = planner.level_load(open_horizon, [wo])

        assert result.moves == []
        assert not result.is_feasible
        assert result.bottlenecks[0].overload_hours == pytest.approx(4)

    def test_frozen_zone_loads_never_move(self, planner, daily_horizon, two_orders):
        result = planner.level_load(daily_horizon, two_orders)

        assert result.moves == []
        assert len(result.bottlenecks) == 1

    def test_no_slack_no_move(self, planner, open_horizon, make_routing, today):
        make_routing("L", [Operation(10, "WC-A", run_time_minutes=360)])
        orders = [_planned(f"PLO-{i}", "L", 1, today, today) for i in (1, 2)]

        result = planner.level_load(open_horizon, orders)

        assert result.moves == []

    def test_operation_never_moves_past_the_next_one(self, planner, open_horizon, today):
        """A op. 10 da WO-1 não pode passar a op. 20 (hoje, WC-B); move-se a WO-2."""
        first = WorkOrder(
            work_order_id="WO-1",
            product_id="X",
            quantity=1,
            planned_start_date=today,
            planned_end_date=today + timedelta(days=10),
            operations=[
                WorkOrderOperation(10, "WC-A", planned_run_hours=6, scheduled_date=today),
                WorkOrderOperation(20, "WC-B", planned_run_hours=4, scheduled_date=today),
            ],
        )
        second = _work_order("WO-2", "WC-A", 6, today, end=today + timedelta(days=10))

        result = planner.level_load(open_horizon, [first, second])

        assert [(m.source_id, m.to_date) for m in result.moves] == [("WO-2", today + timedelta(days=1))]
        assert result.is_feasible


class TestAvailability:

    def test_find_earliest_period(self, planner, weekly_horizon, today):
        orders = [_work_order("WO-1", "WC-A", 38, today)]

        period = planner.find_earliest_period("WC-A", 5, today, weekly_horizon, orders)

        assert period.start == today + timedelta(days=7)

    def test_find_earliest_period_none_when_nothing_fits(self, planner, weekly_horizon, today):
        assert planner.find_earliest_period("WC-A", 100, today, weekly_horizon, []) is None

    def test_find_earliest_available(self, planner, make_routing, weekly_horizon, today):
        make_routing("X", [Operation(10, "WC-A", run_time_minutes=300)])
        busy = [_work_order("WO-1", "WC-A", 38, today)]

        assert planner.find_earliest_available("X", 1, today, weekly_horizon, busy) == today + timedelta(days=7)
        assert planner.find_earliest_available("X", 1, today + timedelta(days=2), weekly_horizon, []) == \
            today + timedelta(days=2)

    def test_check_availability(self, planner, make_routing, today):
        make_routing("X", [Operation(10, "WC-A", run_time_minutes=300)])
        busy = [_work_order("WO-1", "WC-A", 6, today)]

        result = planner.check_availability("X", 1, today, busy)

        assert not result["available"]
        assert result["constrained_work_centers"] == ["WC-A"]
        assert result["remaining_hours"]["WC-A"] == pytest.approx(2)

    def test_rough_cut_capacity_plan(self, planner, make_routing, weekly_horizon, today):
        make_routing("X", [Operation(10, "WC-A", run_time_minutes=300)])

        plan = planner.rough_cut_capacity_plan(
            [{"product_id": "X", "quantity": 10, "due_date": today + timedelta(days=3)}],
            weekly_horizon,
        )

        assert len(plan) == 1
        assert plan[0]["work_center_id"] == "WC-A"
        assert plan[0]["total_load"] == pytest.approx(50)
        assert plan[0]["total_available"] == pytest.approx(160)
        assert plan[0]["utilization"] == pytest.approx(31.25)
        assert not plan[0]["is_overloaded"]
