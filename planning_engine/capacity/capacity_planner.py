"""
═══════════════════════════════════════════════════════════════════════════════
                    CAPACITY PLANNER — Capacity Requirements Planning
═══════════════════════════════════════════════════════════════════════════════

Converts planned orders and firm work orders into per-work-center,
per-period capacity loads.

Features:
- Routing-driven loads, operations sequenced inside the order window
- Capacity profiles per work center (calendar-driven available hours)
- Bottleneck detection
- Greedy load leveling that never moves firm or frozen load
- Earliest-slot search, availability check, rough-cut capacity plan

Mathematical Model:
─────────────────────────────────────────────────────────────────────────────

    hours(op, q)      = (setup + run × q) / 60          (0 for queue/move)
    start(op_1)       = order start + queue_1
    offset(op_{k+1})  = offset(op_k) + queue_k
                        + processing_k × (1 − overlap_k/100) + move_k
    processing_k      = setup_k + run_k × q / resource_count_k

    Utilization_p     = loaded_p / available_p
    Bottleneck        ⇔ Utilization_p ≥ threshold
    Overload_p        = max(0, loaded_p − available_p)

═══════════════════════════════════════════════════════════════════════════════
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..config import PlanningConfig, get_config
from ..core.horizon import PlanningHorizon
from ..mrp.types import OrderType, PlannedOrder
from ..providers.base import (
    PlannedOrderRepository,
    StructureStore,
    WorkCenterProvider,
    WorkOrderRepository,
)
from ..structures.routing import Operation, Routing
from ..structures.work_order import WorkOrder
from .types import (
    Bottleneck,
    CapacityLoad,
    CapacityPeriod,
    CapacityProfile,
    CapacityRequirements,
    LevelLoadResult,
    LoadMove,
    LoadSourceType,
)

logger = logging.getLogger(__name__)

Order = Union[PlannedOrder, WorkOrder]

_EPSILON = 1e-9


class CapacityPlanner:
    """
    Capacity requirements planner.

    Usage:
        planner = CapacityPlanner(store, work_centers, planned_orders, work_orders)
        profile = planner.get_capacity_profile("WC-CNC", horizon)
        for b in planner.identify_bottlenecks(horizon):
            print(b.work_center_id, b.period_start, b.overload_hours)
    """

    def __init__(
        self,
        store: StructureStore,
        work_centers: WorkCenterProvider,
        planned_orders: Optional[PlannedOrderRepository] = None,
        work_orders: Optional[WorkOrderRepository] = None,
        config: Optional[PlanningConfig] = None,
    ):
        self.store = store
        self.work_centers = work_centers
        self.planned_orders = planned_orders
        self.work_orders = work_orders
        self.config = config or get_config()

    # ═══════════════════════════════════════════════════════════════════════════
    # REQUIREMENTS
    # ═══════════════════════════════════════════════════════════════════════════

    def default_orders(self) -> List[Order]:
        """Active work orders plus persisted manufacturing planned orders."""
        orders: List[Order] = []
        if self.work_orders is not None:
            orders.extend(self.work_orders.find_active())
        if self.planned_orders is not None:
            orders.extend(self.planned_orders.find_planned_orders())
        return orders

    def calculate_requirements(self, orders: Iterable[Order]) -> CapacityRequirements:
        """
        Capacity loads for a set of orders.

        Purchase planned orders place no load. A manufactured order without a
        routing is reported in ``errors`` and skipped.
        """
        requirements = CapacityRequirements()
        for order in orders:
            if isinstance(order, WorkOrder):
                self._work_order_loads(order, requirements)
            elif isinstance(order, PlannedOrder):
                self._planned_order_loads(order, requirements)
            else:
                requirements.errors.append(f"Unsupported order type: {type(order).__name__}")

        logger.debug(
            f"Capacity requirements: {len(requirements.loads)} loads, "
            f"{requirements.total_hours:.1f}h, {len(requirements.errors)} errors"
        )
        return requirements

    def _planned_order_loads(self, order: PlannedOrder, requirements: CapacityRequirements) -> None:
        if order.order_type != OrderType.MANUFACTURING:
            return
        routing = self.store.find_effective_routing(order.product_id, order.start_date)
        if routing is None:
            message = f"No effective routing for '{order.product_id}' (planned order {order.order_id})"
            logger.warning(message)
            requirements.errors.append(message)
            return

        requirements.loads.extend(self._routing_loads(
            routing=routing,
            quantity=order.quantity,
            start=order.start_date,
            due=order.due_date,
            source_id=order.order_id,
            source_type=LoadSourceType.PLANNED_ORDER,
            product_id=order.product_id,
            is_firm=False,
        ))

    def _work_order_loads(self, order: WorkOrder, requirements: CapacityRequirements) -> None:
        if not order.status.is_active:
            return
        quantity = order.remaining_quantity
        if quantity <= 0:
            return

        # Explicit operation lines carry their own planned hours.
        if order.operations:
            for op in order.operations:
                if op.planned_hours <= 0:
                    continue
                requirements.loads.append(CapacityLoad(
                    source_id=order.work_order_id,
                    source_type=LoadSourceType.WORK_ORDER,
                    work_center_id=op.work_center_id,
                    setup_hours=op.planned_setup_hours,
                    run_hours=op.planned_run_hours,
                    load_date=op.scheduled_date or order.planned_start_date,
                    due_date=order.planned_end_date,
                    operation_number=op.operation_number,
                    product_id=order.product_id,
                    quantity=quantity,
                    is_firm=order.status.is_firm,
                ))
            return

        routing = None
        if order.routing_id:
            routing = self.store.get_routing(order.routing_id)
        if routing is None:
            routing = self.store.find_effective_routing(order.product_id, order.planned_start_date)
        if routing is None:
            message = f"No routing for work order {order.work_order_id} ('{order.product_id}')"
            logger.warning(message)
            requirements.errors.append(message)
            return

        requirements.loads.extend(self._routing_loads(
            routing=routing,
            quantity=quantity,
            start=order.planned_start_date,
            due=order.planned_end_date,
            source_id=order.work_order_id,
            source_type=LoadSourceType.WORK_ORDER,
            product_id=order.product_id,
            is_firm=order.status.is_firm,
        ))

    def _routing_loads(
        self,
        routing: Routing,
        quantity: float,
        start: date,
        due: date,
        source_id: str,
        source_type: LoadSourceType,
        product_id: str,
        is_firm: bool,
    ) -> List[CapacityLoad]:
        loads: List[CapacityLoad] = []
        for op, load_date in self.sequence_operations(routing.effective_operations(start), quantity, start, due):
            if not op.operation_type.consumes_capacity:
                continue
            setup = op.setup_hours()
            run = op.run_hours(quantity)
            if setup + run <= 0:
                continue
            loads.append(CapacityLoad(
                source_id=source_id,
                source_type=source_type,
                work_center_id=op.work_center_id,
                setup_hours=setup,
                run_hours=run,
                load_date=load_date,
                due_date=due,
                operation_number=op.operation_number,
                product_id=product_id,
                quantity=quantity,
                is_firm=is_firm,
            ))
        return loads

    def sequence_operations(
        self,
        operations: Sequence[Operation],
        quantity: float,
        start: date,
        due: date,
    ) -> List[Tuple[Operation, date]]:
        """
        Date each operation inside [start, due].

        Overlap lets the next operation begin before this one completes; it
        shortens elapsed time only, never the hours loaded.
        """
        minutes_per_day = self.config.working_minutes_per_day
        latest = max(start, due)
        offset = 0.0
        dated: List[Tuple[Operation, date]] = []

        for op in sorted(operations, key=lambda o: o.operation_number):
            begins = offset + op.queue_time_minutes
            op_date = start + timedelta(days=int(begins // minutes_per_day))
            dated.append((op, min(op_date, latest)))

            processing = op.processing_minutes(quantity)
            offset = begins + processing * (1 - op.overlap_percentage / 100) + op.move_time_minutes

        return dated

    def calculate_load_for_product(
        self,
        product_id: str,
        quantity: float,
        on: date,
    ) -> Dict[str, float]:
        """Hours per work center to make ``quantity`` of a product."""
        routing = self.store.find_effective_routing(product_id, on)
        if routing is None:
            return {}
        hours: Dict[str, float] = defaultdict(float)
        for op in routing.effective_operations(on):
            hours[op.work_center_id] += op.get_capacity_time_hours(quantity)
        return {wc_id: h for wc_id, h in hours.items() if h > 0}

    # ═══════════════════════════════════════════════════════════════════════════
    # PROFILES
    # ═══════════════════════════════════════════════════════════════════════════

    def _available_hours(self, work_center_id: str, start: date, end: date) -> float:
        include_overtime = self.config.include_overtime
        total = 0.0
        current = start
        while current < end:
            total += self.work_centers.get_available_capacity(work_center_id, current, include_overtime)
            current += timedelta(days=1)
        return total

    def build_profile(
        self,
        work_center_id: str,
        horizon: PlanningHorizon,
        loads: Iterable[CapacityLoad],
    ) -> CapacityProfile:
        """Profile from precomputed loads; loads outside the horizon are ignored."""
        periods = [
            CapacityPeriod(
                start=bucket.start,
                end=bucket.end,
                available_hours=self._available_hours(work_center_id, bucket.start, bucket.end),
            )
            for bucket in horizon.buckets()
        ]
        for load in loads:
            if load.work_center_id != work_center_id or not horizon.contains(load.load_date):
                continue
            periods[horizon.bucket_index_for(load.load_date)].add_load(load)
        return CapacityProfile(work_center_id=work_center_id, periods=periods)

    def get_capacity_profile(
        self,
        work_center_id: str,
        horizon: PlanningHorizon,
        orders: Optional[Iterable[Order]] = None,
    ) -> CapacityProfile:
        if orders is None:
            orders = self.default_orders()
        requirements = self.calculate_requirements(orders)
        return self.build_profile(work_center_id, horizon, requirements.loads)

    def get_all_capacity_profiles(
        self,
        horizon: PlanningHorizon,
        orders: Optional[Iterable[Order]] = None,
    ) -> Dict[str, CapacityProfile]:
        """Profiles for every active work center, keyed by id."""
        if orders is None:
            orders = self.default_orders()
        requirements = self.calculate_requirements(orders)
        return self._profiles_from_loads(horizon, requirements.loads)

    def _profiles_from_loads(
        self,
        horizon: PlanningHorizon,
        loads: Sequence[CapacityLoad],
    ) -> Dict[str, CapacityProfile]:
        work_center_ids = [wc.work_center_id for wc in self.work_centers.list_work_centers(active_only=True)]
        unknown = sorted({load.work_center_id for load in loads} - set(work_center_ids))
        for wc_id in unknown:
            logger.warning(f"Load on unknown or inactive work center '{wc_id}'")

        by_wc: Dict[str, List[CapacityLoad]] = defaultdict(list)
        for load in loads:
            by_wc[load.work_center_id].append(load)

        return {
            wc_id: self.build_profile(wc_id, horizon, by_wc.get(wc_id, []))
            for wc_id in work_center_ids + unknown
        }

    # ═══════════════════════════════════════════════════════════════════════════
    # BOTTLENECKS
    # ═══════════════════════════════════════════════════════════════════════════

    def identify_bottlenecks(
        self,
        horizon: PlanningHorizon,
        threshold: Optional[float] = None,
        orders: Optional[Iterable[Order]] = None,
    ) -> List[Bottleneck]:
        """Every period with loaded/available ≥ threshold, ordered by (date, work center)."""
        threshold = self.config.bottleneck_threshold if threshold is None else threshold
        profiles = self.get_all_capacity_profiles(horizon, orders)
        return self._bottlenecks(profiles, threshold)

    @staticmethod
    def _bottlenecks(profiles: Dict[str, CapacityProfile], threshold: float) -> List[Bottleneck]:
        found = [
            Bottleneck.from_period(wc_id, period)
            for wc_id, profile in profiles.items()
            for period in profile.periods
            if period.loaded_hours > 0 and period.load_ratio >= threshold
        ]
        found.sort(key=lambda b: (b.period_start, b.work_center_id))
        return found

    def get_overloaded_work_centers(
        self,
        horizon: PlanningHorizon,
        orders: Optional[Iterable[Order]] = None,
    ) -> List[Dict[str, Any]]:
        """Overloaded work centers, highest excess first."""
        overloaded = []
        for wc_id, profile in self.get_all_capacity_profiles(horizon, orders).items():
            if not profile.is_overloaded:
                continue
            wc = self.work_centers.get_work_center(wc_id)
            overloaded.append({
                "work_center_id": wc_id,
                "work_center_code": wc.code if wc else None,
                "profile": profile,
                "utilization": profile.utilization,
                "excess_hours": profile.total_overload_hours,
                "overloaded_periods": len(profile.overloaded_periods()),
            })
        overloaded.sort(key=lambda item: (-item["excess_hours"], item["work_center_id"]))
        return overloaded

    # ═══════════════════════════════════════════════════════════════════════════
    # LOAD LEVELING
    # ═══════════════════════════════════════════════════════════════════════════

    def level_load(
        self,
        horizon: PlanningHorizon,
        orders: Optional[Iterable[Order]] = None,
    ) -> LevelLoadResult:
        """
        Greedy load leveling.

        Overloaded periods are processed by (period start, work center).
        Within a period, candidate loads are taken by most slack first, then
        source id. Each candidate moves to the nearest later period, within
        its slack, whose remaining capacity fits it whole, and never past the
        date of a later operation of the same order. Firm loads and loads in
        the Frozen zone never move.
        """
        if orders is None:
            orders = self.default_orders()
        requirements = self.calculate_requirements(orders)
        loads = list(requirements.loads)
        buckets = horizon.buckets()

        profiles = self._profiles_from_loads(horizon, loads)
        available = {wc_id: np.array([p.available_hours for p in prof.periods]) for wc_id, prof in profiles.items()}
        loaded = {wc_id: np.array([p.loaded_hours for p in prof.periods]) for wc_id, prof in profiles.items()}

        # Load positions per (work center, bucket); values index into ``loads``.
        positions: Dict[Tuple[str, int], List[int]] = defaultdict(list)
        for i, load in enumerate(loads):
            if horizon.contains(load.load_date):
                positions[(load.work_center_id, horizon.bucket_index_for(load.load_date))].append(i)

        moves: List[LoadMove] = []
        overloaded = sorted(
            ((bucket.start, wc_id, bucket.index) for wc_id in profiles for bucket in buckets
             if loaded[wc_id][bucket.index] > available[wc_id][bucket.index] + _EPSILON),
        )

        for _, wc_id, b in overloaded:
            candidates = [
                i for i in positions[(wc_id, b)]
                if not loads[i].is_firm and not horizon.is_frozen(loads[i].load_date)
            ]
            candidates.sort(key=lambda i: (-loads[i].slack_days, loads[i].source_id, loads[i].operation_number or 0))

            for i in candidates:
                if loaded[wc_id][b] <= available[wc_id][b] + _EPSILON:
                    break
                load = loads[i]
                target = self._leveling_target(
                    load, b, buckets, available[wc_id], loaded[wc_id], _next_operation_date(load, loads),
                )
                if target is None:
                    continue

                new_date = buckets[target].start
                loaded[wc_id][b] -= load.hours
                loaded[wc_id][target] += load.hours
                positions[(wc_id, b)].remove(i)
                positions[(wc_id, target)].append(i)
                loads[i] = load.moved_to(new_date)
                moves.append(LoadMove(
                    source_id=load.source_id,
                    source_type=load.source_type,
                    work_center_id=wc_id,
                    operation_number=load.operation_number,
                    hours=load.hours,
                    from_date=load.load_date,
                    to_date=new_date,
                ))

        leveled = self._profiles_from_loads(horizon, loads)
        remaining = [
            Bottleneck.from_period(wc_id, period)
            for wc_id, profile in leveled.items()
            for period in profile.overloaded_periods()
        ]
        remaining.sort(key=lambda bn: (bn.period_start, bn.work_center_id))

        logger.info(
            f"Load leveling: {len(moves)} loads moved, "
            f"{len(remaining)} hard bottlenecks remain"
        )
        return LevelLoadResult(moves=moves, bottlenecks=remaining, profiles=leveled)

    @staticmethod
    def _leveling_target(
        load: CapacityLoad,
        current: int,
        buckets: Sequence,
        available: np.ndarray,
        loaded: np.ndarray,
        latest: Optional[date] = None,
    ) -> Optional[int]:
        """Nearest later bucket within slack (and not after ``latest``) whose spare capacity holds the load."""
        for target in range(current + 1, len(buckets)):
            delta = (buckets[target].start - load.load_date).days
            if delta > load.slack_days:
                return None
            if latest is not None and buckets[target].start > latest:
                return None
            if available[target] - loaded[target] + _EPSILON >= load.hours:
                return target
        return None

    # ═══════════════════════════════════════════════════════════════════════════
    # AVAILABILITY
    # ═══════════════════════════════════════════════════════════════════════════

    def find_earliest_period(
        self,
        work_center_id: str,
        required_hours: float,
        desired_date: date,
        horizon: PlanningHorizon,
        orders: Optional[Iterable[Order]] = None,
    ) -> Optional[CapacityPeriod]:
        """Forward scan from the period holding ``desired_date``; None if nothing fits."""
        profile = self.get_capacity_profile(work_center_id, horizon, orders)
        for period in profile.periods:
            if period.end <= desired_date:
                continue
            if period.remaining_hours + _EPSILON >= required_hours:
                return period
        return None

    def find_earliest_available(
        self,
        product_id: str,
        quantity: float,
        desired_date: date,
        horizon: PlanningHorizon,
        orders: Optional[Iterable[Order]] = None,
    ) -> Optional[date]:
        """
        Earliest date from ``desired_date`` on where every work center of the
        product's routing has room for its hours in the same period.

        Returns None when no period in the horizon fits.
        """
        required = self.calculate_load_for_product(product_id, quantity, desired_date)
        if not required:
            return max(desired_date, horizon.start_date)

        profiles = self.get_all_capacity_profiles(horizon, orders)
        for wc_id in required:
            if wc_id not in profiles:
                profiles[wc_id] = self.build_profile(wc_id, horizon, [])

        for bucket in horizon.buckets():
            if bucket.end <= desired_date:
                continue
            fits = all(
                profiles[wc_id].periods[bucket.index].remaining_hours + _EPSILON >= hours
                for wc_id, hours in required.items()
            )
            if fits:
                return max(bucket.start, desired_date)
        return None

    def check_availability(
        self,
        product_id: str,
        quantity: float,
        on: date,
        orders: Optional[Iterable[Order]] = None,
    ) -> Dict[str, Any]:
        """Whether the product's routing hours fit on a single day."""
        required = self.calculate_load_for_product(product_id, quantity, on)
        day = PlanningHorizon(on, on + timedelta(days=1), 0, 0)
        if orders is None:
            orders = self.default_orders()
        loads = self.calculate_requirements(orders).loads

        constrained = []
        remaining: Dict[str, float] = {}
        for wc_id, hours in sorted(required.items()):
            period = self.build_profile(wc_id, day, loads).periods[0]
            remaining[wc_id] = period.remaining_hours
            if period.remaining_hours + _EPSILON < hours:
                constrained.append(wc_id)

        return {
            "available": not constrained,
            "constrained_work_centers": constrained,
            "required_hours": required,
            "remaining_hours": remaining,
        }

    def rough_cut_capacity_plan(
        self,
        master_schedule: Sequence[Dict[str, Any]],
        horizon: PlanningHorizon,
    ) -> List[Dict[str, Any]]:
        """
        Rough-cut capacity plan for a master schedule.

        Each item has ``product_id``, ``quantity`` and ``due_date``; hours are
        the routing's work content, compared with the work center's available
        hours over the whole horizon.
        """
        plan: Dict[str, Dict[str, Any]] = {}
        for item in master_schedule:
            due = item["due_date"]
            for wc_id, hours in self.calculate_load_for_product(item["product_id"], item["quantity"], due).items():
                if wc_id not in plan:
                    plan[wc_id] = {
                        "work_center_id": wc_id,
                        "total_available": self._available_hours(wc_id, horizon.start_date, horizon.end_date),
                        "total_load": 0.0,
                        "items": [],
                    }
                plan[wc_id]["items"].append({
                    "product_id": item["product_id"],
                    "quantity": item["quantity"],
                    "due_date": due.isoformat(),
                    "hours": hours,
                })
                plan[wc_id]["total_load"] += hours

        for data in plan.values():
            available = data["total_available"]
            load = data["total_load"]
            if available > 0:
                data["utilization"] = load / available * 100
            else:
                data["utilization"] = 100.0 if load > 0 else 0.0
            data["is_overloaded"] = load > available

        return [plan[wc_id] for wc_id in sorted(plan)]


def _next_operation_date(load: CapacityLoad, loads: Sequence[CapacityLoad]) -> Optional[date]:
    """Earliest date of a later operation of the same order, if any."""
    if load.operation_number is None:
        return None
    later = [
        other.load_date for other in loads
        if other.source_id == load.source_id
        and other.source_type == load.source_type
        and other.operation_number is not None
        and other.operation_number > load.operation_number
    ]
    return min(later, default=None)
