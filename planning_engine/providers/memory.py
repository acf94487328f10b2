"""
Planning Engine - In-memory Providers
=====================================

Dictionary-backed implementations of the provider contracts. Used by the test
suite and by callers that assemble a planning scenario in memory.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING

from ..structures.bom import Bom, BomLine
from ..structures.routing import Routing
from ..structures.work_center import CalendarEntry, WorkCenter
from ..structures.work_order import WorkOrder, WorkOrderStatus
from .base import (
    DemandEntry,
    DemandHistoryProvider,
    DemandPoint,
    DemandProvider,
    InventoryProvider,
    PlannedOrderRepository,
    ReplenishmentType,
    ScheduledReceipt,
    StructureStore,
    WorkCenterProvider,
    WorkOrderRepository,
)

if TYPE_CHECKING:
    from ..core.horizon import PlanningHorizon
    from ..mrp.types import PlannedOrder

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# STRUCTURES
# ═══════════════════════════════════════════════════════════════════════════════

class InMemoryStructureStore(StructureStore):
    """BOMs and Routings keyed by id, plus a product master set."""

    def __init__(self, products: Optional[Sequence[str]] = None):
        self._products = set(products or [])
        self._boms: Dict[str, Bom] = {}
        self._routings: Dict[str, Routing] = {}

    def add_product(self, product_id: str) -> None:
        self._products.add(product_id)

    def has_product(self, product_id: str) -> bool:
        return product_id in self._products

    def save_bom(self, bom: Bom) -> None:
        self._boms[bom.bom_id] = bom
        self._products.add(bom.product_id)

    def save_routing(self, routing: Routing) -> None:
        self._routings[routing.routing_id] = routing
        self._products.add(routing.product_id)

    def get_bom(self, bom_id: str) -> Optional[Bom]:
        return self._boms.get(bom_id)

    def get_routing(self, routing_id: str) -> Optional[Routing]:
        return self._routings.get(routing_id)

    def list_boms(self, product_id: Optional[str] = None) -> List[Bom]:
        boms = list(self._boms.values())
        if product_id is not None:
            boms = [b for b in boms if b.product_id == product_id]
        return boms

    def list_routings(self, product_id: Optional[str] = None) -> List[Routing]:
        routings = list(self._routings.values())
        if product_id is not None:
            routings = [r for r in routings if r.product_id == product_id]
        return routings

    def find_effective_bom(self, product_id: str, as_of: date) -> Optional[Bom]:
        candidates = [b for b in self.list_boms(product_id) if b.is_effective_at(as_of)]
        if not candidates:
            return None
        if len(candidates) > 1:
            logger.warning(
                f"{len(candidates)} effective BOMs for {product_id} on {as_of}; "
                f"using the most recent effectivity"
            )
        return max(candidates, key=lambda b: (b.effectivity.effective_from or date.min, b.version))

    def find_effective_routing(self, product_id: str, as_of: date) -> Optional[Routing]:
        candidates = [r for r in self.list_routings(product_id) if r.is_effective_at(as_of)]
        if not candidates:
            return None
        return max(candidates, key=lambda r: (r.effectivity.effective_from or date.min, r.version))

    def find_where_used(self, component_product_id: str) -> List[Tuple[Bom, BomLine]]:
        result = []
        for bom in sorted(self._boms.values(), key=lambda b: b.bom_id):
            for line in bom.lines:
                if line.product_id == component_product_id:
                    result.append((bom, line))
        return result


# ═══════════════════════════════════════════════════════════════════════════════
# INVENTORY & DEMAND
# ═══════════════════════════════════════════════════════════════════════════════

class InMemoryInventoryProvider(InventoryProvider):
    """Stock positions set up by the caller; unknown products are zero-stock purchases."""

    def __init__(self):
        self._on_hand: Dict[str, float] = {}
        self._safety_stock: Dict[str, float] = {}
        self._lead_times: Dict[str, int] = {}
        self._replenishment: Dict[str, ReplenishmentType] = {}
        self._receipts: Dict[str, List[ScheduledReceipt]] = defaultdict(list)

    def set_item(
        self,
        product_id: str,
        on_hand: float = 0.0,
        safety_stock: float = 0.0,
        lead_time_days: int = 0,
        replenishment: ReplenishmentType = ReplenishmentType.PURCHASE,
    ) -> None:
        self._on_hand[product_id] = on_hand
        self._safety_stock[product_id] = safety_stock
        self._lead_times[product_id] = lead_time_days
        self._replenishment[product_id] = ReplenishmentType(replenishment)

    def add_scheduled_receipt(self, product_id: str, receipt_date: date, quantity: float,
                              source_reference: Optional[str] = None) -> None:
        self._receipts[product_id].append(ScheduledReceipt(receipt_date, quantity, source_reference))

    def get_on_hand_quantity(self, product_id: str) -> float:
        return self._on_hand.get(product_id, 0.0)

    def get_safety_stock(self, product_id: str) -> float:
        return self._safety_stock.get(product_id, 0.0)

    def get_scheduled_receipts(self, product_id: str, until_date: date) -> List[ScheduledReceipt]:
        receipts = [r for r in self._receipts.get(product_id, []) if r.receipt_date < until_date]
        return sorted(receipts, key=lambda r: r.receipt_date)

    def get_lead_time_days(self, product_id: str) -> int:
        return self._lead_times.get(product_id, 0)

    def get_replenishment_type(self, product_id: str) -> ReplenishmentType:
        return self._replenishment.get(product_id, ReplenishmentType.PURCHASE)


class InMemoryDemandProvider(DemandProvider):
    """Independent demand entries per product."""

    def __init__(self):
        self._demand: Dict[str, List[DemandEntry]] = defaultdict(list)

    def add_demand(self, product_id: str, required_date: date, quantity: float,
                   source_type: str = "sales_order", source_reference: Optional[str] = None) -> None:
        self._demand[product_id].append(
            DemandEntry(required_date, quantity, source_type, source_reference)
        )

    def get_gross_requirements(self, product_id: str, horizon: "PlanningHorizon") -> List[DemandEntry]:
        entries = [e for e in self._demand.get(product_id, []) if e.required_date < horizon.end_date]
        return sorted(entries, key=lambda e: e.required_date)

    def get_demand_sources(self, product_id: str, on: date) -> List[DemandEntry]:
        return [e for e in self._demand.get(product_id, []) if e.required_date == on]

    def get_master_scheduled_products(self, horizon: "PlanningHorizon") -> List[str]:
        return sorted(
            product_id
            for product_id, entries in self._demand.items()
            if any(horizon.contains(e.required_date) for e in entries)
        )


class InMemoryDemandHistory(DemandHistoryProvider):
    """Historical demand series per product."""

    def __init__(self, history: Optional[Dict[str, List[Tuple[date, float]]]] = None):
        self._history: Dict[str, List[DemandPoint]] = defaultdict(list)
        for product_id, points in (history or {}).items():
            for demand_date, quantity in points:
                self.add_point(product_id, demand_date, quantity)

    def add_point(self, product_id: str, demand_date: date, quantity: float) -> None:
        self._history[product_id].append(DemandPoint(demand_date, quantity))

    def get_history(self, product_id: str, until: Optional[date] = None) -> List[DemandPoint]:
        points = self._history.get(product_id, [])
        if until is not None:
            points = [p for p in points if p.demand_date < until]
        return sorted(points, key=lambda p: p.demand_date)


# ═══════════════════════════════════════════════════════════════════════════════
# WORK CENTERS
# ═══════════════════════════════════════════════════════════════════════════════

class InMemoryWorkCenterProvider(WorkCenterProvider):
    """
    Work centers with optional explicit calendar entries.

    Without a calendar entry a date follows the work center's weekly pattern
    (``days_per_week`` x ``hours_per_day``).
    """

    def __init__(self, work_centers: Optional[Sequence[WorkCenter]] = None):
        self._work_centers: Dict[str, WorkCenter] = {}
        self._calendars: Dict[str, Dict[date, CalendarEntry]] = defaultdict(dict)
        self._lock = threading.Lock()
        for wc in work_centers or []:
            self.save_work_center(wc)

    def save_work_center(self, work_center: WorkCenter) -> None:
        self._work_centers[work_center.work_center_id] = work_center

    def set_calendar_entry(self, work_center_id: str, entry: CalendarEntry) -> None:
        with self._lock:
            self._calendars[work_center_id][entry.date] = entry

    def remove_calendar_entry(self, work_center_id: str, on: date) -> bool:
        with self._lock:
            return self._calendars.get(work_center_id, {}).pop(on, None) is not None

    def get_work_center(self, work_center_id: str) -> Optional[WorkCenter]:
        return self._work_centers.get(work_center_id)

    def list_work_centers(self, active_only: bool = True) -> List[WorkCenter]:
        centers = sorted(self._work_centers.values(), key=lambda wc: wc.work_center_id)
        if active_only:
            centers = [wc for wc in centers if wc.is_active]
        return centers

    def get_available_capacity(self, work_center_id: str, on: date,
                               include_overtime: bool = False) -> float:
        wc = self._work_centers.get(work_center_id)
        if wc is None or not wc.is_active:
            return 0.0

        entry = self._calendars.get(work_center_id, {}).get(on)
        if entry is not None:
            hours = entry.total_hours(include_overtime)
        elif wc.is_working_day(on):
            hours = wc.hours_per_day
        else:
            hours = 0.0

        return hours * wc.capacity_units * wc.efficiency / 100

    def get_calendar(self, work_center_id: str, start: date, end: date) -> List[CalendarEntry]:
        entries = self._calendars.get(work_center_id, {})
        return sorted(
            (e for d, e in entries.items() if start <= d < end),
            key=lambda e: e.date,
        )

    def add_overtime(self, work_center_id: str, on: date, hours: float) -> None:
        wc = self._work_centers.get(work_center_id)
        if wc is None:
            raise KeyError(f"Work center '{work_center_id}' not found")
        with self._lock:
            calendar = self._calendars[work_center_id]
            entry = calendar.get(on)
            if entry is None:
                entry = CalendarEntry(
                    date=on,
                    is_working=True,
                    available_hours=wc.hours_per_day if wc.is_working_day(on) else 0.0,
                )
            calendar[on] = CalendarEntry(
                date=on,
                is_working=True,
                available_hours=entry.available_hours,
                overtime_hours=entry.overtime_hours + hours,
                notes=entry.notes,
            )
        logger.info(f"Added {hours:.1f}h overtime to {work_center_id} on {on}")


# ═══════════════════════════════════════════════════════════════════════════════
# ORDERS
# ═══════════════════════════════════════════════════════════════════════════════

class InMemoryPlannedOrderRepository(PlannedOrderRepository):
    """Planned orders keyed by order id."""

    def __init__(self):
        self._orders: Dict[str, "PlannedOrder"] = {}
        self._lock = threading.Lock()

    def save_planned_order(self, order: "PlannedOrder") -> None:
        with self._lock:
            self._orders[order.order_id] = order

    def delete_planned_orders(self, product_id: str, horizon: "PlanningHorizon") -> int:
        with self._lock:
            doomed = [
                order_id for order_id, order in self._orders.items()
                if order.product_id == product_id and horizon.contains(order.due_date)
            ]
            for order_id in doomed:
                del self._orders[order_id]
        return len(doomed)

    def find_planned_orders(self, product_id: Optional[str] = None,
                            horizon: Optional["PlanningHorizon"] = None) -> List["PlannedOrder"]:
        with self._lock:
            orders = list(self._orders.values())
        if product_id is not None:
            orders = [o for o in orders if o.product_id == product_id]
        if horizon is not None:
            orders = [o for o in orders if horizon.contains(o.due_date)]
        return sorted(orders, key=lambda o: (o.start_date, o.order_id))

    def __len__(self) -> int:
        return len(self._orders)


class InMemoryWorkOrderRepository(WorkOrderRepository):
    """Work orders keyed by id."""

    def __init__(self, work_orders: Optional[Sequence[WorkOrder]] = None):
        self._orders: Dict[str, WorkOrder] = {}
        for wo in work_orders or []:
            self.save(wo)

    def save(self, work_order: WorkOrder) -> None:
        self._orders[work_order.work_order_id] = work_order

    def get(self, work_order_id: str) -> Optional[WorkOrder]:
        return self._orders.get(work_order_id)

    def find_by_status(self, statuses: Sequence[WorkOrderStatus]) -> List[WorkOrder]:
        wanted = set(statuses)
        return sorted(
            (wo for wo in self._orders.values() if wo.status in wanted),
            key=lambda wo: wo.work_order_id,
        )

    def find_by_product(self, product_id: str) -> List[WorkOrder]:
        return sorted(
            (wo for wo in self._orders.values() if wo.product_id == product_id),
            key=lambda wo: wo.work_order_id,
        )

    def list_all(self) -> List[WorkOrder]:
        return sorted(self._orders.values(), key=lambda wo: wo.work_order_id)

    def to_summary(self) -> Dict[str, Any]:
        counts: Dict[str, int] = defaultdict(int)
        for wo in self._orders.values():
            counts[wo.status.value] += 1
        return {"total": len(self._orders), "by_status": dict(counts)}
