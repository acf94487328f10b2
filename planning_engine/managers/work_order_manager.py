"""
Planning Engine - Work Order Manager
====================================

Work order lifecycle.

    PLANNED ──release──► RELEASED ──start──► IN_PROGRESS ──complete──► COMPLETED ──close──► CLOSED

    put_on_hold: RELEASED or IN_PROGRESS ──► ON_HOLD ──resume──► previous state
    close:       also allowed from IN_PROGRESS (short close)
    cancel:      any status except COMPLETED, CLOSED and CANCELLED
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from typing import Dict, FrozenSet, List, Optional

from ..config import PlanningConfig, get_config
from ..exceptions import InvalidStatus
from ..mrp.types import PlannedOrder
from ..providers.base import StructureStore, WorkOrderRepository
from ..structures.work_order import WorkOrder, WorkOrderOperation, WorkOrderStatus

logger = logging.getLogger(__name__)

_ALLOWED_FROM: Dict[str, FrozenSet[WorkOrderStatus]] = {
    "release": frozenset({WorkOrderStatus.PLANNED}),
    "start": frozenset({WorkOrderStatus.RELEASED}),
    "complete": frozenset({WorkOrderStatus.IN_PROGRESS}),
    "close": frozenset({WorkOrderStatus.COMPLETED, WorkOrderStatus.IN_PROGRESS}),
    "cancel": frozenset({
        WorkOrderStatus.PLANNED,
        WorkOrderStatus.RELEASED,
        WorkOrderStatus.IN_PROGRESS,
        WorkOrderStatus.ON_HOLD,
    }),
    "put_on_hold": frozenset({WorkOrderStatus.RELEASED, WorkOrderStatus.IN_PROGRESS}),
    "resume": frozenset({WorkOrderStatus.ON_HOLD}),
    "reschedule": frozenset({WorkOrderStatus.PLANNED, WorkOrderStatus.RELEASED, WorkOrderStatus.ON_HOLD}),
    "reassign_operation": frozenset({
        WorkOrderStatus.PLANNED,
        WorkOrderStatus.RELEASED,
        WorkOrderStatus.IN_PROGRESS,
        WorkOrderStatus.ON_HOLD,
    }),
}


class WorkOrderManager:
    """
    Gestor de ordens de produção.

    Usage:
        manager = WorkOrderManager(repository, store)
        wo = manager.create("FG-1", 100, date(2025, 3, 3), date(2025, 3, 7))
        manager.release(wo.work_order_id)
    """

    def __init__(
        self,
        repository: WorkOrderRepository,
        store: Optional[StructureStore] = None,
        config: Optional[PlanningConfig] = None,
    ):
        self.repository = repository
        self.store = store
        self.config = config or get_config()

    def get(self, work_order_id: str) -> WorkOrder:
        work_order = self.repository.get(work_order_id)
        if work_order is None:
            raise ValueError(f"Work order '{work_order_id}' not found")
        return work_order

    def _transition(self, work_order: WorkOrder, action: str, target: WorkOrderStatus) -> None:
        if work_order.status not in _ALLOWED_FROM[action]:
            raise InvalidStatus(work_order.work_order_id, work_order.status.value, target.value, action)

    # ─────────────────────────────────────────────────────────────────────────
    # Creation
    # ─────────────────────────────────────────────────────────────────────────

    def create(
        self,
        product_id: str,
        quantity: float,
        planned_start_date: date,
        planned_end_date: date,
        routing_id: Optional[str] = None,
        bom_id: Optional[str] = None,
        source_reference: Optional[str] = None,
        work_order_id: Optional[str] = None,
    ) -> WorkOrder:
        """
        Create a planned work order.

        Operations are copied from the routing (given, or effective on the
        start date) when a structure store is available.
        """
        work_order = WorkOrder(
            work_order_id=work_order_id or f"WO-{uuid.uuid4().hex[:10].upper()}",
            product_id=product_id,
            quantity=quantity,
            planned_start_date=planned_start_date,
            planned_end_date=planned_end_date,
            routing_id=routing_id,
            bom_id=bom_id,
            source_reference=source_reference,
        )
        work_order.operations = self._operations_from_routing(work_order)
        self.repository.save(work_order)
        logger.info(
            f"Created work order {work_order.work_order_id}: {quantity:g} x {product_id} "
            f"({len(work_order.operations)} operations)"
        )
        return work_order

    def create_from_planned_order(self, order: PlannedOrder) -> WorkOrder:
        """Firm up a manufacturing planned order."""
        if not order.is_manufacturing:
            raise ValueError(f"Planned order {order.order_id} is a purchase order")
        return self.create(
            product_id=order.product_id,
            quantity=order.quantity,
            planned_start_date=order.start_date,
            planned_end_date=order.due_date,
            source_reference=order.order_id,
        )

    def _operations_from_routing(self, work_order: WorkOrder) -> List[WorkOrderOperation]:
        if self.store is None:
            return []
        routing = None
        if work_order.routing_id:
            routing = self.store.get_routing(work_order.routing_id)
        if routing is None:
            routing = self.store.find_effective_routing(work_order.product_id, work_order.planned_start_date)
        if routing is None:
            return []
        work_order.routing_id = routing.routing_id

        operations = []
        for op in routing.effective_operations(work_order.planned_start_date):
            if not op.operation_type.consumes_capacity:
                continue
            operations.append(WorkOrderOperation(
                operation_number=op.operation_number,
                work_center_id=op.work_center_id,
                planned_setup_hours=op.setup_hours(),
                planned_run_hours=op.run_hours(work_order.quantity),
                scheduled_date=work_order.planned_start_date,
            ))
        return operations

    # ─────────────────────────────────────────────────────────────────────────
    # Transitions
    # ─────────────────────────────────────────────────────────────────────────

    def release(self, work_order_id: str) -> WorkOrder:
        work_order = self.get(work_order_id)
        self._transition(work_order, "release", WorkOrderStatus.RELEASED)
        work_order.status = WorkOrderStatus.RELEASED
        self.repository.save(work_order)
        logger.info(f"Released work order {work_order_id}")
        return work_order

    def start(self, work_order_id: str) -> WorkOrder:
        work_order = self.get(work_order_id)
        self._transition(work_order, "start", WorkOrderStatus.IN_PROGRESS)
        work_order.status = WorkOrderStatus.IN_PROGRESS
        work_order.actual_start = datetime.now()
        self.repository.save(work_order)
        return work_order

    def complete(
        self,
        work_order_id: str,
        completed_quantity: Optional[float] = None,
        scrapped_quantity: float = 0.0,
    ) -> WorkOrder:
        work_order = self.get(work_order_id)
        self._transition(work_order, "complete", WorkOrderStatus.COMPLETED)
        if completed_quantity is None:
            completed_quantity = work_order.quantity - scrapped_quantity
        if completed_quantity < 0 or scrapped_quantity < 0:
            raise ValueError("Completed and scrapped quantities cannot be negative")

        work_order.completed_quantity = completed_quantity
        work_order.scrapped_quantity = scrapped_quantity
        work_order.status = WorkOrderStatus.COMPLETED
        work_order.actual_end = datetime.now()
        self.repository.save(work_order)
        logger.info(
            f"Completed work order {work_order_id}: {completed_quantity:g} good, "
            f"{scrapped_quantity:g} scrapped"
        )
        return work_order

    def close(self, work_order_id: str) -> WorkOrder:
        work_order = self.get(work_order_id)
        self._transition(work_order, "close", WorkOrderStatus.CLOSED)
        if work_order.actual_end is None:
            work_order.actual_end = datetime.now()
        work_order.status = WorkOrderStatus.CLOSED
        self.repository.save(work_order)
        return work_order

    def cancel(self, work_order_id: str, reason: str = "") -> WorkOrder:
        work_order = self.get(work_order_id)
        self._transition(work_order, "cancel", WorkOrderStatus.CANCELLED)
        work_order.status = WorkOrderStatus.CANCELLED
        work_order.cancel_reason = reason or None
        self.repository.save(work_order)
        logger.info(f"Cancelled work order {work_order_id}: {reason}")
        return work_order

    def put_on_hold(self, work_order_id: str, reason: str = "") -> WorkOrder:
        work_order = self.get(work_order_id)
        self._transition(work_order, "put_on_hold", WorkOrderStatus.ON_HOLD)
        work_order.status = WorkOrderStatus.ON_HOLD
        work_order.hold_reason = reason or None
        self.repository.save(work_order)
        return work_order

    def resume(self, work_order_id: str) -> WorkOrder:
        """Back to IN_PROGRESS if production had started, else RELEASED."""
        work_order = self.get(work_order_id)
        target = WorkOrderStatus.IN_PROGRESS if work_order.actual_start else WorkOrderStatus.RELEASED
        self._transition(work_order, "resume", target)
        work_order.status = target
        work_order.hold_reason = None
        self.repository.save(work_order)
        return work_order

    # ─────────────────────────────────────────────────────────────────────────
    # Schedule changes
    # ─────────────────────────────────────────────────────────────────────────

    def reschedule(
        self,
        work_order_id: str,
        new_start_date: date,
        new_end_date: Optional[date] = None,
    ) -> WorkOrder:
        """Move the order; without an end date the duration is kept."""
        work_order = self.get(work_order_id)
        self._transition(work_order, "reschedule", work_order.status)

        delta = new_start_date - work_order.planned_start_date
        end = new_end_date or work_order.planned_end_date + delta
        if end < new_start_date:
            raise ValueError("Planned end date cannot precede the start date")

        work_order.planned_start_date = new_start_date
        work_order.planned_end_date = end
        for op in work_order.operations:
            if op.scheduled_date is not None:
                op.scheduled_date = op.scheduled_date + delta
        self.repository.save(work_order)
        logger.info(f"Rescheduled work order {work_order_id} to {new_start_date} ({delta.days:+d} days)")
        return work_order

    def reassign_operation(self, work_order_id: str, operation_number: int, work_center_id: str) -> WorkOrder:
        work_order = self.get(work_order_id)
        self._transition(work_order, "reassign_operation", work_order.status)
        op = work_order.get_operation(operation_number)
        if op is None:
            raise ValueError(f"Operation {operation_number} not found on work order {work_order_id}")

        previous = op.work_center_id
        op.work_center_id = work_center_id
        self.repository.save(work_order)
        logger.info(f"Work order {work_order_id} op {operation_number}: {previous} -> {work_center_id}")
        return work_order

    def find_overdue(self, on: Optional[date] = None) -> List[WorkOrder]:
        on = on or date.today()
        return [
            wo for wo in self.repository.find_active()
            if wo.planned_end_date < on
        ]

    def days_late(self, work_order_id: str, on: Optional[date] = None) -> int:
        work_order = self.get(work_order_id)
        on = on or date.today()
        return max(0, (on - work_order.planned_end_date).days)

