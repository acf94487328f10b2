"""
Planning Engine - Work Orders
=============================

Firm production orders. Their operations, once released, are the committed
load seen by the capacity planner.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class WorkOrderStatus(str, Enum):
    """Work order status."""
    PLANNED = "planned"
    RELEASED = "released"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CLOSED = "closed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (
            WorkOrderStatus.PLANNED,
            WorkOrderStatus.RELEASED,
            WorkOrderStatus.IN_PROGRESS,
        )

    @property
    def is_firm(self) -> bool:
        """Released orders have a committed start."""
        return self in (WorkOrderStatus.RELEASED, WorkOrderStatus.IN_PROGRESS)


@dataclass
class WorkOrderOperation:
    """Operation line copied from the routing onto a work order."""
    operation_number: int
    work_center_id: str
    planned_setup_hours: float = 0.0
    planned_run_hours: float = 0.0
    actual_setup_hours: float = 0.0
    actual_run_hours: float = 0.0
    scheduled_date: Optional[date] = None

    @property
    def planned_hours(self) -> float:
        return self.planned_setup_hours + self.planned_run_hours

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_number": self.operation_number,
            "work_center_id": self.work_center_id,
            "planned_setup_hours": self.planned_setup_hours,
            "planned_run_hours": self.planned_run_hours,
            "actual_setup_hours": self.actual_setup_hours,
            "actual_run_hours": self.actual_run_hours,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
        }


@dataclass
class WorkOrder:
    """Ordem de produção firme."""
    work_order_id: str
    product_id: str
    quantity: float
    planned_start_date: date
    planned_end_date: date
    status: WorkOrderStatus = WorkOrderStatus.PLANNED
    routing_id: Optional[str] = None
    bom_id: Optional[str] = None
    operations: List[WorkOrderOperation] = field(default_factory=list)
    completed_quantity: float = 0.0
    scrapped_quantity: float = 0.0
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    hold_reason: Optional[str] = None
    cancel_reason: Optional[str] = None
    source_reference: Optional[str] = None

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError("Work order quantity must be positive")
        if self.planned_end_date < self.planned_start_date:
            raise ValueError("Planned end date cannot precede the start date")

    @property
    def remaining_quantity(self) -> float:
        return max(0.0, self.quantity - self.completed_quantity - self.scrapped_quantity)

    @property
    def duration_days(self) -> int:
        return (self.planned_end_date - self.planned_start_date).days

    def get_operation(self, operation_number: int) -> Optional[WorkOrderOperation]:
        for op in self.operations:
            if op.operation_number == operation_number:
                return op
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "work_order_id": self.work_order_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "planned_start_date": self.planned_start_date.isoformat(),
            "planned_end_date": self.planned_end_date.isoformat(),
            "status": self.status.value,
            "routing_id": self.routing_id,
            "bom_id": self.bom_id,
            "operations": [op.to_dict() for op in self.operations],
            "completed_quantity": self.completed_quantity,
            "scrapped_quantity": self.scrapped_quantity,
            "actual_start": self.actual_start.isoformat() if self.actual_start else None,
            "actual_end": self.actual_end.isoformat() if self.actual_end else None,
            "hold_reason": self.hold_reason,
            "cancel_reason": self.cancel_reason,
        }
