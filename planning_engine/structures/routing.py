"""
Planning Engine - Routing
=========================

Routing (sequence of operations) for a product.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from ..core.effectivity import ALWAYS, Effectivity
from .bom import StructureStatus


class OperationType(str, Enum):
    """Type of routing operation."""
    PRODUCTION = "production"
    SETUP = "setup"
    INSPECTION = "inspection"
    SUBCONTRACT = "subcontract"
    TEARDOWN = "teardown"
    QUEUE = "queue"
    MOVE = "move"

    @property
    def consumes_capacity(self) -> bool:
        return self not in (OperationType.QUEUE, OperationType.MOVE)


@dataclass(frozen=True)
class Operation:
    """
    Routing operation.

    Times are in minutes. ``overlap_percentage`` is the share of this
    operation that the next one may overlap.
    """
    operation_number: int
    work_center_id: str
    description: str = ""
    operation_type: OperationType = OperationType.PRODUCTION
    setup_time_minutes: float = 0.0
    run_time_minutes: float = 0.0  # per unit
    queue_time_minutes: float = 0.0
    move_time_minutes: float = 0.0
    resource_count: int = 1
    overlap_percentage: float = 0.0
    effectivity: Effectivity = ALWAYS
    subcontractor_id: Optional[str] = None
    subcontract_cost: Optional[float] = None

    def __post_init__(self):
        if self.operation_number < 1:
            raise ValueError("Operation number must be positive")
        times = (
            self.setup_time_minutes,
            self.run_time_minutes,
            self.queue_time_minutes,
            self.move_time_minutes,
        )
        if any(t < 0 for t in times):
            raise ValueError("Time values cannot be negative")
        if self.resource_count < 1:
            raise ValueError("Resource count must be at least 1")
        if self.overlap_percentage < 0 or self.overlap_percentage > 100:
            raise ValueError("Overlap percentage must be between 0 and 100")
        if self.operation_type == OperationType.SUBCONTRACT and self.subcontractor_id is None:
            raise ValueError("Subcontracted operations require a subcontractor ID")

    def get_capacity_time_hours(self, quantity: float) -> float:
        """Work content in hours; zero for queue/move operations."""
        if not self.operation_type.consumes_capacity:
            return 0.0
        return (self.setup_time_minutes + self.run_time_minutes * quantity) / 60

    def setup_hours(self) -> float:
        if not self.operation_type.consumes_capacity:
            return 0.0
        return self.setup_time_minutes / 60

    def run_hours(self, quantity: float) -> float:
        if not self.operation_type.consumes_capacity:
            return 0.0
        return self.run_time_minutes * quantity / 60

    def processing_minutes(self, quantity: float) -> float:
        """Elapsed processing time; run time is shared across resources."""
        return self.setup_time_minutes + self.run_time_minutes * quantity / self.resource_count

    def calculate_total_time(self, quantity: float) -> float:
        return (
            self.setup_time_minutes
            + self.run_time_minutes * quantity
            + self.queue_time_minutes
            + self.move_time_minutes
        )

    def is_effective_at(self, on: date) -> bool:
        return self.effectivity.contains(on)

    @property
    def is_subcontracted(self) -> bool:
        return self.operation_type == OperationType.SUBCONTRACT

    def with_work_center(self, work_center_id: str) -> "Operation":
        return replace(self, work_center_id=work_center_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_number": self.operation_number,
            "work_center_id": self.work_center_id,
            "description": self.description,
            "operation_type": self.operation_type.value,
            "setup_time_minutes": self.setup_time_minutes,
            "run_time_minutes": self.run_time_minutes,
            "queue_time_minutes": self.queue_time_minutes,
            "move_time_minutes": self.move_time_minutes,
            "resource_count": self.resource_count,
            "overlap_percentage": self.overlap_percentage,
            **self.effectivity.to_dict(),
            "subcontractor_id": self.subcontractor_id,
            "subcontract_cost": self.subcontract_cost,
        }


@dataclass
class Routing:
    """Routing version for a product."""
    routing_id: str
    product_id: str
    version: str = "1.0"
    operations: List[Operation] = field(default_factory=list)
    effectivity: Effectivity = ALWAYS
    status: StructureStatus = StructureStatus.DRAFT
    code: Optional[str] = None
    is_latest: bool = True
    previous_version_id: Optional[str] = None

    def __post_init__(self):
        self.operations = sorted(self.operations, key=lambda op: op.operation_number)

    def is_effective_at(self, on: date) -> bool:
        return self.status == StructureStatus.RELEASED and self.effectivity.contains(on)

    def effective_operations(self, on: date) -> List[Operation]:
        return [op for op in self.operations if op.is_effective_at(on)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "routing_id": self.routing_id,
            "product_id": self.product_id,
            "code": self.code,
            "version": self.version,
            "operations": [op.to_dict() for op in self.operations],
            **self.effectivity.to_dict(),
            "status": self.status.value,
            "is_latest": self.is_latest,
            "previous_version_id": self.previous_version_id,
        }
