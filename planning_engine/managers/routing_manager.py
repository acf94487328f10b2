"""
Planning Engine - Routing Manager
=================================

Versioned routing lifecycle plus lead-time and capacity calculations.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import date
from typing import Dict, List, Optional, Sequence

from ..core.effectivity import ALWAYS, Effectivity
from ..exceptions import StructureNotFound
from ..structures.bom import StructureStatus
from ..structures.routing import Operation, Routing
from .base import VersionedStructureManager, next_version

logger = logging.getLogger(__name__)


class RoutingManager(VersionedStructureManager[Routing]):
    """Gestor de roteiros."""

    label = "Routing"
    structure_type = "routing"

    def _get(self, structure_id: str) -> Optional[Routing]:
        return self.store.get_routing(structure_id)

    def _list(self, product_id: str) -> List[Routing]:
        return self.store.list_routings(product_id)

    def _save(self, structure: Routing) -> None:
        self.store.save_routing(structure)

    def _id(self, structure: Routing) -> str:
        return structure.routing_id

    def _has_content(self, structure: Routing) -> bool:
        return bool(structure.operations)

    # ─────────────────────────────────────────────────────────────────────────

    def create(
        self,
        product_id: str,
        version: str = "1.0",
        operations: Optional[Sequence[Operation]] = None,
        effectivity: Effectivity = ALWAYS,
        routing_id: Optional[str] = None,
        code: Optional[str] = None,
    ) -> Routing:
        self._ensure_unique_version(product_id, version)
        numbers = [op.operation_number for op in operations or []]
        if len(numbers) != len(set(numbers)):
            raise ValueError("Operation numbers must be unique within a routing")

        routing = Routing(
            routing_id=routing_id or f"RTG-{product_id}-{version}",
            product_id=product_id,
            version=version,
            operations=list(operations or []),
            effectivity=effectivity,
            code=code,
        )
        self._mark_latest(routing)
        self._save(routing)
        logger.info(f"Created routing {routing.routing_id} for {product_id} ({len(routing.operations)} ops)")
        return routing

    def find_effective(self, product_id: str, as_of: Optional[date] = None) -> Routing:
        as_of = as_of or date.today()
        routing = self.store.find_effective_routing(product_id, as_of)
        if routing is None:
            raise StructureNotFound(product_id, as_of, "routing")
        return routing

    def add_operation(self, routing_id: str, operation: Operation) -> Routing:
        routing = self.get(routing_id)
        self._ensure_draft(routing)
        if any(op.operation_number == operation.operation_number for op in routing.operations):
            raise ValueError(f"Operation {operation.operation_number} already exists on {routing_id}")
        routing.operations = sorted(routing.operations + [operation], key=lambda op: op.operation_number)
        self._save(routing)
        return routing

    def remove_operation(self, routing_id: str, operation_number: int) -> Routing:
        routing = self.get(routing_id)
        self._ensure_draft(routing)
        remaining = [op for op in routing.operations if op.operation_number != operation_number]
        if len(remaining) == len(routing.operations):
            raise ValueError(f"Operation {operation_number} not found on {routing_id}")
        routing.operations = remaining
        self._save(routing)
        return routing

    def replace_operation(self, routing_id: str, operation: Operation) -> Routing:
        routing = self.get(routing_id)
        self._ensure_draft(routing)
        for i, op in enumerate(routing.operations):
            if op.operation_number == operation.operation_number:
                routing.operations[i] = operation
                self._save(routing)
                return routing
        raise ValueError(f"Operation {operation.operation_number} not found on {routing_id}")

    def create_version(
        self,
        routing_id: str,
        new_version: Optional[str] = None,
        effective_from: Optional[date] = None,
    ) -> Routing:
        source = self.get(routing_id)
        version = new_version or next_version(source.version)
        self._ensure_unique_version(source.product_id, version)

        draft = Routing(
            routing_id=f"RTG-{source.product_id}-{version}",
            product_id=source.product_id,
            version=version,
            operations=list(source.operations),
            effectivity=Effectivity(effective_from) if effective_from else ALWAYS,
            status=StructureStatus.DRAFT,
            code=source.code,
            previous_version_id=source.routing_id,
        )
        self._mark_latest(draft)
        self._save(draft)
        logger.info(f"Created routing version {draft.routing_id} from {routing_id}")
        return draft

    def compare(self, from_routing_id: str, to_routing_id: str) -> Dict[str, List[Dict]]:
        old = {op.operation_number: op for op in self.get(from_routing_id).operations}
        new = {op.operation_number: op for op in self.get(to_routing_id).operations}
        return {
            "added": [new[n].to_dict() for n in sorted(new.keys() - old.keys())],
            "removed": [old[n].to_dict() for n in sorted(old.keys() - new.keys())],
            "changed": [
                {"operation_number": n, "old": old[n].to_dict(), "new": new[n].to_dict()}
                for n in sorted(old.keys() & new.keys())
                if old[n] != new[n]
            ],
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Calculations
    # ─────────────────────────────────────────────────────────────────────────

    def calculate_lead_time_minutes(self, routing_id: str, quantity: float = 1.0,
                                    as_of: Optional[date] = None) -> float:
        """
        Elapsed minutes from first queue to last move.

        Overlap lets an operation's successor start before it completes, so
        the elapsed time is the latest operation end, not the sum of times.
        """
        routing = self.get(routing_id)
        operations = routing.effective_operations(as_of) if as_of else routing.operations

        offset = 0.0
        finish = 0.0
        for op in operations:
            begins = offset + op.queue_time_minutes
            processing = op.processing_minutes(quantity)
            finish = max(finish, begins + processing + op.move_time_minutes)
            offset = begins + processing * (1 - op.overlap_percentage / 100) + op.move_time_minutes
        return max(finish, offset)

    def calculate_lead_time(self, routing_id: str, quantity: float = 1.0,
                            as_of: Optional[date] = None) -> int:
        """Lead time in working days, rounded up."""
        minutes = self.calculate_lead_time_minutes(routing_id, quantity, as_of)
        return int(math.ceil(minutes / self.config.working_minutes_per_day))

    def calculate_capacity_requirement(self, routing_id: str, quantity: float,
                                       as_of: Optional[date] = None) -> Dict[str, float]:
        """Hours per work center for ``quantity`` units."""
        routing = self.get(routing_id)
        operations = routing.effective_operations(as_of) if as_of else routing.operations
        hours: Dict[str, float] = defaultdict(float)
        for op in operations:
            hours[op.work_center_id] += op.get_capacity_time_hours(quantity)
        return dict(hours)
