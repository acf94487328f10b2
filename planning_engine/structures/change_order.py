"""
Planning Engine - Engineering Change Orders
===========================================

A change order bundles BOM and Routing changes that take effect on a date.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ChangeOrderStatus(str, Enum):
    """Estado de uma ECO."""
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    IMPLEMENTED = "implemented"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ChangeOrderStatus.IMPLEMENTED, ChangeOrderStatus.CANCELLED)


class ChangeAction(str, Enum):
    """Kind of structural change."""
    ADD = "add"
    REMOVE = "remove"
    UPDATE = "update"


@dataclass
class StructureChange:
    """A single line-level change (BOM line or routing operation)."""
    action: ChangeAction
    target_id: str  # component product id or operation number as string
    old_value: Optional[float] = None
    new_value: Optional[float] = None
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "target_id": self.target_id,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "description": self.description,
        }


@dataclass
class ChangeOrder:
    """Engineering change order."""
    change_order_id: str
    product_id: str
    description: str
    effective_date: Optional[date] = None
    affected_bom_ids: List[str] = field(default_factory=list)
    affected_routing_ids: List[str] = field(default_factory=list)
    bom_changes: List[StructureChange] = field(default_factory=list)
    routing_changes: List[StructureChange] = field(default_factory=list)
    status: ChangeOrderStatus = ChangeOrderStatus.DRAFT
    reason: Optional[str] = None
    requested_by: Optional[str] = None
    approved_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    submitted_at: Optional[datetime] = None
    decided_at: Optional[datetime] = None
    implemented_at: Optional[datetime] = None

    @property
    def has_changes(self) -> bool:
        return bool(self.bom_changes or self.routing_changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "change_order_id": self.change_order_id,
            "product_id": self.product_id,
            "description": self.description,
            "effective_date": self.effective_date.isoformat() if self.effective_date else None,
            "affected_bom_ids": list(self.affected_bom_ids),
            "affected_routing_ids": list(self.affected_routing_ids),
            "bom_changes": [c.to_dict() for c in self.bom_changes],
            "routing_changes": [c.to_dict() for c in self.routing_changes],
            "status": self.status.value,
            "reason": self.reason,
            "requested_by": self.requested_by,
            "approved_by": self.approved_by,
            "rejection_reason": self.rejection_reason,
            "created_at": self.created_at.isoformat(),
        }
