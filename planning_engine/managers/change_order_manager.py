"""
Planning Engine - Change Order Manager
======================================

Engineering change orders (ECO).

    DRAFT ──submit──► PENDING_APPROVAL ──approve──► APPROVED ──implement──► IMPLEMENTED
                             │
                             └──reject──► REJECTED
    cancel: from any non-terminal status

Implementing an ECO creates a new version of every affected BOM/Routing,
applies the line changes to it and releases it at the ECO effective date.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from ..exceptions import InvalidStatus
from ..providers.base import WorkOrderRepository
from ..structures.bom import BomLine
from ..structures.change_order import ChangeAction, ChangeOrder, ChangeOrderStatus, StructureChange
from ..structures.routing import Routing
from .bom_manager import BomManager
from .routing_manager import RoutingManager

logger = logging.getLogger(__name__)


@dataclass
class ImpactAnalysis:
    """Products and open orders touched by a change order."""
    change_order_id: str
    affected_products: List[str] = field(default_factory=list)
    affected_boms: List[str] = field(default_factory=list)
    affected_routings: List[str] = field(default_factory=list)
    open_work_orders: List[str] = field(default_factory=list)

    @property
    def total_affected_count(self) -> int:
        return len(self.affected_products) + len(self.open_work_orders)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "change_order_id": self.change_order_id,
            "affected_products": self.affected_products,
            "affected_boms": self.affected_boms,
            "affected_routings": self.affected_routings,
            "open_work_orders": self.open_work_orders,
            "total_affected_count": self.total_affected_count,
        }


class ChangeOrderManager:
    """Gestor de ECOs."""

    def __init__(
        self,
        bom_manager: BomManager,
        routing_manager: RoutingManager,
        work_orders: Optional[WorkOrderRepository] = None,
    ):
        self.bom_manager = bom_manager
        self.routing_manager = routing_manager
        self.work_orders = work_orders
        self._orders: Dict[str, ChangeOrder] = {}

    def get(self, change_order_id: str) -> ChangeOrder:
        order = self._orders.get(change_order_id)
        if order is None:
            raise ValueError(f"Change order '{change_order_id}' not found")
        return order

    def list(self, status: Optional[ChangeOrderStatus] = None) -> List[ChangeOrder]:
        orders = sorted(self._orders.values(), key=lambda o: o.created_at)
        if status is not None:
            orders = [o for o in orders if o.status == status]
        return orders

    @staticmethod
    def _require(order: ChangeOrder, allowed: Sequence[ChangeOrderStatus],
                 target: ChangeOrderStatus, action: str) -> None:
        if order.status not in allowed:
            raise InvalidStatus(order.change_order_id, order.status.value, target.value, action)

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def create(
        self,
        product_id: str,
        description: str,
        effective_date: Optional[date] = None,
        affected_bom_ids: Optional[Sequence[str]] = None,
        affected_routing_ids: Optional[Sequence[str]] = None,
        bom_changes: Optional[Sequence[StructureChange]] = None,
        routing_changes: Optional[Sequence[StructureChange]] = None,
        reason: Optional[str] = None,
        requested_by: Optional[str] = None,
    ) -> ChangeOrder:
        order = ChangeOrder(
            change_order_id=f"ECO-{uuid.uuid4().hex[:8].upper()}",
            product_id=product_id,
            description=description,
            effective_date=effective_date,
            affected_bom_ids=list(affected_bom_ids or []),
            affected_routing_ids=list(affected_routing_ids or []),
            bom_changes=list(bom_changes or []),
            routing_changes=list(routing_changes or []),
            reason=reason,
            requested_by=requested_by,
        )
        self._orders[order.change_order_id] = order
        logger.info(f"Created change order {order.change_order_id} for {product_id}")
        return order

    def submit(self, change_order_id: str) -> ChangeOrder:
        """
        Submit a draft for approval.

        Raises:
            InvalidStatus: not a draft
            ValueError: the change order does not validate
        """
        order = self.get(change_order_id)
        self._require(order, [ChangeOrderStatus.DRAFT], ChangeOrderStatus.PENDING_APPROVAL, "submit")
        errors = self.validate(change_order_id)
        if errors:
            raise ValueError(f"Change order {change_order_id} is invalid: {'; '.join(errors)}")
        order.status = ChangeOrderStatus.PENDING_APPROVAL
        order.submitted_at = datetime.now()
        return order

    def approve(self, change_order_id: str, approved_by: Optional[str] = None) -> ChangeOrder:
        order = self.get(change_order_id)
        self._require(order, [ChangeOrderStatus.PENDING_APPROVAL], ChangeOrderStatus.APPROVED, "approve")
        order.status = ChangeOrderStatus.APPROVED
        order.approved_by = approved_by
        order.decided_at = datetime.now()
        logger.info(f"Approved change order {change_order_id} by {approved_by}")
        return order

    def reject(self, change_order_id: str, reason: str) -> ChangeOrder:
        order = self.get(change_order_id)
        self._require(order, [ChangeOrderStatus.PENDING_APPROVAL], ChangeOrderStatus.REJECTED, "reject")
        order.status = ChangeOrderStatus.REJECTED
        order.rejection_reason = reason
        order.decided_at = datetime.now()
        logger.info(f"Rejected change order {change_order_id}: {reason}")
        return order

    def cancel(self, change_order_id: str) -> ChangeOrder:
        order = self.get(change_order_id)
        if order.status.is_terminal:
            raise InvalidStatus(
                change_order_id, order.status.value, ChangeOrderStatus.CANCELLED.value, "cancel",
            )
        order.status = ChangeOrderStatus.CANCELLED
        return order

    def implement(self, change_order_id: str) -> ChangeOrder:
        """Apply the changes as new released versions."""
        order = self.get(change_order_id)
        self._require(order, [ChangeOrderStatus.APPROVED], ChangeOrderStatus.IMPLEMENTED, "implement")
        effective = order.effective_date or date.today()

        for bom_id in order.affected_bom_ids:
            draft = self.bom_manager.create_version(bom_id, effective_from=effective)
            for change in order.bom_changes:
                self._apply_bom_change(draft.bom_id, change)
            self.bom_manager.release(draft.bom_id, effective)

        for routing_id in order.affected_routing_ids:
            draft = self.routing_manager.create_version(routing_id, effective_from=effective)
            for change in order.routing_changes:
                self._apply_routing_change(draft, change)
            self.routing_manager.release(draft.routing_id, effective)

        order.status = ChangeOrderStatus.IMPLEMENTED
        order.implemented_at = datetime.now()
        logger.info(f"Implemented change order {change_order_id} effective {effective}")
        return order

    def _apply_bom_change(self, bom_id: str, change: StructureChange) -> None:
        bom = self.bom_manager.get(bom_id)
        if change.action == ChangeAction.ADD:
            self.bom_manager.add_line(bom_id, BomLine(product_id=change.target_id, quantity=change.new_value))
            return
        line = next((l for l in bom.lines if l.product_id == change.target_id), None)
        if line is None:
            raise ValueError(f"Component {change.target_id} not on BOM {bom_id}")
        if change.action == ChangeAction.REMOVE:
            self.bom_manager.remove_line(bom_id, line.line_number)
        else:
            self.bom_manager.update_line_quantity(bom_id, line.line_number, change.new_value)

    def _apply_routing_change(self, routing: Routing, change: StructureChange) -> None:
        number = int(change.target_id)
        if change.action == ChangeAction.REMOVE:
            self.routing_manager.remove_operation(routing.routing_id, number)
            return
        op = next((o for o in routing.operations if o.operation_number == number), None)
        if op is None:
            raise ValueError(f"Operation {number} not on routing {routing.routing_id}")
        self.routing_manager.replace_operation(routing.routing_id, replace(op, run_time_minutes=change.new_value))

    # ─────────────────────────────────────────────────────────────────────────
    # Validation & impact
    # ─────────────────────────────────────────────────────────────────────────

    def validate(self, change_order_id: str) -> List[str]:
        """Problems that block submission; empty when valid."""
        order = self.get(change_order_id)
        errors: List[str] = []

        if not order.has_changes:
            errors.append("Change order has no changes")
        if order.bom_changes and not order.affected_bom_ids:
            errors.append("BOM changes require at least one affected BOM")
        if order.routing_changes and not order.affected_routing_ids:
            errors.append("Routing changes require at least one affected routing")

        for bom_id in order.affected_bom_ids:
            bom = self.bom_manager.store.get_bom(bom_id)
            if bom is None:
                errors.append(f"BOM {bom_id} not found")
                continue
            components = {line.product_id for line in bom.lines}
            for change in order.bom_changes:
                if change.action != ChangeAction.REMOVE and (change.new_value is None or change.new_value <= 0):
                    errors.append(f"Change for {change.target_id} needs a positive quantity")
                if change.action != ChangeAction.ADD and change.target_id not in components:
                    errors.append(f"Component {change.target_id} not on BOM {bom_id}")

        for routing_id in order.affected_routing_ids:
            routing = self.routing_manager.store.get_routing(routing_id)
            if routing is None:
                errors.append(f"Routing {routing_id} not found")
                continue
            numbers = {str(op.operation_number) for op in routing.operations}
            for change in order.routing_changes:
                if change.action == ChangeAction.ADD:
                    errors.append("Routing operations cannot be added through a change order")
                elif change.target_id not in numbers:
                    errors.append(f"Operation {change.target_id} not on routing {routing_id}")
                elif change.action == ChangeAction.UPDATE and (change.new_value is None or change.new_value < 0):
                    errors.append(f"Operation {change.target_id} needs a non-negative run time")

        return errors

    def analyze_impact(self, change_order_id: str) -> ImpactAnalysis:
        """Products using the changed product at any level, plus their open work orders."""
        order = self.get(change_order_id)
        products = [order.product_id] + self.bom_manager.explosion.where_used_all_levels(order.product_id)

        impact = ImpactAnalysis(
            change_order_id=change_order_id,
            affected_products=products,
            affected_boms=sorted({
                entry.bom_id
                for product_id in products
                for entry in self.bom_manager.where_used(product_id)
            } | set(order.affected_bom_ids)),
            affected_routings=list(order.affected_routing_ids),
        )
        if self.work_orders is not None:
            impact.open_work_orders = sorted(
                wo.work_order_id
                for product_id in products
                for wo in self.work_orders.find_by_product(product_id)
                if wo.status.is_active
            )
        return impact
