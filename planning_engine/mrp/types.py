"""
Planning Engine - MRP Data Structures
=====================================

Material requirements, planned orders and the per-product MRP result.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from ..config import LotSizingStrategy


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════════

class OrderType(str, Enum):
    """Type of planned order."""
    MANUFACTURING = "manufacturing"
    PURCHASE = "purchase"


class RequirementSource(str, Enum):
    """Source of a gross requirement."""
    CUSTOMER_ORDER = "customer_order"
    FORECAST = "forecast"
    DEPENDENT_DEMAND = "dependent_demand"


# ═══════════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MaterialRequirement:
    """
    Netting record for one product in one bucket.

    ``on_hand`` is the projected on-hand available to this bucket (after
    earlier consumption and before this bucket's receipts), so that
    ``net_requirement == max(0, gross - (on_hand + scheduled_receipts - safety_stock))``.
    """
    product_id: str
    gross_requirement: float
    net_requirement: float
    required_date: date
    order_date: date
    on_hand: float
    scheduled_receipts: float
    safety_stock: float
    level: int = 0
    parent_product_id: Optional[str] = None
    source_order_id: Optional[str] = None
    source: RequirementSource = RequirementSource.CUSTOMER_ORDER
    bucket_index: int = 0

    @property
    def available(self) -> float:
        return self.on_hand + self.scheduled_receipts - self.safety_stock

    @property
    def has_shortage(self) -> bool:
        return self.net_requirement > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "gross_requirement": round(self.gross_requirement, 4),
            "net_requirement": round(self.net_requirement, 4),
            "required_date": self.required_date.isoformat(),
            "order_date": self.order_date.isoformat(),
            "on_hand": round(self.on_hand, 4),
            "scheduled_receipts": round(self.scheduled_receipts, 4),
            "safety_stock": self.safety_stock,
            "level": self.level,
            "parent_product_id": self.parent_product_id,
            "source_order_id": self.source_order_id,
            "source": self.source.value,
            "bucket_index": self.bucket_index,
        }


@dataclass(frozen=True)
class PlannedOrder:
    """MRP planned order (immutable once the run has finished)."""
    order_id: str
    product_id: str
    quantity: float  # after lot sizing
    start_date: date  # order/release date
    due_date: date
    order_type: OrderType
    level: int = 0
    lot_sizing_strategy: LotSizingStrategy = LotSizingStrategy.LOT_FOR_LOT
    original_requirement: float = 0.0  # net requirement before lot sizing
    lead_time_days: int = 0
    is_past_due: bool = False
    component_requirements: Tuple[MaterialRequirement, ...] = ()
    source_reference: Optional[str] = None
    parent_product_id: Optional[str] = None

    @property
    def excess_quantity(self) -> float:
        return self.quantity - self.original_requirement

    @property
    def is_manufacturing(self) -> bool:
        return self.order_type == OrderType.MANUFACTURING

    @property
    def is_purchase(self) -> bool:
        return self.order_type == OrderType.PURCHASE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "product_id": self.product_id,
            "quantity": round(self.quantity, 4),
            "start_date": self.start_date.isoformat(),
            "due_date": self.due_date.isoformat(),
            "order_type": self.order_type.value,
            "level": self.level,
            "lot_sizing_strategy": self.lot_sizing_strategy.value,
            "original_requirement": round(self.original_requirement, 4),
            "excess_quantity": round(self.excess_quantity, 4),
            "lead_time_days": self.lead_time_days,
            "is_past_due": self.is_past_due,
            "component_requirements": [r.to_dict() for r in self.component_requirements],
            "source_reference": self.source_reference,
            "parent_product_id": self.parent_product_id,
        }


@dataclass
class MrpResult:
    """Result of an MRP calculation for a top-level product and its subtree."""
    product_id: str
    planned_orders: List[PlannedOrder] = field(default_factory=list)
    material_requirements: List[MaterialRequirement] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    calculated_at: datetime = field(default_factory=datetime.now)
    parameters: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_successful(self) -> bool:
        return not self.errors

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    @property
    def manufacturing_orders(self) -> List[PlannedOrder]:
        return [o for o in self.planned_orders if o.is_manufacturing]

    @property
    def purchase_orders(self) -> List[PlannedOrder]:
        return [o for o in self.planned_orders if o.is_purchase]

    @property
    def total_planned_quantity(self) -> float:
        return sum(o.quantity for o in self.planned_orders)

    @property
    def total_net_requirement(self) -> float:
        return sum(r.net_requirement for r in self.material_requirements)

    @property
    def past_due_orders(self) -> List[PlannedOrder]:
        return [o for o in self.planned_orders if o.is_past_due]

    def requirements_by_product(self) -> Dict[str, List[MaterialRequirement]]:
        grouped: Dict[str, List[MaterialRequirement]] = defaultdict(list)
        for req in self.material_requirements:
            grouped[req.product_id].append(req)
        return dict(grouped)

    def orders_by_date(self) -> Dict[date, List[PlannedOrder]]:
        grouped: Dict[date, List[PlannedOrder]] = defaultdict(list)
        for order in sorted(self.planned_orders, key=lambda o: (o.start_date, o.order_id)):
            grouped[order.start_date].append(order)
        return dict(grouped)

    def orders_for(self, product_id: str) -> List[PlannedOrder]:
        return [o for o in self.planned_orders if o.product_id == product_id]

    def to_dataframe(self) -> pd.DataFrame:
        """Planned orders as a DataFrame (one row per order)."""
        columns = [
            "order_id", "product_id", "order_type", "level", "quantity",
            "original_requirement", "excess_quantity", "start_date", "due_date",
            "lead_time_days", "is_past_due", "lot_sizing_strategy",
        ]
        rows = []
        for order in self.planned_orders:
            data = order.to_dict()
            rows.append({col: data[col] for col in columns})
        return pd.DataFrame(rows, columns=columns)

    def requirements_dataframe(self) -> pd.DataFrame:
        rows = [r.to_dict() for r in self.material_requirements]
        return pd.DataFrame(rows)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "is_successful": self.is_successful,
            "planned_orders": [o.to_dict() for o in self.planned_orders],
            "material_requirements": [r.to_dict() for r in self.material_requirements],
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "calculated_at": self.calculated_at.isoformat(),
            "parameters": self.parameters,
            "summary": {
                "total_orders": len(self.planned_orders),
                "manufacturing_orders": len(self.manufacturing_orders),
                "purchase_orders": len(self.purchase_orders),
                "total_planned_quantity": round(self.total_planned_quantity, 4),
                "total_net_requirement": round(self.total_net_requirement, 4),
            },
        }
