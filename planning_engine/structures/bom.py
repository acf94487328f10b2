"""
Planning Engine - Bill of Materials
===================================

BOM header and lines.

A BOM is effective on a date when it is released and its effectivity window
contains the date. Each line carries its own window, checked independently of
the header.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from ..core.effectivity import ALWAYS, Effectivity


class BomType(str, Enum):
    """Type of BOM."""
    STANDARD = "standard"
    PHANTOM = "phantom"
    CONFIGURABLE = "configurable"


class StructureStatus(str, Enum):
    """Lifecycle status of a BOM or Routing version."""
    DRAFT = "draft"
    RELEASED = "released"
    OBSOLETE = "obsolete"


@dataclass(frozen=True)
class BomLine:
    """Component line of a BOM."""
    product_id: str
    quantity: float  # per unit of parent
    uom_code: str = "UN"
    line_number: int = 0
    operation_number: Optional[int] = None
    scrap_percentage: float = 0.0
    is_phantom: bool = False
    effectivity: Effectivity = ALWAYS
    position: Optional[str] = None
    notes: Optional[str] = None

    def __post_init__(self):
        if self.scrap_percentage < 0 or self.scrap_percentage > 100:
            raise ValueError("Scrap percentage must be between 0 and 100")

    def get_quantity_with_scrap(self) -> float:
        return self.quantity * (1 + self.scrap_percentage / 100)

    def is_effective_at(self, on: date) -> bool:
        return self.effectivity.contains(on)

    def with_quantity(self, quantity: float) -> "BomLine":
        return replace(self, quantity=quantity)

    def with_effectivity(self, effectivity: Effectivity) -> "BomLine":
        return replace(self, effectivity=effectivity)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "uom_code": self.uom_code,
            "line_number": self.line_number,
            "operation_number": self.operation_number,
            "scrap_percentage": self.scrap_percentage,
            "is_phantom": self.is_phantom,
            **self.effectivity.to_dict(),
            "position": self.position,
            "notes": self.notes,
        }


@dataclass
class Bom:
    """BOM version for a product."""
    bom_id: str
    product_id: str
    version: str = "1.0"
    bom_type: BomType = BomType.STANDARD
    output_quantity: float = 1.0
    uom_code: str = "UN"
    lines: List[BomLine] = field(default_factory=list)
    effectivity: Effectivity = ALWAYS
    status: StructureStatus = StructureStatus.DRAFT
    is_latest: bool = True
    previous_version_id: Optional[str] = None

    def is_effective_at(self, on: date) -> bool:
        return self.status == StructureStatus.RELEASED and self.effectivity.contains(on)

    def effective_lines(self, on: date) -> List[BomLine]:
        return [line for line in self.lines if line.is_effective_at(on)]

    def next_line_number(self) -> int:
        if not self.lines:
            return 10
        return max(line.line_number for line in self.lines) + 10

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bom_id": self.bom_id,
            "product_id": self.product_id,
            "version": self.version,
            "bom_type": self.bom_type.value,
            "output_quantity": self.output_quantity,
            "uom_code": self.uom_code,
            "lines": [line.to_dict() for line in self.lines],
            **self.effectivity.to_dict(),
            "status": self.status.value,
            "is_latest": self.is_latest,
            "previous_version_id": self.previous_version_id,
        }
