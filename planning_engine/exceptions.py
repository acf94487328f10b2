"""
Planning Engine - Errors
========================

Error kinds raised or recorded by the planning engine.

- StructureNotFound: no effective BOM/Routing (recorded per product by MRP)
- CircularStructureException: BOM cycle found during explosion/validation
- InvalidVersion / InvalidStatus: illegal lifecycle operations in the managers
- ForecastUnavailable: ML forecast failed (recovered by the fallback)
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional, Sequence


class PlanningError(Exception):
    """Base class for planning engine errors."""


class StructureNotFound(PlanningError):
    """No effective BOM or Routing exists for a product."""

    def __init__(
        self,
        product_id: str,
        as_of: Optional[date] = None,
        structure_type: str = "bom",
        message: Optional[str] = None,
    ):
        self.product_id = product_id
        self.as_of = as_of
        self.structure_type = structure_type
        if message is None:
            label = "BOM" if structure_type == "bom" else "Routing"
            if as_of is not None:
                message = f"No effective {label} for product '{product_id}' on {as_of.isoformat()}"
            else:
                message = f"No {label} found for product '{product_id}'"
        super().__init__(message)

    @classmethod
    def for_id(cls, structure_id: str, structure_type: str = "bom") -> "StructureNotFound":
        label = "BOM" if structure_type == "bom" else "Routing"
        return cls(
            product_id=structure_id,
            structure_type=structure_type,
            message=f"{label} '{structure_id}' not found",
        )


class CircularStructureException(PlanningError):
    """A product appears twice on the same ancestor path of a BOM."""

    def __init__(self, path: Sequence[str]):
        self.path: List[str] = list(path)
        super().__init__(f"Circular BOM structure: {' -> '.join(self.path)}")


class InvalidVersion(PlanningError):
    """A version-level rule was violated (duplicate version, editing a released version)."""

    @classmethod
    def version_exists(cls, product_id: str, version: str) -> "InvalidVersion":
        return cls(f"Version '{version}' already exists for product '{product_id}'")

    @classmethod
    def cannot_modify(cls, entity_id: str, status: str) -> "InvalidVersion":
        return cls(f"'{entity_id}' cannot be modified in status '{status}'")

    @classmethod
    def cannot_release(cls, entity_id: str, reason: str) -> "InvalidVersion":
        return cls(f"'{entity_id}' cannot be released: {reason}")


class InvalidStatus(PlanningError):
    """An illegal status transition was requested."""

    def __init__(self, entity_id: str, current: str, target: str, action: Optional[str] = None):
        self.entity_id = entity_id
        self.current = current
        self.target = target
        if action:
            message = f"Cannot {action} '{entity_id}' in status '{current}'"
        else:
            message = f"Invalid transition for '{entity_id}': {current} -> {target}"
        super().__init__(message)


class ForecastUnavailable(PlanningError):
    """The forecast provider could not produce a forecast."""

    def __init__(self, product_id: str, reason: str = "provider unavailable"):
        self.product_id = product_id
        self.reason = reason
        super().__init__(f"Forecast unavailable for '{product_id}': {reason}")
