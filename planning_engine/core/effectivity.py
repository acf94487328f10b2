"""
Effectivity window shared by BOMs, BOM lines, routings and operations.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Effectivity:
    """Date window, inclusive on both ends, open where a bound is None."""
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None

    def __post_init__(self):
        if (
            self.effective_from is not None
            and self.effective_to is not None
            and self.effective_to < self.effective_from
        ):
            raise ValueError(
                f"effective_to ({self.effective_to}) precedes effective_from ({self.effective_from})"
            )

    def contains(self, on: date) -> bool:
        if self.effective_from is not None and on < self.effective_from:
            return False
        if self.effective_to is not None and on > self.effective_to:
            return False
        return True

    def overlaps(self, other: "Effectivity") -> bool:
        if self.effective_to is not None and other.effective_from is not None:
            if self.effective_to < other.effective_from:
                return False
        if other.effective_to is not None and self.effective_from is not None:
            if other.effective_to < self.effective_from:
                return False
        return True

    def closed_at(self, effective_to: date) -> "Effectivity":
        return Effectivity(self.effective_from, effective_to)

    def starting(self, effective_from: date) -> "Effectivity":
        return Effectivity(effective_from, self.effective_to)

    @property
    def is_open_ended(self) -> bool:
        return self.effective_to is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "effective_from": self.effective_from.isoformat() if self.effective_from else None,
            "effective_to": self.effective_to.isoformat() if self.effective_to else None,
        }


ALWAYS = Effectivity()
