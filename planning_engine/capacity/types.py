"""
Planning Engine - Capacity Types
================================

Value objects of capacity requirements planning (CRP).

    CapacityLoad ──► CapacityPeriod ──► CapacityProfile ──► Bottleneck
                                                              │
                                  CapacityResolutionSuggestion ◄┘

Profiles are read-only snapshots recomputed per request; nothing here is
persisted.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd


# ═══════════════════════════════════════════════════════════════════════════════
# LOADS
# ═══════════════════════════════════════════════════════════════════════════════

class LoadSourceType(str, Enum):
    """Order type behind a capacity load."""
    PLANNED_ORDER = "planned_order"
    WORK_ORDER = "work_order"


@dataclass(frozen=True)
class CapacityLoad:
    """Hours one order operation places on a work center."""
    source_id: str
    source_type: LoadSourceType
    work_center_id: str
    setup_hours: float
    run_hours: float
    load_date: date
    due_date: Optional[date] = None
    operation_number: Optional[int] = None
    product_id: Optional[str] = None
    quantity: Optional[float] = None
    is_firm: bool = False

    def __post_init__(self):
        if self.setup_hours < 0 or self.run_hours < 0:
            raise ValueError("Load hours cannot be negative")

    @property
    def hours(self) -> float:
        return self.setup_hours + self.run_hours

    @property
    def slack_days(self) -> int:
        """Days the load can move later without passing its due date."""
        if self.due_date is None:
            return 0
        return max(0, (self.due_date - self.load_date).days)

    def moved_to(self, new_date: date) -> "CapacityLoad":
        return replace(self, load_date=new_date)

    def with_work_center(self, work_center_id: str) -> "CapacityLoad":
        return replace(self, work_center_id=work_center_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "source_type": self.source_type.value,
            "work_center_id": self.work_center_id,
            "setup_hours": round(self.setup_hours, 4),
            "run_hours": round(self.run_hours, 4),
            "hours": round(self.hours, 4),
            "load_date": self.load_date.isoformat(),
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "operation_number": self.operation_number,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "is_firm": self.is_firm,
        }


@dataclass
class CapacityRequirements:
    """Output of calculate_requirements: loads plus per-order errors."""
    loads: List[CapacityLoad] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def total_hours(self) -> float:
        return math.fsum(load.hours for load in self.loads)

    def by_work_center(self) -> Dict[str, List[CapacityLoad]]:
        grouped: Dict[str, List[CapacityLoad]] = {}
        for load in self.loads:
            grouped.setdefault(load.work_center_id, []).append(load)
        return grouped

    def hours_by_work_center(self) -> Dict[str, float]:
        return {
            wc_id: math.fsum(load.hours for load in loads)
            for wc_id, loads in sorted(self.by_work_center().items())
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loads": [load.to_dict() for load in self.loads],
            "errors": list(self.errors),
            "total_hours": round(self.total_hours, 4),
            "hours_by_work_center": self.hours_by_work_center(),
        }


# ═══════════════════════════════════════════════════════════════════════════════
# PERIODS & PROFILES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class CapacityPeriod:
    """
    Available vs. loaded hours of one work center over [start, end).

    Zero available hours never raises: utilization is 100% when something is
    loaded, remaining is 0 and the whole load is overload.
    """
    start: date
    end: date
    available_hours: float = 0.0
    loaded_hours: float = 0.0
    loads: List[CapacityLoad] = field(default_factory=list)

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError("Period end must be after period start")
        # Negative calendar values are reported as no capacity.
        self.available_hours = max(0.0, self.available_hours)

    @property
    def days(self) -> int:
        return (self.end - self.start).days

    @property
    def load_ratio(self) -> float:
        if self.available_hours <= 0:
            return math.inf if self.loaded_hours > 0 else 0.0
        return self.loaded_hours / self.available_hours

    @property
    def utilization(self) -> float:
        if self.available_hours <= 0:
            return 100.0 if self.loaded_hours > 0 else 0.0
        return self.loaded_hours / self.available_hours * 100

    @property
    def remaining_hours(self) -> float:
        return max(0.0, self.available_hours - self.loaded_hours)

    @property
    def overload_hours(self) -> float:
        return max(0.0, self.loaded_hours - self.available_hours)

    @property
    def is_overloaded(self) -> bool:
        return self.loaded_hours > self.available_hours

    def has_capacity(self, required_hours: float = 0.0) -> bool:
        return self.remaining_hours >= required_hours

    def contains(self, on: date) -> bool:
        return self.start <= on < self.end

    @property
    def label(self) -> str:
        if self.days <= 1:
            return self.start.isoformat()
        if self.days <= 7:
            return f"W{self.start.isocalendar()[1]:02d}-{self.start.year}"
        return self.start.strftime("%Y-%m")

    def add_load(self, load: CapacityLoad) -> None:
        self.loads.append(load)
        self.loaded_hours += load.hours

    def to_dict(self, include_loads: bool = False) -> Dict[str, Any]:
        data = {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "label": self.label,
            "available_hours": round(self.available_hours, 4),
            "loaded_hours": round(self.loaded_hours, 4),
            "utilization": round(self.utilization, 2),
            "remaining_hours": round(self.remaining_hours, 4),
            "overload_hours": round(self.overload_hours, 4),
            "is_overloaded": self.is_overloaded,
        }
        if include_loads:
            data["loads"] = [load.to_dict() for load in self.loads]
        return data


@dataclass
class CapacityProfile:
    """Capacity periods of a work center across a horizon."""
    work_center_id: str
    periods: List[CapacityPeriod] = field(default_factory=list)

    @property
    def total_available_hours(self) -> float:
        return math.fsum(p.available_hours for p in self.periods)

    @property
    def total_loaded_hours(self) -> float:
        return math.fsum(p.loaded_hours for p in self.periods)

    @property
    def total_remaining_hours(self) -> float:
        return math.fsum(p.remaining_hours for p in self.periods)

    @property
    def total_overload_hours(self) -> float:
        """Sum of per-period overload; spare hours elsewhere do not offset it."""
        return math.fsum(p.overload_hours for p in self.periods)

    @property
    def utilization(self) -> float:
        available = self.total_available_hours
        loaded = self.total_loaded_hours
        if available <= 0:
            return 100.0 if loaded > 0 else 0.0
        return loaded / available * 100

    @property
    def peak_utilization(self) -> float:
        return max((p.utilization for p in self.periods), default=0.0)

    @property
    def peak_period(self) -> Optional[CapacityPeriod]:
        if not self.periods:
            return None
        return max(self.periods, key=lambda p: (p.utilization, -p.start.toordinal()))

    @property
    def is_overloaded(self) -> bool:
        return any(p.is_overloaded for p in self.periods)

    def overloaded_periods(self) -> List[CapacityPeriod]:
        return [p for p in self.periods if p.is_overloaded]

    def period_for(self, on: date) -> Optional[CapacityPeriod]:
        for period in self.periods:
            if period.contains(on):
                return period
        return None

    def to_dataframe(self) -> pd.DataFrame:
        """One row per period."""
        columns = [
            "work_center_id", "period_start", "period_end", "label",
            "available_hours", "loaded_hours", "utilization",
            "remaining_hours", "overload_hours", "load_count",
        ]
        rows = [
            {
                "work_center_id": self.work_center_id,
                "period_start": p.start,
                "period_end": p.end,
                "label": p.label,
                "available_hours": p.available_hours,
                "loaded_hours": p.loaded_hours,
                "utilization": p.utilization,
                "remaining_hours": p.remaining_hours,
                "overload_hours": p.overload_hours,
                "load_count": len(p.loads),
            }
            for p in self.periods
        ]
        return pd.DataFrame(rows, columns=columns)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "work_center_id": self.work_center_id,
            "periods": [p.to_dict() for p in self.periods],
            "summary": {
                "total_available_hours": round(self.total_available_hours, 4),
                "total_loaded_hours": round(self.total_loaded_hours, 4),
                "total_overload_hours": round(self.total_overload_hours, 4),
                "utilization": round(self.utilization, 2),
                "peak_utilization": round(self.peak_utilization, 2),
                "overloaded_periods": len(self.overloaded_periods()),
            },
        }


@dataclass(frozen=True)
class Bottleneck:
    """A work-center period at or above the utilization threshold."""
    work_center_id: str
    period_start: date
    period_end: date
    available_hours: float
    loaded_hours: float
    utilization: float
    overload_hours: float
    loads: Tuple[CapacityLoad, ...] = ()

    @classmethod
    def from_period(cls, work_center_id: str, period: CapacityPeriod) -> "Bottleneck":
        return cls(
            work_center_id=work_center_id,
            period_start=period.start,
            period_end=period.end,
            available_hours=period.available_hours,
            loaded_hours=period.loaded_hours,
            utilization=period.utilization,
            overload_hours=period.overload_hours,
            loads=tuple(period.loads),
        )

    @property
    def is_hard(self) -> bool:
        return self.overload_hours > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "work_center_id": self.work_center_id,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "available_hours": round(self.available_hours, 4),
            "loaded_hours": round(self.loaded_hours, 4),
            "utilization": round(self.utilization, 2),
            "overload_hours": round(self.overload_hours, 4),
            "load_count": len(self.loads),
        }


@dataclass(frozen=True)
class LoadMove:
    """A load shifted later by load leveling."""
    source_id: str
    source_type: LoadSourceType
    work_center_id: str
    operation_number: Optional[int]
    hours: float
    from_date: date
    to_date: date

    @property
    def delta_days(self) -> int:
        return (self.to_date - self.from_date).days

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "source_type": self.source_type.value,
            "work_center_id": self.work_center_id,
            "operation_number": self.operation_number,
            "hours": round(self.hours, 4),
            "from_date": self.from_date.isoformat(),
            "to_date": self.to_date.isoformat(),
            "delta_days": self.delta_days,
        }


@dataclass
class LevelLoadResult:
    """Moves made by level_load and what is still overloaded afterwards."""
    moves: List[LoadMove] = field(default_factory=list)
    bottlenecks: List[Bottleneck] = field(default_factory=list)
    profiles: Dict[str, CapacityProfile] = field(default_factory=dict)

    @property
    def is_feasible(self) -> bool:
        return not self.bottlenecks

    @property
    def moved_hours(self) -> float:
        return math.fsum(m.hours for m in self.moves)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "moves": [m.to_dict() for m in self.moves],
            "bottlenecks": [b.to_dict() for b in self.bottlenecks],
            "profiles": {wc_id: p.to_dict() for wc_id, p in self.profiles.items()},
            "is_feasible": self.is_feasible,
            "moved_hours": round(self.moved_hours, 4),
        }


# ═══════════════════════════════════════════════════════════════════════════════
# RESOLUTION
# ═══════════════════════════════════════════════════════════════════════════════

class ResolutionAction(str, Enum):
    """Remediation action for a capacity bottleneck."""
    ALTERNATIVE_WORK_CENTER = "alternative_work_center"
    OVERTIME = "overtime"
    RESCHEDULE = "reschedule"
    SUBCONTRACT = "subcontract"
    SPLIT = "split"

    @property
    def default_priority(self) -> int:
        return {
            ResolutionAction.ALTERNATIVE_WORK_CENTER: 1,
            ResolutionAction.OVERTIME: 2,
            ResolutionAction.RESCHEDULE: 3,
            ResolutionAction.SUBCONTRACT: 4,
            ResolutionAction.SPLIT: 5,
        }[self]

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


@dataclass(frozen=True)
class CapacityResolutionSuggestion:
    """
    A ranked, costed remediation for a bottleneck.

    ``priority`` 1 is the highest. ``lead_time_impact`` is signed days
    (positive = later delivery).
    """
    action: ResolutionAction
    description: str
    resolves_hours: float
    priority: int = 5
    estimated_cost: float = 0.0
    lead_time_impact: int = 0
    requires_approval: bool = False
    can_auto_apply: bool = False
    parameters: Dict[str, Any] = field(default_factory=dict)
    target_resource_id: Optional[str] = None
    suggested_date: Optional[date] = None
    reason: Optional[str] = None

    def __post_init__(self):
        if self.resolves_hours < 0:
            raise ValueError("Resolved hours cannot be negative")
        if self.priority < 1:
            raise ValueError("Priority must be at least 1")

    def fully_resolves(self, constraint_hours: float) -> bool:
        return self.resolves_hours >= constraint_hours

    def effectiveness(self, constraint_hours: float) -> float:
        """Share of the constraint covered, in percent (capped at 100)."""
        if constraint_hours <= 0:
            return 100.0
        return min(100.0, self.resolves_hours / constraint_hours * 100)

    @property
    def cost_per_hour(self) -> float:
        if self.resolves_hours <= 0:
            return self.estimated_cost
        return self.estimated_cost / self.resolves_hours

    def is_low_cost(self, threshold: float = 100.0) -> bool:
        return self.estimated_cost <= threshold

    @property
    def improves_delivery(self) -> bool:
        return self.lead_time_impact < 0

    def with_priority(self, priority: int) -> "CapacityResolutionSuggestion":
        return replace(self, priority=priority)

    def sort_key(self) -> Tuple:
        return (
            self.priority,
            self.estimated_cost,
            self.suggested_date or date.max,
            self.target_resource_id or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "action_label": self.action.label,
            "description": self.description,
            "resolves_hours": round(self.resolves_hours, 4),
            "priority": self.priority,
            "estimated_cost": round(self.estimated_cost, 2),
            "lead_time_impact": self.lead_time_impact,
            "requires_approval": self.requires_approval,
            "can_auto_apply": self.can_auto_apply,
            "parameters": dict(self.parameters),
            "target_resource_id": self.target_resource_id,
            "suggested_date": self.suggested_date.isoformat() if self.suggested_date else None,
            "reason": self.reason,
            "cost_per_hour": round(self.cost_per_hour, 2),
        }


@dataclass
class AutoResolveResult:
    """Outcome of auto_resolve; in simulate mode nothing was mutated."""
    resolved: bool
    remaining_overload: float
    actions: List[CapacityResolutionSuggestion] = field(default_factory=list)
    simulated: bool = False

    @property
    def resolved_hours(self) -> float:
        return math.fsum(a.resolves_hours for a in self.actions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resolved": self.resolved,
            "remaining_overload": round(self.remaining_overload, 4),
            "resolved_hours": round(self.resolved_hours, 4),
            "actions": [a.to_dict() for a in self.actions],
            "simulated": self.simulated,
        }
