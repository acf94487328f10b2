"""
Planning Engine - Work Centers
==============================

Work center master data and its calendar entries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class CalendarEntry:
    """One calendar day of a work center."""
    date: date
    is_working: bool = True
    available_hours: float = 8.0
    overtime_hours: float = 0.0
    notes: Optional[str] = None

    def total_hours(self, include_overtime: bool = False) -> float:
        if not self.is_working:
            return 0.0
        hours = self.available_hours
        if include_overtime:
            hours += self.overtime_hours
        return hours

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "is_working": self.is_working,
            "available_hours": self.available_hours,
            "overtime_hours": self.overtime_hours,
            "notes": self.notes,
        }


@dataclass
class WorkCenter:
    """Centro de trabalho (máquina, linha ou célula)."""
    work_center_id: str
    code: str
    name: str = ""
    work_center_type: str = "machine"  # operation class used to find alternatives
    hourly_rate: float = 0.0
    overhead_rate: float = 0.0
    overtime_rate: Optional[float] = None
    subcontract_rate: Optional[float] = None
    efficiency: float = 100.0  # %
    capacity_units: int = 1
    hours_per_day: float = 8.0
    days_per_week: int = 5
    is_finite_capacity: bool = True
    is_active: bool = True
    alternative_ids: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.efficiency <= 0:
            raise ValueError("Efficiency must be positive")
        if self.capacity_units < 1:
            raise ValueError("Capacity units must be at least 1")
        if self.days_per_week < 0 or self.days_per_week > 7:
            raise ValueError("Days per week must be between 0 and 7")

    @property
    def total_rate(self) -> float:
        return self.hourly_rate + self.overhead_rate

    def is_working_day(self, on: date) -> bool:
        """Default pattern: Monday..(days_per_week - 1) are working days."""
        return on.weekday() < self.days_per_week

    def daily_capacity_hours(self) -> float:
        return self.hours_per_day * self.capacity_units * self.efficiency / 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "work_center_id": self.work_center_id,
            "code": self.code,
            "name": self.name,
            "work_center_type": self.work_center_type,
            "hourly_rate": self.hourly_rate,
            "overhead_rate": self.overhead_rate,
            "overtime_rate": self.overtime_rate,
            "subcontract_rate": self.subcontract_rate,
            "efficiency": self.efficiency,
            "capacity_units": self.capacity_units,
            "hours_per_day": self.hours_per_day,
            "days_per_week": self.days_per_week,
            "is_finite_capacity": self.is_finite_capacity,
            "is_active": self.is_active,
            "alternative_ids": list(self.alternative_ids),
        }
