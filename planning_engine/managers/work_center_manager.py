"""
Planning Engine - Work Center Manager
=====================================

Work center master data, calendar closures and nominal capacity.

Available hours come from the WorkCenterProvider, so calendar entries
(closures, reduced days, overtime) always win over the weekly pattern.
Periods are half-open [start, end) like the planning horizon.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import date, timedelta
from typing import Any, List, Optional, Sequence

from ..config import PlanningConfig, get_config
from ..providers.base import WorkCenterProvider
from ..structures.work_center import CalendarEntry, WorkCenter

logger = logging.getLogger(__name__)


class WorkCenterManager:
    """
    Gestor de centros de trabalho.

    Usage:
        manager = WorkCenterManager(work_centers)
        manager.create("WC-CNC-1", "CNC-1", work_center_type="cnc", hours_per_day=16)
        manager.add_closure("WC-CNC-1", date(2025, 4, 25), "Public holiday")
        manager.get_available_hours_for_period("WC-CNC-1", start, end)
    """

    def __init__(self, provider: WorkCenterProvider, config: Optional[PlanningConfig] = None):
        self.provider = provider
        self.config = config or get_config()

    def get(self, work_center_id: str) -> WorkCenter:
        work_center = self.provider.get_work_center(work_center_id)
        if work_center is None:
            raise ValueError(f"Work center '{work_center_id}' not found")
        return work_center

    def find_by_code(self, code: str) -> WorkCenter:
        for work_center in self.provider.list_work_centers(active_only=False):
            if work_center.code == code:
                return work_center
        raise ValueError(f"Work center with code '{code}' not found")

    # ─────────────────────────────────────────────────────────────────────────
    # Master data
    # ─────────────────────────────────────────────────────────────────────────

    def create(
        self,
        work_center_id: str,
        code: str,
        name: str = "",
        work_center_type: str = "machine",
        hours_per_day: float = 8.0,
        days_per_week: int = 5,
        efficiency: float = 100.0,
        capacity_units: int = 1,
        **attributes: Any,
    ) -> WorkCenter:
        """Create an active work center; ids and codes are unique."""
        existing = self.provider.list_work_centers(active_only=False)
        if any(wc.work_center_id == work_center_id for wc in existing):
            raise ValueError(f"Work center '{work_center_id}' already exists")
        if any(wc.code == code for wc in existing):
            raise ValueError(f"Work center code '{code}' is already in use")

        work_center = WorkCenter(
            work_center_id=work_center_id,
            code=code,
            name=name,
            work_center_type=work_center_type,
            hours_per_day=hours_per_day,
            days_per_week=days_per_week,
            efficiency=efficiency,
            capacity_units=capacity_units,
            is_active=True,
            **attributes,
        )
        self.provider.save_work_center(work_center)
        logger.info(f"Created work center {work_center_id} ({code}, {work_center_type})")
        return work_center

    def update(self, work_center_id: str, **changes: Any) -> WorkCenter:
        if "work_center_id" in changes:
            raise ValueError("Work center id cannot be changed")
        work_center = replace(self.get(work_center_id), **changes)
        self.provider.save_work_center(work_center)
        return work_center

    def activate(self, work_center_id: str) -> WorkCenter:
        work_center = self.update(work_center_id, is_active=True)
        logger.info(f"Activated work center {work_center_id}")
        return work_center

    def deactivate(self, work_center_id: str) -> WorkCenter:
        work_center = self.update(work_center_id, is_active=False)
        logger.info(f"Deactivated work center {work_center_id}")
        return work_center

    # ─────────────────────────────────────────────────────────────────────────
    # Capacity
    # ─────────────────────────────────────────────────────────────────────────

    def calculate_daily_capacity(self, work_center_id: str) -> float:
        """Nominal hours of a working day: hours x units x efficiency."""
        return self.get(work_center_id).daily_capacity_hours()

    def calculate_weekly_capacity(self, work_center_id: str) -> float:
        work_center = self.get(work_center_id)
        return work_center.daily_capacity_hours() * work_center.days_per_week

    def get_available_hours(
        self,
        work_center_id: str,
        on: date,
        include_overtime: Optional[bool] = None,
    ) -> float:
        """Hours on one date, calendar included; zero for an inactive work center."""
        self.get(work_center_id)
        if include_overtime is None:
            include_overtime = self.config.include_overtime
        return self.provider.get_available_capacity(work_center_id, on, include_overtime)

    def get_available_hours_for_period(
        self,
        work_center_id: str,
        start: date,
        end: date,
        include_overtime: Optional[bool] = None,
    ) -> float:
        """Sum of available hours over [start, end)."""
        if end < start:
            raise ValueError("Period end cannot precede its start")
        hours = []
        current = start
        while current < end:
            hours.append(self.get_available_hours(work_center_id, current, include_overtime))
            current += timedelta(days=1)
        return math.fsum(hours)

    # ─────────────────────────────────────────────────────────────────────────
    # Calendar
    # ─────────────────────────────────────────────────────────────────────────

    def add_closure(
        self,
        work_center_id: str,
        on: date,
        reason: str,
        hours_unavailable: float = 0.0,
    ) -> CalendarEntry:
        """
        Close a work center on a date.

        ``hours_unavailable`` of zero closes the whole day; otherwise that
        many hours come off the day's regular hours.
        """
        if hours_unavailable < 0:
            raise ValueError("Unavailable hours cannot be negative")
        work_center = self.get(work_center_id)

        entries = self.provider.get_calendar(work_center_id, on, on + timedelta(days=1))
        current = entries[0] if entries else None
        if current is not None:
            regular = current.available_hours if current.is_working else 0.0
        else:
            regular = work_center.hours_per_day if work_center.is_working_day(on) else 0.0

        if hours_unavailable <= 0 or hours_unavailable >= regular:
            entry = CalendarEntry(date=on, is_working=False, available_hours=0.0, notes=reason)
        else:
            entry = CalendarEntry(
                date=on,
                is_working=True,
                available_hours=regular - hours_unavailable,
                overtime_hours=current.overtime_hours if current is not None else 0.0,
                notes=reason,
            )
        self.provider.set_calendar_entry(work_center_id, entry)
        logger.info(f"Closure on {work_center_id} {on}: {reason} ({entry.available_hours:g}h left)")
        return entry

    def remove_closure(self, work_center_id: str, on: date) -> bool:
        """Back to the weekly pattern on that date; False when nothing was set."""
        self.get(work_center_id)
        removed = self.provider.remove_calendar_entry(work_center_id, on)
        if removed:
            logger.info(f"Removed calendar entry of {work_center_id} on {on}")
        return removed

    def get_closures(self, work_center_id: str, start: date, end: date) -> List[CalendarEntry]:
        """Calendar entries in [start, end) that take hours away from the day."""
        work_center = self.get(work_center_id)
        return [
            e for e in self.provider.get_calendar(work_center_id, start, end)
            if not e.is_working or e.available_hours < work_center.hours_per_day
        ]

    # ─────────────────────────────────────────────────────────────────────────
    # Alternatives and queries
    # ─────────────────────────────────────────────────────────────────────────

    def set_alternatives(self, work_center_id: str, alternative_ids: Sequence[str]) -> WorkCenter:
        """Every alternative must exist and differ from the work center itself."""
        self.get(work_center_id)
        unique = list(dict.fromkeys(alternative_ids))
        for alternative_id in unique:
            if alternative_id == work_center_id:
                raise ValueError(f"Work center '{work_center_id}' cannot be its own alternative")
            self.get(alternative_id)
        return self.update(work_center_id, alternative_ids=unique)

    def get_alternatives(self, work_center_id: str) -> List[WorkCenter]:
        """Active alternatives, in the order they were set."""
        alternatives = []
        for alternative_id in self.get(work_center_id).alternative_ids:
            alternative = self.provider.get_work_center(alternative_id)
            if alternative is None:
                logger.warning(f"Alternative '{alternative_id}' of {work_center_id} no longer exists")
                continue
            if alternative.is_active:
                alternatives.append(alternative)
        return alternatives

    def find_by_type(self, work_center_type: str, active_only: bool = False) -> List[WorkCenter]:
        return [
            wc for wc in self.provider.list_work_centers(active_only=active_only)
            if wc.work_center_type == work_center_type
        ]

    def find_active(self) -> List[WorkCenter]:
        return self.provider.list_work_centers(active_only=True)
