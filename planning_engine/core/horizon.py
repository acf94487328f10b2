"""
Planning Engine - Planning Horizon
==================================

Time-phased planning horizon with Frozen / Slushy / Liquid zones.

    start ────────── frozen ──────────┬──── slushy ────┬──────── liquid ────────── end
                                      │                │
    offset < frozen_days → FROZEN     │  < frozen+slushy → SLUSHY   else → LIQUID

Buckets are half-open [start, end). Month buckets follow calendar months
(dateutil.relativedelta), the last bucket is truncated at the horizon end.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from ..config import BucketSize


class PlanningZone(str, Enum):
    """Horizon zone, from most to least restricted."""
    FROZEN = "frozen"
    SLUSHY = "slushy"
    LIQUID = "liquid"


@dataclass(frozen=True)
class TimeBucket:
    """A single [start, end) bucket of the horizon."""
    index: int
    start: date
    end: date
    zone: PlanningZone

    @property
    def days(self) -> int:
        return (self.end - self.start).days

    def contains(self, on: date) -> bool:
        return self.start <= on < self.end

    @property
    def label(self) -> str:
        if self.days == 1:
            return self.start.isoformat()
        if self.days <= 7:
            return f"W{self.start.isocalendar()[1]:02d}-{self.start.year}"
        return self.start.strftime("%Y-%m")


@dataclass(frozen=True)
class PlanningHorizon:
    """
    Planning horizon.

    Attributes:
        start_date: first day of the horizon
        end_date: exclusive end of the horizon
        frozen_days: days from start that are frozen
        slushy_days: days after the frozen zone that are slushy
        bucket_size: day, week or month
    """
    start_date: date
    end_date: date
    frozen_days: int = 14
    slushy_days: int = 14
    bucket_size: BucketSize = BucketSize.DAY

    def __post_init__(self):
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        if self.frozen_days < 0 or self.slushy_days < 0:
            raise ValueError("Zone days cannot be negative")
        if self.frozen_days + self.slushy_days > self.total_days:
            raise ValueError(
                f"Frozen ({self.frozen_days}) + slushy ({self.slushy_days}) days "
                f"exceed horizon length ({self.total_days})"
            )
        # Accept plain strings for the bucket size.
        if not isinstance(self.bucket_size, BucketSize):
            object.__setattr__(self, "bucket_size", BucketSize(self.bucket_size))
        # Buckets are computed once; the dataclass is frozen.
        buckets = self._build_buckets()
        object.__setattr__(self, "_buckets", buckets)
        object.__setattr__(self, "_bucket_starts", [b.start for b in buckets])

    # ─────────────────────────────────────────────────────────────────────────
    # Zones
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def total_days(self) -> int:
        return (self.end_date - self.start_date).days

    @property
    def liquid_days(self) -> int:
        return self.total_days - self.frozen_days - self.slushy_days

    @property
    def frozen_end_date(self) -> date:
        return self.start_date + timedelta(days=self.frozen_days)

    @property
    def slushy_end_date(self) -> date:
        return self.start_date + timedelta(days=self.frozen_days + self.slushy_days)

    def zone_for_date(self, on: date) -> PlanningZone:
        """Dates outside the horizon are treated as LIQUID."""
        if on < self.start_date or on >= self.end_date:
            return PlanningZone.LIQUID
        offset = (on - self.start_date).days
        if offset < self.frozen_days:
            return PlanningZone.FROZEN
        if offset < self.frozen_days + self.slushy_days:
            return PlanningZone.SLUSHY
        return PlanningZone.LIQUID

    def is_frozen(self, on: date) -> bool:
        return self.zone_for_date(on) == PlanningZone.FROZEN

    def contains(self, on: date) -> bool:
        return self.start_date <= on < self.end_date

    # ─────────────────────────────────────────────────────────────────────────
    # Buckets
    # ─────────────────────────────────────────────────────────────────────────

    def _step(self, current: date) -> date:
        if self.bucket_size == BucketSize.WEEK:
            return current + timedelta(days=7)
        if self.bucket_size == BucketSize.MONTH:
            return current + relativedelta(months=1)
        return current + timedelta(days=1)

    def _build_buckets(self) -> Tuple[TimeBucket, ...]:
        result: List[TimeBucket] = []
        current = self.start_date
        while current < self.end_date:
            bucket_end = min(self._step(current), self.end_date)
            result.append(TimeBucket(
                index=len(result),
                start=current,
                end=bucket_end,
                zone=self.zone_for_date(current),
            ))
            current = bucket_end
        return tuple(result)

    def buckets(self) -> List[TimeBucket]:
        return list(self._buckets)

    def full_bucket_days(self, bucket: TimeBucket) -> int:
        """Length the bucket would have without truncation at the horizon end."""
        return (self._step(bucket.start) - bucket.start).days

    @property
    def bucket_count(self) -> int:
        return len(self._buckets)

    def bucket_index_for(self, on: date) -> int:
        """Index of the bucket holding a date; clamped to the first/last bucket."""
        return max(0, bisect_right(self._bucket_starts, on) - 1)

    def bucket_for(self, on: date) -> Optional[TimeBucket]:
        if not self.contains(on):
            return None
        return self._buckets[self.bucket_index_for(on)]

    # ─────────────────────────────────────────────────────────────────────────
    # Factories
    # ─────────────────────────────────────────────────────────────────────────

    @classmethod
    def for_days(
        cls,
        days: int,
        frozen_days: int = 14,
        slushy_days: int = 14,
        bucket_size: BucketSize = BucketSize.DAY,
        start_date: Optional[date] = None,
    ) -> "PlanningHorizon":
        start = start_date or date.today()
        return cls(
            start_date=start,
            end_date=start + timedelta(days=days),
            frozen_days=min(frozen_days, days),
            slushy_days=max(0, min(slushy_days, days - min(frozen_days, days))),
            bucket_size=bucket_size,
        )

    @classmethod
    def for_weeks(
        cls,
        weeks: int,
        frozen_weeks: int = 2,
        slushy_weeks: int = 2,
        start_date: Optional[date] = None,
    ) -> "PlanningHorizon":
        return cls.for_days(
            days=weeks * 7,
            frozen_days=frozen_weeks * 7,
            slushy_days=slushy_weeks * 7,
            bucket_size=BucketSize.WEEK,
            start_date=start_date,
        )

    @classmethod
    def for_months(
        cls,
        months: int,
        frozen_weeks: int = 2,
        slushy_weeks: int = 2,
        start_date: Optional[date] = None,
    ) -> "PlanningHorizon":
        start = start_date or date.today()
        end = start + relativedelta(months=months)
        total = (end - start).days
        frozen = min(frozen_weeks * 7, total)
        return cls(
            start_date=start,
            end_date=end,
            frozen_days=frozen,
            slushy_days=max(0, min(slushy_weeks * 7, total - frozen)),
            bucket_size=BucketSize.MONTH,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "frozen_days": self.frozen_days,
            "slushy_days": self.slushy_days,
            "liquid_days": self.liquid_days,
            "bucket_size": self.bucket_size.value,
            "total_days": self.total_days,
            "bucket_count": self.bucket_count,
        }
