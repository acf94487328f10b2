"""
Testes de configuração, horizonte de planeamento e efetividade.
"""
from datetime import date, timedelta

import pytest

from ..config import BucketSize, LotSizingStrategy, PlanningConfig, PlanningSettings, get_config
from ..core.effectivity import ALWAYS, Effectivity
from ..core.horizon import PlanningHorizon, PlanningZone


class TestPlanningSettings:
    """Configuração via variáveis de ambiente."""

    def test_defaults(self):
        config = get_config()

        assert config.default_lot_sizing == LotSizingStrategy.LOT_FOR_LOT
        assert config.mrp_max_workers == 1
        assert config.to_dict()["default_bucket_size"] == "day"
        assert get_config() is config

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("PLANNING_LOT_SIZING", "FIXED_ORDER_QUANTITY")
        monkeypatch.setenv("PLANNING_BUCKET_SIZE", "week")
        monkeypatch.setenv("PLANNING_MRP_MAX_WORKERS", "4")
        monkeypatch.setenv("PLANNING_FORECAST_TIMEOUT", "2.5")
        monkeypatch.setenv("PLANNING_INCLUDE_OVERTIME", "yes")
        PlanningSettings.reset()

        config = get_config()

        assert config.default_lot_sizing == LotSizingStrategy.FIXED_ORDER_QUANTITY
        assert config.default_bucket_size == BucketSize.WEEK
        assert config.mrp_max_workers == 4
        assert config.forecast_timeout_seconds == pytest.approx(2.5)
        assert config.include_overtime is True

    def test_invalid_values_keep_defaults(self, monkeypatch):
        monkeypatch.setenv("PLANNING_BUCKET_SIZE", "fortnight")
        monkeypatch.setenv("PLANNING_MRP_MAX_WORKERS", "many")
        PlanningSettings.reset()

        config = get_config()

        assert config.default_bucket_size == BucketSize.DAY
        assert config.mrp_max_workers == PlanningConfig().mrp_max_workers


class TestPlanningHorizon:

    def test_zones(self, daily_horizon, today):
        assert daily_horizon.zone_for_date(today) == PlanningZone.FROZEN
        assert daily_horizon.zone_for_date(today + timedelta(days=7)) == PlanningZone.SLUSHY
        assert daily_horizon.zone_for_date(today + timedelta(days=14)) == PlanningZone.LIQUID
        assert daily_horizon.zone_for_date(today - timedelta(days=1)) == PlanningZone.LIQUID
        assert daily_horizon.liquid_days == 16

    def test_zones_longer_than_horizon(self, today):
        with pytest.raises(ValueError):
            PlanningHorizon(today, today + timedelta(days=10), 7, 7)
        with pytest.raises(ValueError):
            PlanningHorizon(today, today)

    def test_weekly_buckets_truncate_at_end(self, today):
        horizon = PlanningHorizon(today, today + timedelta(days=10), 0, 0, "week")

        buckets = horizon.buckets()

        assert horizon.bucket_size == BucketSize.WEEK
        assert [b.days for b in buckets] == [7, 3]
        assert horizon.full_bucket_days(buckets[-1]) == 7

    def test_monthly_buckets_follow_calendar(self):
        horizon = PlanningHorizon.for_months(2, 0, 0, start_date=date(2025, 1, 15))

        assert [(b.start, b.end) for b in horizon.buckets()] == [
            (date(2025, 1, 15), date(2025, 2, 15)),
            (date(2025, 2, 15), date(2025, 3, 15)),
        ]
        assert horizon.buckets()[0].label == "2025-01"

    def test_bucket_index_is_clamped(self, weekly_horizon, today):
        assert weekly_horizon.bucket_index_for(today - timedelta(days=3)) == 0
        assert weekly_horizon.bucket_index_for(today + timedelta(days=9)) == 1
        assert weekly_horizon.bucket_index_for(today + timedelta(days=90)) == 3
        assert weekly_horizon.bucket_for(today + timedelta(days=90)) is None

    def test_buckets_are_built_once(self, weekly_horizon, today):
        buckets = weekly_horizon.buckets()
        buckets.clear()

        assert weekly_horizon.bucket_count == 4
        assert weekly_horizon.buckets()[1].start == today + timedelta(days=7)
        assert weekly_horizon.bucket_index_for(today + timedelta(days=6)) == 0
        assert weekly_horizon.bucket_index_for(today + timedelta(days=7)) == 1
        assert weekly_horizon.bucket_for(today + timedelta(days=27)).index == 3
        assert weekly_horizon == PlanningHorizon.for_weeks(4, 0, 0, start_date=today)

    def test_for_days_caps_zones(self, today):
        horizon = PlanningHorizon.for_days(10, 14, 14, start_date=today)

        assert horizon.frozen_days == 10
        assert horizon.slushy_days == 0
        assert horizon.is_frozen(today + timedelta(days=9))


class TestEffectivity:

    def test_bounds_are_inclusive(self):
        window = Effectivity(date(2025, 1, 1), date(2025, 1, 31))

        assert window.contains(date(2025, 1, 1))
        assert window.contains(date(2025, 1, 31))
        assert not window.contains(date(2025, 2, 1))
        assert ALWAYS.contains(date(1999, 1, 1))

    def test_overlaps(self):
        january = Effectivity(date(2025, 1, 1), date(2025, 1, 31))

        assert january.overlaps(Effectivity(date(2025, 1, 31)))
        assert not january.overlaps(Effectivity(date(2025, 2, 1)))
        assert january.overlaps(ALWAYS)

    def test_inverted_window(self):
        with pytest.raises(ValueError):
            Effectivity(date(2025, 2, 1), date(2025, 1, 1))
