"""
Planning Engine - Demand Forecasting
====================================

Forecast feed for MRP gross requirements.

Arquitetura:
- ForecastProvider (ML, externo): contrato em providers.base
- HistoricalForecastFallback: exponential smoothing (statsmodels) sobre o
  histórico, ou média simples com confiança VERY_LOW quando o histórico é curto
- DemandForecaster: health check -> predict com timeout -> fallback

A falha do ML nunca chega ao chamador como erro: fica registada como warning
no DemandForecast devolvido.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.tsa.holtwinters import ExponentialSmoothing

from ..config import BucketSize, PlanningConfig, get_config
from ..core.horizon import PlanningHorizon
from ..exceptions import ForecastUnavailable
from ..providers.base import DemandEntry, DemandHistoryProvider, ForecastProvider

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ═══════════════════════════════════════════════════════════════════════════════

class ForecastConfidence(str, Enum):
    """Confidence level of a forecast."""
    VERY_HIGH = "very_high"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    VERY_LOW = "very_low"

    @property
    def score(self) -> float:
        return {
            ForecastConfidence.VERY_HIGH: 0.95,
            ForecastConfidence.HIGH: 0.8,
            ForecastConfidence.MEDIUM: 0.6,
            ForecastConfidence.LOW: 0.4,
            ForecastConfidence.VERY_LOW: 0.2,
        }[self]

    @property
    def requires_review(self) -> bool:
        return self in (ForecastConfidence.LOW, ForecastConfidence.VERY_LOW)

    @property
    def safety_stock_multiplier(self) -> float:
        return {
            ForecastConfidence.VERY_HIGH: 1.0,
            ForecastConfidence.HIGH: 1.1,
            ForecastConfidence.MEDIUM: 1.25,
            ForecastConfidence.LOW: 1.5,
            ForecastConfidence.VERY_LOW: 2.0,
        }[self]

    def downgrade(self) -> "ForecastConfidence":
        order = list(ForecastConfidence)
        return order[min(order.index(self) + 1, len(order) - 1)]


class ForecastSource(str, Enum):
    """Origin of a forecast."""
    ML = "ml"
    HISTORICAL = "historical"
    MANUAL = "manual"


@dataclass
class DemandForecast:
    """
    Forecast de procura para um produto.

    Attributes:
        period_quantities: quantidade por início de bucket
        lower_bound / upper_bound: intervalo de confiança do total
    """
    product_id: str
    start_date: date
    end_date: date
    period_quantities: Dict[date, float]
    confidence: ForecastConfidence
    source: ForecastSource
    model_version: Optional[str] = None
    generated_at: datetime = field(default_factory=datetime.now)
    warnings: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    lower_bound: Optional[float] = None
    upper_bound: Optional[float] = None

    def __post_init__(self):
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        if any(q < 0 for q in self.period_quantities.values()):
            raise ValueError("Forecast quantity cannot be negative")

    @property
    def total_quantity(self) -> float:
        return float(sum(self.period_quantities.values()))

    @property
    def horizon_days(self) -> int:
        return (self.end_date - self.start_date).days

    @property
    def daily_average(self) -> float:
        return self.total_quantity / self.horizon_days

    @property
    def is_ml_based(self) -> bool:
        return self.source == ForecastSource.ML

    @property
    def is_fallback(self) -> bool:
        return self.source == ForecastSource.HISTORICAL

    @property
    def needs_review(self) -> bool:
        return self.confidence.requires_review

    @property
    def confidence_range(self) -> Optional[float]:
        if self.lower_bound is None or self.upper_bound is None:
            return None
        return self.upper_bound - self.lower_bound

    def to_gross_requirements(self) -> List[DemandEntry]:
        """One forecast demand entry per non-zero period, due at the period start."""
        return [
            DemandEntry(
                required_date=period,
                quantity=quantity,
                source_type="forecast",
                source_reference=f"FC-{self.product_id}-{self.source.value}",
            )
            for period, quantity in sorted(self.period_quantities.items())
            if quantity > 0
        ]

    def to_series(self) -> pd.Series:
        items = sorted(self.period_quantities.items())
        return pd.Series(
            [q for _, q in items],
            index=pd.to_datetime([d for d, _ in items]),
            name=self.product_id,
            dtype=float,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "period_quantities": {d.isoformat(): round(q, 4) for d, q in sorted(self.period_quantities.items())},
            "total_quantity": round(self.total_quantity, 4),
            "confidence": self.confidence.value,
            "confidence_score": self.confidence.score,
            "source": self.source.value,
            "model_version": self.model_version,
            "generated_at": self.generated_at.isoformat(),
            "warnings": list(self.warnings),
            "notes": list(self.notes),
            "lower_bound": self.lower_bound,
            "upper_bound": self.upper_bound,
            "summary": {
                "horizon_days": self.horizon_days,
                "daily_average": round(self.daily_average, 4),
                "is_ml_based": self.is_ml_based,
                "is_fallback": self.is_fallback,
                "needs_review": self.needs_review,
                "safety_stock_multiplier": self.confidence.safety_stock_multiplier,
            },
        }


# ═══════════════════════════════════════════════════════════════════════════════
# METRICS
# ═══════════════════════════════════════════════════════════════════════════════

def compute_mape(actual: np.ndarray, predicted: np.ndarray) -> float:
    """Calcula MAPE."""
    mask = actual != 0
    if not np.any(mask):
        return 0.0
    return float(np.mean(np.abs((actual[mask] - predicted[mask]) / actual[mask])) * 100)


def compute_rmse(actual: np.ndarray, predicted: np.ndarray) -> float:
    """Calcula RMSE."""
    if len(actual) == 0:
        return 0.0
    return float(np.sqrt(np.mean((actual - predicted) ** 2)))


_RESAMPLE_RULES = {
    BucketSize.DAY: "D",
    BucketSize.WEEK: "W",
    BucketSize.MONTH: "MS",
}

_SEASONAL_PERIODS = {
    BucketSize.DAY: 7,
    BucketSize.WEEK: 52,
    BucketSize.MONTH: 12,
}


# ═══════════════════════════════════════════════════════════════════════════════
# HISTORICAL FALLBACK
# ═══════════════════════════════════════════════════════════════════════════════

class HistoricalForecastFallback:
    """
    Forecast a partir do histórico.

    - histórico >= min_history períodos: ExponentialSmoothing (statsmodels)
    - histórico curto: média histórica, confiança VERY_LOW, com warning

    Nunca levanta ForecastUnavailable.
    """

    def __init__(
        self,
        history: Optional[DemandHistoryProvider] = None,
        config: Optional[PlanningConfig] = None,
    ):
        self.history = history
        self.config = config or get_config()

    def history_series(
        self,
        product_id: str,
        until: date,
        bucket_size: BucketSize = BucketSize.DAY,
    ) -> pd.Series:
        """Historical demand before ``until``, summed per bucket."""
        points = self.history.get_history(product_id, until=until) if self.history else []
        if not points:
            return pd.Series(dtype=float)
        raw = pd.Series(
            [p.quantity for p in points],
            index=pd.to_datetime([p.demand_date for p in points]),
            dtype=float,
        )
        return raw.resample(_RESAMPLE_RULES[BucketSize(bucket_size)]).sum()

    def calculate_from_history(
        self,
        product_id: str,
        start: date,
        end: date,
        bucket_size: BucketSize = BucketSize.DAY,
    ) -> DemandForecast:
        bucket_size = BucketSize(bucket_size)
        horizon = PlanningHorizon(start, end, 0, 0, bucket_size)
        buckets = horizon.buckets()
        # Truncated last bucket gets a proportional share.
        shares = np.array([b.days / horizon.full_bucket_days(b) for b in buckets])

        series = self.history_series(product_id, start, bucket_size)
        warnings: List[str] = []

        if len(series) >= self.config.forecast_min_history:
            fitted = self._fit(series, bucket_size, len(buckets), warnings)
            if fitted is not None:
                values, residual_std, mape = fitted
                values = np.clip(values, 0, None) * shares
                confidence = self._confidence(len(series), mape)
                lower, upper = self._interval(float(values.sum()), residual_std, len(buckets))
                return DemandForecast(
                    product_id=product_id,
                    start_date=start,
                    end_date=end,
                    period_quantities={b.start: float(v) for b, v in zip(buckets, values)},
                    confidence=confidence,
                    source=ForecastSource.HISTORICAL,
                    model_version="ets",
                    warnings=warnings,
                    notes=[f"Exponential smoothing over {len(series)} periods (MAPE {mape:.1f}%)"],
                    lower_bound=lower,
                    upper_bound=upper,
                )

        if series.empty:
            warnings.append(f"No demand history for '{product_id}'; forecasting zero demand")
            mean = 0.0
        else:
            mean = float(series.mean())
            if len(series) < self.config.forecast_min_history:
                warnings.append(
                    f"Insufficient history for '{product_id}' ({len(series)} < "
                    f"{self.config.forecast_min_history} periods); using historical average"
                )

        values = np.full(len(buckets), max(mean, 0.0)) * shares
        return DemandForecast(
            product_id=product_id,
            start_date=start,
            end_date=end,
            period_quantities={b.start: float(v) for b, v in zip(buckets, values)},
            confidence=ForecastConfidence.VERY_LOW,
            source=ForecastSource.HISTORICAL,
            model_version="historical_average",
            warnings=warnings,
            notes=[f"Historical average over {len(series)} periods"],
        )

    def _fit(self, series: pd.Series, bucket_size: BucketSize, steps: int, warnings: List[str]):
        seasonal_periods = _SEASONAL_PERIODS[bucket_size]
        seasonal = "add" if len(series) >= 2 * seasonal_periods else None
        try:
            model = ExponentialSmoothing(
                series.to_numpy(dtype=float),
                trend="add" if len(series) >= 10 else None,
                seasonal=seasonal,
                seasonal_periods=seasonal_periods if seasonal else None,
            )
            fitted = model.fit()
        except (ValueError, np.linalg.LinAlgError) as exc:
            logger.warning(f"Exponential smoothing failed ({exc}); using historical average")
            warnings.append(f"Exponential smoothing failed: {exc}")
            return None

        values = np.asarray(fitted.forecast(steps), dtype=float)
        actual = series.to_numpy(dtype=float)
        residual_std = float(np.std(actual - np.asarray(fitted.fittedvalues, dtype=float)))
        mape = compute_mape(actual, np.asarray(fitted.fittedvalues, dtype=float))
        return values, residual_std, mape

    def _confidence(self, n_periods: int, mape: float) -> ForecastConfidence:
        min_history = self.config.forecast_min_history
        if n_periods >= 2 * min_history and mape < 15:
            return ForecastConfidence.HIGH
        if mape < 30:
            return ForecastConfidence.MEDIUM
        return ForecastConfidence.LOW

    def _interval(self, total: float, residual_std: float, steps: int):
        z = float(stats.norm.ppf(0.5 + self.config.forecast_confidence_level / 2))
        spread = z * residual_std * np.sqrt(steps)
        return max(0.0, total - spread), total + spread


# ═══════════════════════════════════════════════════════════════════════════════
# DEMAND FORECASTER
# ═══════════════════════════════════════════════════════════════════════════════

class DemandForecaster:
    """
    Forecast com ML e fallback histórico.

    Usage:
        with DemandForecaster(ml_provider, HistoricalForecastFallback(history)) as forecaster:
            forecast = forecaster.forecast("FG-1", start, end)
            if forecast.is_fallback:
                ...
    """

    def __init__(
        self,
        provider: Optional[ForecastProvider] = None,
        fallback: Optional[HistoricalForecastFallback] = None,
        config: Optional[PlanningConfig] = None,
    ):
        self.config = config or get_config()
        self.provider = provider
        self.fallback = fallback or HistoricalForecastFallback(config=self.config)
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()
        self.fallback_count = 0

    def __enter__(self) -> "DemandForecaster":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _get_executor(self) -> ThreadPoolExecutor:
        """Worker pool for timed provider calls, created on the first call."""
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="forecast")
            return self._executor

    def close(self) -> None:
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            # Do not wait for a hung provider call.
            executor.shutdown(wait=False)

    def is_ml_available(self) -> bool:
        if self.provider is None:
            return False
        try:
            return bool(self.provider.is_healthy())
        except Exception as exc:
            logger.warning(f"Forecast provider health check failed: {exc}")
            return False

    def forecast(
        self,
        product_id: str,
        start: date,
        end: date,
        features: Optional[Dict[str, Any]] = None,
        bucket_size: Optional[BucketSize] = None,
    ) -> DemandForecast:
        """
        Forecast demand for [start, end).

        Order: health check, availability, ML predict under the configured
        timeout. Any failure falls back to history with a warning.
        """
        bucket_size = BucketSize(bucket_size or self.config.default_bucket_size)
        try:
            forecast = self._predict(product_id, start, end, features)
            logger.info(
                f"ML forecast for {product_id}: {forecast.total_quantity:.1f} "
                f"({forecast.confidence.value})"
            )
            return forecast
        except ForecastUnavailable as exc:
            reason = exc.reason

        self.fallback_count += 1
        logger.warning(f"ML forecast unavailable for {product_id} ({reason}); using historical fallback")
        forecast = self.fallback.calculate_from_history(product_id, start, end, bucket_size)
        forecast.warnings.insert(
            0, f"ML forecast unavailable for '{product_id}' ({reason}); historical fallback used",
        )
        return forecast

    def _predict(
        self,
        product_id: str,
        start: date,
        end: date,
        features: Optional[Dict[str, Any]],
    ) -> DemandForecast:
        """ML prediction; every failure is raised as ForecastUnavailable."""
        if self.provider is None:
            raise ForecastUnavailable(product_id, "no ML provider configured")
        if not self.is_ml_available():
            raise ForecastUnavailable(product_id, "ML provider unhealthy")

        try:
            if not self.provider.is_available(product_id):
                raise ForecastUnavailable(product_id, "no model for product")
            future = self._get_executor().submit(self.provider.predict, product_id, start, end, features)
            forecast = future.result(timeout=self.config.forecast_timeout_seconds)
        except ForecastUnavailable:
            raise
        except FuturesTimeout:
            future.cancel()
            raise ForecastUnavailable(
                product_id, f"timed out after {self.config.forecast_timeout_seconds}s",
            ) from None
        except Exception as exc:
            logger.exception(f"Forecast provider {self.provider.get_name()} failed for {product_id}")
            raise ForecastUnavailable(product_id, str(exc)) from exc

        if forecast is None:
            raise ForecastUnavailable(product_id, "provider returned no forecast")
        return forecast

    def forecast_multiple(
        self,
        product_ids: Sequence[str],
        start: date,
        end: date,
        bucket_size: Optional[BucketSize] = None,
    ) -> Dict[str, DemandForecast]:
        return {
            product_id: self.forecast(product_id, start, end, bucket_size=bucket_size)
            for product_id in product_ids
        }

    def adjust_forecast(
        self,
        forecast: DemandForecast,
        adjustments: Dict[date, Dict[str, float]],
    ) -> DemandForecast:
        """
        Manual adjustment per period.

        Each adjustment holds one of ``quantity`` (absolute), ``multiplier`` or
        ``delta``. Confidence drops one level.
        """
        quantities = dict(forecast.period_quantities)
        notes = list(forecast.notes) + ["Manually adjusted"]

        for period, adjustment in adjustments.items():
            if period not in quantities:
                continue
            original = quantities[period]
            if "quantity" in adjustment:
                quantities[period] = adjustment["quantity"]
            elif "multiplier" in adjustment:
                quantities[period] = original * adjustment["multiplier"]
            elif "delta" in adjustment:
                quantities[period] = original + adjustment["delta"]
            quantities[period] = max(0.0, quantities[period])
            notes.append(f"Period {period.isoformat()}: adjusted from {original:g} to {quantities[period]:g}")

        return replace(
            forecast,
            period_quantities=quantities,
            confidence=forecast.confidence.downgrade(),
            source=ForecastSource.MANUAL,
            generated_at=datetime.now(),
            notes=notes,
            warnings=list(forecast.warnings),
            lower_bound=None,
            upper_bound=None,
        )

    def accuracy_metrics(
        self,
        forecast: DemandForecast,
        actuals: Optional[Dict[date, float]] = None,
    ) -> Dict[str, float]:
        """
        MAPE, RMSE and bias of a forecast against actual demand per period.

        Without ``actuals`` the fallback's history is aggregated per period.
        """
        periods = sorted(forecast.period_quantities)
        if actuals is None:
            actuals = self._actuals_from_history(forecast, periods)

        predicted = np.array([forecast.period_quantities[p] for p in periods], dtype=float)
        actual = np.array([actuals.get(p, 0.0) for p in periods], dtype=float)
        if len(periods) == 0:
            return {"mape": 0.0, "rmse": 0.0, "bias": 0.0, "accuracy": 100.0}

        mape = compute_mape(actual, predicted)
        return {
            "mape": mape,
            "rmse": compute_rmse(actual, predicted),
            "bias": float(np.sum(predicted - actual)),
            "accuracy": max(0.0, 100.0 - mape),
        }

    def _actuals_from_history(self, forecast: DemandForecast, periods: List[date]) -> Dict[date, float]:
        if self.fallback.history is None or not periods:
            return {}
        points = self.fallback.history.get_history(forecast.product_id, until=forecast.end_date)
        boundaries = periods + [forecast.end_date]
        totals = {p: 0.0 for p in periods}
        for point in points:
            for lo, hi in zip(boundaries, boundaries[1:]):
                if lo <= point.demand_date < hi:
                    totals[lo] += point.quantity
                    break
        return totals
