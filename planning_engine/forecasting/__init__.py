"""
Demand forecast feed with historical fallback.
"""

from .demand_forecasting import (
    DemandForecast,
    DemandForecaster,
    ForecastConfidence,
    ForecastSource,
    HistoricalForecastFallback,
    compute_mape,
    compute_rmse,
)

__all__ = [
    "DemandForecast",
    "DemandForecaster",
    "ForecastConfidence",
    "ForecastSource",
    "HistoricalForecastFallback",
    "compute_mape",
    "compute_rmse",
]
