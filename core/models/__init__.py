"""Pydantic data models shared across all components."""

from core.models.market import DatedPrice, PricePoint
from core.models.indicators import IndicatorSnapshot, Trend
from core.models.forecasts import Forecast
from core.models.backtests import (
    AggregateMetrics,
    BatchResult,
    MetricSet,
    Trial,
    TrialFailure,
)

__all__ = [
    "PricePoint",
    "DatedPrice",
    "IndicatorSnapshot",
    "Trend",
    "Forecast",
    "MetricSet",
    "AggregateMetrics",
    "Trial",
    "TrialFailure",
    "BatchResult",
]
