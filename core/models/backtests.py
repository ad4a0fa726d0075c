"""Backtest models -- accuracy metrics, trials, and batch results."""

from __future__ import annotations

import math
from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from core.models.forecasts import Forecast
from core.models.indicators import IndicatorSnapshot
from core.models.market import DatedPrice


def _rounded(value: float, digits: int) -> float | None:
    """Presentation rounding. NaN means "no data" and serializes as None."""
    if math.isnan(value):
        return None
    return round(value, digits)


class MetricSet(BaseModel):
    """Point-wise and summary accuracy of one forecast path.

    Scalars are kept at full precision; rounding only happens when the
    model is serialized. An empty set has NaN scalars.
    """

    model_config = ConfigDict(frozen=True)

    absolute_errors: list[float] = Field(default_factory=list)
    percentage_errors: list[float] = Field(default_factory=list)
    directional_correct: list[bool] = Field(default_factory=list)

    mae: float = math.nan
    mape: float = math.nan
    rmse: float = math.nan
    directional_accuracy: float = math.nan

    @property
    def is_empty(self) -> bool:
        return not self.absolute_errors

    @field_serializer("mae", "rmse", "directional_accuracy")
    def _serialize_4dp(self, value: float) -> float | None:
        return _rounded(value, 4)

    @field_serializer("mape")
    def _serialize_2dp(self, value: float) -> float | None:
        return _rounded(value, 2)


class AggregateMetrics(BaseModel):
    """Mean accuracy across the successful trials of a batch."""

    model_config = ConfigDict(frozen=True)

    average_mae: float = 0.0
    average_mape: float = 0.0
    average_rmse: float = 0.0
    average_directional_accuracy: float = 0.0

    @field_serializer("average_mae", "average_rmse", "average_directional_accuracy")
    def _serialize_4dp(self, value: float) -> float | None:
        return _rounded(value, 4)

    @field_serializer("average_mape")
    def _serialize_2dp(self, value: float) -> float | None:
        return _rounded(value, 2)


class Trial(BaseModel):
    """One backtest execution for an asset, test date, and horizon."""

    model_config = ConfigDict(frozen=True)

    asset: str
    test_date: date
    historical_window: tuple[date, date]  # [start, end)
    days_to_predict: int
    current_price: float
    forecast: Forecast
    predicted_prices: list[float]
    actual_prices: list[DatedPrice]
    indicators: IndicatorSnapshot
    metrics: MetricSet
    data_points_used: int
    warnings: list[str] = Field(default_factory=list)

    @property
    def predicted_price(self) -> float:
        """Headline target: the last point of the scored path."""
        if self.predicted_prices:
            return self.predicted_prices[-1]
        return self.forecast.price_target


class TrialFailure(BaseModel):
    """A batch trial that did not produce a result."""

    index: int
    test_date: date
    kind: str
    message: str


class BatchResult(BaseModel):
    """Outcome of a rolling series of backtests.

    `total_tests` counts successful trials only; compare it with
    `attempted_tests` to tell partial failure apart from a clean run.
    """

    asset: str
    start_date: date
    end_date: date
    step_days: int
    days_to_predict: int
    attempted_tests: int = 0
    total_tests: int = 0
    trials: list[Trial] = Field(default_factory=list)
    failures: list[TrialFailure] = Field(default_factory=list)
    aggregate: AggregateMetrics = Field(default_factory=AggregateMetrics)

    @property
    def failed_tests(self) -> int:
        return self.attempted_tests - self.total_tests
