"""Indicator models -- the technical snapshot handed to forecasters."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Trend(BaseModel):
    """Direction and relative strength of the price series."""

    model_config = ConfigDict(frozen=True)

    direction: Literal["uptrend", "downtrend", "neutral"] = "neutral"
    strength: float = Field(default=0.0, ge=0.0, le=100.0)
    price_change: float = 0.0  # percent, first to last


class IndicatorSnapshot(BaseModel):
    """Immutable set of indicators computed from one price series.

    Moving averages are stored keyed by window. An indicator whose minimum
    sample size was not met is None; this never blocks the others.
    """

    model_config = ConfigDict(frozen=True)

    current_price: float
    smas: dict[int, float | None] = Field(default_factory=dict)
    emas: dict[int, float | None] = Field(default_factory=dict)
    rsi: float | None = None
    rsi_window: int = 14
    volatility: float | None = None
    trend: Trend = Field(default_factory=Trend)

    def sma(self, window: int) -> float | None:
        return self.smas.get(window)

    def ema(self, window: int) -> float | None:
        return self.emas.get(window)
