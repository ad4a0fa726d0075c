"""Forecast model -- the structured output of a forecaster."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Forecast(BaseModel):
    """A single price forecast for an asset.

    Most forecasters only emit a scalar `price_target` for the end of the
    horizon. A forecaster that produces a per-day path sets `price_path`
    and the backtest runner uses it as-is.
    """

    model_config = ConfigDict(frozen=True)

    direction: Literal["UP", "DOWN", "NEUTRAL"] = "NEUTRAL"
    price_target: float = Field(gt=0)
    confidence: float = Field(default=65.0, ge=0.0, le=100.0)
    risk_level: Literal["LOW", "MEDIUM", "HIGH"] = "MEDIUM"
    timeframe: str = "24h"
    analysis: str = ""
    key_factors: list[str] = Field(default_factory=list)
    price_path: list[float] | None = None
