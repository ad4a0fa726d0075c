"""Mock collaborators for offline backtests.

In mock mode the runner reads prices from memory and gets canned forecasts,
so no network calls are made. Implements the PriceSource and Forecaster
protocols.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Sequence
from datetime import date, datetime, timedelta

from core.models.forecasts import Forecast
from core.models.indicators import IndicatorSnapshot
from core.models.market import DatedPrice, PricePoint
from core.sampling import closest_prices, day_start_ms

logger = logging.getLogger(__name__)


class MockPriceSource:
    """Serves price samples from memory.

    Implements the PriceSource protocol. Samples are kept per asset and
    sorted by timestamp.
    """

    def __init__(self, prices: dict[str, Sequence[PricePoint]] | None = None) -> None:
        self._prices: dict[str, list[PricePoint]] = {}
        self.calls: list[tuple[str, str]] = []
        for asset, points in (prices or {}).items():
            self.add(asset, points)

    @property
    def name(self) -> str:
        return "mock_prices"

    def add(self, asset: str, points: Sequence[PricePoint]) -> None:
        merged = self._prices.get(asset.upper(), []) + list(points)
        self._prices[asset.upper()] = sorted(merged, key=lambda p: p.timestamp)

    async def fetch_prices(
        self,
        asset: str,
        start: datetime,
        end: datetime,
    ) -> list[PricePoint]:
        self.calls.append(("fetch_prices", asset))
        start_ms = int(start.timestamp() * 1000)
        end_ms = int(end.timestamp() * 1000)
        return [
            p for p in self._prices.get(asset.upper(), [])
            if start_ms <= p.timestamp < end_ms
        ]

    async def fetch_prices_on_dates(
        self,
        asset: str,
        dates: Sequence[date],
    ) -> list[DatedPrice]:
        """Nearest sample per date, less than a day either side."""
        self.calls.append(("fetch_prices_on_dates", asset))
        if not dates:
            return []

        return closest_prices(self._prices.get(asset.upper(), []), dates)


class MockForecaster:
    """Returns canned forecasts instead of calling a model.

    Implements the Forecaster protocol. `forecast` may be a fixed Forecast
    or a callable building one from the inputs (useful to move the target
    relative to the current price). Assets listed in `fail_on` raise.
    """

    def __init__(
        self,
        forecast: Forecast | Callable[[str, IndicatorSnapshot, float], Forecast] | None = None,
        fail_on: set[str] | None = None,
    ) -> None:
        self._forecast = forecast
        self._fail_on = {a.upper() for a in (fail_on or set())}
        self._call_count = 0

    @property
    def name(self) -> str:
        return "mock_forecaster"

    @property
    def call_count(self) -> int:
        return self._call_count

    async def predict(
        self,
        asset: str,
        history: Sequence[PricePoint],
        indicators: IndicatorSnapshot,
        current_price: float,
    ) -> Forecast:
        self._call_count += 1

        if asset.upper() in self._fail_on:
            raise RuntimeError(f"Mock forecaster configured to fail for {asset}")

        if self._forecast is None:
            forecast = _trend_following(indicators, current_price)
        elif callable(self._forecast):
            forecast = self._forecast(asset, indicators, current_price)
        else:
            forecast = self._forecast

        logger.debug("Mock forecast for %s: %s %.2f", asset, forecast.direction, forecast.price_target)
        return forecast


def synthetic_history(
    start: date,
    end: date,
    start_price: float = 100.0,
    daily_volatility: float = 0.03,
    seed: int = 42,
) -> list[PricePoint]:
    """A deterministic daily random walk from start to end inclusive."""
    rng = random.Random(seed)
    points = []
    price = start_price
    day = start
    while day <= end:
        points.append(PricePoint(timestamp=day_start_ms(day), price=round(price, 6)))
        price = max(price * (1 + rng.gauss(0, daily_volatility)), 0.01)
        day += timedelta(days=1)
    return points


def _trend_following(indicators: IndicatorSnapshot, current_price: float) -> Forecast:
    """Project the recent trend one day forward."""
    trend = indicators.trend
    change = trend.price_change / 30
    direction = "NEUTRAL"
    if trend.direction == "uptrend":
        direction = "UP"
    elif trend.direction == "downtrend":
        direction = "DOWN"

    return Forecast(
        direction=direction,
        price_target=current_price * (1 + change / 100),
        confidence=50.0,
        risk_level="MEDIUM",
        analysis=f"Mock trend-following forecast ({trend.direction}).",
    )
