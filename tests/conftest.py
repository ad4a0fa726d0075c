from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from core.models.forecasts import Forecast
from core.models.market import PricePoint
from simulator.mocks import MockPriceSource


def day_ms(day: date, hour: int = 0) -> int:
    return int(datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc).timestamp() * 1000)


def daily_points(start: date, prices: list[float]) -> list[PricePoint]:
    return [
        PricePoint(timestamp=day_ms(start + timedelta(days=i)), price=p)
        for i, p in enumerate(prices)
    ]


@pytest.fixture
def flat_source() -> MockPriceSource:
    """BTC at 100 every day from 2024-05-01 through 2024-08-31."""
    start = date(2024, 5, 1)
    days = (date(2024, 8, 31) - start).days + 1
    return MockPriceSource({"BTC": daily_points(start, [100.0] * days)})


@pytest.fixture
def target_110() -> Forecast:
    return Forecast(direction="UP", price_target=110.0, confidence=70.0, risk_level="LOW")


@pytest.fixture
def anyio_backend():
    """Run async tests on asyncio only."""
    return "asyncio"
