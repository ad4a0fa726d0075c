from __future__ import annotations

from datetime import date, datetime, timezone

import httpx
import pytest

from conftest import day_ms
from plugins.market_data.coingecko import CoinGeckoPriceSource

pytestmark = pytest.mark.anyio


def make_source(handler) -> CoinGeckoPriceSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CoinGeckoPriceSource(base_url="https://cg.test/api/v3", client=client)


async def test_fetch_prices_parses_and_filters():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"prices": [
            [day_ms(date(2024, 3, 2)), 62000.5],
            [day_ms(date(2024, 3, 1)), 61000.0],
            [day_ms(date(2024, 3, 1), 12), None],
            [day_ms(date(2024, 3, 1), 18), 0],
            [day_ms(date(2024, 3, 3)), 63000.0],
        ]})

    source = make_source(handler)
    start = datetime(2024, 3, 1, tzinfo=timezone.utc)
    end = datetime(2024, 3, 3, tzinfo=timezone.utc)

    points = await source.fetch_prices("btc", start, end)

    assert seen["path"] == "/api/v3/coins/bitcoin/market_chart/range"
    assert seen["params"] == {
        "vs_currency": "usd",
        "from": str(int(start.timestamp())),
        "to": str(int(end.timestamp())),
    }
    # Sorted, missing and zero prices dropped, end exclusive
    assert [p.price for p in points] == [61000.0, 62000.5]


async def test_fetch_prices_on_dates_picks_closest_samples():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"prices": [
            [day_ms(date(2024, 3, 1), 23), 100.0],
            [day_ms(date(2024, 3, 2), 1), 101.0],
            [day_ms(date(2024, 3, 3), 3), 103.0],
        ]})

    source = make_source(handler)
    results = await source.fetch_prices_on_dates("ETH", [date(2024, 3, 2), date(2024, 3, 3)])

    assert [r.price for r in results] == [100.0, 103.0]
    assert results[0].target_date == date(2024, 3, 2)


async def test_non_200_returns_empty():
    source = make_source(lambda request: httpx.Response(429, text="rate limited"))
    start = datetime(2024, 3, 1, tzinfo=timezone.utc)
    end = datetime(2024, 3, 3, tzinfo=timezone.utc)

    assert await source.fetch_prices("BTC", start, end) == []
    assert await source.fetch_prices_on_dates("BTC", [date(2024, 3, 2)]) == []


async def test_fetch_daily_prices_one_per_day():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"prices": [
            [day_ms(date(2024, 3, 1), 0), 1.0],
            [day_ms(date(2024, 3, 1), 5), 2.0],
            [day_ms(date(2024, 3, 2), 1), 3.0],
        ]})

    source = make_source(handler)
    daily = await source.fetch_daily_prices(
        "FLR", datetime(2024, 3, 1, tzinfo=timezone.utc), datetime(2024, 3, 3, tzinfo=timezone.utc),
    )
    assert [p.price for p in daily] == [1.0, 3.0]


def test_unsupported_asset():
    source = CoinGeckoPriceSource()
    assert not source.supports("DOGE")
    with pytest.raises(ValueError, match="Unsupported asset"):
        source.asset_id("DOGE")


def test_extra_asset_ids_are_merged():
    source = CoinGeckoPriceSource(asset_ids={"sol": "solana"})
    assert source.asset_id("SOL") == "solana"
    assert source.asset_id("BTC") == "bitcoin"


def test_api_key_header():
    assert "x-cg-demo-api-key" not in CoinGeckoPriceSource()._client.headers
    source = CoinGeckoPriceSource(api_key="demo-key")
    assert source._client.headers["x-cg-demo-api-key"] == "demo-key"


async def test_fetch_prices_on_dates_omits_dates_without_nearby_samples():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"prices": [[day_ms(date(2024, 3, 2)), 100.0]]})

    source = make_source(handler)
    results = await source.fetch_prices_on_dates(
        "BTC", [date(2024, 3, 2), date(2024, 3, 3), date(2024, 3, 4), date(2024, 3, 5)],
    )

    assert len(results) == 1
    assert results[0].target_date == date(2024, 3, 2)
    assert results[0].price == 100.0
