"""CoinGecko price source -- fetches crypto history via httpx (no SDK dependency).

Uses the public market_chart/range endpoint, which returns [ms, price]
pairs at a granularity that depends on the range length (5-minute, hourly,
or daily).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date, datetime, time, timedelta, timezone

import httpx

from core.models.market import DatedPrice, PricePoint
from core.sampling import closest_prices, daily_closest_to_midnight

logger = logging.getLogger(__name__)

PLUGIN_META = {
    "name": "coingecko",
    "display_name": "CoinGecko",
    "description": "Crypto price history -- free tier, API key optional",
    "category": "market_data",
    "protocols": ["price_source"],
    "class_name": "CoinGeckoPriceSource",
}

_DEFAULT_URL = "https://api.coingecko.com/api/v3"
_RANGE_PATH = "/coins/{asset_id}/market_chart/range"

ASSET_IDS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "FLR": "flare-network",
}


class CoinGeckoPriceSource:
    """Fetches historical USD prices from CoinGecko.

    Implements the PriceSource protocol.
    """

    def __init__(
        self,
        base_url: str = _DEFAULT_URL,
        api_key: str = "",
        asset_ids: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._asset_ids = {**ASSET_IDS, **{k.upper(): v for k, v in (asset_ids or {}).items()}}

        headers = {"User-Agent": "ForecastLab/0.1", "Accept": "application/json"}
        if api_key:
            headers["x-cg-demo-api-key"] = api_key
        self._client = client or httpx.AsyncClient(timeout=10.0, headers=headers)

    @property
    def name(self) -> str:
        return "coingecko"

    def asset_id(self, asset: str) -> str:
        """Map a ticker symbol to its CoinGecko id.

        Raises ValueError for unsupported assets.
        """
        asset_id = self._asset_ids.get(asset.upper())
        if asset_id is None:
            raise ValueError(
                f"Unsupported asset: {asset}. Supported: {sorted(self._asset_ids)}"
            )
        return asset_id

    def supports(self, asset: str) -> bool:
        return asset.upper() in self._asset_ids

    async def fetch_prices(
        self,
        asset: str,
        start: datetime,
        end: datetime,
    ) -> list[PricePoint]:
        """Fetch samples in [start, end)."""
        points = await self._fetch_range(asset, start, end)
        end_ms = int(end.timestamp() * 1000)
        return [p for p in points if p.timestamp < end_ms]

    async def fetch_prices_on_dates(
        self,
        asset: str,
        dates: Sequence[date],
    ) -> list[DatedPrice]:
        """Fetch one range covering all dates and pick the closest samples.

        Dates with no sample less than a day from their midnight are omitted.
        """
        if not dates:
            return []

        start = datetime.combine(min(dates), time.min, tzinfo=timezone.utc)
        # Include the following day so the last date has neighbours on both sides
        end = datetime.combine(max(dates), time.min, tzinfo=timezone.utc) + timedelta(days=2)

        points = await self._fetch_range(asset, start, end)
        return closest_prices(points, dates)

    async def fetch_daily_prices(
        self,
        asset: str,
        start: datetime,
        end: datetime,
    ) -> list[PricePoint]:
        """One sample per UTC day, the one closest to midnight."""
        return daily_closest_to_midnight(await self.fetch_prices(asset, start, end))

    async def _fetch_range(
        self,
        asset: str,
        start: datetime,
        end: datetime,
    ) -> list[PricePoint]:
        asset_id = self.asset_id(asset)
        params = {
            "vs_currency": "usd",
            "from": int(start.timestamp()),
            "to": int(end.timestamp()),
        }
        url = self._base_url + _RANGE_PATH.format(asset_id=asset_id)

        logger.debug("Fetching CoinGecko %s from %s to %s", asset_id, start, end)
        response = await self._client.get(url, params=params)

        if response.status_code != 200:
            logger.warning(
                "CoinGecko returned %d for %s: %s",
                response.status_code, asset_id, response.text[:200],
            )
            return []

        points = self._parse_prices(response.json())
        logger.info("Fetched %d data points for %s from CoinGecko", len(points), asset)
        return points

    def _parse_prices(self, data: dict) -> list[PricePoint]:
        """Parse [[ms, price], ...] pairs, skipping empty or non-positive prices."""
        records: list[PricePoint] = []
        for entry in data.get("prices") or []:
            if not isinstance(entry, (list, tuple)) or len(entry) < 2:
                continue
            timestamp, price = entry[0], entry[1]
            if timestamp is None or price is None or price <= 0:
                continue
            records.append(PricePoint(timestamp=int(timestamp), price=float(price)))

        records.sort(key=lambda p: p.timestamp)
        return records

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
