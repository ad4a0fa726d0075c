"""Core protocols -- the extension points the backtest engine depends on.

The runner in simulator/ only ever sees these types; CoinGecko, the LLM
forecaster, and the mocks satisfy them structurally without subclassing.
They are runtime-checkable so the registry can reject a mismatched plugin
at registration time.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
from typing import Any, Protocol, runtime_checkable

from core.models.forecasts import Forecast
from core.models.indicators import IndicatorSnapshot
from core.models.market import DatedPrice, PricePoint


# ---------------------------------------------------------------------------
# 1. PriceSource -- historical prices for an asset
# ---------------------------------------------------------------------------

@runtime_checkable
class PriceSource(Protocol):
    """Fetches historical price samples for the assets it supports.

    "No data" is never an error: implementations return an empty list.
    """

    @property
    def name(self) -> str:
        """Unique source name, e.g. 'coingecko'."""
        ...

    async def fetch_prices(
        self,
        asset: str,
        start: datetime,
        end: datetime,
    ) -> list[PricePoint]:
        """Return samples in [start, end), ordered ascending by timestamp."""
        ...

    async def fetch_prices_on_dates(
        self,
        asset: str,
        dates: Sequence[date],
    ) -> list[DatedPrice]:
        """Return the closest available sample for each requested date.

        Closest means minimal absolute timestamp distance to the date's UTC
        midnight, ties going to the earlier sample. Dates with no sample
        nearby may be omitted.
        """
        ...


# ---------------------------------------------------------------------------
# 2. Forecaster -- opaque price predictor
# ---------------------------------------------------------------------------

@runtime_checkable
class Forecaster(Protocol):
    """Produces a single structured forecast from a price history.

    The engine treats forecasters as black boxes: an LLM-backed analyst,
    a statistical model, or a canned mock are all equally valid.
    """

    @property
    def name(self) -> str:
        ...

    async def predict(
        self,
        asset: str,
        history: Sequence[PricePoint],
        indicators: IndicatorSnapshot,
        current_price: float,
    ) -> Forecast:
        """Forecast the price of `asset` given its history and indicators."""
        ...


# ---------------------------------------------------------------------------
# 3. LLMProvider -- call language model APIs
# ---------------------------------------------------------------------------

@runtime_checkable
class LLMProvider(Protocol):
    """Chat-style text completion, used by the LLM forecaster.

    Messages follow the OpenAI shape: dicts with "role" and "content".
    """

    @property
    def name(self) -> str:
        """Provider name, e.g. 'gemini', 'openai'."""
        ...

    async def complete(self, messages: list[dict], **kwargs: Any) -> str:
        """Return the model's text reply to `messages`."""
        ...
