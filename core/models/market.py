"""Market data models -- price samples returned by price sources."""

from __future__ import annotations

from datetime import date, datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class PricePoint(BaseModel):
    """A single price sample for an asset.

    Price sources emit these ordered ascending by timestamp. Samples with a
    missing or non-positive price are dropped at the source, so a PricePoint
    always carries a strictly positive price.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: int  # epoch milliseconds
    price: float = Field(gt=0)

    @property
    def at(self) -> datetime:
        """Sample time as an aware UTC datetime."""
        return datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)

    @property
    def day(self) -> date:
        return self.at.date()


class DatedPrice(BaseModel):
    """The price sample chosen for a requested target date.

    `target_date` is the date that was asked for; `timestamp` is the sample
    that was actually closest to it.
    """

    model_config = ConfigDict(frozen=True)

    target_date: date
    timestamp: int
    price: float = Field(gt=0)
