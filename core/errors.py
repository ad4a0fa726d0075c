"""Backtest failure taxonomy.

Each error carries the identifying fields already known when the trial
failed, so callers can report a structured failure. Length mismatches
between predicted and actual paths are not errors: they are reconciled by
truncation and surfaced as a warning on the Trial.
"""

from __future__ import annotations

from datetime import date


class BacktestError(Exception):
    """Base class for failures that abort a single backtest trial."""

    kind = "BacktestError"

    def __init__(self, message: str, asset: str = "", test_date: date | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.asset = asset
        self.test_date = test_date

    def to_dict(self) -> dict:
        return {
            "error": self.kind,
            "message": self.message,
            "asset": self.asset,
            "test_date": self.test_date.isoformat() if self.test_date else None,
        }


class InsufficientHistory(BacktestError):
    """The historical window before the test date holds no usable prices."""

    kind = "InsufficientHistory"


class ForecastUnavailable(BacktestError):
    """The forecaster failed or returned output that could not be used."""

    kind = "ForecastUnavailable"


class ActualsUnavailable(BacktestError):
    """No realized prices were found for the forecast horizon."""

    kind = "ActualsUnavailable"
