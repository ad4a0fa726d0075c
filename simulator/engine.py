"""Backtest runner -- replays the forecaster against realized history.

A single trial walks these stages in order:
1. Fetch the historical window before the test date
2. Compute technical indicators over that window
3. Ask the forecaster for a prediction
4. Project the forecast onto a per-day path over the horizon
5. Fetch the prices that were actually realized on those days
6. Truncate both paths to a common length
7. Score the prediction

A batch runs independent trials over a rolling series of test dates,
concurrently, and averages the trials that succeeded.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time, timedelta, timezone

from analysis.indicators import calculate_all
from core.config import IndicatorConfig
from core.errors import (
    ActualsUnavailable,
    BacktestError,
    ForecastUnavailable,
    InsufficientHistory,
)
from core.models.backtests import BatchResult, Trial, TrialFailure
from core.models.forecasts import Forecast
from core.models.indicators import IndicatorSnapshot
from core.models.market import PricePoint
from core.protocols import Forecaster, PriceSource
from simulator.accuracy import aggregate, reconcile, score

logger = logging.getLogger(__name__)

# Earliest date with usable crypto price history
EARLIEST_HISTORY = date(2013, 4, 28)


class BacktestRunner:
    """Tests a forecaster against historical prices.

    Usage:
        runner = BacktestRunner(price_source, forecaster)
        trial = await runner.run_single_backtest("BTC", date(2024, 7, 15), 3)
        batch = await runner.run_batch_backtest(
            "BTC", date(2024, 1, 1), date(2024, 7, 1), step_days=7,
        )
        print(batch.aggregate)
    """

    def __init__(
        self,
        price_source: PriceSource,
        forecaster: Forecaster,
        history_days: int = 30,
        max_concurrency: int = 4,
        trial_delay: float = 0.0,
        indicator_config: IndicatorConfig | None = None,
    ) -> None:
        if history_days < 1:
            raise ValueError("history_days must be at least 1")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self._price_source = price_source
        self._forecaster = forecaster
        self._history_days = history_days
        self._max_concurrency = max_concurrency
        self._trial_delay = trial_delay
        self._indicator_config = indicator_config or IndicatorConfig()

    async def run_single_backtest(
        self,
        asset: str,
        test_date: date,
        days_to_predict: int = 1,
    ) -> Trial:
        """Run one backtest trial.

        Raises InsufficientHistory, ForecastUnavailable, or
        ActualsUnavailable when the corresponding stage cannot complete.
        """
        if days_to_predict < 1:
            raise ValueError("days_to_predict must be at least 1")

        asset = asset.upper()
        test_date = _as_date(test_date)

        logger.info(
            "Starting backtest: %s on %s, predicting %d day(s) ahead",
            asset, test_date, days_to_predict,
        )

        # 1. Historical window [test_date - history_days, test_date)
        window_end = _midnight(test_date)
        window_start = window_end - timedelta(days=self._history_days)

        history = await self._price_source.fetch_prices(asset, window_start, window_end)
        history = [p for p in history if p.price > 0]
        if not history:
            raise InsufficientHistory(
                f"No historical data between {window_start.date()} and {window_end.date()}",
                asset=asset,
                test_date=test_date,
            )

        current_price = history[-1].price

        # 2. Indicators
        indicators = calculate_all(
            [p.price for p in history],
            current_price,
            sma_windows=self._indicator_config.sma_windows,
            ema_windows=self._indicator_config.ema_windows,
            rsi_window=self._indicator_config.rsi_window,
        )

        # 3. Forecast
        forecast = await self._acquire_forecast(
            asset, test_date, history, indicators, current_price,
        )

        # 4. Horizon projection
        predicted = project_path(forecast, current_price, days_to_predict)
        target_dates = [test_date + timedelta(days=i) for i in range(1, days_to_predict + 1)]

        # 5. Realized prices
        actual_prices = await self._price_source.fetch_prices_on_dates(asset, target_dates)
        if not actual_prices:
            raise ActualsUnavailable(
                f"No actual prices found for {target_dates[0]} to {target_dates[-1]}",
                asset=asset,
                test_date=test_date,
            )

        # 6. Length reconciliation
        warnings: list[str] = []
        predicted, actual, mismatch = reconcile(predicted, [a.price for a in actual_prices])
        if mismatch:
            logger.warning("%s %s: %s", asset, test_date, mismatch)
            warnings.append(mismatch)

        # 7. Scoring
        metrics = score(predicted, actual, current_price)

        logger.info(
            "Backtest complete: %s on %s | MAE: %.4f | directional accuracy: %.2f%%",
            asset, test_date, metrics.mae, metrics.directional_accuracy * 100,
        )

        return Trial(
            asset=asset,
            test_date=test_date,
            historical_window=(window_start.date(), window_end.date()),
            days_to_predict=days_to_predict,
            current_price=current_price,
            forecast=forecast,
            predicted_prices=predicted,
            actual_prices=actual_prices[:len(actual)],
            indicators=indicators,
            metrics=metrics,
            data_points_used=len(history),
            warnings=warnings,
        )

    async def run_batch_backtest(
        self,
        asset: str,
        start_date: date,
        end_date: date,
        step_days: int = 7,
        days_to_predict: int = 1,
    ) -> BatchResult:
        """Run a backtest on every `step_days` from start_date to end_date.

        A failing trial is logged and recorded but never aborts the batch.
        The aggregate covers the successful trials only.
        """
        if days_to_predict < 1:
            raise ValueError("days_to_predict must be at least 1")

        asset = asset.upper()
        start_date = _as_date(start_date)
        end_date = _as_date(end_date)
        dates = trial_dates(start_date, end_date, step_days)

        logger.info(
            "Starting batch backtest: %s from %s to %s, %d trial(s), step %d day(s)",
            asset, start_date, end_date, len(dates), step_days,
        )

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def run_trial(index: int, test_date: date) -> Trial | TrialFailure:
            async with semaphore:
                try:
                    return await self.run_single_backtest(asset, test_date, days_to_predict)
                except BacktestError as e:
                    logger.warning(
                        "Backtest %d failed for %s on %s: [%s] %s",
                        index, asset, test_date, e.kind, e.message,
                    )
                    return TrialFailure(
                        index=index, test_date=test_date, kind=e.kind, message=e.message,
                    )
                except Exception as e:
                    logger.exception("Backtest %d crashed for %s on %s", index, asset, test_date)
                    return TrialFailure(
                        index=index, test_date=test_date, kind="UnexpectedError", message=str(e),
                    )
                finally:
                    if self._trial_delay:
                        await asyncio.sleep(self._trial_delay)

        outcomes = await asyncio.gather(
            *(run_trial(i, d) for i, d in enumerate(dates))
        )

        trials = [o for o in outcomes if isinstance(o, Trial)]
        failures = [o for o in outcomes if isinstance(o, TrialFailure)]
        summary = aggregate(t.metrics for t in trials)

        logger.info(
            "Batch complete: %s | %d/%d trial(s) succeeded | avg MAPE: %.2f%%",
            asset, len(trials), len(dates), summary.average_mape,
        )

        return BatchResult(
            asset=asset,
            start_date=start_date,
            end_date=end_date,
            step_days=step_days,
            days_to_predict=days_to_predict,
            attempted_tests=len(dates),
            total_tests=len(trials),
            trials=trials,
            failures=failures,
            aggregate=summary,
        )

    def validate_test_date(
        self,
        test_date: date,
        today: date | None = None,
    ) -> tuple[bool, str]:
        """Check whether a backtest can be run for `test_date`."""
        test_date = _as_date(test_date)
        today = today or datetime.now(timezone.utc).date()

        if test_date >= today:
            return False, "Test date must be in the past"
        if test_date - timedelta(days=self._history_days) < EARLIEST_HISTORY:
            return False, "Test date too early - insufficient historical data available"
        return True, "Backtest can be run for this date"

    async def _acquire_forecast(
        self,
        asset: str,
        test_date: date,
        history: list[PricePoint],
        indicators: IndicatorSnapshot,
        current_price: float,
    ) -> Forecast:
        """Call the forecaster, mapping any failure to ForecastUnavailable."""
        try:
            forecast = await self._forecaster.predict(asset, history, indicators, current_price)
        except Exception as e:
            raise ForecastUnavailable(
                f"Forecaster '{self._forecaster.name}' failed: {e}",
                asset=asset,
                test_date=test_date,
            ) from e

        if not isinstance(forecast, Forecast):
            raise ForecastUnavailable(
                f"Forecaster '{self._forecaster.name}' returned {type(forecast).__name__}, "
                f"expected Forecast",
                asset=asset,
                test_date=test_date,
            )
        return forecast


def project_path(forecast: Forecast, current_price: float, days: int) -> list[float]:
    """Per-day predicted prices for a horizon of `days`.

    A forecaster-supplied path is used as-is. A scalar target is spread
    linearly from `current_price`, reaching the target on the last day.
    """
    if forecast.price_path:
        return list(forecast.price_path)

    target = forecast.price_target
    path = [current_price + (target - current_price) * i / days for i in range(1, days + 1)]
    path[-1] = target
    return path


def trial_dates(start: date, end: date, step_days: int) -> list[date]:
    """Dates start, start+step, ... up to and including end."""
    if step_days < 1:
        raise ValueError("step_days must be at least 1")
    if start > end:
        raise ValueError("start date must not be after end date")

    dates = []
    current = start
    while current <= end:
        dates.append(current)
        current += timedelta(days=step_days)
    return dates


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _midnight(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)
