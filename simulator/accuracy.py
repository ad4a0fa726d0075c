"""Forecast accuracy metrics -- pure Python math, no numpy/pandas required.

Scores a predicted price path against the prices that were realized
afterwards, and averages those scores across backtest trials.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

from core.models.backtests import AggregateMetrics, MetricSet


def score(
    predicted: Sequence[float],
    actual: Sequence[float],
    anchor_price: float,
) -> MetricSet:
    """Calculate point-wise and summary accuracy for one forecast path.

    Direction at index 0 is judged against `anchor_price` (the price when
    the forecast was made); every later index is judged against the
    previous realized price. A move only counts as "up" when it is strictly
    above its base, so a flat value is grouped with "down".

    Raises ValueError when the paths differ in length; use reconcile()
    first. Empty paths yield NaN scalars, meaning "no data".
    """
    if len(predicted) != len(actual):
        raise ValueError(
            f"Predicted and actual paths must have the same length "
            f"({len(predicted)} != {len(actual)})"
        )

    if not predicted:
        return MetricSet()

    absolute_errors = []
    percentage_errors = []
    directional_correct = []

    for i, (pred, act) in enumerate(zip(predicted, actual)):
        base = anchor_price if i == 0 else actual[i - 1]

        error = abs(pred - act)
        absolute_errors.append(error)
        percentage_errors.append(error / abs(act) * 100 if act != 0 else 0.0)
        directional_correct.append(_moved_up(pred, base) == _moved_up(act, base))

    n = len(absolute_errors)
    mae = sum(absolute_errors) / n
    mape = sum(percentage_errors) / n
    rmse = math.sqrt(sum(e * e for e in absolute_errors) / n)
    directional_accuracy = sum(directional_correct) / n

    return MetricSet(
        absolute_errors=absolute_errors,
        percentage_errors=percentage_errors,
        directional_correct=directional_correct,
        mae=mae,
        mape=mape,
        rmse=rmse,
        directional_accuracy=directional_accuracy,
    )


def reconcile(
    predicted: Sequence[float],
    actual: Sequence[float],
) -> tuple[list[float], list[float], str | None]:
    """Truncate both paths to the shorter length.

    Returns the truncated paths and a warning message when they differed.
    """
    predicted = list(predicted)
    actual = list(actual)
    if len(predicted) == len(actual):
        return predicted, actual, None

    warning = (
        f"Length mismatch: {len(predicted)} predicted vs {len(actual)} actual "
        f"prices, truncated to {min(len(predicted), len(actual))}"
    )
    n = min(len(predicted), len(actual))
    return predicted[:n], actual[:n], warning


def aggregate(metric_sets: Iterable[MetricSet]) -> AggregateMetrics:
    """Average the unrounded scalars of several metric sets.

    Empty (NaN) sets are skipped. With nothing to average every field is 0;
    callers tell that apart from a perfect score by the trial count.
    """
    sets = [m for m in metric_sets if not m.is_empty]
    if not sets:
        return AggregateMetrics()

    return AggregateMetrics(
        average_mae=_mean(m.mae for m in sets),
        average_mape=_mean(m.mape for m in sets),
        average_rmse=_mean(m.rmse for m in sets),
        average_directional_accuracy=_mean(m.directional_accuracy for m in sets),
    )


def _moved_up(price: float, base: float) -> bool:
    return price > base


def _mean(values: Iterable[float]) -> float:
    values = list(values)
    return sum(values) / len(values)
