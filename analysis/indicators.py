"""Technical indicators -- pure Python math, no numpy/pandas required.

Turns an ordered price series into the IndicatorSnapshot that conditions a
forecast. Every function accepts short or empty input and returns None for
an indicator whose minimum sample size is not met.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

from core.models.indicators import IndicatorSnapshot, Trend

# Daily crypto data trades every day of the year
ANNUALIZATION_DAYS = 365

TREND_MIN_POINTS = 10
TREND_THRESHOLD_PCT = 1.0


def calculate_sma(prices: Sequence[float], window: int) -> float | None:
    """Simple moving average over the trailing `window` prices."""
    if window < 1 or len(prices) < window:
        return None
    recent = prices[-window:]
    return sum(recent) / window


def calculate_ema(prices: Sequence[float], window: int) -> float | None:
    """Exponential moving average seeded by the SMA of the first `window` prices."""
    if window < 1 or len(prices) < window:
        return None

    multiplier = 2 / (window + 1)
    ema = sum(prices[:window]) / window
    for price in prices[window:]:
        ema = price * multiplier + ema * (1 - multiplier)
    return ema


def calculate_rsi(prices: Sequence[float], window: int = 14) -> float | None:
    """Relative Strength Index over the last `window` price changes.

    Uses a simple average of gains and losses over the trailing window,
    not Wilder smoothing. A window with no losses is RSI 100.
    """
    if window < 1 or len(prices) < window + 1:
        return None

    changes = [prices[i] - prices[i - 1] for i in range(1, len(prices))]
    recent = changes[-window:]

    gains = sum(c for c in recent if c > 0)
    losses = sum(-c for c in recent if c < 0)

    avg_gain = gains / window
    avg_loss = losses / window

    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def calculate_volatility(prices: Sequence[float]) -> float | None:
    """Annualized volatility of simple returns, as a percentage."""
    if len(prices) < 2:
        return None

    returns = [
        (prices[i] - prices[i - 1]) / prices[i - 1]
        for i in range(1, len(prices))
        if prices[i - 1] > 0
    ]
    return _stdev(returns) * math.sqrt(ANNUALIZATION_DAYS) * 100


def calculate_trend(prices: Sequence[float]) -> Trend:
    """Trend direction from the overall change, strength from the OLS slope.

    Strength is the regression slope relative to the mean price, scaled
    into 0-100. It is a relative measure, not a statistical confidence.
    """
    if len(prices) < TREND_MIN_POINTS:
        return Trend(direction="neutral", strength=0.0, price_change=0.0)

    first = prices[0]
    last = prices[-1]
    price_change = (last - first) / first * 100

    n = len(prices)
    sum_x = sum(range(n))
    sum_y = sum(prices)
    sum_xy = sum(i * p for i, p in enumerate(prices))
    sum_x2 = sum(i * i for i in range(n))

    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_x2 - sum_x * sum_x)
    mean_price = sum_y / n
    strength = abs(slope / mean_price * 100) * 100

    direction = "neutral"
    if price_change > TREND_THRESHOLD_PCT:
        direction = "uptrend"
    elif price_change < -TREND_THRESHOLD_PCT:
        direction = "downtrend"

    return Trend(
        direction=direction,
        strength=min(100.0, max(0.0, strength)),
        price_change=price_change,
    )


def calculate_all(
    prices: Iterable[float | None],
    current_price: float,
    sma_windows: Sequence[int] = (7, 30),
    ema_windows: Sequence[int] = (12,),
    rsi_window: int = 14,
) -> IndicatorSnapshot:
    """Compute every indicator independently and bundle them in a snapshot.

    Missing, non-finite, and non-positive prices are dropped first.
    """
    clean = clean_prices(prices)

    return IndicatorSnapshot(
        current_price=current_price,
        smas={w: calculate_sma(clean, w) for w in sma_windows},
        emas={w: calculate_ema(clean, w) for w in ema_windows},
        rsi=calculate_rsi(clean, rsi_window),
        rsi_window=rsi_window,
        volatility=calculate_volatility(clean),
        trend=calculate_trend(clean),
    )


def clean_prices(prices: Iterable[float | None]) -> list[float]:
    """Keep only finite, strictly positive prices, in order."""
    return [
        float(p) for p in prices
        if p is not None and math.isfinite(p) and p > 0
    ]


def risk_level(volatility: float | None) -> str:
    """Bucket annualized volatility into a human-readable risk label."""
    if not volatility:
        return "Unknown"
    if volatility > 30:
        return "Very High"
    if volatility > 20:
        return "High"
    if volatility > 10:
        return "Medium"
    return "Low"


def rsi_interpretation(rsi: float | None) -> str:
    if rsi is None:
        return "Insufficient data"
    if rsi > 70:
        return "Overbought"
    if rsi > 50:
        return "Bullish"
    if rsi > 30:
        return "Neutral"
    return "Oversold"


def _stdev(values: list[float]) -> float:
    """Sample standard deviation. Fewer than two values is 0."""
    if len(values) < 2:
        return 0.0
    avg = sum(values) / len(values)
    variance = sum((x - avg) ** 2 for x in values) / (len(values) - 1)
    return math.sqrt(variance)
