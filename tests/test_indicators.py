from __future__ import annotations

import math
import random

import pytest

from analysis.indicators import (
    calculate_all,
    calculate_ema,
    calculate_rsi,
    calculate_sma,
    calculate_trend,
    calculate_volatility,
    clean_prices,
    risk_level,
    rsi_interpretation,
)


def test_sma_uses_trailing_window():
    assert calculate_sma([1, 2, 3, 4, 5], 3) == pytest.approx(4.0)


@pytest.mark.parametrize("length", [0, 1, 6])
def test_moving_averages_absent_below_window(length):
    prices = [100.0 + i for i in range(length)]
    assert calculate_sma(prices, 7) is None
    assert calculate_ema(prices, 7) is None


def test_ema_seeded_by_sma_then_recursive():
    prices = [1.0, 2.0, 3.0, 4.0, 5.0]
    k = 2 / (3 + 1)
    expected = 2.0  # SMA of first three
    for p in (4.0, 5.0):
        expected = p * k + expected * (1 - k)
    assert calculate_ema(prices, 3) == pytest.approx(expected)


def test_ema_with_exactly_window_points_is_the_sma():
    assert calculate_ema([2.0, 4.0, 6.0], 3) == pytest.approx(4.0)


def test_rsi_requires_window_plus_one_points():
    assert calculate_rsi([100.0] * 14, 14) is None
    assert calculate_rsi([100.0 + i for i in range(15)], 14) == 100.0


def test_rsi_uses_only_last_window_changes():
    # An early crash outside the trailing window must not count
    prices = [200.0, 50.0] + [50.0 + i for i in range(14)]
    assert calculate_rsi(prices, 14) == 100.0


def test_rsi_simple_average():
    prices = [10.0, 11.0, 10.0, 12.0]  # changes +1, -1, +2
    # avg gain = 3/3, avg loss = 1/3 -> rs = 3
    assert calculate_rsi(prices, 3) == pytest.approx(75.0)


def test_rsi_all_losses_is_zero():
    assert calculate_rsi([float(30 - i) for i in range(16)], 14) == pytest.approx(0.0)


def test_rsi_bounded_for_random_walks():
    rng = random.Random(7)
    for _ in range(200):
        price = 100.0
        prices = []
        for _ in range(rng.randint(15, 60)):
            prices.append(price)
            price = max(0.01, price * (1 + rng.uniform(-0.1, 0.1)))
        rsi = calculate_rsi(prices, 14)
        assert rsi is not None
        assert 0.0 <= rsi <= 100.0


def test_volatility_absent_for_single_point():
    assert calculate_volatility([]) is None
    assert calculate_volatility([100.0]) is None


def test_volatility_zero_for_constant_prices():
    assert calculate_volatility([50.0] * 20) == 0.0


def test_volatility_positive_when_returns_vary():
    assert calculate_volatility([100.0, 101.0, 100.0, 103.0]) > 0


def test_volatility_zero_for_constant_growth():
    # Prices move every step but every return is exactly 10%
    assert calculate_volatility([100.0, 110.0, 121.0]) == pytest.approx(0.0, abs=1e-9)


def test_volatility_annualized_sample_stdev():
    prices = [100.0, 110.0, 99.0]  # returns 0.1, -0.1
    returns = [0.1, -0.1]
    mean = sum(returns) / 2
    stdev = math.sqrt(sum((r - mean) ** 2 for r in returns) / 1)
    assert calculate_volatility(prices) == pytest.approx(stdev * math.sqrt(365) * 100)


def test_trend_on_rising_series():
    trend = calculate_trend([100, 102, 101, 105, 108, 107, 110, 112, 111, 115])
    assert trend.direction == "uptrend"
    assert trend.price_change == pytest.approx(15.0)
    assert 0 < trend.strength <= 100


def test_trend_needs_ten_points():
    trend = calculate_trend([100, 200, 300])
    assert trend.direction == "neutral"
    assert trend.strength == 0
    assert trend.price_change == 0


def test_trend_downtrend_and_neutral_band():
    assert calculate_trend([float(120 - i) for i in range(10)]).direction == "downtrend"
    flat = calculate_trend([100.0, 100.5] * 5)
    assert flat.direction == "neutral"


def test_trend_strength_capped_at_100():
    trend = calculate_trend([1.0, 2.0, 4.0, 8.0, 16.0, 32.0, 64.0, 128.0, 256.0, 512.0])
    assert trend.strength == 100.0


def test_calculate_all_filters_bad_prices_and_keeps_others_independent():
    snapshot = calculate_all([None, -5.0, 0.0, float("nan"), 100.0, 101.0], current_price=101.0)

    assert snapshot.current_price == 101.0
    assert snapshot.sma(7) is None
    assert snapshot.sma(30) is None
    assert snapshot.ema(12) is None
    assert snapshot.rsi is None
    assert snapshot.volatility == 0.0  # one return, no spread
    assert snapshot.trend.direction == "neutral"


def test_calculate_all_empty_series():
    snapshot = calculate_all([], current_price=10.0)
    assert snapshot.volatility is None
    assert snapshot.sma(7) is None
    assert snapshot.trend.strength == 0


def test_calculate_all_full_window():
    prices = [100.0 + (i % 5) for i in range(30)]
    snapshot = calculate_all(prices, current_price=prices[-1])
    assert snapshot.sma(7) == pytest.approx(sum(prices[-7:]) / 7)
    assert snapshot.sma(30) == pytest.approx(sum(prices) / 30)
    assert snapshot.ema(12) is not None
    assert snapshot.rsi is not None
    assert snapshot.sma(50) is None


def test_snapshot_is_immutable():
    snapshot = calculate_all([1.0, 2.0], current_price=2.0)
    with pytest.raises(Exception):
        snapshot.rsi = 50.0


def test_clean_prices():
    assert clean_prices([1, None, 0, -1, 2.5]) == [1.0, 2.5]


@pytest.mark.parametrize(
    "volatility, label",
    [(None, "Unknown"), (0.0, "Unknown"), (5.0, "Low"), (15.0, "Medium"), (25.0, "High"), (45.0, "Very High")],
)
def test_risk_level(volatility, label):
    assert risk_level(volatility) == label


@pytest.mark.parametrize(
    "rsi, label",
    [(None, "Insufficient data"), (80.0, "Overbought"), (60.0, "Bullish"), (40.0, "Neutral"), (20.0, "Oversold")],
)
def test_rsi_interpretation(rsi, label):
    assert rsi_interpretation(rsi) == label
