from __future__ import annotations

from datetime import date

from conftest import day_ms
from core.models.market import PricePoint
from core.sampling import closest_point, closest_prices, daily_closest_to_midnight, day_start_ms


def test_day_start_ms_is_utc_midnight():
    assert day_start_ms(date(2024, 1, 1)) == 1_704_067_200_000


def test_closest_point_prefers_earlier_on_tie():
    midnight = day_ms(date(2024, 3, 2))
    before = PricePoint(timestamp=midnight - 1000, price=1.0)
    after = PricePoint(timestamp=midnight + 1000, price=2.0)

    assert closest_point([after, before], midnight) is before
    assert closest_point([before, after], midnight) is before


def test_closest_point_empty():
    assert closest_point([], 0) is None


def test_closest_prices_one_per_date():
    points = [
        PricePoint(timestamp=day_ms(date(2024, 3, 1), 1), price=10.0),
        PricePoint(timestamp=day_ms(date(2024, 3, 2), 23), price=20.0),
        PricePoint(timestamp=day_ms(date(2024, 3, 3), 2), price=30.0),
    ]

    results = closest_prices(points, [date(2024, 3, 1), date(2024, 3, 3)])

    assert [r.target_date for r in results] == [date(2024, 3, 1), date(2024, 3, 3)]
    # 03-02 23:00 is one hour from 03-03 midnight, closer than 03-03 02:00
    assert [r.price for r in results] == [10.0, 20.0]


def test_closest_prices_without_samples():
    assert closest_prices([], [date(2024, 3, 1)]) == []


def test_daily_closest_to_midnight_keeps_one_sample_per_day():
    points = [
        PricePoint(timestamp=day_ms(date(2024, 3, 1), 6), price=1.0),
        PricePoint(timestamp=day_ms(date(2024, 3, 1), 1), price=2.0),
        PricePoint(timestamp=day_ms(date(2024, 3, 2), 12), price=3.0),
    ]

    daily = daily_closest_to_midnight(points)

    assert [p.price for p in daily] == [2.0, 3.0]


def test_closest_prices_skips_dates_far_from_any_sample():
    points = [PricePoint(timestamp=day_ms(date(2024, 3, 1)), price=10.0)]

    results = closest_prices(points, [date(2024, 3, 1), date(2024, 3, 5)])

    assert [r.target_date for r in results] == [date(2024, 3, 1)]


def test_closest_prices_custom_distance():
    points = [PricePoint(timestamp=day_ms(date(2024, 3, 1), 6), price=10.0)]

    assert closest_prices(points, [date(2024, 3, 1)], max_distance_ms=3_600_000) == []
    assert len(closest_prices(points, [date(2024, 3, 1)], max_distance_ms=7 * 3_600_000)) == 1
