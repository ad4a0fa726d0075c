"""Nearest-sample lookups over ordered price series."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date, datetime, time, timezone

from core.models.market import DatedPrice, PricePoint

DAY_MS = 86_400_000


def day_start_ms(day: date) -> int:
    """UTC midnight of `day` in epoch milliseconds."""
    return int(datetime.combine(day, time.min, tzinfo=timezone.utc).timestamp() * 1000)


def closest_point(points: Sequence[PricePoint], target_ms: int) -> PricePoint | None:
    """The sample with minimal distance to `target_ms`, ties to the earlier one."""
    best: PricePoint | None = None
    for point in points:
        if best is None:
            best = point
            continue
        distance = abs(point.timestamp - target_ms)
        best_distance = abs(best.timestamp - target_ms)
        if distance < best_distance or (
            distance == best_distance and point.timestamp < best.timestamp
        ):
            best = point
    return best


def closest_prices(
    points: Sequence[PricePoint],
    dates: Iterable[date],
    max_distance_ms: int = DAY_MS,
) -> list[DatedPrice]:
    """Map each date to the sample closest to its UTC midnight.

    Only samples strictly closer than `max_distance_ms` to midnight are
    considered, so a sample from the previous midnight never stands in for
    the target day. A date with no such sample is omitted.
    """
    results = []
    for day in dates:
        midnight = day_start_ms(day)
        nearby = [p for p in points if abs(p.timestamp - midnight) < max_distance_ms]
        point = closest_point(nearby, midnight)
        if point is None:
            continue
        results.append(DatedPrice(target_date=day, timestamp=point.timestamp, price=point.price))
    return results


def daily_closest_to_midnight(points: Iterable[PricePoint]) -> list[PricePoint]:
    """One sample per UTC day: the one closest to that day's midnight."""
    by_day: dict[date, PricePoint] = {}
    for point in points:
        day = point.day
        current = by_day.get(day)
        if current is None:
            by_day[day] = point
            continue
        midnight = day_start_ms(day)
        if abs(point.timestamp - midnight) < abs(current.timestamp - midnight):
            by_day[day] = point
    return sorted(by_day.values(), key=lambda p: p.timestamp)
