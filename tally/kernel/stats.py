"""Pure stateless stats functions: math only, never raises on data."""

from __future__ import annotations

import bisect
import math
from collections.abc import Sequence
from dataclasses import dataclass, fields


@dataclass(frozen=True, slots=True)
class NumberStats:
    count: int
    total: float
    mean: float
    median: float
    min: float
    max: float
    first: float
    last: float
    range: float  # max - min
    change: float  # last - first
    change_percent: float | None  # change / |first| * 100; None when first is 0


@dataclass(frozen=True, slots=True)
class StatsPercents:
    """Percent change per metric; None where the baseline was zero or absent."""

    count: float | None = None
    total: float | None = None
    mean: float | None = None
    median: float | None = None
    min: float | None = None
    max: float | None = None
    first: float | None = None
    last: float | None = None
    range: float | None = None
    change: float | None = None
    change_percent: float | None = None


METRIC_NAMES: tuple[str, ...] = tuple(f.name for f in fields(NumberStats))


def _median_of_sorted(sorted_values: Sequence[float]) -> float:
    n = len(sorted_values)
    mid = n // 2
    if n % 2 == 0:
        return (sorted_values[mid - 1] + sorted_values[mid]) / 2
    return sorted_values[mid]


def compute_change_pct(first: float, last: float) -> float | None:
    """Change from first to last as a percent of |first|. None if first is 0."""
    if first == 0.0:
        return None
    return ((last - first) / abs(first)) * 100.0


def compute_stats(numbers: Sequence[float]) -> NumberStats | None:
    """Stats for a list of numbers. Returns None if empty.

    Sorts a copy; `numbers` is never mutated. Mean is total / count with
    no bias correction.
    """
    if not numbers:
        return None
    count = len(numbers)
    total = math.fsum(numbers)
    ordered = sorted(numbers)
    low, high = ordered[0], ordered[-1]
    first, last = numbers[0], numbers[-1]
    return NumberStats(
        count=count,
        total=total,
        mean=total / count,
        median=_median_of_sorted(ordered),
        min=low,
        max=high,
        first=first,
        last=last,
        range=high - low,
        change=last - first,
        change_percent=compute_change_pct(first, last),
    )


def zero_stats() -> NumberStats:
    return NumberStats(
        count=0, total=0.0, mean=0.0, median=0.0, min=0.0, max=0.0,
        first=0.0, last=0.0, range=0.0, change=0.0, change_percent=None,
    )


def empty_percents() -> StatsPercents:
    return StatsPercents()


def compute_delta(current: float, baseline: float) -> float:
    return current - baseline


def _optional_delta(current: float | None, baseline: float | None) -> float | None:
    if current is None or baseline is None:
        return None
    return current - baseline


def compute_delta_pct(current: float | None, baseline: float | None) -> float | None:
    """Percentage delta. None if either side is missing, or the baseline is zero or not finite."""
    if current is None or baseline is None:
        return None
    if baseline == 0.0 or not math.isfinite(baseline) or not math.isfinite(current):
        return None
    return ((current - baseline) / abs(baseline)) * 100.0


def compute_deltas(current: NumberStats, baseline: NumberStats) -> NumberStats:
    """Metric-by-metric difference current - baseline."""
    return NumberStats(
        count=current.count - baseline.count,
        total=compute_delta(current.total, baseline.total),
        mean=compute_delta(current.mean, baseline.mean),
        median=compute_delta(current.median, baseline.median),
        min=compute_delta(current.min, baseline.min),
        max=compute_delta(current.max, baseline.max),
        first=compute_delta(current.first, baseline.first),
        last=compute_delta(current.last, baseline.last),
        range=compute_delta(current.range, baseline.range),
        change=compute_delta(current.change, baseline.change),
        change_percent=_optional_delta(current.change_percent, baseline.change_percent),
    )


def compute_percents(current: NumberStats, baseline: NumberStats) -> StatsPercents:
    """Metric-by-metric percent change against `baseline` (never ±inf)."""
    return StatsPercents(
        count=compute_delta_pct(current.count, baseline.count),
        total=compute_delta_pct(current.total, baseline.total),
        mean=compute_delta_pct(current.mean, baseline.mean),
        median=compute_delta_pct(current.median, baseline.median),
        min=compute_delta_pct(current.min, baseline.min),
        max=compute_delta_pct(current.max, baseline.max),
        first=compute_delta_pct(current.first, baseline.first),
        last=compute_delta_pct(current.last, baseline.last),
        range=compute_delta_pct(current.range, baseline.range),
        change=compute_delta_pct(current.change, baseline.change),
        change_percent=compute_delta_pct(current.change_percent, baseline.change_percent),
    )


def compute_cumulatives(
    numbers: Sequence[float],
    prior: NumberStats | None,
    sorted_prefix: list[float],
) -> NumberStats:
    """Running stats over every number up to and including this period.

    `sorted_prefix` holds all earlier numbers of the same granularity in
    ascending order; this period's numbers are inserted into it in place,
    so callers walking periods chronologically pass the same list along.
    """
    for value in numbers:
        bisect.insort(sorted_prefix, value)
    current = compute_stats(numbers)
    if prior is None or prior.count == 0:
        if current is None:
            return zero_stats()
        return current
    if current is None:
        return prior

    count = prior.count + current.count
    total = prior.total + current.total
    low = min(prior.min, current.min)
    high = max(prior.max, current.max)
    return NumberStats(
        count=count,
        total=total,
        mean=total / count,
        median=_median_of_sorted(sorted_prefix),
        min=low,
        max=high,
        first=prior.first,
        last=current.last,
        range=high - low,
        change=current.last - prior.first,
        change_percent=compute_change_pct(prior.first, current.last),
    )
