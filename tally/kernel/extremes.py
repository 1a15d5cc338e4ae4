"""Per-granularity bounds shared by every sibling aggregate."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tally.kernel.models import Metric
from tally.kernel.stats import NumberStats

if TYPE_CHECKING:
    from tally.kernel.rollup import PeriodAggregate

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StatsExtremes:
    highest_count: int
    lowest_count: int
    highest_total: float
    lowest_total: float
    highest_mean: float
    lowest_mean: float
    highest_median: float
    lowest_median: float
    highest_min: float
    lowest_min: float
    highest_max: float
    lowest_max: float
    highest_first: float
    lowest_first: float
    highest_last: float
    lowest_last: float
    highest_range: float
    lowest_range: float
    highest_change: float
    lowest_change: float
    highest_change_percent: float | None  # None when no sibling has one
    lowest_change_percent: float | None


def calculate_extremes(stats: Sequence[NumberStats]) -> StatsExtremes | None:
    """Highest and lowest value of every metric across `stats`. None if empty."""
    if not stats:
        return None
    counts = [s.count for s in stats]
    totals = [s.total for s in stats]
    means = [s.mean for s in stats]
    medians = [s.median for s in stats]
    mins = [s.min for s in stats]
    maxes = [s.max for s in stats]
    firsts = [s.first for s in stats]
    lasts = [s.last for s in stats]
    ranges = [s.range for s in stats]
    changes = [s.change for s in stats]
    change_percents = [s.change_percent for s in stats if s.change_percent is not None]
    return StatsExtremes(
        highest_count=max(counts),
        lowest_count=min(counts),
        highest_total=max(totals),
        lowest_total=min(totals),
        highest_mean=max(means),
        lowest_mean=min(means),
        highest_median=max(medians),
        lowest_median=min(medians),
        highest_min=max(mins),
        lowest_min=min(mins),
        highest_max=max(maxes),
        lowest_max=min(maxes),
        highest_first=max(firsts),
        lowest_first=min(firsts),
        highest_last=max(lasts),
        lowest_last=min(lasts),
        highest_range=max(ranges),
        lowest_range=min(ranges),
        highest_change=max(changes),
        lowest_change=min(changes),
        highest_change_percent=max(change_percents) if change_percents else None,
        lowest_change_percent=min(change_percents) if change_percents else None,
    )


def high_for(extremes: StatsExtremes, metric: Metric) -> float | None:
    if metric == Metric.count:
        return extremes.highest_count
    if metric == Metric.total:
        return extremes.highest_total
    if metric == Metric.mean:
        return extremes.highest_mean
    if metric == Metric.median:
        return extremes.highest_median
    if metric == Metric.min:
        return extremes.highest_min
    if metric == Metric.max:
        return extremes.highest_max
    if metric == Metric.first:
        return extremes.highest_first
    if metric == Metric.last:
        return extremes.highest_last
    if metric == Metric.range:
        return extremes.highest_range
    if metric == Metric.change:
        return extremes.highest_change
    if metric == Metric.change_percent:
        return extremes.highest_change_percent
    raise ValueError(f"Unknown metric: {metric}")


def low_for(extremes: StatsExtremes, metric: Metric) -> float | None:
    if metric == Metric.count:
        return extremes.lowest_count
    if metric == Metric.total:
        return extremes.lowest_total
    if metric == Metric.mean:
        return extremes.lowest_mean
    if metric == Metric.median:
        return extremes.lowest_median
    if metric == Metric.min:
        return extremes.lowest_min
    if metric == Metric.max:
        return extremes.lowest_max
    if metric == Metric.first:
        return extremes.lowest_first
    if metric == Metric.last:
        return extremes.lowest_last
    if metric == Metric.range:
        return extremes.lowest_range
    if metric == Metric.change:
        return extremes.lowest_change
    if metric == Metric.change_percent:
        return extremes.lowest_change_percent
    raise ValueError(f"Unknown metric: {metric}")


def relative_position(value: float, extremes: StatsExtremes, metric: Metric) -> float | None:
    """Where `value` sits between the metric's bounds, clamped to [0, 1].

    Used for intensity scaling; a flat range maps everything to 1.0.
    None when the metric has no bounds.
    """
    low = low_for(extremes, metric)
    high = high_for(extremes, metric)
    if low is None or high is None:
        return None
    if high == low:
        return 1.0
    return min(max((value - low) / (high - low), 0.0), 1.0)


def attach_extremes(
    aggregates: list[PeriodAggregate],
    previous: StatsExtremes | None,
) -> tuple[list[PeriodAggregate], StatsExtremes | None]:
    """Point every sibling at one shared extremes object.

    The previous object is reused when its bounds are unchanged, so
    siblings that already reference it keep their identity. Only
    aggregates holding a different reference are re-issued.
    """
    fresh = calculate_extremes([agg.stats for agg in aggregates])
    shared = previous if fresh == previous else fresh
    if shared is not previous:
        logger.debug("Extremes changed across %d aggregates", len(aggregates))

    attached: list[PeriodAggregate] = []
    for agg in aggregates:
        if agg.extremes is shared:
            attached.append(agg)
        else:
            attached.append(dataclasses.replace(agg, extremes=shared))
    return attached, shared
