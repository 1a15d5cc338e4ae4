"""Period rollup: day aggregates folded into weeks, months, years, all-time.

Every aggregate carries its own stats plus values relative to the
immediately preceding non-empty sibling (deltas, percents) and to the
whole history before it (cumulatives). Aggregates only exist for periods
that hold numbers, so "preceding sibling" already skips gaps.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from tally.kernel.extremes import StatsExtremes
from tally.kernel.models import TimePeriod, Tracking
from tally.kernel.periods import month_to_year_key, to_period_key
from tally.kernel.stats import (
    NumberStats,
    StatsPercents,
    compute_cumulatives,
    compute_deltas,
    compute_percents,
    compute_stats,
    empty_percents,
    zero_stats,
)


@dataclass(frozen=True, slots=True)
class PeriodAggregate:
    date_key: str | None  # None for all-time
    period: TimePeriod
    numbers: tuple[float, ...]
    stats: NumberStats
    deltas: NumberStats
    percents: StatsPercents
    cumulatives: NumberStats
    cumulative_deltas: NumberStats
    cumulative_percents: StatsPercents
    extremes: StatsExtremes | None = None


def _baseline(
    stats: NumberStats,
    prior: PeriodAggregate | None,
    tracking: Tracking,
) -> NumberStats | None:
    if prior is not None:
        return prior.stats
    if tracking == Tracking.trend:
        # First reading stands in for the unknown previous close.
        return compute_stats([stats.first])
    return None


def build_period(
    date_key: str | None,
    period: TimePeriod,
    numbers: Sequence[float],
    prior: PeriodAggregate | None,
    tracking: Tracking,
    sorted_prefix: list[float],
) -> PeriodAggregate:
    """Build one aggregate from its numbers and its preceding sibling.

    `sorted_prefix` must hold every number of the earlier siblings in
    ascending order; it is extended in place with this period's numbers.
    """
    values = tuple(numbers)
    stats = compute_stats(values) or zero_stats()

    baseline = _baseline(stats, prior, tracking)
    if baseline is None:
        deltas, percents = zero_stats(), empty_percents()
    else:
        deltas, percents = compute_deltas(stats, baseline), compute_percents(stats, baseline)

    prior_cumulatives = prior.cumulatives if prior is not None else None
    cumulatives = compute_cumulatives(values, prior_cumulatives, sorted_prefix)
    if prior_cumulatives is None:
        cumulative_deltas, cumulative_percents = zero_stats(), empty_percents()
    else:
        cumulative_deltas = compute_deltas(cumulatives, prior_cumulatives)
        cumulative_percents = compute_percents(cumulatives, prior_cumulatives)

    return PeriodAggregate(
        date_key=date_key,
        period=period,
        numbers=values,
        stats=stats,
        deltas=deltas,
        percents=percents,
        cumulatives=cumulatives,
        cumulative_deltas=cumulative_deltas,
        cumulative_percents=cumulative_percents,
    )


def flatten_numbers(items: Iterable[PeriodAggregate]) -> tuple[float, ...]:
    """Concatenate child numbers in the order given."""
    numbers: list[float] = []
    for item in items:
        numbers.extend(item.numbers)
    return tuple(numbers)


def group_days(
    days: Sequence[PeriodAggregate],
    period: TimePeriod,
) -> dict[str, list[PeriodAggregate]]:
    """Bucket chronologically ordered day aggregates by week or month key."""
    groups: dict[str, list[PeriodAggregate]] = {}
    for day in days:
        key = to_period_key(day.date_key, period)
        groups.setdefault(key, []).append(day)
    return groups


def group_months(months: Sequence[PeriodAggregate]) -> dict[str, list[PeriodAggregate]]:
    groups: dict[str, list[PeriodAggregate]] = {}
    for month in months:
        groups.setdefault(month_to_year_key(month.date_key), []).append(month)
    return groups


def build_alltime(years: Sequence[PeriodAggregate], tracking: Tracking) -> PeriodAggregate:
    """Single bucket holding every number, in chronological order."""
    return build_period(None, TimePeriod.anytime, flatten_numbers(years), None, tracking, [])
