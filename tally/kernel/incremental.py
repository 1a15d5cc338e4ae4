"""Incremental aggregate cache.

The caller keeps the snapshot returned by one pass and hands it back on
the next. Given the new day entries, the first sorted position whose
entry differs from the previous snapshot bounds the rebuild: every
period of every granularity whose key is at or after that position's
period key is recomputed (its deltas and cumulatives depend on all
earlier siblings), every period before it keeps its previous object.

    sorted day entries   d0 d1 d2 | d3 d4 d5      (d3 first change)
    days                 kept     | rebuilt
    weeks/months/years   kept     | rebuilt from the bucket holding d3
    all-time                        rebuilt
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from tally.kernel.extremes import StatsExtremes, attach_extremes
from tally.kernel.models import ContractViolation, DayEntry, TimePeriod, Tracking
from tally.kernel.periods import to_period_key
from tally.kernel.rollup import (
    PeriodAggregate,
    build_alltime,
    build_period,
    flatten_numbers,
    group_days,
    group_months,
)

logger = logging.getLogger(__name__)

EntryRow = tuple[str, tuple[float, ...]]


@dataclass(frozen=True, slots=True)
class AggregateSnapshot:
    """Every granularity for one dataset, as of one set of day entries."""

    dataset_id: str
    tracking: Tracking
    entries: tuple[EntryRow, ...] = ()
    days: dict[str, PeriodAggregate] = field(default_factory=dict)
    weeks: dict[str, PeriodAggregate] = field(default_factory=dict)
    months: dict[str, PeriodAggregate] = field(default_factory=dict)
    years: dict[str, PeriodAggregate] = field(default_factory=dict)
    alltime: PeriodAggregate | None = None
    extremes: dict[TimePeriod, StatsExtremes | None] = field(default_factory=dict)

    def by_key(self, period: TimePeriod) -> dict[str, PeriodAggregate]:
        """Period key -> aggregate for one granularity, oldest first."""
        if period == TimePeriod.day:
            return self.days
        if period == TimePeriod.week:
            return self.weeks
        if period == TimePeriod.month:
            return self.months
        if period == TimePeriod.year:
            return self.years
        raise ContractViolation("The all-time aggregate is not keyed; use .alltime")

    def collection(self, period: TimePeriod) -> list[PeriodAggregate]:
        return list(self.by_key(period).values())


def normalize_entries(entries: Iterable[DayEntry], dataset_id: str) -> tuple[EntryRow, ...]:
    """Sort by day, drop empty days, reject duplicates and foreign datasets."""
    rows: dict[str, tuple[float, ...]] = {}
    for entry in entries:
        if entry.dataset_id != dataset_id:
            raise ContractViolation(
                f"Entry for dataset {entry.dataset_id!r} passed while aggregating {dataset_id!r}"
            )
        if entry.date in rows:
            raise ContractViolation(f"Duplicate day entry for {entry.date}")
        rows[entry.date] = tuple(entry.numbers)
    return tuple((key, rows[key]) for key in sorted(rows) if rows[key])


def first_changed_index(previous: Sequence[EntryRow], current: Sequence[EntryRow]) -> int:
    """Index of the first differing row, or -1 when both are identical."""
    shortest = min(len(previous), len(current))
    for i in range(shortest):
        if previous[i] != current[i]:
            return i
    if len(previous) == len(current):
        return -1
    return shortest


def _earliest_changed_key(
    previous: Sequence[EntryRow],
    current: Sequence[EntryRow],
    index: int,
) -> str:
    # A removed day can sort before the row that replaced it at `index`.
    candidates = [rows[index][0] for rows in (previous, current) if index < len(rows)]
    return min(candidates)


def _refresh_bucketed(
    period: TimePeriod,
    groups: dict[str, list[PeriodAggregate]],
    previous: dict[str, PeriodAggregate],
    earliest_key: str | None,
    tracking: Tracking,
) -> dict[str, PeriodAggregate]:
    """Rebuild one coarser granularity from its grouped children."""
    keys = sorted(groups)
    rebuilt: dict[str, PeriodAggregate] = {}
    prior: PeriodAggregate | None = None
    sorted_prefix: list[float] | None = None
    rebuilding = earliest_key is None
    for key in keys:
        if not rebuilding and key < earliest_key and key in previous:
            prior = previous[key]
            rebuilt[key] = prior
            continue
        if sorted_prefix is None:
            sorted_prefix = sorted(flatten_numbers(rebuilt.values()))
            logger.debug("Rebuilding %s aggregates from %s (%d kept)", period.value, key, len(rebuilt))
        rebuilding = True
        prior = build_period(key, period, flatten_numbers(groups[key]), prior, tracking, sorted_prefix)
        rebuilt[key] = prior
    return rebuilt


def _with_extremes(
    aggregates: dict[str, PeriodAggregate],
    previous: StatsExtremes | None,
) -> tuple[dict[str, PeriodAggregate], StatsExtremes | None]:
    attached, shared = attach_extremes(list(aggregates.values()), previous)
    return {agg.date_key: agg for agg in attached}, shared


def refresh_aggregates(
    entries: Iterable[DayEntry],
    *,
    tracking: Tracking,
    dataset_id: str,
    previous: AggregateSnapshot | None = None,
) -> AggregateSnapshot:
    """Recompute aggregates, reusing whatever `previous` still gets right.

    Returns `previous` itself when the entries did not change. A previous
    snapshot for another dataset or tracking mode is ignored.
    """
    rows = normalize_entries(entries, dataset_id)

    if previous is not None and (previous.dataset_id != dataset_id or previous.tracking != tracking):
        logger.debug("Discarding snapshot for %s/%s", previous.dataset_id, previous.tracking.value)
        previous = None

    if previous is None:
        changed = 0
        earliest_key: str | None = None
        base = AggregateSnapshot(dataset_id=dataset_id, tracking=tracking)
    else:
        changed = first_changed_index(previous.entries, rows)
        if changed == -1:
            return previous
        earliest_key = _earliest_changed_key(previous.entries, rows, changed)
        base = previous
    logger.debug("Refreshing %s from entry %d of %d", dataset_id, changed, len(rows))

    prior_days = list(base.days.values())
    days: dict[str, PeriodAggregate] = {agg.date_key: agg for agg in prior_days[:changed]}
    prior = prior_days[changed - 1] if changed > 0 else None
    sorted_prefix = sorted(flatten_numbers(days.values()))
    for key, numbers in rows[changed:]:
        prior = build_period(key, TimePeriod.day, numbers, prior, tracking, sorted_prefix)
        days[key] = prior

    day_list = list(days.values())
    weeks = _refresh_bucketed(
        TimePeriod.week,
        group_days(day_list, TimePeriod.week),
        base.weeks,
        to_period_key(earliest_key, TimePeriod.week) if earliest_key else None,
        tracking,
    )
    months = _refresh_bucketed(
        TimePeriod.month,
        group_days(day_list, TimePeriod.month),
        base.months,
        to_period_key(earliest_key, TimePeriod.month) if earliest_key else None,
        tracking,
    )
    years = _refresh_bucketed(
        TimePeriod.year,
        group_months(list(months.values())),
        base.years,
        to_period_key(earliest_key, TimePeriod.year) if earliest_key else None,
        tracking,
    )

    extremes: dict[TimePeriod, StatsExtremes | None] = {}
    days, extremes[TimePeriod.day] = _with_extremes(days, base.extremes.get(TimePeriod.day))
    weeks, extremes[TimePeriod.week] = _with_extremes(weeks, base.extremes.get(TimePeriod.week))
    months, extremes[TimePeriod.month] = _with_extremes(months, base.extremes.get(TimePeriod.month))
    years, extremes[TimePeriod.year] = _with_extremes(years, base.extremes.get(TimePeriod.year))

    alltime = None
    if years:
        # All-time scales against its child years.
        alltime = dataclasses.replace(
            build_alltime(list(years.values()), tracking),
            extremes=extremes[TimePeriod.year],
        )
    extremes[TimePeriod.anytime] = extremes[TimePeriod.year]

    return AggregateSnapshot(
        dataset_id=dataset_id,
        tracking=tracking,
        entries=rows,
        days=days,
        weeks=weeks,
        months=months,
        years=years,
        alltime=alltime,
        extremes=extremes,
    )


def build_aggregates(
    entries: Iterable[DayEntry],
    *,
    tracking: Tracking,
    dataset_id: str,
) -> AggregateSnapshot:
    """Full rebuild with no previous snapshot."""
    return refresh_aggregates(entries, tracking=tracking, dataset_id=dataset_id)
