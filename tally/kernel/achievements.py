"""Achievement evaluator: walks a goal's periods and records completions.

Evaluation is a pure function of the goal, the aggregates of its
granularity and the evaluation day. Achievement ids are derived from
(goal id, anchor period, occurrence index), so the same occurrence keeps
its id from one pass to the next. The previous pass's achievements are
only used to hand back the very same object when nothing about an
occurrence changed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import date

from tally.kernel.incremental import AggregateSnapshot
from tally.kernel.matcher import matches
from tally.kernel.models import (
    AchievementResult,
    Condition,
    ContractViolation,
    Goal,
    GoalResult,
    GoalType,
    Source,
    TimePeriod,
)
from tally.kernel.periods import (
    current_period_key,
    is_period_open,
    iter_period_keys,
    next_period_key,
)
from tally.kernel.rollup import PeriodAggregate

logger = logging.getLogger(__name__)

ALLTIME_ANCHOR = "alltime"
PENDING_ANCHOR = "pending"


def achievement_id(goal_id: str, anchor: str, index: int) -> str:
    return f"{goal_id}:{anchor}:{index}"


def _reuse(candidate: AchievementResult, prior: Mapping[str, AchievementResult]) -> AchievementResult:
    previous = prior.get(candidate.id)
    if previous is not None and previous == candidate:
        return previous
    return candidate


def _summarize(goal: Goal, achievements: list[AchievementResult], current_progress: int) -> GoalResult:
    completed = [a.completed_at for a in achievements if a.completed_at]
    return GoalResult(
        goal=goal,
        achievements=achievements,
        completed_count=sum(1 for a in achievements if a.completed_at and not a.provisional),
        current_progress=current_progress,
        first_completed_at=completed[0] if completed else None,
        last_completed_at=completed[-1] if completed else None,
    )


def _check_granularity(goal: Goal, aggregates: Iterable[PeriodAggregate], expected: TimePeriod) -> None:
    for agg in aggregates:
        if agg.period != expected:
            raise ContractViolation(
                f"Goal {goal.id} evaluates {expected.value} periods but got a {agg.period.value} aggregate"
            )


# ---------------------------------------------------------------------------
# Periodic goals: day / week / month / year
# ---------------------------------------------------------------------------


def evaluate_periodic(
    goal: Goal,
    aggregates: Sequence[PeriodAggregate],
    *,
    today: date,
    prior: Mapping[str, AchievementResult] | None = None,
) -> GoalResult:
    """Evaluate a day/week/month/year goal over that granularity's aggregates."""
    if goal.time_period == TimePeriod.anytime:
        raise ContractViolation(f"Goal {goal.id} is an all-time goal; use evaluate_anytime")
    _check_granularity(goal, aggregates, goal.time_period)

    ordered = sorted(aggregates, key=lambda agg: agg.date_key)
    if goal.consecutive:
        achievements, progress = _walk_consecutive(goal, ordered, today)
    else:
        achievements, progress = _walk_counted(goal, ordered, today)
    prior = prior or {}
    return _summarize(goal, [_reuse(a, prior) for a in achievements], progress)


def _completion(goal: Goal, key: str, index: int, started_at: str | None, today: date) -> AchievementResult:
    return AchievementResult(
        id=achievement_id(goal.id, key, index),
        goal_id=goal.id,
        dataset_id=goal.dataset_id,
        progress=goal.count,
        started_at=started_at,
        completed_at=key,
        provisional=is_period_open(key, goal.time_period, today),
    )


def _in_progress(goal: Goal, index: int, progress: int, started_at: str | None) -> AchievementResult:
    return AchievementResult(
        id=achievement_id(goal.id, PENDING_ANCHOR, index),
        goal_id=goal.id,
        dataset_id=goal.dataset_id,
        progress=progress,
        started_at=started_at,
    )


def _walk_counted(
    goal: Goal,
    ordered: Sequence[PeriodAggregate],
    today: date,
) -> tuple[list[AchievementResult], int]:
    """Every `count`-th qualifying period completes one occurrence."""
    achievements: list[AchievementResult] = []
    good = 0
    started_at: str | None = None
    for agg in ordered:
        if not matches(goal.target, agg):
            continue
        if good % goal.count == 0:
            started_at = agg.date_key
        good += 1
        if good % goal.count == 0:
            index = good // goal.count
            achievements.append(_completion(goal, agg.date_key, index, started_at, today))

    remaining = good % goal.count
    if remaining:
        achievements.append(_in_progress(goal, good // goal.count + 1, remaining, started_at))
    progress = good if goal.count == 1 else remaining
    return achievements, progress


def _walk_consecutive(
    goal: Goal,
    ordered: Sequence[PeriodAggregate],
    today: date,
) -> tuple[list[AchievementResult], int]:
    """Runs of qualifying periods; a period without data breaks the run.

    A run completes once when it reaches `count` and keeps counting
    afterwards, so a longer run never completes the same goal twice.
    """
    achievements: list[AchievementResult] = []
    if not ordered:
        return achievements, 0

    by_key = {agg.date_key: agg for agg in ordered}
    period = goal.time_period
    run = 0
    started_at: str | None = None
    occurrences = 0
    for key in iter_period_keys(ordered[0].date_key, ordered[-1].date_key, period):
        if not matches(goal.target, by_key.get(key)):
            run = 0
            started_at = None
            continue
        if run == 0:
            started_at = key
        run += 1
        if run == goal.count:
            occurrences += 1
            achievements.append(_completion(goal, key, occurrences, started_at, today))

    # Closed, empty periods between the last data and today end the run.
    current = current_period_key(today, period)
    if run and current is not None and next_period_key(ordered[-1].date_key, period) < current:
        run = 0
        started_at = None

    if 0 < run < goal.count:
        achievements.append(_in_progress(goal, occurrences + 1, run, started_at))
    return achievements, run


# ---------------------------------------------------------------------------
# All-time goals
# ---------------------------------------------------------------------------


def evaluate_anytime(
    goal: Goal,
    alltime: PeriodAggregate | None,
    days: Sequence[PeriodAggregate],
    *,
    prior: Mapping[str, AchievementResult] | None = None,
) -> GoalResult:
    """One-off goal judged on the all-time aggregate.

    The completion day is the first day whose running (cumulative) values
    satisfy the target. Only the `stats` source is supported here;
    delta and percent targets never complete.
    """
    if goal.time_period != TimePeriod.anytime:
        raise ContractViolation(f"Goal {goal.id} is a {goal.time_period.value} goal; use evaluate_periodic")
    if alltime is not None:
        _check_granularity(goal, [alltime], TimePeriod.anytime)
    _check_granularity(goal, days, TimePeriod.day)

    completed_at: str | None = None
    if goal.target.source == Source.stats and matches(goal.target, alltime):
        ordered = sorted(days, key=lambda agg: agg.date_key)
        completed_at = next(
            (day.date_key for day in ordered if matches(goal.target, day, cumulative=True)),
            ordered[-1].date_key if ordered else None,
        )

    achievement = AchievementResult(
        id=achievement_id(goal.id, ALLTIME_ANCHOR, 1),
        goal_id=goal.id,
        dataset_id=goal.dataset_id,
        progress=1 if completed_at else 0,
        completed_at=completed_at,
    )
    achievement = _reuse(achievement, prior or {})
    return _summarize(goal, [achievement], achievement.progress)


# ---------------------------------------------------------------------------
# Whole dataset
# ---------------------------------------------------------------------------


def evaluate_goal(
    goal: Goal,
    snapshot: AggregateSnapshot,
    *,
    today: date,
    prior: Mapping[str, AchievementResult] | None = None,
) -> GoalResult:
    if goal.dataset_id != snapshot.dataset_id:
        raise ContractViolation(
            f"Goal {goal.id} belongs to dataset {goal.dataset_id!r}, not {snapshot.dataset_id!r}"
        )
    if goal.time_period == TimePeriod.anytime:
        return evaluate_anytime(goal, snapshot.alltime, snapshot.collection(TimePeriod.day), prior=prior)
    return evaluate_periodic(goal, snapshot.collection(goal.time_period), today=today, prior=prior)


def prior_achievements(previous: Iterable[GoalResult] | None) -> dict[str, AchievementResult]:
    if not previous:
        return {}
    return {ach.id: ach for result in previous for ach in result.achievements}


def evaluate_goals(
    goals: Iterable[Goal],
    snapshot: AggregateSnapshot,
    *,
    today: date,
    previous: Sequence[GoalResult] | None = None,
) -> list[GoalResult]:
    """Evaluate every goal of one dataset against its aggregates."""
    prior = prior_achievements(previous)
    results = [evaluate_goal(goal, snapshot, today=today, prior=prior) for goal in goals]
    logger.debug(
        "Evaluated %d goals for %s: %d completions",
        len(results),
        snapshot.dataset_id,
        sum(r.completed_count for r in results),
    )
    return results


# ---------------------------------------------------------------------------
# Presentation helpers
# ---------------------------------------------------------------------------


def group_by_type(results: Iterable[GoalResult]) -> dict[GoalType, list[GoalResult]]:
    grouped: dict[GoalType, list[GoalResult]] = {t: [] for t in GoalType}
    for result in results:
        grouped[result.goal.type].append(result)
    return grouped


_TYPE_RANK = {GoalType.milestone: 0, GoalType.target: 1, GoalType.goal: 2}
_PERIOD_RANK = {
    TimePeriod.anytime: 0,
    TimePeriod.day: 1,
    TimePeriod.week: 2,
    TimePeriod.month: 3,
    TimePeriod.year: 4,
}


def _sort_key(result: GoalResult) -> tuple:
    goal = result.goal
    completed_key = result.first_completed_at or result.last_completed_at or "9999-99-99"
    progress_ratio = 0.0
    if result.completed_count == 0:
        progress_ratio = result.current_progress / goal.count
    # Higher thresholds sort later for "above" goals, earlier for "below".
    value_key = -goal.target.value if goal.target.condition == Condition.below else goal.target.value
    return (
        _TYPE_RANK[goal.type],
        _PERIOD_RANK[goal.time_period],
        goal.consecutive,
        goal.count,
        completed_key,
        progress_ratio,
        value_key,
        goal.created_at,
    )


def sort_goal_results(results: Iterable[GoalResult]) -> list[GoalResult]:
    """Milestones, targets, goals; then period, streaks last, count, completion date."""
    return sorted(results, key=_sort_key)


def completions_by_date(results: Iterable[GoalResult]) -> dict[str, list[tuple[GoalResult, AchievementResult]]]:
    """Completed achievements keyed by the period they completed in."""
    by_date: dict[str, list[tuple[GoalResult, AchievementResult]]] = {}
    for result in results:
        for achievement in result.achievements:
            if achievement.completed_at:
                by_date.setdefault(achievement.completed_at, []).append((result, achievement))
    return by_date
