"""Goal target matcher: does one period satisfy one goal target?"""

from __future__ import annotations

import math

from tally.kernel.models import Condition, GoalTarget, Metric, Source
from tally.kernel.rollup import PeriodAggregate
from tally.kernel.stats import NumberStats, StatsPercents


def resolve_source(
    aggregate: PeriodAggregate,
    source: Source,
    *,
    cumulative: bool = False,
) -> NumberStats | StatsPercents:
    """Pick the value set a target reads from.

    With `cumulative` the running series stands in for the raw one
    (used for first-crossing of all-time goals).
    """
    if source == Source.stats:
        return aggregate.cumulatives if cumulative else aggregate.stats
    if source == Source.deltas:
        return aggregate.cumulative_deltas if cumulative else aggregate.deltas
    if source == Source.percents:
        return aggregate.cumulative_percents if cumulative else aggregate.percents
    raise ValueError(f"Unknown source: {source}")


def metric_value(values: NumberStats | StatsPercents, metric: Metric) -> float | None:
    if metric == Metric.count:
        return values.count
    if metric == Metric.total:
        return values.total
    if metric == Metric.mean:
        return values.mean
    if metric == Metric.median:
        return values.median
    if metric == Metric.min:
        return values.min
    if metric == Metric.max:
        return values.max
    if metric == Metric.first:
        return values.first
    if metric == Metric.last:
        return values.last
    if metric == Metric.range:
        return values.range
    if metric == Metric.change:
        return values.change
    if metric == Metric.change_percent:
        return values.change_percent
    raise ValueError(f"Unknown metric: {metric}")


def evaluate_condition(condition: Condition, value: float | None, threshold: float) -> bool:
    """Strict comparison; a missing or NaN value never satisfies."""
    if value is None or math.isnan(value):
        return False
    if condition == Condition.above:
        return value > threshold
    if condition == Condition.below:
        return value < threshold
    raise ValueError(f"Unknown condition: {condition}")


def target_value(
    target: GoalTarget,
    aggregate: PeriodAggregate | None,
    *,
    cumulative: bool = False,
) -> float | None:
    """Value under test for `target` in `aggregate`; None for an empty period."""
    if aggregate is None or aggregate.stats.count == 0:
        return None
    return metric_value(resolve_source(aggregate, target.source, cumulative=cumulative), target.metric)


def matches(
    target: GoalTarget,
    aggregate: PeriodAggregate | None,
    *,
    cumulative: bool = False,
) -> bool:
    value = target_value(target, aggregate, cumulative=cumulative)
    return evaluate_condition(target.condition, value, target.value)
