"""Tests for the achievement evaluator."""

from datetime import date

import pytest

from tally.kernel.achievements import (
    completions_by_date,
    evaluate_anytime,
    evaluate_goal,
    evaluate_goals,
    evaluate_periodic,
    group_by_type,
    sort_goal_results,
)
from tally.kernel.models import Condition, ContractViolation, GoalType, Metric, Source, TimePeriod

from tests.conftest import make_entry, make_goal, make_run, snapshot_of

LATER = date(2026, 3, 1)
GOOD, BAD = [10.0], [1.0]


def _days(values, start=date(2026, 2, 1)):
    return snapshot_of(make_run(start, values)).collection(TimePeriod.day)


def _completed(result):
    return [a.completed_at for a in result.achievements if a.completed_at]


class TestCountedGoals:
    def test_every_qualifying_period_completes(self):
        goal = make_goal(value=5.0)
        result = evaluate_periodic(goal, _days([GOOD, GOOD, BAD, GOOD, GOOD]), today=LATER)
        assert result.completed_count == 4
        assert _completed(result) == ["2026-02-01", "2026-02-02", "2026-02-04", "2026-02-05"]
        assert result.first_completed_at == "2026-02-01"
        assert result.last_completed_at == "2026-02-05"
        assert result.current_progress == 4

    def test_multiple_of_count(self):
        goal = make_goal(value=5.0, count=2)
        result = evaluate_periodic(goal, _days([GOOD, BAD, GOOD, GOOD, GOOD, GOOD]), today=LATER)
        assert _completed(result) == ["2026-02-03", "2026-02-05"]
        pending = result.achievements[-1]
        assert pending.completed_at is None
        assert pending.progress == 1
        assert pending.started_at == "2026-02-06"
        assert result.current_progress == 1

    def test_deterministic_ids(self):
        goal = make_goal("steps", value=5.0, count=2)
        result = evaluate_periodic(goal, _days([GOOD, GOOD, GOOD]), today=LATER)
        assert [a.id for a in result.achievements] == ["steps:2026-02-02:1", "steps:pending:2"]

    def test_no_data(self):
        result = evaluate_periodic(make_goal(), [], today=LATER)
        assert result.achievements == []
        assert result.completed_count == 0
        assert result.first_completed_at is None


class TestConsecutiveGoals:
    def test_streak_resets_on_failure(self):
        goal = make_goal(value=5.0, count=3, consecutive=True)
        result = evaluate_periodic(goal, _days([GOOD, GOOD, BAD, GOOD, GOOD, GOOD]), today=LATER)
        assert _completed(result) == ["2026-02-06"]
        assert result.achievements[0].started_at == "2026-02-04"
        assert result.completed_count == 1

    def test_missing_period_breaks_streak(self):
        goal = make_goal(value=5.0, count=3, consecutive=True)
        result = evaluate_periodic(goal, _days([GOOD, GOOD, None, GOOD]), today=date(2026, 2, 4))
        assert result.completed_count == 0
        assert len(result.achievements) == 1
        assert result.achievements[0].progress == 1
        assert result.achievements[0].started_at == "2026-02-04"
        assert result.current_progress == 1

    def test_long_run_completes_once(self):
        goal = make_goal(value=5.0, count=2, consecutive=True)
        result = evaluate_periodic(goal, _days([GOOD] * 5), today=LATER)
        assert _completed(result) == ["2026-02-02"]

    def test_run_in_progress_continues_into_today(self):
        goal = make_goal(value=5.0, count=3, consecutive=True)
        result = evaluate_periodic(goal, _days([GOOD, GOOD]), today=date(2026, 2, 3))
        assert result.current_progress == 2
        assert result.achievements[0].progress == 2

    def test_closed_empty_periods_end_the_run(self):
        goal = make_goal(value=5.0, count=3, consecutive=True)
        result = evaluate_periodic(goal, _days([GOOD, GOOD]), today=date(2026, 2, 10))
        assert result.current_progress == 0
        assert result.achievements == []

    def test_weekly_streak(self):
        goal = make_goal(value=5.0, count=2, consecutive=True, time_period=TimePeriod.week)
        entries = [make_entry("2026-02-02", GOOD), make_entry("2026-02-09", GOOD)]
        weeks = snapshot_of(entries).collection(TimePeriod.week)
        result = evaluate_periodic(goal, weeks, today=LATER)
        assert _completed(result) == ["2026-W07"]
        assert result.achievements[0].started_at == "2026-W06"


class TestProvisionalCompletions:
    def test_open_period_is_provisional(self):
        goal = make_goal(value=5.0)
        days = _days([GOOD])
        open_result = evaluate_periodic(goal, days, today=date(2026, 2, 1))
        assert open_result.achievements[0].completed_at == "2026-02-01"
        assert open_result.achievements[0].provisional
        assert open_result.completed_count == 0

        closed_result = evaluate_periodic(goal, days, today=date(2026, 2, 2))
        assert not closed_result.achievements[0].provisional
        assert closed_result.completed_count == 1
        assert closed_result.achievements[0].id == open_result.achievements[0].id

    def test_open_completion_withdrawn_when_period_fails(self):
        goal = make_goal(value=5.0)
        open_results = evaluate_goals([goal], snapshot_of([make_entry("2026-02-01", GOOD)]), today=date(2026, 2, 1))
        assert open_results[0].achievements[0].provisional

        closed = evaluate_goals(
            [goal],
            snapshot_of([make_entry("2026-02-01", BAD)]),
            today=date(2026, 2, 2),
            previous=open_results,
        )
        assert closed[0].achievements == []
        assert closed[0].completed_count == 0
        assert closed[0].first_completed_at is None

    def test_open_month(self):
        goal = make_goal(value=5.0, time_period=TimePeriod.month)
        months = snapshot_of(make_run(date(2026, 2, 1), [GOOD])).collection(TimePeriod.month)
        result = evaluate_periodic(goal, months, today=date(2026, 2, 20))
        assert result.achievements[0].provisional


class TestAnytimeGoals:
    def test_first_cumulative_crossing(self):
        snap = snapshot_of(make_run(date(2026, 2, 1), [[3.0], [4.0], [5.0]]))
        goal = make_goal(value=6.0, time_period=TimePeriod.anytime)
        result = evaluate_goal(goal, snap, today=LATER)
        assert result.achievements[0].completed_at == "2026-02-02"
        assert result.achievements[0].id == "g-1:alltime:1"
        assert result.completed_count == 1
        assert not result.achievements[0].provisional

    def test_not_reached(self):
        snap = snapshot_of(make_run(date(2026, 2, 1), [[3.0]]))
        goal = make_goal(value=6.0, time_period=TimePeriod.anytime)
        result = evaluate_goal(goal, snap, today=LATER)
        assert result.achievements[0].completed_at is None
        assert result.achievements[0].progress == 0
        assert result.completed_count == 0

    def test_below_target_on_alltime_min(self):
        snap = snapshot_of(make_run(date(2026, 2, 1), [[80.0], [76.0], [74.0]]))
        goal = make_goal(metric=Metric.min, condition=Condition.below, value=75.0, time_period=TimePeriod.anytime)
        result = evaluate_goal(goal, snap, today=LATER)
        assert result.achievements[0].completed_at == "2026-02-03"

    def test_delta_source_never_completes(self):
        snap = snapshot_of(make_run(date(2026, 2, 1), [[3.0], [4.0]]))
        goal = make_goal(source=Source.deltas, value=-100.0, time_period=TimePeriod.anytime)
        result = evaluate_anytime(goal, snap.alltime, snap.collection(TimePeriod.day))
        assert result.completed_count == 0

    def test_empty_dataset(self):
        goal = make_goal(time_period=TimePeriod.anytime)
        result = evaluate_anytime(goal, None, [])
        assert result.achievements[0].completed_at is None


class TestContract:
    def test_granularity_mismatch(self):
        goal = make_goal(time_period=TimePeriod.week)
        with pytest.raises(ContractViolation):
            evaluate_periodic(goal, _days([GOOD]), today=LATER)

    def test_anytime_goal_through_periodic(self):
        with pytest.raises(ContractViolation):
            evaluate_periodic(make_goal(time_period=TimePeriod.anytime), [], today=LATER)

    def test_foreign_goal(self):
        snap = snapshot_of(make_run(date(2026, 2, 1), [GOOD]))
        with pytest.raises(ContractViolation):
            evaluate_goal(make_goal(dataset_id="other"), snap, today=LATER)


class TestEvaluateGoals:
    def test_unchanged_achievements_are_reused(self):
        snap = snapshot_of(make_run(date(2026, 2, 1), [GOOD, GOOD]))
        goals = [make_goal(value=5.0)]
        first = evaluate_goals(goals, snap, today=LATER)
        second = evaluate_goals(goals, snap, today=LATER, previous=first)
        for old, new in zip(first[0].achievements, second[0].achievements):
            assert new is old

    def test_pure_function_of_inputs(self):
        snap = snapshot_of(make_run(date(2026, 2, 1), [GOOD, BAD, GOOD]))
        goals = [make_goal(value=5.0, count=2)]
        assert evaluate_goals(goals, snap, today=LATER) == evaluate_goals(goals, snap, today=LATER)


class TestPresentation:
    def _results(self):
        snap = snapshot_of(make_run(date(2026, 2, 1), [GOOD, GOOD]))
        goals = [
            make_goal("weekly", value=5.0, time_period=TimePeriod.week),
            make_goal("daily", value=5.0),
            make_goal("first-log", value=0.0, time_period=TimePeriod.anytime, goal_type=GoalType.milestone),
        ]
        return evaluate_goals(goals, snap, today=LATER)

    def test_sort_order(self):
        ordered = sort_goal_results(self._results())
        assert [r.goal.id for r in ordered] == ["first-log", "daily", "weekly"]

    def test_group_by_type(self):
        grouped = group_by_type(self._results())
        assert [r.goal.id for r in grouped[GoalType.milestone]] == ["first-log"]
        assert grouped[GoalType.target] == []
        assert len(grouped[GoalType.goal]) == 2

    def test_completions_by_date(self):
        by_date = completions_by_date(self._results())
        assert {r.goal.id for r, _ in by_date["2026-02-01"]} == {"daily", "first-log"}
        assert [r.goal.id for r, _ in by_date["2026-W05"]] == ["weekly"]
