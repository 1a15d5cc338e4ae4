"""New-completion differ: what completed since the previous pass."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from tally.kernel.models import AchievementResult, GoalResult, NewAchievement

logger = logging.getLogger(__name__)


def _completed_ids(results: Sequence[GoalResult]) -> set[str]:
    return {ach.id for result in results for ach in result.achievements if ach.completed_at}


def _goals_with_kept_completions(previous: Sequence[GoalResult], current: Sequence[GoalResult]) -> set[str]:
    """Goals holding a completion that exists in both passes.

    A provisional completion withdrawn before its period closed does not count.
    """
    kept = _completed_ids(previous) & _completed_ids(current)
    return {
        result.goal.id
        for result in current
        if any(ach.id in kept for ach in result.achievements)
    }


def diff_new_completions(
    previous: Sequence[GoalResult] | None,
    current: Sequence[GoalResult],
) -> list[NewAchievement]:
    """Achievements whose completion appeared since `previous`.

    With no previous pass there is nothing to compare against and
    nothing is reported. A goal with no completion carried over from the
    previous pass reports its earliest new completion as its first.
    """
    if previous is None:
        return []

    already_completed = _completed_ids(previous)
    had_completion = _goals_with_kept_completions(previous, current)

    new: list[NewAchievement] = []
    for result in current:
        fresh: list[AchievementResult] = [
            ach for ach in result.achievements if ach.completed_at and ach.id not in already_completed
        ]
        if not fresh:
            continue
        fresh.sort(key=lambda ach: ach.completed_at or "")
        first_ever = result.goal.id not in had_completion
        for position, ach in enumerate(fresh):
            new.append(
                NewAchievement(
                    goal=result.goal,
                    achievement=ach,
                    first_completion=first_ever and position == 0,
                )
            )

    if new:
        logger.debug("%d new completions (%d first)", len(new), sum(1 for n in new if n.first_completion))
    return new
