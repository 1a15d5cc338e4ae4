"""Kernel HTTP router: aggregates & achievements per dataset."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable
from datetime import date, datetime
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tally.auth import verify_api_key
from tally.config import settings
from tally.db import get_session
from tally.kernel import connector
from tally.kernel.achievements import evaluate_goals, group_by_type, sort_goal_results
from tally.kernel.differ import diff_new_completions
from tally.kernel.incremental import AggregateSnapshot, refresh_aggregates
from tally.kernel.models import (
    AchievementsResponse,
    AggregateOut,
    AggregatesResponse,
    ContractViolation,
    DayEntry,
    GoalResult,
    GoalType,
    TimePeriod,
    Tracking,
)
from tally.kernel.rollup import PeriodAggregate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/kernel", tags=["kernel"])


class EvaluationState:
    """Last snapshot and goal results per dataset, kept between requests.

    The kernel is stateless; this is the caller-side memory it is handed
    on every pass.
    """

    def __init__(self) -> None:
        self.snapshots: dict[str, AggregateSnapshot] = {}
        self.results: dict[str, list[GoalResult]] = {}

    def refresh(self, dataset_id: str, tracking: Tracking, entries: Iterable[DayEntry]) -> AggregateSnapshot:
        snapshot = refresh_aggregates(
            entries,
            tracking=tracking,
            dataset_id=dataset_id,
            previous=self.snapshots.get(dataset_id),
        )
        self.snapshots[dataset_id] = snapshot
        return snapshot


def get_state(request: Request) -> EvaluationState:
    state = getattr(request.app.state, "evaluations", None)
    if state is None:
        state = EvaluationState()
        request.app.state.evaluations = state
    return state


def _parse_date(value: str, name: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid date for '{name}': {value}")


def _today(tz_name: str) -> date:
    return datetime.now(ZoneInfo(tz_name)).date()


def _aggregate_out(aggregate: PeriodAggregate) -> AggregateOut:
    return AggregateOut(
        date_key=aggregate.date_key,
        period=aggregate.period,
        numbers=list(aggregate.numbers),
        stats=dataclasses.asdict(aggregate.stats),
        deltas=dataclasses.asdict(aggregate.deltas),
        percents=dataclasses.asdict(aggregate.percents),
        cumulatives=dataclasses.asdict(aggregate.cumulatives),
        cumulative_deltas=dataclasses.asdict(aggregate.cumulative_deltas),
        cumulative_percents=dataclasses.asdict(aggregate.cumulative_percents),
        extremes=dataclasses.asdict(aggregate.extremes) if aggregate.extremes else None,
    )


async def _load_snapshot(
    session: AsyncSession,
    state: EvaluationState,
    dataset_id: str,
) -> AggregateSnapshot:
    tracking = await connector.fetch_tracking(session, dataset_id)
    if tracking is None:
        raise HTTPException(status_code=404, detail=f"Unknown dataset: {dataset_id}")
    entries = await connector.fetch_day_entries(session, dataset_id)
    try:
        return state.refresh(dataset_id, tracking, entries)
    except ContractViolation as exc:
        raise HTTPException(status_code=422, detail=str(exc))


# ---------------------------------------------------------------------------
# /kernel/datasets/{dataset_id}/aggregates
# ---------------------------------------------------------------------------


@router.get("/datasets/{dataset_id}/aggregates", response_model=AggregatesResponse)
async def get_aggregates(
    dataset_id: str,
    session: AsyncSession = Depends(get_session),
    state: EvaluationState = Depends(get_state),
    _: str = Depends(verify_api_key),
    period: TimePeriod = Query(default=TimePeriod.month, description="day | week | month | year | anytime"),
) -> AggregatesResponse:
    snapshot = await _load_snapshot(session, state, dataset_id)

    if period == TimePeriod.anytime:
        aggregates = {"alltime": snapshot.alltime} if snapshot.alltime else {}
    else:
        aggregates = snapshot.by_key(period)

    return AggregatesResponse(
        dataset_id=dataset_id,
        tracking=snapshot.tracking,
        period=period,
        aggregates={key: _aggregate_out(agg) for key, agg in aggregates.items()},
    )


# ---------------------------------------------------------------------------
# /kernel/datasets/{dataset_id}/achievements
# ---------------------------------------------------------------------------


@router.get("/datasets/{dataset_id}/achievements", response_model=AchievementsResponse)
async def get_achievements(
    dataset_id: str,
    session: AsyncSession = Depends(get_session),
    state: EvaluationState = Depends(get_state),
    _: str = Depends(verify_api_key),
    today: str | None = Query(default=None, description="Evaluation day (YYYY-MM-DD, default: today)"),
    tz: str | None = Query(default=None, description="Timezone (e.g. US/Eastern)"),
) -> AchievementsResponse:
    evaluated_on = _parse_date(today, "today") if today else _today(tz or settings.default_tz)
    snapshot = await _load_snapshot(session, state, dataset_id)
    goals = await connector.fetch_goals(session, dataset_id)

    previous = state.results.get(dataset_id)
    results = sort_goal_results(evaluate_goals(goals, snapshot, today=evaluated_on, previous=previous))
    if previous is None and settings.notify_on_first_pass:
        previous = []
    new = diff_new_completions(previous, results)
    state.results[dataset_id] = results

    if new:
        logger.info("Dataset %s: %d new achievement(s)", dataset_id, len(new))

    grouped = group_by_type(results)
    return AchievementsResponse(
        dataset_id=dataset_id,
        evaluated_on=evaluated_on.isoformat(),
        milestones=grouped[GoalType.milestone],
        targets=grouped[GoalType.target],
        goals=grouped[GoalType.goal],
        new=new,
    )
