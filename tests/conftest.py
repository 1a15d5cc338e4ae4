"""Shared fixtures for the test suite."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from tally.db import get_session
from tally.kernel.incremental import AggregateSnapshot, build_aggregates
from tally.kernel.models import (
    Condition,
    DayEntry,
    Goal,
    GoalTarget,
    GoalType,
    Metric,
    Source,
    TimePeriod,
    Tracking,
)
from tally.kernel.router import EvaluationState
from tally.main import app

DATASET_ID = "ds-1"

# ---------------------------------------------------------------------------
# Fake DB session (no real Postgres needed)
# ---------------------------------------------------------------------------

class FakeSession:
    """Minimal stand-in for AsyncSession; answers every query with `rows`."""

    def __init__(self, rows: list[dict[str, Any]] | None = None):
        self._rows = rows or []
        self.executed: list[tuple[str, dict]] = []

    async def execute(self, stmt, params=None):
        self.executed.append((str(stmt), params or {}))
        return FakeResult(self._rows)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass

class FakeResult:
    def __init__(self, rows: list[dict[str, Any]]):
        self._rows = rows
        self._keys = list(rows[0].keys()) if rows else []

    def keys(self):
        return self._keys

    def fetchall(self):
        return [tuple(r[k] for k in self._keys) for r in self._rows]

    def fetchone(self):
        rows = self.fetchall()
        return rows[0] if rows else None

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def fake_session():
    return FakeSession()

@pytest.fixture()
def override_session(fake_session):
    """Override the FastAPI dependency so no real DB is needed."""
    async def _override():
        yield fake_session

    app.dependency_overrides[get_session] = _override
    app.state.evaluations = EvaluationState()
    yield fake_session
    app.dependency_overrides.clear()

@pytest.fixture()
async def client(override_session):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_entry(day: str | date, numbers: list[float], dataset_id: str = DATASET_ID) -> DayEntry:
    key = day.isoformat() if isinstance(day, date) else day
    return DayEntry(date=key, dataset_id=dataset_id, numbers=numbers)

def make_run(start: date, values: list[list[float] | None], dataset_id: str = DATASET_ID) -> list[DayEntry]:
    """One entry per consecutive day from `start`; None leaves a gap."""
    entries = []
    for offset, numbers in enumerate(values):
        if numbers is None:
            continue
        entries.append(make_entry(start + timedelta(days=offset), numbers, dataset_id))
    return entries

def make_goal(
    goal_id: str = "g-1",
    *,
    metric: Metric = Metric.total,
    source: Source = Source.stats,
    condition: Condition = Condition.above,
    value: float = 0.0,
    time_period: TimePeriod = TimePeriod.day,
    count: int = 1,
    consecutive: bool = False,
    goal_type: GoalType = GoalType.goal,
    dataset_id: str = DATASET_ID,
    created_at: int = 0,
) -> Goal:
    return Goal(
        id=goal_id,
        dataset_id=dataset_id,
        created_at=created_at,
        type=goal_type,
        title=goal_id,
        target=GoalTarget(metric=metric, source=source, condition=condition, value=value),
        time_period=time_period,
        count=count,
        consecutive=consecutive,
    )

def snapshot_of(entries: list[DayEntry], tracking: Tracking = Tracking.series) -> AggregateSnapshot:
    return build_aggregates(entries, tracking=tracking, dataset_id=DATASET_ID)
