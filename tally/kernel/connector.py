"""Database connector: async access to datasets, day_entries and goals.

Tables:
  datasets     id, name, tracking ('series' | 'trend')
  day_entries  dataset_id, date (date), numbers (JSONB array of numbers)
  goals        id, dataset_id, created_at (bigint ms), type, title,
               description, badge (JSONB), target (JSONB),
               time_period, count, consecutive

The kernel never touches the database; routers fetch here and hand the
resulting models to it.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from tally.kernel.models import DayEntry, Goal, Tracking

logger = logging.getLogger(__name__)


async def fetch_tracking(session: AsyncSession, dataset_id: str) -> Tracking | None:
    """Tracking mode of a dataset, or None when the dataset does not exist."""
    result = await session.execute(
        text("SELECT tracking FROM datasets WHERE id = :dataset_id"),
        {"dataset_id": dataset_id},
    )
    row = result.fetchone()
    if row is None:
        return None
    return Tracking(row[0])


def _row_to_entry(row: dict[str, Any]) -> DayEntry:
    day = row["date"]
    return DayEntry(
        date=day.isoformat() if isinstance(day, date) else str(day),
        dataset_id=row["dataset_id"],
        numbers=list(row.get("numbers") or []),
    )


async def fetch_day_entries(session: AsyncSession, dataset_id: str) -> list[DayEntry]:
    """All non-empty day entries of a dataset, oldest first.

    Returns an empty list when nothing is found; never raises. Rows holding
    non-finite numbers are skipped.
    """
    result = await session.execute(
        text(
            "SELECT dataset_id, date, numbers "
            "FROM day_entries "
            "WHERE dataset_id = :dataset_id "
            "ORDER BY date"
        ),
        {"dataset_id": dataset_id},
    )
    columns = result.keys()
    entries: list[DayEntry] = []
    for r in result.fetchall():
        row = dict(zip(columns, r))
        if not row.get("numbers"):
            continue
        try:
            entries.append(_row_to_entry(row))
        except ValueError:
            logger.warning("Skipping malformed day %s in dataset %s", row.get("date"), dataset_id)
    return entries


async def fetch_goals(session: AsyncSession, dataset_id: str) -> list[Goal]:
    """All goals of a dataset, oldest first. Malformed rows are skipped."""
    result = await session.execute(
        text(
            "SELECT id, dataset_id, created_at, type, title, description, badge, "
            "target, time_period, count, consecutive "
            "FROM goals "
            "WHERE dataset_id = :dataset_id "
            "ORDER BY created_at"
        ),
        {"dataset_id": dataset_id},
    )
    columns = result.keys()
    goals: list[Goal] = []
    for r in result.fetchall():
        row = dict(zip(columns, r))
        row["badge"] = row.get("badge") or {}
        row["consecutive"] = bool(row.get("consecutive"))
        try:
            goals.append(Goal.model_validate(row))
        except ValueError:
            logger.warning("Skipping malformed goal %s in dataset %s", row.get("id"), dataset_id)
    return goals
