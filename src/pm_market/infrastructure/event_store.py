"""Append-only market event store (market_events table).

Rows are written within the caller's transaction so an operation's events commit
or roll back together with it.
"""

import json
from collections.abc import Sequence
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_common.datetime_utils import from_unix
from src.pm_market.domain.events import MarketEvent

_INSERT_EVENT_SQL = text("""
    INSERT INTO market_events (market_id, seq, event_type, payload, created_at)
    VALUES (:market_id, :seq, :event_type, :payload, :created_at)
""")

_SELECT_EVENTS_SQL = text("""
    SELECT market_id, seq, event_type, payload, created_at
    FROM market_events
    WHERE market_id = :market_id AND seq > :after_seq
    ORDER BY seq ASC
    LIMIT :limit
""")


async def write_market_events(events: Sequence[MarketEvent], db: AsyncSession) -> None:
    """Insert one row per event within the caller's transaction."""
    for event in events:
        await db.execute(
            _INSERT_EVENT_SQL,
            {
                "market_id": event.market_id,
                "seq": event.seq,
                "event_type": event.event_type.value,
                "payload": json.dumps(event.payload),
                "created_at": from_unix(event.at),
            },
        )


async def read_market_events(
    db: AsyncSession, market_id: str, after_seq: int = 0, limit: int = 100
) -> list[dict[str, Any]]:
    rows = (
        await db.execute(
            _SELECT_EVENTS_SQL,
            {"market_id": market_id, "after_seq": after_seq, "limit": limit},
        )
    ).fetchall()
    result: list[dict[str, Any]] = []
    for row in rows:
        row_any: Any = row
        payload = row_any.payload
        if isinstance(payload, str):
            payload = json.loads(payload)
        result.append(
            {
                "market_id": row_any.market_id,
                "seq": row_any.seq,
                "event_type": row_any.event_type,
                "payload": payload,
                "created_at": row_any.created_at.isoformat(),
            }
        )
    return result
