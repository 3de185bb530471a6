"""
Ledger Service: event store

Append-only log of every ledger-affecting operation. Events are written in
the same transaction as the quantity change they describe, so a rolled back
mutation never leaves an event behind.

Ordering: (created_at, sequence). `sequence` is assigned by the database and
breaks ties between events written in the same instant.
"""

import json
from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel
from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from .events import LedgerEvent, LedgerEventKind
from .schema import ledger_events


async def append_event(
    session: AsyncSession,
    kind: LedgerEventKind,
    payload: BaseModel,
    *,
    actor: str,
    item_id: str | None = None,
    assignment_id: str | None = None,
    quantity_delta: int = 0,
    description: str = "",
) -> LedgerEvent:
    """
    Append one event inside the caller's transaction.

    The caller commits; nothing here flushes or commits on its own.
    """
    event_id = str(uuid4())
    now = datetime.now(timezone.utc)
    event_data = payload.model_dump(mode="json")
    result = await session.execute(
        insert(ledger_events).values(
            id=event_id,
            item_id=item_id,
            assignment_id=assignment_id,
            kind=kind.value,
            quantity_delta=quantity_delta,
            actor=actor,
            description=description,
            event_data=json.dumps(event_data, default=str),
            created_at=now,
        )
    )
    return LedgerEvent(
        id=event_id,
        sequence=result.inserted_primary_key[0],
        item_id=item_id,
        assignment_id=assignment_id,
        kind=kind,
        quantity_delta=quantity_delta,
        actor=actor,
        description=description,
        event_data=event_data,
        created_at=now,
    )


def _to_event(row) -> LedgerEvent:
    return LedgerEvent(
        id=row.id,
        sequence=row.sequence,
        item_id=row.item_id,
        assignment_id=row.assignment_id,
        kind=LedgerEventKind(row.kind),
        quantity_delta=row.quantity_delta,
        actor=row.actor,
        description=row.description,
        event_data=json.loads(row.event_data)
        if isinstance(row.event_data, str)
        else row.event_data,
        created_at=row.created_at,
    )


async def load_events_by_item(session: AsyncSession, item_id: str) -> list[LedgerEvent]:
    """All events of one item, oldest first."""
    result = await session.execute(
        select(ledger_events)
        .where(ledger_events.c.item_id == item_id)
        .order_by(ledger_events.c.created_at.asc(), ledger_events.c.sequence.asc())
    )
    return [_to_event(row) for row in result.fetchall()]


async def load_events_by_assignment(
    session: AsyncSession, assignment_id: str
) -> list[LedgerEvent]:
    """All events of one assignment, oldest first."""
    result = await session.execute(
        select(ledger_events)
        .where(ledger_events.c.assignment_id == assignment_id)
        .order_by(ledger_events.c.created_at.asc(), ledger_events.c.sequence.asc())
    )
    return [_to_event(row) for row in result.fetchall()]


async def load_recent_events(session: AsyncSession, limit: int = 10) -> list[LedgerEvent]:
    """Latest events across all items, newest first (Recent Activity view)."""
    result = await session.execute(
        select(ledger_events)
        .order_by(ledger_events.c.created_at.desc(), ledger_events.c.sequence.desc())
        .limit(limit)
    )
    return [_to_event(row) for row in result.fetchall()]
