"""
Ledger Service: allocation engine (CQRS write side)

Reserves item units for project days and reconciles what comes back.

Batch allocation is all-or-nothing:

    allocate(item, [D1, D2, D3], qty)
      ├─ D1: reserve qty from running available → assignment A1
      ├─ D2: reserve qty from running available → assignment A2
      └─ D3: not enough left → InsufficientAvailable
             the whole transaction is rolled back, A1/A2 never existed

The engine only knows explicit day ids. "Apply to all days" is expanded by
the caller before it gets here.
"""

import logging
from collections.abc import Callable

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from . import event_store, publisher, repository, storage
from .aggregate import AssignmentAggregate, is_count
from .errors import InvalidQuantity
from .events import ItemAllocated, LedgerEventKind, PartialReturnRecorded

logger = logging.getLogger(__name__)


def _unique_in_order(values) -> list[str]:
    seen = set()
    result = []
    for value in values:
        key = str(value)
        if key not in seen:
            seen.add(key)
            result.append(key)
    return result


async def allocate(
    session: AsyncSession,
    redis: aioredis.Redis,
    item_id: str,
    project_day_ids: list[str],
    quantity_per_day: int,
    actor: str = "system",
) -> list[AssignmentAggregate]:
    """
    Allocate `quantity_per_day` units of an item to each day, in caller order.

    1. reserve from the running available count, day by day
    2. one assignment + one `allocate` event per day
    3. one compare-and-set on the item for the whole batch
    Any failure rolls back every step of the batch.
    """
    if not is_count(quantity_per_day) or quantity_per_day <= 0:
        raise InvalidQuantity("Quantity per day must be a positive integer")
    day_ids = _unique_in_order(project_day_ids)
    if not day_ids:
        raise InvalidQuantity("At least one project day is required")

    async def operation():
        item = await repository.load_item(session, item_id)
        assignments = []
        events = []
        for day_id in day_ids:
            item.reserve(quantity_per_day)
            assignment = await repository.insert_assignment(
                session, item.id, day_id, quantity_per_day
            )
            assignments.append(assignment)
            events.append(
                await event_store.append_event(
                    session,
                    LedgerEventKind.ALLOCATE,
                    ItemAllocated(
                        item_id=item.id,
                        assignment_id=assignment.id,
                        project_day_id=day_id,
                        quantity=quantity_per_day,
                        available_quantity=item.available_quantity,
                    ),
                    actor=actor,
                    item_id=item.id,
                    assignment_id=assignment.id,
                    quantity_delta=-quantity_per_day,
                    description=f"Allocated {quantity_per_day} unit(s) to day {day_id}",
                )
            )
        await repository.save_item_quantities(session, item)
        return item, assignments, events

    item, assignments, events = await storage.run_transaction(session, operation)
    logger.info(
        "Allocated item %s: %d day(s) x %d, available=%d",
        item.id, len(assignments), quantity_per_day, item.available_quantity,
    )
    await publisher.publish_committed(redis, events)
    return assignments


async def _reconcile(
    session: AsyncSession,
    redis: aioredis.Redis,
    assignment_id: str,
    deltas: Callable[[AssignmentAggregate], tuple[int, int, int]],
    actor: str,
    description: str,
) -> AssignmentAggregate:
    async def operation():
        assignment = await repository.load_assignment(session, assignment_id)
        returned, damaged, lost = deltas(assignment)
        assignment.record_return(returned, damaged, lost)
        item = await repository.load_item(session, assignment.item_id)
        item.reconcile_return(returned, damaged, lost)
        await repository.save_assignment(session, assignment)
        await repository.save_item_quantities(session, item)
        event = await event_store.append_event(
            session,
            LedgerEventKind.PARTIAL_RETURN,
            PartialReturnRecorded(
                item_id=item.id,
                assignment_id=assignment.id,
                returned_delta=returned,
                damaged_delta=damaged,
                lost_delta=lost,
                remaining=assignment.remaining,
                assignment_status=assignment.status.value,
            ),
            actor=actor,
            item_id=item.id,
            assignment_id=assignment.id,
            # available changes by returned only; damaged/lost live in event_data
            quantity_delta=returned,
            description=description
            or f"Returned {returned}, damaged {damaged}, lost {lost}",
        )
        return assignment, event

    assignment, event = await storage.run_transaction(session, operation)
    logger.info(
        "Assignment %s: returned=%d damaged=%d lost=%d remaining=%d status=%s",
        assignment.id,
        event.event_data["returned_delta"],
        event.event_data["damaged_delta"],
        event.event_data["lost_delta"],
        assignment.remaining,
        assignment.status.value,
    )
    await publisher.publish_committed(redis, [event])
    return assignment


async def record_partial_return(
    session: AsyncSession,
    redis: aioredis.Redis,
    assignment_id: str,
    returned_delta: int = 0,
    damaged_delta: int = 0,
    lost_delta: int = 0,
    actor: str = "system",
    description: str = "",
) -> AssignmentAggregate:
    """
    Record units coming back from a project day.

    Returned units go back to the item's available count; damaged and lost
    units are added to the item's counters. The assignment closes itself when
    nothing is left outstanding.
    """
    return await _reconcile(
        session,
        redis,
        assignment_id,
        lambda _: (returned_delta, damaged_delta, lost_delta),
        actor,
        description,
    )


async def close_assignment(
    session: AsyncSession,
    redis: aioredis.Redis,
    assignment_id: str,
    actor: str = "system",
) -> AssignmentAggregate:
    """Return everything still outstanding on an assignment."""
    return await _reconcile(
        session,
        redis,
        assignment_id,
        lambda assignment: (assignment.remaining, 0, 0),
        actor,
        "Closed, remaining units returned",
    )
