"""
Ledger Service: quantity ledger command handlers (CQRS write side)

The only code path that writes delivered/damaged/lost/available on an
inventory item outside of allocation. Every handler:

  1. loads the item row inside a transaction
  2. applies the change on the aggregate (validation happens here)
  3. writes it back with a version compare-and-set
  4. appends the matching event in the same transaction
  5. after commit, invalidates the cache and publishes the event
"""

import logging

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from . import event_store, publisher, repository, storage
from .aggregate import (
    InventoryItemAggregate,
    IssueKind,
    is_count,
    parse_issue_kind,
    parse_item_kind,
)
from .errors import InvalidQuantity
from .events import DeliveredUpdated, IssueReported, LedgerEventKind

logger = logging.getLogger(__name__)


async def create_item(
    session: AsyncSession,
    redis: aioredis.Redis,
    name: str,
    kind: str,
    delivered_quantity: int = 0,
    location_id: str | None = None,
    actor: str = "system",
) -> InventoryItemAggregate:
    """Register a new item; available starts equal to delivered."""
    item_kind = parse_item_kind(kind)
    if not is_count(delivered_quantity) or delivered_quantity < 0:
        raise InvalidQuantity("Delivered quantity must be a non-negative integer")

    async def operation():
        item = await repository.insert_item(
            session, name, item_kind.value, delivered_quantity, location_id
        )
        events = []
        if delivered_quantity > 0:
            events.append(
                await event_store.append_event(
                    session,
                    LedgerEventKind.DELIVERED_UPDATE,
                    DeliveredUpdated(
                        item_id=item.id,
                        previous_delivered=0,
                        new_delivered=delivered_quantity,
                        available_quantity=item.available_quantity,
                    ),
                    actor=actor,
                    item_id=item.id,
                    quantity_delta=delivered_quantity,
                    description=f"Initial delivery of {delivered_quantity} unit(s)",
                )
            )
        return item, events

    item, events = await storage.run_transaction(session, operation)
    logger.info(
        "Created %s item %s (%s) delivered=%d",
        item.kind.value, item.id, item.name, delivered_quantity,
    )
    await publisher.publish_committed(redis, events)
    return item


async def update_delivered(
    session: AsyncSession,
    redis: aioredis.Redis,
    item_id: str,
    new_delivered: int,
    actor: str = "system",
) -> InventoryItemAggregate:
    """
    Set the total delivered quantity of an item.

    available is recomputed as
    new_delivered - damaged - lost - sum(open assignment remaining);
    a delivered count that would push it below zero is rejected.
    """

    async def operation():
        item = await repository.load_item(session, item_id)
        open_allocated = await repository.open_allocated_total(session, item_id)
        previous = item.delivered_quantity
        delta = item.update_delivered(new_delivered, open_allocated)
        await repository.save_item_quantities(session, item)
        event = await event_store.append_event(
            session,
            LedgerEventKind.DELIVERED_UPDATE,
            DeliveredUpdated(
                item_id=item.id,
                previous_delivered=previous,
                new_delivered=new_delivered,
                available_quantity=item.available_quantity,
            ),
            actor=actor,
            item_id=item.id,
            quantity_delta=delta,
            description=f"Delivered quantity changed from {previous} to {new_delivered}",
        )
        return item, event

    item, event = await storage.run_transaction(session, operation)
    logger.info(
        "Item %s delivered=%d available=%d",
        item.id, item.delivered_quantity, item.available_quantity,
    )
    await publisher.publish_committed(redis, [event])
    return item


async def report_issue(
    session: AsyncSession,
    redis: aioredis.Redis,
    item_id: str,
    kind: str,
    quantity: int,
    description: str = "",
    actor: str = "system",
) -> InventoryItemAggregate:
    """Move warehouse units from available into damaged or lost."""
    issue_kind = parse_issue_kind(kind)
    event_kind = (
        LedgerEventKind.DAMAGE if issue_kind is IssueKind.DAMAGE else LedgerEventKind.LOSS
    )

    async def operation():
        item = await repository.load_item(session, item_id)
        item.report_issue(issue_kind, quantity)
        await repository.save_item_quantities(session, item)
        event = await event_store.append_event(
            session,
            event_kind,
            IssueReported(
                item_id=item.id,
                quantity=quantity,
                available_quantity=item.available_quantity,
            ),
            actor=actor,
            item_id=item.id,
            quantity_delta=-quantity,
            description=description,
        )
        return item, event

    item, event = await storage.run_transaction(session, operation)
    logger.info("Item %s reported %s of %d unit(s)", item.id, issue_kind.value, quantity)
    await publisher.publish_committed(redis, [event])
    return item
