"""
Ledger Service: location transfer

Moves an item to another resident location. Pure metadata: quantities and
the item's version are left alone, so a move never conflicts with an
allocation running on the same item.
"""

import logging

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from . import event_store, publisher, repository, storage
from .aggregate import InventoryItemAggregate
from .directory import LocationDirectory
from .events import LedgerEventKind, LocationMoved

logger = logging.getLogger(__name__)


async def move_location(
    session: AsyncSession,
    redis: aioredis.Redis,
    locations: LocationDirectory,
    item_id: str,
    new_location_id: str,
    actor: str = "system",
) -> InventoryItemAggregate:
    """
    1. resolve the target through the location directory (NotFound if unknown)
    2. set the item's location and append a `location_move` event
    """
    location = await locations.resolve_location(new_location_id)

    async def operation():
        item = await repository.load_item(session, item_id)
        previous = item.location_id
        await repository.save_item_location(session, item.id, location.id)
        item.location_id = location.id
        event = await event_store.append_event(
            session,
            LedgerEventKind.LOCATION_MOVE,
            LocationMoved(
                item_id=item.id,
                from_location_id=previous,
                to_location_id=location.id,
                location_name=location.name,
            ),
            actor=actor,
            item_id=item.id,
            description=f"Moved to {location.name or location.id}",
        )
        return item, event

    item, event = await storage.run_transaction(session, operation)
    logger.info("Item %s moved to location %s", item.id, item.location_id)
    await publisher.publish_committed(redis, [event])
    return item
