"""
Ledger Service: post-commit fan-out

Runs only after the transaction committed:
  1. drop cached state of every touched item
  2. publish each event on the `ledger_events` Redis channel

Redis Pub/Sub is fire-and-forget; the event store is the durable record.
A failed publish is logged and does not undo the committed mutation.
"""

import json
import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from . import cache
from .events import LedgerEvent

logger = logging.getLogger(__name__)

CHANNEL = "ledger_events"


async def publish_committed(
    redis: aioredis.Redis,
    events: list[LedgerEvent],
) -> None:
    for item_id in {e.item_id for e in events if e.item_id}:
        await cache.invalidate_item(redis, item_id)

    for event in events:
        try:
            await redis.publish(
                CHANNEL,
                json.dumps(
                    {
                        "event_type": event.kind.value,
                        "data": event.model_dump(mode="json"),
                    },
                    default=str,
                ),
            )
        except RedisError:
            logger.exception("Failed to publish %s event %s", event.kind.value, event.id)
