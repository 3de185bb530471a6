"""
Ledger Service: item state cache

Read-through cache of GET /items/{id} in Redis. The database stays the system
of record: entries expire after ITEM_CACHE_TTL seconds, and every committed
mutation bumps the item's generation and deletes the entry.

A fill only lands if the generation it read before going to the database is
still current:

  reader                          writer
  gen = 3
  SELECT item (old row)
                                  COMMIT
                                  INCR gen -> 4, DEL entry
  WATCH gen; gen != 3 -> skip

A Redis failure only costs a database read.
"""

import json
import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError, WatchError

logger = logging.getLogger(__name__)


def item_key(item_id: str) -> str:
    return f"ledger:item:{item_id}"


def generation_key(item_id: str) -> str:
    return f"ledger:item:{item_id}:gen"


async def get_item(redis: aioredis.Redis, item_id: str) -> dict | None:
    try:
        raw = await redis.get(item_key(item_id))
    except RedisError:
        logger.warning("Item cache read failed for %s", item_id, exc_info=True)
        return None
    if raw is None:
        return None
    return json.loads(raw)


async def get_generation(redis: aioredis.Redis, item_id: str) -> str | None:
    """Current generation of an item; read before loading the row to cache."""
    try:
        return await redis.get(generation_key(item_id))
    except RedisError:
        logger.warning("Item generation read failed for %s", item_id, exc_info=True)
        return None


async def set_item(
    redis: aioredis.Redis,
    item_id: str,
    state: dict,
    ttl: int,
    generation: str | None,
) -> bool:
    """Store `state` unless the item was mutated since `generation` was read."""
    gen_key = generation_key(item_id)
    try:
        async with redis.pipeline(transaction=True) as pipe:
            await pipe.watch(gen_key)
            if await pipe.get(gen_key) != generation:
                logger.debug("Skipped stale cache fill for %s", item_id)
                return False
            pipe.multi()
            pipe.set(item_key(item_id), json.dumps(state, default=str), ex=ttl)
            await pipe.execute()
            return True
    except WatchError:
        logger.debug("Skipped cache fill for %s, item changed meanwhile", item_id)
        return False
    except RedisError:
        logger.warning("Item cache write failed for %s", item_id, exc_info=True)
        return False


async def invalidate_item(redis: aioredis.Redis, item_id: str) -> None:
    try:
        await redis.incr(generation_key(item_id))
        await redis.delete(item_key(item_id))
    except RedisError:
        logger.exception("Item cache invalidation failed for %s", item_id)
