"""
Ledger Service: query handlers (CQRS read side)
"""

import redis.asyncio as aioredis
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from . import cache, config, repository, storage
from .aggregate import AssignmentAggregate, InventoryItemAggregate
from .schema import inventory_items, project_item_assignments


def item_state(item: InventoryItemAggregate, threshold: int) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "kind": item.kind.value,
        "delivered": item.delivered_quantity,
        "available": item.available_quantity,
        "damaged": item.damaged_quantity,
        "lost": item.lost_quantity,
        "status": item.status(threshold).value,
        "location_id": item.location_id,
    }


def assignment_state(assignment: AssignmentAggregate) -> dict:
    return {
        "id": assignment.id,
        "item_id": assignment.item_id,
        "project_day_id": assignment.project_day_id,
        "allocated_quantity": assignment.allocated_quantity,
        "damaged_quantity": assignment.damaged_quantity,
        "lost_quantity": assignment.lost_quantity,
        "returned_quantity": assignment.returned_quantity,
        "remaining": assignment.remaining,
        "status": assignment.status.value,
    }


async def get_item(
    session: AsyncSession,
    redis: aioredis.Redis,
    item_id: str,
) -> dict:
    """Item state, served from the Redis cache when present."""
    cached = await cache.get_item(redis, item_id)
    if cached is not None:
        return cached
    generation = await cache.get_generation(redis, item_id)
    item = await storage.run_query(session, lambda: repository.load_item(session, item_id))
    state = item_state(item, config.LOW_STOCK_THRESHOLD)
    await cache.set_item(redis, item_id, state, config.ITEM_CACHE_TTL, generation)
    return state


async def get_assignment(session: AsyncSession, assignment_id: str) -> dict:
    assignment = await storage.run_query(
        session, lambda: repository.load_assignment(session, assignment_id)
    )
    return assignment_state(assignment)


async def list_assignments_for_item(session: AsyncSession, item_id: str) -> list[dict]:
    async def operation():
        await repository.load_item(session, item_id)
        result = await session.execute(
            select(project_item_assignments)
            .where(project_item_assignments.c.item_id == item_id)
            .order_by(project_item_assignments.c.created_at.asc())
        )
        return [
            assignment_state(AssignmentAggregate.from_row(row))
            for row in result.fetchall()
        ]

    return await storage.run_query(session, operation)


async def list_low_stock_items(
    session: AsyncSession,
    threshold: int | None = None,
    limit: int = 10,
) -> list[dict]:
    """Items below the low-stock threshold, emptiest first."""
    threshold = config.LOW_STOCK_THRESHOLD if threshold is None else threshold

    async def operation():
        result = await session.execute(
            select(inventory_items)
            .where(inventory_items.c.available_quantity < threshold)
            .order_by(
                inventory_items.c.available_quantity.asc(),
                inventory_items.c.name.asc(),
            )
            .limit(limit)
        )
        return [
            item_state(InventoryItemAggregate.from_row(row), threshold)
            for row in result.fetchall()
        ]

    return await storage.run_query(session, operation)


async def inventory_summary(session: AsyncSession) -> list[dict]:
    """Per-kind item count and quantity totals."""
    i = inventory_items.c

    async def operation():
        result = await session.execute(
            select(
                i.kind,
                func.count().label("item_count"),
                func.coalesce(func.sum(i.delivered_quantity), 0).label("total_delivered"),
                func.coalesce(func.sum(i.available_quantity), 0).label("total_available"),
                func.coalesce(func.sum(i.damaged_quantity), 0).label("total_damaged"),
                func.coalesce(func.sum(i.lost_quantity), 0).label("total_lost"),
            )
            .group_by(i.kind)
            .order_by(i.kind)
        )
        return [
            {
                "kind": row.kind,
                "item_count": row.item_count,
                "total_delivered": int(row.total_delivered),
                "total_available": int(row.total_available),
                "total_damaged": int(row.total_damaged),
                "total_lost": int(row.total_lost),
            }
            for row in result.fetchall()
        ]

    return await storage.run_query(session, operation)
