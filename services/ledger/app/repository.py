"""
Ledger Service: row access

The only module that knows the table layout. Quantity writes on
inventory_items are compare-and-set on `version`: a write that finds the row
changed since it was read raises ConcurrencyConflict instead of overwriting.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .aggregate import AssignmentAggregate, AssignmentStatus, InventoryItemAggregate
from .errors import ConcurrencyConflict, NotFound
from .schema import inventory_items, project_item_assignments


# ── Inventory items ──────────────────────────────


async def insert_item(
    session: AsyncSession,
    name: str,
    kind: str,
    delivered_quantity: int,
    location_id: str | None,
) -> InventoryItemAggregate:
    item_id = str(uuid4())
    now = datetime.now(timezone.utc)
    await session.execute(
        insert(inventory_items).values(
            id=item_id,
            name=name,
            kind=kind,
            delivered_quantity=delivered_quantity,
            damaged_quantity=0,
            lost_quantity=0,
            available_quantity=delivered_quantity,
            location_id=location_id,
            version=0,
            created_at=now,
            updated_at=now,
        )
    )
    return await load_item(session, item_id)


async def load_item(session: AsyncSession, item_id: str) -> InventoryItemAggregate:
    result = await session.execute(
        select(inventory_items).where(inventory_items.c.id == item_id)
    )
    row = result.fetchone()
    if not row:
        raise NotFound(f"Inventory item {item_id} not found")
    return InventoryItemAggregate.from_row(row)


async def save_item_quantities(
    session: AsyncSession, item: InventoryItemAggregate
) -> None:
    """Write the four quantities back if nobody else touched the row."""
    result = await session.execute(
        update(inventory_items)
        .where(
            inventory_items.c.id == item.id,
            inventory_items.c.version == item.version,
        )
        .values(
            delivered_quantity=item.delivered_quantity,
            damaged_quantity=item.damaged_quantity,
            lost_quantity=item.lost_quantity,
            available_quantity=item.available_quantity,
            version=item.version + 1,
            updated_at=datetime.now(timezone.utc),
        )
    )
    if result.rowcount != 1:
        raise ConcurrencyConflict(item.id, item.version)
    item.version += 1


async def save_item_location(
    session: AsyncSession, item_id: str, location_id: str
) -> None:
    await session.execute(
        update(inventory_items)
        .where(inventory_items.c.id == item_id)
        .values(location_id=location_id, updated_at=datetime.now(timezone.utc))
    )


async def open_allocated_total(session: AsyncSession, item_id: str) -> int:
    """Sum of the outstanding quantity of every open assignment of an item."""
    a = project_item_assignments.c
    result = await session.execute(
        select(
            func.coalesce(
                func.sum(
                    a.allocated_quantity
                    - a.damaged_quantity
                    - a.lost_quantity
                    - a.returned_quantity
                ),
                0,
            )
        ).where(a.item_id == item_id, a.status == AssignmentStatus.ALLOCATED.value)
    )
    return int(result.scalar_one())


# ── Assignments ──────────────────────────────────


async def insert_assignment(
    session: AsyncSession, item_id: str, project_day_id: str, quantity: int
) -> AssignmentAggregate:
    now = datetime.now(timezone.utc)
    agg = AssignmentAggregate()
    agg.id = str(uuid4())
    agg.item_id = item_id
    agg.project_day_id = project_day_id
    agg.allocated_quantity = quantity
    await session.execute(
        insert(project_item_assignments).values(
            id=agg.id,
            item_id=item_id,
            project_day_id=project_day_id,
            allocated_quantity=quantity,
            damaged_quantity=0,
            lost_quantity=0,
            returned_quantity=0,
            status=agg.status.value,
            version=0,
            created_at=now,
            updated_at=now,
        )
    )
    return agg


async def load_assignment(
    session: AsyncSession, assignment_id: str
) -> AssignmentAggregate:
    result = await session.execute(
        select(project_item_assignments).where(
            project_item_assignments.c.id == assignment_id
        )
    )
    row = result.fetchone()
    if not row:
        raise NotFound(f"Assignment {assignment_id} not found")
    return AssignmentAggregate.from_row(row)


async def save_assignment(
    session: AsyncSession, assignment: AssignmentAggregate
) -> None:
    """
    Persist counters and status if nobody else touched the row.

    Compare-and-set on `version`, like save_item_quantities: a return computed
    from counters that another transaction has since changed is a conflict.
    """
    result = await session.execute(
        update(project_item_assignments)
        .where(
            project_item_assignments.c.id == assignment.id,
            project_item_assignments.c.status == AssignmentStatus.ALLOCATED.value,
            project_item_assignments.c.version == assignment.version,
        )
        .values(
            damaged_quantity=assignment.damaged_quantity,
            lost_quantity=assignment.lost_quantity,
            returned_quantity=assignment.returned_quantity,
            status=assignment.status.value,
            version=assignment.version + 1,
            updated_at=datetime.now(timezone.utc),
        )
    )
    if result.rowcount != 1:
        raise ConcurrencyConflict(assignment.item_id, assignment.version)
    assignment.version += 1
