from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import repository
from ..schema import ledger_events, project_item_assignments


async def assert_item_balanced(session: AsyncSession, item_id: str) -> None:
    """delivered == available + damaged + lost + open remaining"""
    item = await repository.load_item(session, item_id)
    open_remaining = await repository.open_allocated_total(session, item_id)
    assert item.available_quantity >= 0
    assert item.delivered_quantity == (
        item.available_quantity
        + item.damaged_quantity
        + item.lost_quantity
        + open_remaining
    )

    result = await session.execute(
        select(project_item_assignments).where(
            project_item_assignments.c.item_id == item_id
        )
    )
    for row in result.fetchall():
        assert (
            row.damaged_quantity + row.lost_quantity + row.returned_quantity
            <= row.allocated_quantity
        )


async def count_rows(session: AsyncSession, table, **filters) -> int:
    query = select(table)
    for column, value in filters.items():
        query = query.where(table.c[column] == value)
    result = await session.execute(query)
    return len(result.fetchall())


async def count_events(session: AsyncSession, item_id: str) -> int:
    return await count_rows(session, ledger_events, item_id=item_id)
