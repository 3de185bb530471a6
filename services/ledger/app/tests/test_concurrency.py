import asyncio

import pytest

from .. import allocation, event_store, ledger, repository
from ..errors import InsufficientAvailable, OverAllocation
from ..events import LedgerEventKind
from ..schema import ledger_events, project_item_assignments
from .utils import assert_item_balanced, count_events, count_rows


async def _seed(session_factory, redis, delivered, allocate_qty=None):
    async with session_factory() as session:
        item = await ledger.create_item(session, redis, "Scaffold clamp", "product", delivered)
        assignment = None
        if allocate_qty:
            (assignment,) = await allocation.allocate(
                session, redis, item.id, ["day-1"], allocate_qty
            )
    return item, assignment


async def test_concurrent_allocations_cannot_overdraw(file_session_factory, redis):
    # given
    item, _ = await _seed(file_session_factory, redis, delivered=10)

    async def allocate_one(day_id):
        async with file_session_factory() as session:
            return await allocation.allocate(session, redis, item.id, [day_id], 3)

    # when
    results = await asyncio.gather(
        *(allocate_one(f"day-{n}") for n in range(5)), return_exceptions=True
    )

    # then
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 2
    assert all(isinstance(f, InsufficientAvailable) for f in failures)
    async with file_session_factory() as session:
        stored = await repository.load_item(session, item.id)
        assert stored.available_quantity == 1
        assert await count_rows(session, project_item_assignments, item_id=item.id) == 3
        assert await count_rows(
            session, ledger_events, item_id=item.id, kind=LedgerEventKind.ALLOCATE.value
        ) == 3
        await assert_item_balanced(session, item.id)


async def test_return_racing_another_return_is_rejected(
    file_session_factory, redis, monkeypatch
):
    # given
    item, assignment = await _seed(file_session_factory, redis, delivered=10, allocate_qty=10)
    load_item = repository.load_item
    interleaved = []

    async def load_item_after_other_return(session, item_id):
        if not interleaved:
            interleaved.append(item_id)
            async with file_session_factory() as other:
                await allocation.record_partial_return(
                    other, redis, assignment.id, returned_delta=8
                )
        return await load_item(session, item_id)

    monkeypatch.setattr(repository, "load_item", load_item_after_other_return)

    # when
    async with file_session_factory() as session:
        with pytest.raises(OverAllocation):
            await allocation.record_partial_return(
                session, redis, assignment.id, returned_delta=8
            )

    # then
    async with file_session_factory() as session:
        stored = await repository.load_item(session, item.id)
        assert stored.available_quantity == 8
        returned = await repository.load_assignment(session, assignment.id)
        assert returned.returned_quantity == 8
        assert returned.remaining == 2
        await assert_item_balanced(session, item.id)


async def test_concurrent_returns_on_one_assignment(file_session_factory, redis):
    # given
    item, assignment = await _seed(file_session_factory, redis, delivered=10, allocate_qty=10)

    async def return_eight():
        async with file_session_factory() as session:
            return await allocation.record_partial_return(
                session, redis, assignment.id, returned_delta=8
            )

    # when
    results = await asyncio.gather(return_eight(), return_eight(), return_exceptions=True)

    # then
    assert sum(isinstance(r, OverAllocation) for r in results) == 1
    async with file_session_factory() as session:
        stored = await repository.load_item(session, item.id)
        assert stored.available_quantity == 8
        await assert_item_balanced(session, item.id)


async def test_cancelled_batch_leaves_nothing_behind(
    file_session_factory, redis, monkeypatch
):
    # given
    item, _ = await _seed(file_session_factory, redis, delivered=10)
    append_event = event_store.append_event
    appended = []
    stalled = asyncio.Event()

    async def append_then_stall(*args, **kwargs):
        event = await append_event(*args, **kwargs)
        appended.append(event)
        if len(appended) == 2:
            stalled.set()
            await asyncio.Event().wait()
        return event

    monkeypatch.setattr(event_store, "append_event", append_then_stall)

    # when
    async with file_session_factory() as session:
        task = asyncio.create_task(
            allocation.allocate(session, redis, item.id, ["day-1", "day-2", "day-3"], 2)
        )
        await stalled.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        # then
        assert not session.in_transaction()

    monkeypatch.setattr(event_store, "append_event", append_event)
    async with file_session_factory() as session:
        stored = await repository.load_item(session, item.id)
        assert stored.available_quantity == 10
        assert await count_rows(session, project_item_assignments, item_id=item.id) == 0
        assert await count_events(session, item.id) == 1
        await allocation.allocate(session, redis, item.id, ["day-1"], 10)
        await assert_item_balanced(session, item.id)
