import pytest

from .. import allocation, event_store, locations, repository
from ..errors import NotFound
from ..events import LedgerEventKind


async def test_move_location(session, redis, location_directory, make_item):
    # given
    item = await make_item(delivered=10, location_id="wh-north")

    # when
    moved = await locations.move_location(
        session, redis, location_directory, item.id, "office-1", actor="tester"
    )

    # then
    assert moved.location_id == "office-1"
    stored = await repository.load_item(session, item.id)
    assert stored.location_id == "office-1"
    assert stored.available_quantity == 10
    event = (await event_store.load_events_by_item(session, item.id))[-1]
    assert event.kind is LedgerEventKind.LOCATION_MOVE
    assert event.quantity_delta == 0
    assert event.event_data["from_location_id"] == "wh-north"
    assert event.event_data["to_location_id"] == "office-1"


async def test_move_keeps_version_so_allocations_do_not_conflict(
    session, redis, location_directory, make_item
):
    # given
    item = await make_item(delivered=10)
    before = await repository.load_item(session, item.id)

    # when
    await locations.move_location(session, redis, location_directory, item.id, "wh-north")

    # then
    after = await repository.load_item(session, item.id)
    assert after.version == before.version
    await allocation.allocate(session, redis, item.id, ["day-1"], 3)


async def test_move_to_unknown_location(session, redis, location_directory, make_item):
    # given
    item = await make_item(delivered=10, location_id="wh-north")

    # when
    with pytest.raises(NotFound):
        await locations.move_location(session, redis, location_directory, item.id, "mars")

    # then
    stored = await repository.load_item(session, item.id)
    assert stored.location_id == "wh-north"


async def test_move_missing_item(session, redis, location_directory):
    with pytest.raises(NotFound):
        await locations.move_location(session, redis, location_directory, "missing", "wh-north")
