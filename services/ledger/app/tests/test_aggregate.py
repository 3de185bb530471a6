import pytest

from ..aggregate import (
    AssignmentAggregate,
    AssignmentStatus,
    InventoryItemAggregate,
    IssueKind,
    ItemStatus,
    derive_status,
    parse_issue_kind,
    parse_item_kind,
)
from ..errors import (
    InsufficientAvailable,
    InvalidAssignmentState,
    InvalidQuantity,
    OverAllocation,
)


def _item(delivered=100, available=100, damaged=0, lost=0):
    item = InventoryItemAggregate()
    item.id = "item-1"
    item.delivered_quantity = delivered
    item.available_quantity = available
    item.damaged_quantity = damaged
    item.lost_quantity = lost
    return item


def _assignment(allocated=20, damaged=0, lost=0, returned=0):
    assignment = AssignmentAggregate()
    assignment.id = "asg-1"
    assignment.item_id = "item-1"
    assignment.allocated_quantity = allocated
    assignment.damaged_quantity = damaged
    assignment.lost_quantity = lost
    assignment.returned_quantity = returned
    return assignment


@pytest.mark.parametrize(
    ("available", "expected"),
    [
        (0, ItemStatus.OUT_OF_STOCK),
        (1, ItemStatus.LOW_STOCK),
        (7, ItemStatus.LOW_STOCK),
        (10, ItemStatus.AVAILABLE),
        (50, ItemStatus.AVAILABLE),
    ],
)
def test_derive_status_with_default_threshold(available, expected):
    assert derive_status(available, 10) is expected


def test_derive_status_respects_custom_threshold():
    assert derive_status(15, 20) is ItemStatus.LOW_STOCK
    assert derive_status(15, 5) is ItemStatus.AVAILABLE


def test_unknown_kinds_are_rejected():
    with pytest.raises(InvalidQuantity):
        parse_item_kind("tool")
    with pytest.raises(InvalidQuantity):
        parse_issue_kind("theft")
    assert parse_item_kind("material") is not None
    assert parse_issue_kind("loss") is IssueKind.LOSS


def test_update_delivered_recomputes_available_from_components():
    item = _item(delivered=100, available=60, damaged=5, lost=5)

    delta = item.update_delivered(120, open_allocated=30)

    assert delta == 20
    assert item.delivered_quantity == 120
    assert item.available_quantity == 120 - 5 - 5 - 30


def test_update_delivered_rejects_negative_and_non_integers():
    item = _item()
    with pytest.raises(InvalidQuantity):
        item.update_delivered(-1, open_allocated=0)
    with pytest.raises(InvalidQuantity):
        item.update_delivered(2.5, open_allocated=0)
    assert item.delivered_quantity == 100


def test_update_delivered_cannot_drop_below_committed_units():
    item = _item(delivered=100, available=50, damaged=10, lost=10)

    with pytest.raises(InvalidQuantity):
        item.update_delivered(40, open_allocated=30)

    assert item.delivered_quantity == 100
    assert item.available_quantity == 50


def test_report_issue_moves_units_out_of_available():
    item = _item(delivered=50, available=50)

    item.report_issue(IssueKind.DAMAGE, 3)
    item.report_issue(IssueKind.LOSS, 2)

    assert item.damaged_quantity == 3
    assert item.lost_quantity == 2
    assert item.available_quantity == 45


@pytest.mark.parametrize("quantity", [0, -4, True])
def test_report_issue_requires_positive_quantity(quantity):
    with pytest.raises(InvalidQuantity):
        _item().report_issue(IssueKind.DAMAGE, quantity)


def test_report_issue_more_than_available():
    item = _item(delivered=50, available=50)

    with pytest.raises(InsufficientAvailable) as exc_info:
        item.report_issue(IssueKind.LOSS, 200)

    assert exc_info.value.requested == 200
    assert exc_info.value.available == 50
    assert item.lost_quantity == 0


def test_reserve_takes_from_running_available():
    item = _item(delivered=5, available=5)

    item.reserve(2)
    item.reserve(2)
    with pytest.raises(InsufficientAvailable):
        item.reserve(2)

    assert item.available_quantity == 1


def test_reconcile_return_only_credits_returned_units():
    item = _item(delivered=100, available=60)

    item.reconcile_return(15, 5, 0)

    assert item.available_quantity == 75
    assert item.damaged_quantity == 5


def test_record_return_closes_when_nothing_remains():
    assignment = _assignment(allocated=20)

    assignment.record_return(15, 5, 0)

    assert assignment.remaining == 0
    assert assignment.status is AssignmentStatus.RETURNED


def test_partial_return_keeps_assignment_open():
    assignment = _assignment(allocated=20)

    assignment.record_return(5, 1, 1)

    assert assignment.remaining == 13
    assert assignment.status is AssignmentStatus.ALLOCATED


def test_record_return_rejects_over_allocation():
    assignment = _assignment(allocated=20, returned=10)

    with pytest.raises(OverAllocation):
        assignment.record_return(8, 3, 0)

    assert assignment.returned_quantity == 10
    assert assignment.damaged_quantity == 0


def test_record_return_on_returned_assignment():
    assignment = _assignment(allocated=20, returned=20)
    assignment.status = AssignmentStatus.RETURNED

    with pytest.raises(InvalidAssignmentState):
        assignment.record_return(1, 0, 0)


@pytest.mark.parametrize("deltas", [(0, 0, 0), (-1, 2, 0), (1, 0, -1)])
def test_record_return_rejects_empty_or_negative_deltas(deltas):
    with pytest.raises(InvalidQuantity):
        _assignment().record_return(*deltas)
