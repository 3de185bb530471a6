"""
Ledger Service: aggregates

In-memory state of an inventory item and of a project item assignment,
loaded from their rows. All counter arithmetic and validation lives here;
command handlers load an aggregate, call one method, and write the result
back with a compare-and-set.

Item invariant:
    delivered = available + damaged + lost + sum(open assignment remaining)

Assignment invariant:
    damaged + lost + returned <= allocated
"""

from enum import Enum

from .errors import (
    InsufficientAvailable,
    InvalidAssignmentState,
    InvalidQuantity,
    OverAllocation,
)


class ItemKind(str, Enum):
    PRODUCT = "product"
    MATERIAL = "material"


class ItemStatus(str, Enum):
    AVAILABLE = "available"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


class IssueKind(str, Enum):
    DAMAGE = "damage"
    LOSS = "loss"


class AssignmentStatus(str, Enum):
    ALLOCATED = "allocated"
    RETURNED = "returned"


def derive_status(available: int, threshold: int) -> ItemStatus:
    if available == 0:
        return ItemStatus.OUT_OF_STOCK
    if available < threshold:
        return ItemStatus.LOW_STOCK
    return ItemStatus.AVAILABLE


def is_count(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def parse_item_kind(value: str) -> ItemKind:
    try:
        return ItemKind(value)
    except ValueError:
        raise InvalidQuantity(f"Unknown item kind: {value!r}") from None


def parse_issue_kind(value: str) -> IssueKind:
    try:
        return IssueKind(value)
    except ValueError:
        raise InvalidQuantity(f"Unknown issue kind: {value!r}") from None


class InventoryItemAggregate:
    def __init__(self) -> None:
        self.id: str = ""
        self.name: str = ""
        self.kind: ItemKind = ItemKind.PRODUCT
        self.delivered_quantity: int = 0
        self.damaged_quantity: int = 0
        self.lost_quantity: int = 0
        self.available_quantity: int = 0
        self.location_id: str | None = None
        self.version: int = 0

    @classmethod
    def from_row(cls, row) -> "InventoryItemAggregate":
        agg = cls()
        agg.id = row.id
        agg.name = row.name
        agg.kind = ItemKind(row.kind)
        agg.delivered_quantity = row.delivered_quantity
        agg.damaged_quantity = row.damaged_quantity
        agg.lost_quantity = row.lost_quantity
        agg.available_quantity = row.available_quantity
        agg.location_id = row.location_id
        agg.version = row.version
        return agg

    def status(self, threshold: int) -> ItemStatus:
        return derive_status(self.available_quantity, threshold)

    # ── Quantity ledger ──────────────────────────────

    def update_delivered(self, new_delivered: int, open_allocated: int) -> int:
        """
        Set the delivered quantity and recompute available from scratch.

        Returns the delivered delta. open_allocated is the sum of the
        remaining quantity of every open assignment of this item.
        """
        if not is_count(new_delivered) or new_delivered < 0:
            raise InvalidQuantity("Delivered quantity must be a non-negative integer")
        available = (
            new_delivered - self.damaged_quantity - self.lost_quantity - open_allocated
        )
        if available < 0:
            raise InvalidQuantity(
                f"Delivered quantity {new_delivered} is below what is already "
                f"damaged ({self.damaged_quantity}), lost ({self.lost_quantity}) "
                f"or allocated ({open_allocated})"
            )
        delta = new_delivered - self.delivered_quantity
        self.delivered_quantity = new_delivered
        self.available_quantity = available
        return delta

    def report_issue(self, kind: IssueKind, quantity: int) -> None:
        if not is_count(quantity) or quantity <= 0:
            raise InvalidQuantity("Issue quantity must be a positive integer")
        if quantity > self.available_quantity:
            raise InsufficientAvailable(quantity, self.available_quantity)
        if kind is IssueKind.DAMAGE:
            self.damaged_quantity += quantity
        else:
            self.lost_quantity += quantity
        self.available_quantity -= quantity

    # ── Allocation ───────────────────────────────────

    def reserve(self, quantity: int) -> None:
        """Take `quantity` out of available for one project day."""
        if quantity > self.available_quantity:
            raise InsufficientAvailable(quantity, self.available_quantity)
        self.available_quantity -= quantity

    def reconcile_return(self, returned: int, damaged: int, lost: int) -> None:
        """
        Account for units coming back from an assignment.

        Returned units go back to available. Damaged and lost units already
        left available when they were allocated, so they only move into the
        item's damaged/lost counters.
        """
        self.available_quantity += returned
        self.damaged_quantity += damaged
        self.lost_quantity += lost


class AssignmentAggregate:
    def __init__(self) -> None:
        self.id: str = ""
        self.item_id: str = ""
        self.project_day_id: str = ""
        self.allocated_quantity: int = 0
        self.damaged_quantity: int = 0
        self.lost_quantity: int = 0
        self.returned_quantity: int = 0
        self.status: AssignmentStatus = AssignmentStatus.ALLOCATED
        self.version: int = 0

    @classmethod
    def from_row(cls, row) -> "AssignmentAggregate":
        agg = cls()
        agg.id = row.id
        agg.item_id = row.item_id
        agg.project_day_id = row.project_day_id
        agg.allocated_quantity = row.allocated_quantity
        agg.damaged_quantity = row.damaged_quantity
        agg.lost_quantity = row.lost_quantity
        agg.returned_quantity = row.returned_quantity
        agg.status = AssignmentStatus(row.status)
        agg.version = row.version
        return agg

    @property
    def remaining(self) -> int:
        return (
            self.allocated_quantity
            - self.damaged_quantity
            - self.lost_quantity
            - self.returned_quantity
        )

    def record_return(self, returned: int, damaged: int, lost: int) -> None:
        """Apply a partial return; closes the assignment once nothing remains."""
        if self.status is not AssignmentStatus.ALLOCATED:
            raise InvalidAssignmentState(f"Assignment {self.id} is already returned")
        for name, value in (("returned", returned), ("damaged", damaged), ("lost", lost)):
            if not is_count(value) or value < 0:
                raise InvalidQuantity(f"{name} quantity must be a non-negative integer")
        if returned + damaged + lost == 0:
            raise InvalidQuantity("At least one of returned, damaged or lost must be positive")
        if returned + damaged + lost > self.remaining:
            raise OverAllocation(
                f"Assignment {self.id} has {self.remaining} unit(s) outstanding, "
                f"cannot account for {returned + damaged + lost}"
            )
        self.returned_quantity += returned
        self.damaged_quantity += damaged
        self.lost_quantity += lost
        if self.remaining == 0:
            self.status = AssignmentStatus.RETURNED
