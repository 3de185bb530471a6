"""
Ledger Service: event definitions

Each successful ledger mutation is recorded as exactly one LedgerEvent per
affected row. Events are facts: past tense, immutable, never deleted.
The payload models describe what goes into `event_data` for each kind.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class LedgerEventKind(str, Enum):
    DELIVERED_UPDATE = "delivered_update"
    ALLOCATE = "allocate"
    PARTIAL_RETURN = "partial_return"
    DAMAGE = "damage"
    LOSS = "loss"
    LOCATION_MOVE = "location_move"


class DeliveredUpdated(BaseModel):
    """The delivered quantity of an item was set (or the item was created)"""
    item_id: str
    previous_delivered: int
    new_delivered: int
    available_quantity: int


class ItemAllocated(BaseModel):
    """Units were reserved for one project day"""
    item_id: str
    assignment_id: str
    project_day_id: str
    quantity: int
    available_quantity: int


class PartialReturnRecorded(BaseModel):
    """
    Units came back from a project day, possibly damaged or lost.

    The event row's quantity_delta is returned_delta only: that is the change
    to the item's available count. Damaged and lost units were taken out of
    available at allocation time and are recorded here.
    """
    item_id: str
    assignment_id: str
    returned_delta: int
    damaged_delta: int
    lost_delta: int
    remaining: int
    assignment_status: str


class IssueReported(BaseModel):
    """Units in the warehouse were reported damaged or lost"""
    item_id: str
    quantity: int
    available_quantity: int


class LocationMoved(BaseModel):
    """An item changed its resident location"""
    item_id: str
    from_location_id: str | None
    to_location_id: str
    location_name: str


class LedgerEvent(BaseModel):
    """A stored audit record, as returned by the event log"""
    id: str
    sequence: int
    item_id: str | None
    assignment_id: str | None
    kind: LedgerEventKind
    quantity_delta: int
    actor: str
    description: str
    event_data: dict
    created_at: datetime
