"""
Ledger Service: table definitions

Three tables:
  inventory_items           one row per physical item, owns the quantities
  project_item_assignments  one row per (item, project day) allocation
  ledger_events             append-only audit log
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)
from sqlalchemy.ext.asyncio import AsyncEngine

metadata = MetaData()

inventory_items = Table(
    "inventory_items",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("kind", String(16), nullable=False),
    Column("delivered_quantity", Integer, nullable=False, default=0),
    Column("damaged_quantity", Integer, nullable=False, default=0),
    Column("lost_quantity", Integer, nullable=False, default=0),
    Column("available_quantity", Integer, nullable=False, default=0),
    Column("location_id", String(64), nullable=True),
    Column("version", Integer, nullable=False, default=0),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    CheckConstraint("delivered_quantity >= 0", name="ck_item_delivered_non_negative"),
    CheckConstraint("damaged_quantity >= 0", name="ck_item_damaged_non_negative"),
    CheckConstraint("lost_quantity >= 0", name="ck_item_lost_non_negative"),
    CheckConstraint("available_quantity >= 0", name="ck_item_available_non_negative"),
)

project_item_assignments = Table(
    "project_item_assignments",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("item_id", String(36), nullable=False, index=True),
    Column("project_day_id", String(64), nullable=False, index=True),
    Column("allocated_quantity", Integer, nullable=False),
    Column("damaged_quantity", Integer, nullable=False, default=0),
    Column("lost_quantity", Integer, nullable=False, default=0),
    Column("returned_quantity", Integer, nullable=False, default=0),
    Column("status", String(16), nullable=False),
    Column("version", Integer, nullable=False, default=0),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    CheckConstraint("allocated_quantity > 0", name="ck_assignment_allocated_positive"),
    CheckConstraint(
        "damaged_quantity + lost_quantity + returned_quantity <= allocated_quantity",
        name="ck_assignment_within_allocated",
    ),
)

ledger_events = Table(
    "ledger_events",
    metadata,
    Column("sequence", Integer, primary_key=True, autoincrement=True),
    Column("id", String(36), nullable=False, unique=True),
    Column("item_id", String(36), nullable=True),
    Column("assignment_id", String(36), nullable=True),
    Column("kind", String(32), nullable=False),
    Column("quantity_delta", Integer, nullable=False, default=0),
    Column("actor", String(128), nullable=False),
    Column("description", Text, nullable=False, default=""),
    Column("event_data", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Index("ix_ledger_events_item", "item_id", "created_at"),
    Index("ix_ledger_events_assignment", "assignment_id", "created_at"),
)


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
