"""
Ledger Service: FastAPI entry point

Inventory allocation and quantity-reconciliation ledger. Command endpoints
(POST /commands/...) change quantities, query endpoints (GET) read them.
Every response uses the same envelope:

    {"ok": true,  "data": ...,        "message": "..."}
    {"ok": false, "error_kind": "...", "message": "..."}
"""

import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from uuid import UUID

import httpx
import redis.asyncio as aioredis
import uvicorn
from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from . import allocation, config, event_store, ledger, locations, queries, storage
from .directory import LocationDirectory, ProjectDirectory
from .errors import InvalidRequest, LedgerError
from .schema import create_tables

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger("ledger")

engine = create_async_engine(config.DATABASE_URL, echo=False)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
redis_pool: aioredis.Redis | None = None
location_client: httpx.AsyncClient | None = None
project_client: httpx.AsyncClient | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global redis_pool, location_client, project_client
    await create_tables(engine)
    redis_pool = aioredis.from_url(config.REDIS_URL, decode_responses=True)
    location_client = httpx.AsyncClient(
        base_url=config.LOCATION_SERVICE_URL, timeout=config.DIRECTORY_TIMEOUT
    )
    project_client = httpx.AsyncClient(
        base_url=config.PROJECT_SERVICE_URL, timeout=config.DIRECTORY_TIMEOUT
    )
    yield
    await project_client.aclose()
    await location_client.aclose()
    await redis_pool.aclose()
    await engine.dispose()


app = FastAPI(title="Ledger Service", lifespan=lifespan)


# ── Dependencies ─────────────────────────────────


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        yield session


def get_redis() -> aioredis.Redis:
    return redis_pool


def get_location_directory() -> LocationDirectory:
    return LocationDirectory(location_client)


def get_project_directory() -> ProjectDirectory:
    return ProjectDirectory(project_client)


def current_actor(x_actor_id: str | None = Header(default=None)) -> str:
    """Identity comes from the gateway; anonymous calls are stamped `system`."""
    return x_actor_id or "system"


# ── Envelope, errors, request logging ────────────


def ok(data, message: str = "OK") -> dict:
    return {"ok": True, "data": data, "message": message}


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    if exc.retryable:
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error_kind": exc.kind, "message": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    message = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return await ledger_error_handler(request, InvalidRequest(message))


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    duration = round((time.time() - start_time) * 1000, 2)
    logger.info(
        "%s %s Status: %s Time: %sms",
        request.method, request.url.path, response.status_code, duration,
    )
    return response


# ── Request Models ───────────────────────────────


class CreateItemRequest(BaseModel):
    name: str = Field(min_length=1)
    kind: str
    delivered_quantity: int = 0
    location_id: str | None = None


class UpdateDeliveredRequest(BaseModel):
    item_id: UUID
    new_delivered: int


class ReportIssueRequest(BaseModel):
    item_id: UUID
    kind: str
    quantity: int
    description: str = ""


class AllocateRequest(BaseModel):
    item_id: UUID
    project_day_ids: list[str] = []
    quantity_per_day: int
    apply_to_all_days: bool = False
    project_id: str | None = None

    @model_validator(mode="after")
    def project_required_for_all_days(self):
        if self.apply_to_all_days and not self.project_id:
            raise ValueError("project_id is required when apply_to_all_days is set")
        return self


class PartialReturnRequest(BaseModel):
    assignment_id: UUID
    returned_delta: int = 0
    damaged_delta: int = 0
    lost_delta: int = 0
    description: str = ""


class CloseAssignmentRequest(BaseModel):
    assignment_id: UUID


class MoveLocationRequest(BaseModel):
    item_id: UUID
    new_location_id: str


# ── Command Endpoints (write side) ───────────────


@app.post("/items", status_code=201)
async def cmd_create_item(
    req: CreateItemRequest,
    session: AsyncSession = Depends(get_session),
    redis: aioredis.Redis = Depends(get_redis),
    actor: str = Depends(current_actor),
):
    item = await ledger.create_item(
        session, redis,
        req.name, req.kind, req.delivered_quantity, req.location_id,
        actor=actor,
    )
    return ok(queries.item_state(item, config.LOW_STOCK_THRESHOLD), "Inventory item created")


@app.post("/commands/update-delivered")
async def cmd_update_delivered(
    req: UpdateDeliveredRequest,
    session: AsyncSession = Depends(get_session),
    redis: aioredis.Redis = Depends(get_redis),
    actor: str = Depends(current_actor),
):
    item = await ledger.update_delivered(
        session, redis, str(req.item_id), req.new_delivered, actor=actor
    )
    return ok(queries.item_state(item, config.LOW_STOCK_THRESHOLD), "Delivered quantity updated")


@app.post("/commands/report-issue")
async def cmd_report_issue(
    req: ReportIssueRequest,
    session: AsyncSession = Depends(get_session),
    redis: aioredis.Redis = Depends(get_redis),
    actor: str = Depends(current_actor),
):
    item = await ledger.report_issue(
        session, redis,
        str(req.item_id), req.kind, req.quantity, req.description,
        actor=actor,
    )
    return ok(queries.item_state(item, config.LOW_STOCK_THRESHOLD), "Issue reported")


@app.post("/commands/allocate", status_code=201)
async def cmd_allocate(
    req: AllocateRequest,
    session: AsyncSession = Depends(get_session),
    redis: aioredis.Redis = Depends(get_redis),
    projects: ProjectDirectory = Depends(get_project_directory),
    actor: str = Depends(current_actor),
):
    """
    Allocate an item to project days.

    With apply_to_all_days the explicit day list is replaced by every day of
    the project before the allocation engine sees the request.
    """
    day_ids = req.project_day_ids
    if req.apply_to_all_days:
        day_ids = await projects.list_days_for_project(req.project_id)
    assignments = await allocation.allocate(
        session, redis, str(req.item_id), day_ids, req.quantity_per_day, actor=actor
    )
    return ok(
        [queries.assignment_state(a) for a in assignments],
        f"Allocated to {len(assignments)} day(s)",
    )


@app.post("/commands/assignment/return")
async def cmd_partial_return(
    req: PartialReturnRequest,
    session: AsyncSession = Depends(get_session),
    redis: aioredis.Redis = Depends(get_redis),
    actor: str = Depends(current_actor),
):
    assignment = await allocation.record_partial_return(
        session, redis,
        str(req.assignment_id), req.returned_delta, req.damaged_delta, req.lost_delta,
        actor=actor, description=req.description,
    )
    return ok(queries.assignment_state(assignment), "Return recorded")


@app.post("/commands/assignment/close")
async def cmd_close_assignment(
    req: CloseAssignmentRequest,
    session: AsyncSession = Depends(get_session),
    redis: aioredis.Redis = Depends(get_redis),
    actor: str = Depends(current_actor),
):
    assignment = await allocation.close_assignment(
        session, redis, str(req.assignment_id), actor=actor
    )
    return ok(queries.assignment_state(assignment), "Assignment closed")


@app.post("/commands/move-location")
async def cmd_move_location(
    req: MoveLocationRequest,
    session: AsyncSession = Depends(get_session),
    redis: aioredis.Redis = Depends(get_redis),
    directory: LocationDirectory = Depends(get_location_directory),
    actor: str = Depends(current_actor),
):
    item = await locations.move_location(
        session, redis, directory, str(req.item_id), req.new_location_id, actor=actor
    )
    return ok(queries.item_state(item, config.LOW_STOCK_THRESHOLD), "Item moved")


# ── Query Endpoints (read side) ──────────────────


@app.get("/items/low-stock")
async def query_low_stock(
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
):
    return ok(await queries.list_low_stock_items(session, limit=limit))


@app.get("/items/summary")
async def query_summary(session: AsyncSession = Depends(get_session)):
    return ok(await queries.inventory_summary(session))


@app.get("/items/{item_id}")
async def query_item(
    item_id: UUID,
    session: AsyncSession = Depends(get_session),
    redis: aioredis.Redis = Depends(get_redis),
):
    return ok(await queries.get_item(session, redis, str(item_id)))


@app.get("/items/{item_id}/assignments")
async def query_item_assignments(
    item_id: UUID, session: AsyncSession = Depends(get_session)
):
    return ok(await queries.list_assignments_for_item(session, str(item_id)))


@app.get("/assignments/{assignment_id}")
async def query_assignment(
    assignment_id: UUID, session: AsyncSession = Depends(get_session)
):
    return ok(await queries.get_assignment(session, str(assignment_id)))


# ── Event Log ────────────────────────────────────


@app.get("/events/recent")
async def query_recent_events(
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
):
    events = await storage.run_query(
        session, lambda: event_store.load_recent_events(session, limit)
    )
    return ok([e.model_dump(mode="json") for e in events])


@app.get("/events")
async def query_events(
    item_id: UUID | None = None,
    assignment_id: UUID | None = None,
    newest_first: bool = False,
    session: AsyncSession = Depends(get_session),
):
    if (item_id is None) == (assignment_id is None):
        raise InvalidRequest("Pass exactly one of item_id or assignment_id")
    if item_id is not None:
        events = await storage.run_query(
            session, lambda: event_store.load_events_by_item(session, str(item_id))
        )
    else:
        events = await storage.run_query(
            session,
            lambda: event_store.load_events_by_assignment(session, str(assignment_id)),
        )
    if newest_first:
        events = list(reversed(events))
    return ok([e.model_dump(mode="json") for e in events])


@app.get("/health")
async def health():
    return {"status": "ok", "service": "ledger-service"}


if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000)
