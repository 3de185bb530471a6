"""
Ledger Service: external directories

HTTP clients for the collaborators the ledger does not own:

  ┌──────────────┐   GET /locations/{id}        ┌────────────────────┐
  │              │ ───────────────────────────▶ │ Location directory │
  │ Ledger Svc   │                              └────────────────────┘
  │              │   GET /projects/{id}/days    ┌────────────────────┐
  │              │ ───────────────────────────▶ │ Project directory  │
  └──────────────┘                              └────────────────────┘

A 404 becomes NotFound; any other HTTP or transport failure becomes
StorageUnavailable so the caller can retry.
"""

import httpx
from pydantic import BaseModel

from .errors import NotFound, StorageUnavailable


class LocationRecord(BaseModel):
    id: str
    name: str
    type: str | None = None


async def _get_json(client: httpx.AsyncClient, path: str, what: str):
    try:
        resp = await client.get(path)
    except httpx.HTTPError as e:
        raise StorageUnavailable(f"{what} lookup failed: {e}") from e
    if resp.status_code == 404:
        raise NotFound(f"{what} not found")
    try:
        resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise StorageUnavailable(
            f"{what} lookup failed with status {e.response.status_code}"
        ) from e
    return resp.json()


class LocationDirectory:
    """Resolves location ids against the location service."""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def resolve_location(self, location_id: str) -> LocationRecord:
        data = await _get_json(
            self.client, f"/locations/{location_id}", f"Location {location_id}"
        )
        return LocationRecord(
            id=str(data.get("id", location_id)),
            name=data.get("name", ""),
            type=data.get("type"),
        )


class ProjectDirectory:
    """Lists the day ids of a project, in calendar order as served."""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def list_days_for_project(self, project_id: str) -> list[str]:
        data = await _get_json(
            self.client, f"/projects/{project_id}/days", f"Project {project_id}"
        )
        days = data.get("days", []) if isinstance(data, dict) else data
        return [str(day["id"]) if isinstance(day, dict) else str(day) for day in days]
