"""Async client for the hosted listings backend.

Speaks the PostgREST dialect exposed at /rest/v1: `select` for columns and
embedded relations, `<column>=eq.<value>` filters and `order=<column>.asc`.
Rows are validated into the schemas in .schemas before they leave this module.
"""

import logging

import httpx
from pydantic import BaseModel, ValidationError

from .schemas import (
    ApartmentDetail,
    ApartmentRow,
    BranchRow,
    Location,
    OwnedByApartment,
    OwnedByBranch,
    Resource,
    RoomDetail,
    RoomNode,
    RoomRow,
)

logger = logging.getLogger(__name__)

REST_PREFIX = "/rest/v1"

BRANCH_COLUMNS = "id,name,city,address,latitude,longitude,created_at"
APARTMENT_COLUMNS = (
    "id,branch_id,name,description,bedrooms,bathrooms,"
    "price_per_night,image,images,created_at"
)
ROOM_COLUMNS = (
    "id,apartment_id,branch_id,name,capacity,"
    "price_per_night,image,images,created_at"
)

LOCATION_COLUMNS = "name,city,address,latitude,longitude"


class RemoteDataError(Exception):
    """A backend query failed (transport, HTTP status or unexpected payload)."""

    def __init__(self, resource: str, message: str):
        super().__init__(message)
        self.resource = resource
        self.message = message

    def __str__(self) -> str:
        return f"{self.resource}: {self.message}"


class RecordNotFound(RemoteDataError):
    """A single-row lookup matched nothing."""


class ListingClient:
    """Queries the branches, apartments and rooms tables.

    Wraps a shared httpx.AsyncClient whose base_url and auth headers are set
    up in .database.create_http_client.
    """

    def __init__(self, http: httpx.AsyncClient, storage_bucket: str = "property-images"):
        self.http = http
        self.storage_bucket = storage_bucket

    async def _select(self, table: str, params: dict[str, str]) -> list[dict]:
        try:
            response = await self.http.get(f"{REST_PREFIX}/{table}", params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            raise RemoteDataError(table, f"HTTP {e.response.status_code}: {detail}") from e
        except httpx.HTTPError as e:
            raise RemoteDataError(table, f"{type(e).__name__}: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteDataError(table, "response was not JSON") from e
        if not isinstance(data, list):
            raise RemoteDataError(table, f"expected a list of rows, got {type(data).__name__}")

        logger.debug(f"{table}: {len(data)} rows for {params}")
        return data

    @staticmethod
    def _validate(resource: str, model: type[BaseModel], rows: list[dict]) -> list:
        try:
            return [model.model_validate(row) for row in rows]
        except ValidationError as e:
            raise RemoteDataError(resource, f"invalid row: {e.errors()[0]['msg']}") from e

    # -------------------------------------------------------------------------
    # Collections
    # -------------------------------------------------------------------------

    async def fetch_branches(self, branch_id: str | None = None) -> list[BranchRow]:
        params = {"select": BRANCH_COLUMNS, "order": "created_at.asc"}
        if branch_id:
            params["id"] = f"eq.{branch_id}"
        rows = await self._select("branches", params)
        return self._validate(Resource.BRANCHES.value, BranchRow, rows)

    async def fetch_apartments(
        self,
        branch_id: str | None = None,
        embed_branch: bool = True,
    ) -> list[ApartmentRow]:
        select = APARTMENT_COLUMNS
        if embed_branch:
            select += ",branches(name)"
        params = {"select": select, "order": "created_at.asc"}
        if branch_id:
            params["branch_id"] = f"eq.{branch_id}"
        rows = await self._select("apartments", params)
        return self._validate(Resource.APARTMENTS.value, ApartmentRow, rows)

    async def fetch_rooms(
        self,
        apartment_id: str | None = None,
        branch_id: str | None = None,
        embed_owner: bool = True,
    ) -> list[RoomRow]:
        select = ROOM_COLUMNS
        if embed_owner:
            select += ",apartments!rooms_apartment_id_fkey(name),branches!rooms_branch_id_fkey(name)"
        params = {"select": select, "order": "created_at.asc"}
        if apartment_id:
            params["apartment_id"] = f"eq.{apartment_id}"
        if branch_id:
            params["branch_id"] = f"eq.{branch_id}"
        rows = await self._select("rooms", params)
        return self._validate(Resource.ROOMS.value, RoomRow, rows)

    # -------------------------------------------------------------------------
    # Single records
    # -------------------------------------------------------------------------

    async def _select_one(self, table: str, record_id: str, select: str) -> dict:
        rows = await self._select(table, {"select": select, "id": f"eq.{record_id}", "limit": "1"})
        if not rows:
            raise RecordNotFound(table, f"no record with id {record_id}")
        return rows[0]

    async def fetch_apartment(self, apartment_id: str) -> ApartmentDetail:
        """Apartment with its branch and rooms (rooms oldest first)."""
        select = (
            f"{APARTMENT_COLUMNS},"
            f"branches({LOCATION_COLUMNS}),"
            f"rooms({ROOM_COLUMNS})"
        )
        row = await self._select_one("apartments", apartment_id, select)

        branch = _one(row.get("branches")) or {}
        room_rows = self._validate("rooms", RoomRow, row.get("rooms") or [])
        room_rows.sort(key=lambda r: r.created_at)
        apartment = self._validate("apartments", ApartmentRow, [
            {k: v for k, v in row.items() if k not in ("branches", "rooms")}
        ])[0]

        return ApartmentDetail(
            id=apartment.id,
            name=apartment.name,
            description=apartment.description,
            bedrooms=apartment.bedrooms,
            bathrooms=apartment.bathrooms,
            price_per_night=apartment.price_per_night,
            image=apartment.image,
            images=apartment.images,
            location=Location(
                branch_name=branch.get("name"),
                city=branch.get("city"),
                address=branch.get("address"),
                latitude=branch.get("latitude"),
                longitude=branch.get("longitude"),
            ),
            rooms=[RoomNode.model_validate(r.model_dump()) for r in room_rows],
        )

    async def fetch_room(self, room_id: str) -> RoomDetail:
        """Room with the location of whichever parent owns it."""
        select = (
            f"{ROOM_COLUMNS},"
            f"branches!rooms_branch_id_fkey({LOCATION_COLUMNS}),"
            f"apartments!rooms_apartment_id_fkey(name,description,"
            f"branches!apartments_branch_id_fkey({LOCATION_COLUMNS}))"
        )
        row = await self._select_one("rooms", room_id, select)

        room = self._validate("rooms", RoomRow, [
            {k: v for k, v in row.items() if k not in ("branches", "apartments")}
        ])[0]
        apartment = _one(row.get("apartments"))
        branch = _one(row.get("branches"))
        owner = room.owner

        if isinstance(owner, OwnedByApartment) and apartment:
            apt_branch = _one(apartment.get("branches")) or {}
            location = Location(
                branch_name=apt_branch.get("name"),
                city=apt_branch.get("city"),
                address=apt_branch.get("address"),
                latitude=apt_branch.get("latitude"),
                longitude=apt_branch.get("longitude"),
                apartment_name=apartment.get("name"),
                apartment_description=apartment.get("description"),
            )
        elif isinstance(owner, OwnedByBranch) and branch:
            location = Location(
                branch_name=branch.get("name"),
                city=branch.get("city"),
                address=branch.get("address"),
                latitude=branch.get("latitude"),
                longitude=branch.get("longitude"),
            )
        else:
            location = Location()

        return RoomDetail(
            id=room.id,
            name=room.name,
            capacity=room.capacity,
            price_per_night=room.price_per_night,
            image=room.image,
            images=room.images,
            owner=room.owner,
            location=location,
        )

    # -------------------------------------------------------------------------
    # Storage
    # -------------------------------------------------------------------------

    def public_image_url(self, path: str) -> str:
        """Public object-storage URL for a path in the image bucket."""
        base = str(self.http.base_url).rstrip("/")
        return f"{base}/storage/v1/object/public/{self.storage_bucket}/{path.lstrip('/')}"


def _one(value) -> dict | None:
    """Embedded to-one relations may come back as an object or a one-item list."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or str(body)[:200]
    return str(body)[:200]
