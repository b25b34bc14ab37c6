import asyncio

import httpx
import pytest

from kamkiraye.client import ListingClient

BASE_URL = "https://demo.supabase.co"


class FakeBackend:
    """In-memory stand-in for the REST endpoint, used as an httpx MockTransport handler.

    `failures` maps a table to an HTTP status, or to None for a connection error.
    When `gate` is set, requests park until it is released; `arrived` fires
    once `expected` requests are parked.
    """

    def __init__(self, branches=(), apartments=(), rooms=(), failures=None):
        self.tables = {
            "branches": list(branches),
            "apartments": list(apartments),
            "rooms": list(rooms),
        }
        self.failures = dict(failures or {})
        self.requests: list[httpx.Request] = []
        self.gate: asyncio.Event | None = None
        self.arrived: asyncio.Event | None = None
        self.expected = 3
        self._parked = 0

    def hold(self, expected: int = 3) -> asyncio.Event:
        self.gate = asyncio.Event()
        self.arrived = asyncio.Event()
        self.expected = expected
        self._parked = 0
        return self.gate

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        table = request.url.path.rsplit("/", 1)[-1]
        rows = list(self.tables.get(table, []))
        failure = self.failures.get(table)

        gate = self.gate
        if gate is not None:
            self._parked += 1
            if self._parked >= self.expected:
                self.arrived.set()
            await gate.wait()

        if table in self.failures:
            if failure is None:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(failure, json={"message": "permission denied for table"})

        for key, value in request.url.params.items():
            if value.startswith("eq."):
                rows = [r for r in rows if str(r.get(key)) == value[3:]]
        if "limit" in request.url.params:
            rows = rows[: int(request.url.params["limit"])]
        return httpx.Response(200, json=rows)


def make_client(backend: FakeBackend) -> ListingClient:
    http = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(backend))
    return ListingClient(http, storage_bucket="property-images")


def branch(id, name, created_at="2024-01-01T00:00:00Z", **extra):
    row = {
        "id": id,
        "name": name,
        "city": name,
        "address": f"{name} Main Road",
        "latitude": None,
        "longitude": None,
        "created_at": created_at,
    }
    row.update(extra)
    return row


def apartment(id, branch_id, name, created_at="2024-01-02T00:00:00Z", **extra):
    row = {
        "id": id,
        "branch_id": branch_id,
        "name": name,
        "description": f"{name} description",
        "bedrooms": 2,
        "bathrooms": 1,
        "price_per_night": 85,
        "image": None,
        "images": None,
        "created_at": created_at,
    }
    row.update(extra)
    return row


def room(id, name, apartment_id=None, branch_id=None, created_at="2024-01-03T00:00:00Z", **extra):
    row = {
        "id": id,
        "apartment_id": apartment_id,
        "branch_id": branch_id,
        "name": name,
        "capacity": 2,
        "price_per_night": 45,
        "image": None,
        "images": [],
        "created_at": created_at,
    }
    row.update(extra)
    return row


@pytest.fixture
def backend():
    return FakeBackend()
