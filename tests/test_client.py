import asyncio

import httpx
import pytest
from conftest import FakeBackend, apartment, branch, make_client, room

from kamkiraye.client import ListingClient, RecordNotFound, RemoteDataError
from kamkiraye.schemas import OwnedByApartment, OwnedByBranch


def run(backend, call):
    async def scenario():
        client = make_client(backend)
        async with client.http:
            return await call(client)

    return asyncio.run(scenario())


def test_fetch_apartments_query_shape():
    backend = FakeBackend(apartments=[apartment("a1", "b1", "Loft"), apartment("a2", "b2", "Other")])

    rows = run(backend, lambda c: c.fetch_apartments(branch_id="b1"))

    [request] = backend.requests
    assert request.url.path == "/rest/v1/apartments"
    assert request.url.params["order"] == "created_at.asc"
    assert request.url.params["branch_id"] == "eq.b1"
    assert "branches(name)" in request.url.params["select"]
    assert [r.id for r in rows] == ["a1"]


def test_fetch_rooms_filters_and_embeds_owner_names():
    backend = FakeBackend(rooms=[room("r1", "Queen", apartment_id="a1"), room("r2", "Suite", branch_id="b1")])

    rows = run(backend, lambda c: c.fetch_rooms(branch_id="b1"))

    select = backend.requests[0].url.params["select"]
    assert "apartments!rooms_apartment_id_fkey(name)" in select
    assert "branches!rooms_branch_id_fkey(name)" in select
    assert [r.id for r in rows] == ["r2"]
    assert rows[0].owner == OwnedByBranch(id="b1")


def test_fetch_branches_without_filter():
    backend = FakeBackend(branches=[branch("b1", "Mumbai")])

    rows = run(backend, lambda c: c.fetch_branches())

    assert "id" not in backend.requests[0].url.params
    assert rows[0].name == "Mumbai"


def test_http_error_becomes_remote_data_error():
    backend = FakeBackend(failures={"branches": 401})

    with pytest.raises(RemoteDataError) as exc_info:
        run(backend, lambda c: c.fetch_branches())

    assert exc_info.value.resource == "branches"
    assert exc_info.value.message == "HTTP 401: permission denied for table"


def test_bad_row_becomes_remote_data_error():
    bad = branch("b1", "Mumbai")
    del bad["address"]
    backend = FakeBackend(branches=[bad])

    with pytest.raises(RemoteDataError, match="invalid row"):
        run(backend, lambda c: c.fetch_branches())


def test_non_list_payload_is_rejected():
    async def handler(request):
        return httpx.Response(200, json={"message": "not rows"})

    async def scenario():
        http = httpx.AsyncClient(base_url="https://demo.supabase.co", transport=httpx.MockTransport(handler))
        async with http:
            return await ListingClient(http).fetch_rooms()

    with pytest.raises(RemoteDataError, match="expected a list"):
        asyncio.run(scenario())


def test_fetch_apartment_detail():
    row = apartment(
        "a1", "b1", "Koramangala Loft",
        branches={"name": "Bengaluru", "city": "Bengaluru", "address": "MG Road", "latitude": 12.9, "longitude": 77.6},
        rooms=[
            room("r2", "Guest Room", apartment_id="a1", created_at="2024-02-01T00:00:00Z"),
            room("r1", "Master Suite", apartment_id="a1", created_at="2024-01-01T00:00:00Z"),
        ],
    )
    backend = FakeBackend(apartments=[row])

    detail = run(backend, lambda c: c.fetch_apartment("a1"))

    assert backend.requests[0].url.params["id"] == "eq.a1"
    assert detail.location.branch_name == "Bengaluru"
    assert detail.location.latitude == 12.9
    assert [r.name for r in detail.rooms] == ["Master Suite", "Guest Room"]


def test_fetch_apartment_missing():
    with pytest.raises(RecordNotFound):
        run(FakeBackend(), lambda c: c.fetch_apartment("nope"))


def test_fetch_room_in_apartment_uses_apartment_branch():
    row = room(
        "r1", "Queen Room", apartment_id="a1",
        apartments={"name": "Loft", "description": "Nice", "branches": {"name": "Bengaluru", "city": "Bengaluru", "address": "MG Road"}},
        branches=None,
    )

    detail = run(FakeBackend(rooms=[row]), lambda c: c.fetch_room("r1"))

    assert detail.owner == OwnedByApartment(id="a1")
    assert detail.location.apartment_name == "Loft"
    assert detail.location.branch_name == "Bengaluru"


def test_fetch_room_on_branch():
    row = room(
        "r1", "Garden Suite", branch_id="b1",
        apartments=None,
        branches={"name": "Mumbai", "city": "Mumbai", "address": "Bandra"},
    )

    detail = run(FakeBackend(rooms=[row]), lambda c: c.fetch_room("r1"))

    assert detail.location.branch_name == "Mumbai"
    assert detail.location.apartment_name is None


def test_public_image_url():
    client = ListingClient(httpx.AsyncClient(base_url="https://demo.supabase.co"), storage_bucket="property-images")

    url = client.public_image_url("/rooms/abc.jpg")

    assert url == "https://demo.supabase.co/storage/v1/object/public/property-images/rooms/abc.jpg"
