"""FastAPI application for Kam-Kiraye listings."""

import logging
import os
from contextlib import asynccontextmanager

import logfire
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .aggregator import ListingAggregator
from .booking import (
    GENERAL_MESSAGE,
    attach_booking_links,
    decorate_apartment,
    decorate_room,
    make_whatsapp_link,
)
from .client import ListingClient, RecordNotFound, RemoteDataError
from .database import WHATSAPP_NUMBER, cors_origins, create_http_client, get_client
from .schemas import ApartmentDetail, BranchNode, ListingSnapshot, Resource, RoomDetail

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the shared backend client on startup, close it on shutdown."""
    app.state.http = create_http_client()
    try:
        yield
    finally:
        await app.state.http.aclose()


app = FastAPI(
    title="Kam-Kiraye API",
    description="Branches, apartments and rooms with WhatsApp booking links",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure Logfire for observability (after app creation)
if os.getenv("LOGFIRE_TOKEN"):
    logfire.configure()
    logfire.instrument_fastapi(app)
    logfire.instrument_httpx()

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "Kam-Kiraye API"}


class ContactResponse(BaseModel):
    whatsapp_number: str
    link: str


@app.get("/api/contact", response_model=ContactResponse)
async def get_contact():
    """General availability enquiry link."""
    return ContactResponse(
        whatsapp_number=WHATSAPP_NUMBER,
        link=make_whatsapp_link(GENERAL_MESSAGE, WHATSAPP_NUMBER),
    )


# =============================================================================
# Listing tree
# =============================================================================


@app.get("/api/listings", response_model=ListingSnapshot)
async def get_listings(client: ListingClient = Depends(get_client)):
    """Return every branch with its apartments and rooms.

    Always 200: a collection that failed to load shows up in `errors` and the
    rest of the tree is still returned.
    """
    aggregator = ListingAggregator(client)
    snapshot = await aggregator.load()
    return snapshot.model_copy(update={"tree": attach_booking_links(snapshot.tree, WHATSAPP_NUMBER)})


class BranchResponse(BaseModel):
    """One branch plus the collections that failed to load.

    An empty `apartments` list only means "no apartments" when
    `errors` has no `apartments` entry.
    """
    branch: BranchNode
    errors: dict[Resource, str] = Field(default_factory=dict)


@app.get("/api/branches/{branch_id}", response_model=BranchResponse)
async def get_branch(branch_id: str, client: ListingClient = Depends(get_client)):
    """One branch subtree with per-resource load errors."""
    snapshot = await ListingAggregator(client).load()

    branch = next((b for b in snapshot.tree if b.id == branch_id), None)
    if branch is None:
        if snapshot.error_for(Resource.BRANCHES):
            raise HTTPException(status_code=502, detail=snapshot.error_for(Resource.BRANCHES))
        raise HTTPException(status_code=404, detail="Branch not found")

    return BranchResponse(
        branch=attach_booking_links([branch], WHATSAPP_NUMBER)[0],
        errors=snapshot.errors,
    )


# =============================================================================
# Detail pages
# =============================================================================


@app.get("/api/apartments/{apartment_id}", response_model=ApartmentDetail)
async def get_apartment(apartment_id: str, client: ListingClient = Depends(get_client)):
    """Apartment with its branch, rooms, gallery and booking links."""
    try:
        detail = await client.fetch_apartment(apartment_id)
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Apartment not found")
    except RemoteDataError as e:
        logger.exception(f"Error loading apartment {apartment_id}: {e}")
        raise HTTPException(status_code=502, detail=e.message)

    return decorate_apartment(detail, WHATSAPP_NUMBER)


@app.get("/api/rooms/{room_id}", response_model=RoomDetail)
async def get_room(room_id: str, client: ListingClient = Depends(get_client)):
    """Room with its location, gallery and booking link."""
    try:
        detail = await client.fetch_room(room_id)
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Room not found")
    except RemoteDataError as e:
        logger.exception(f"Error loading room {room_id}: {e}")
        raise HTTPException(status_code=502, detail=e.message)

    return decorate_room(detail, WHATSAPP_NUMBER)
