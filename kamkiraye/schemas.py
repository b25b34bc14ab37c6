"""Pydantic schemas for branch, apartment and room listings.

Rows arrive flat from the backend tables and are validated here before the
aggregator turns them into a tree:

- BranchRow / ApartmentRow / RoomRow mirror the table columns
- RoomOwner is the explicit owner of a room, decided once at ingestion
- BranchNode / ApartmentNode / ListingSnapshot are what the presentation layer reads

Timestamps stay as the ISO-8601 strings the backend emits, so ordering is a
plain string comparison that matches the backend's own ordering.
"""

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# ENUMS
# =============================================================================


class Resource(str, Enum):
    """The three independently fetched collections."""

    BRANCHES = "branches"
    APARTMENTS = "apartments"
    ROOMS = "rooms"


class LoadStatus(str, Enum):
    """Aggregator lifecycle.

    IDLE -> LOADING -> READY | PARTIALLY_FAILED. Any new load goes back to LOADING.
    """

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    PARTIALLY_FAILED = "partially_failed"


# =============================================================================
# ROOM OWNERSHIP
# =============================================================================


class OwnedByApartment(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["apartment"] = "apartment"
    id: str


class OwnedByBranch(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["branch"] = "branch"
    id: str


class Unattached(BaseModel):
    """Neither or both foreign keys populated. Never shown."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["unattached"] = "unattached"


RoomOwner = Annotated[
    Union[OwnedByApartment, OwnedByBranch, Unattached],
    Field(discriminator="kind"),
]


def resolve_owner(apartment_id: str | None, branch_id: str | None) -> RoomOwner:
    """Turn the nullable (apartment_id, branch_id) pair into an owner.

    A row with both keys set is an inconsistent write and is treated as
    unattached rather than guessing which parent wins.
    """
    if apartment_id and not branch_id:
        return OwnedByApartment(id=apartment_id)
    if branch_id and not apartment_id:
        return OwnedByBranch(id=branch_id)
    return Unattached()


# =============================================================================
# ROWS (as returned by the backend)
# =============================================================================


class _Row(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @field_validator("images", mode="before", check_fields=False)
    @classmethod
    def null_images_to_empty(cls, v):
        return v or []


def _embedded_name(value) -> str | None:
    """Pull `name` out of an embedded relation (object, or list of one)."""
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        return value.get("name")
    return None


class BranchRow(_Row):
    id: str
    name: str
    city: str
    address: str
    latitude: float | None = None
    longitude: float | None = None
    created_at: str


class ApartmentRow(_Row):
    id: str
    branch_id: str
    name: str
    description: str | None = None
    bedrooms: int = 0
    bathrooms: int = 0
    price_per_night: float
    image: str | None = None
    images: list[str] = Field(default_factory=list)
    created_at: str
    branch_name: str | None = Field(
        default=None,
        description="Owning branch name when the query embeds `branches(name)`",
    )

    @model_validator(mode="before")
    @classmethod
    def flatten_embedded_branch(cls, data):
        if isinstance(data, dict) and "branches" in data:
            data = dict(data)
            data.setdefault("branch_name", _embedded_name(data.pop("branches")))
        return data


class RoomRow(_Row):
    id: str
    apartment_id: str | None = None
    branch_id: str | None = None
    name: str
    capacity: int = 1
    price_per_night: float
    image: str | None = None
    images: list[str] = Field(default_factory=list)
    created_at: str
    apartment_name: str | None = None
    branch_name: str | None = None
    owner: RoomOwner = Field(default_factory=Unattached)

    @model_validator(mode="before")
    @classmethod
    def flatten_embedded_owners(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "apartments" in data:
            data.setdefault("apartment_name", _embedded_name(data.pop("apartments")))
        if "branches" in data:
            data.setdefault("branch_name", _embedded_name(data.pop("branches")))
        return data

    @model_validator(mode="after")
    def set_owner(self) -> "RoomRow":
        self.owner = resolve_owner(self.apartment_id, self.branch_id)
        return self


# =============================================================================
# TREE (what the presentation layer renders)
# =============================================================================


class RoomNode(BaseModel):
    id: str
    name: str
    capacity: int
    price_per_night: float
    image: str | None = None
    images: list[str] = Field(default_factory=list)
    created_at: str
    booking_link: str | None = None


class ApartmentNode(BaseModel):
    id: str
    branch_id: str
    name: str
    description: str | None = None
    bedrooms: int
    bathrooms: int
    price_per_night: float
    image: str | None = None
    images: list[str] = Field(default_factory=list)
    created_at: str
    rooms: list[RoomNode] = Field(default_factory=list)
    booking_link: str | None = None


class BranchNode(BaseModel):
    id: str
    name: str
    city: str
    address: str
    latitude: float | None = None
    longitude: float | None = None
    created_at: str
    apartments: list[ApartmentNode] = Field(default_factory=list)
    rooms: list[RoomNode] = Field(
        default_factory=list,
        description="Rooms attached directly to the branch, not through an apartment",
    )


class ListingSnapshot(BaseModel):
    """State exposed after (or during) a load."""

    tree: list[BranchNode] = Field(default_factory=list)
    loading: bool = False
    status: LoadStatus = LoadStatus.IDLE
    errors: dict[Resource, str] = Field(default_factory=dict)

    def error_for(self, resource: Resource) -> str | None:
        return self.errors.get(resource)


# =============================================================================
# DETAIL LOOKUPS
# =============================================================================


class Location(BaseModel):
    """Where a listing sits: branch, and apartment for rooms inside one."""

    branch_name: str | None = None
    city: str | None = None
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    apartment_name: str | None = None
    apartment_description: str | None = None


class ApartmentDetail(BaseModel):
    id: str
    name: str
    description: str | None = None
    bedrooms: int
    bathrooms: int
    price_per_night: float
    image: str | None = None
    images: list[str] = Field(default_factory=list)
    location: Location
    rooms: list[RoomNode] = Field(default_factory=list)
    gallery: list[str] = Field(default_factory=list)
    booking_link: str | None = None


class RoomDetail(BaseModel):
    id: str
    name: str
    capacity: int
    price_per_night: float
    image: str | None = None
    images: list[str] = Field(default_factory=list)
    owner: RoomOwner
    location: Location
    gallery: list[str] = Field(default_factory=list)
    booking_link: str | None = None
