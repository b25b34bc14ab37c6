"""Listing aggregator: fetch branches, apartments and rooms and merge them.

The three collections are fetched concurrently and merged into one tree:

    Branch
    ├── apartments (oldest first)
    │   └── rooms (oldest first)
    └── rooms attached directly to the branch (oldest first)

Referential problems in the data (an apartment pointing at a missing branch,
a room with no resolvable owner) drop the record from the tree without
raising. Fetch failures are kept per resource so one missing collection does
not hide the others.
"""

import asyncio
import logging
from collections.abc import Iterable

import logfire

from .client import ListingClient, RemoteDataError
from .schemas import (
    ApartmentNode,
    ApartmentRow,
    BranchNode,
    BranchRow,
    ListingSnapshot,
    LoadStatus,
    OwnedByApartment,
    OwnedByBranch,
    Resource,
    RoomNode,
    RoomRow,
)

logger = logging.getLogger(__name__)


class CancellationToken:
    """Signals that whoever asked for a load no longer wants the result."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


def _by_created_at(items: Iterable) -> list:
    # sorted() is stable, so equal timestamps keep their fetch order
    return sorted(items, key=lambda item: item.created_at)


def build_tree(
    branches: list[BranchRow],
    apartments: list[ApartmentRow],
    rooms: list[RoomRow],
) -> list[BranchNode]:
    """Merge three flat collections into branch nodes.

    Pure function of its inputs, so the same rows always give the same tree
    no matter which fetch finished first.
    """
    branch_nodes: dict[str, BranchNode] = {}
    for branch in _by_created_at(branches):
        if branch.id in branch_nodes:
            continue
        branch_nodes[branch.id] = BranchNode.model_validate(branch.model_dump())

    apartment_nodes: dict[str, ApartmentNode] = {}
    for apartment in _by_created_at(apartments):
        parent = branch_nodes.get(apartment.branch_id)
        if parent is None:
            logger.debug(f"Dropping apartment {apartment.id}: branch {apartment.branch_id} not loaded")
            continue
        if apartment.id in apartment_nodes:
            continue
        node = ApartmentNode.model_validate(apartment.model_dump())
        apartment_nodes[apartment.id] = node
        parent.apartments.append(node)

    for room in _by_created_at(rooms):
        owner = room.owner
        node = RoomNode.model_validate(room.model_dump())
        if isinstance(owner, OwnedByApartment) and owner.id in apartment_nodes:
            apartment_nodes[owner.id].rooms.append(node)
        elif isinstance(owner, OwnedByBranch) and owner.id in branch_nodes:
            branch_nodes[owner.id].rooms.append(node)
        else:
            logger.debug(f"Dropping room {room.id}: owner {owner.kind} does not resolve")

    return list(branch_nodes.values())


class ListingAggregator:
    """Loads the listing tree and holds the last loaded snapshot.

    Only the most recent call to load() may publish state: every call takes a
    new sequence number, and results from an older number are thrown away.
    """

    def __init__(self, client: ListingClient):
        self.client = client
        self._snapshot = ListingSnapshot()
        self._seq = 0
        self._current_cancel: CancellationToken | None = None
        # status of the last load that actually published a tree
        self._settled_status = LoadStatus.IDLE

    @property
    def snapshot(self) -> ListingSnapshot:
        return self._snapshot

    @property
    def status(self) -> LoadStatus:
        return self._snapshot.status

    def close(self) -> None:
        """Abandon any in-flight load; its results will not be applied."""
        if self._current_cancel is not None:
            self._current_cancel.cancel()

    async def load(self, cancel: CancellationToken | None = None) -> ListingSnapshot:
        """Fetch all three collections and publish a fresh tree.

        Never raises for fetch failures; they end up in snapshot.errors.
        """
        self._seq += 1
        seq = self._seq
        cancel = cancel or CancellationToken()
        self._current_cancel = cancel

        self._snapshot = self._snapshot.model_copy(
            update={"loading": True, "status": LoadStatus.LOADING}
        )

        with logfire.span("load listings", seq=seq):
            results = await self._fetch_all(cancel)

            if results is None or cancel.cancelled:
                logger.info(f"Load #{seq} cancelled, discarding results")
                if seq == self._seq:
                    # nothing in flight any more; keep the previous tree
                    self._snapshot = self._snapshot.model_copy(
                        update={"loading": False, "status": self._settled_status}
                    )
                    self._current_cancel = None
                return self._snapshot
            if seq != self._seq:
                logger.info(f"Load #{seq} superseded by #{self._seq}, discarding results")
                return self._snapshot

            collected: dict[Resource, list] = {}
            errors: dict[Resource, str] = {}
            for resource, result in zip(Resource, results):
                if isinstance(result, BaseException):
                    errors[resource] = _describe(result)
                    logger.warning(f"Failed to load {resource.value}: {errors[resource]}")
                    collected[resource] = []
                else:
                    collected[resource] = result

            tree = build_tree(
                collected[Resource.BRANCHES],
                collected[Resource.APARTMENTS],
                collected[Resource.ROOMS],
            )

            self._snapshot = ListingSnapshot(
                tree=tree,
                loading=False,
                status=LoadStatus.PARTIALLY_FAILED if errors else LoadStatus.READY,
                errors=errors,
            )
            self._settled_status = self._snapshot.status
            if self._current_cancel is cancel:
                self._current_cancel = None

            logger.info(
                f"Load #{seq}: {len(tree)} branches, "
                f"{sum(len(b.apartments) for b in tree)} apartments, "
                f"{len(errors)} failed resources"
            )
            return self._snapshot

    async def _fetch_all(self, cancel: CancellationToken) -> list | None:
        """Run the three fetches together; None if cancelled first."""
        fetches = asyncio.gather(
            self.client.fetch_branches(),
            self.client.fetch_apartments(embed_branch=True),
            self.client.fetch_rooms(embed_owner=True),
            return_exceptions=True,
        )
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait({fetches, waiter}, return_when=asyncio.FIRST_COMPLETED)
            if fetches in done:
                return fetches.result()
            return None
        finally:
            waiter.cancel()
            if not fetches.done():
                fetches.cancel()


def _describe(error: BaseException) -> str:
    if isinstance(error, RemoteDataError):
        return error.message
    if isinstance(error, asyncio.CancelledError):
        return "request cancelled"
    return f"{type(error).__name__}: {error}"
