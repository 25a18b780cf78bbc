"""
Lifecycle Store Interface.

The active set and the trash set sit behind one transactional interface, so
every step of a row move commits or rolls back as a unit whatever the
representation underneath.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import structlog

from ticketlife.graph.schema import Location, ResourceKind
from ticketlife.security.actor import Actor

logger = structlog.get_logger(__name__)


@dataclass
class ListFilter:
    """Filter for listing and counting visible rows."""

    name: str | None = None  # Case-insensitive substring
    host: str | None = None  # Exact match
    limit: int = 100
    offset: int = 0


class LifecycleTransaction(ABC):
    """
    One open transaction against the active and trash stores.

    Every method may raise ``StoreError``. After ``commit`` or ``rollback`` the
    transaction is closed and must not be used again.
    """

    @property
    @abstractmethod
    def closed(self) -> bool:
        ...

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    @abstractmethod
    async def resolve_with_capability(
        self,
        kind: ResourceKind,
        resource_uuid: str,
        actor: Actor,
        capability: str,
        location: Location = Location.TABLE,
    ) -> int | None:
        """
        Internal id of the row, or None.

        None both when the row does not exist and when the actor may not use
        ``capability`` on it; callers cannot tell the two apart.
        """

    @abstractmethod
    async def resolve_in_trash(
        self,
        kind: ResourceKind,
        resource_uuid: str,
        actor: Actor,
    ) -> int | None:
        """Internal id of an owned row in the trash set, or None."""

    @abstractmethod
    async def name_exists(
        self,
        kind: ResourceKind,
        name: str,
        owner: str,
        excluding_id: int | None = None,
    ) -> bool:
        """Whether an active row owned by ``owner`` already carries ``name``."""

    @abstractmethod
    async def fetch(
        self,
        kind: ResourceKind,
        resource_id: int,
        location: Location,
    ) -> dict[str, Any] | None:
        ...

    @abstractmethod
    async def list_rows(
        self,
        kind: ResourceKind,
        location: Location,
        actor: Actor,
        capability: str,
        list_filter: ListFilter,
    ) -> list[dict[str, Any]]:
        """Rows visible to the actor under ``capability``, ordered by name."""

    @abstractmethod
    async def count_rows(
        self,
        kind: ResourceKind,
        location: Location,
        actor: Actor,
        capability: str,
        list_filter: ListFilter,
    ) -> int:
        ...

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert(
        self,
        kind: ResourceKind,
        row: dict[str, Any],
        location: Location = Location.TABLE,
    ) -> int:
        """Insert a row; the store assigns and returns its internal id."""

    @abstractmethod
    async def copy_row(
        self,
        kind: ResourceKind,
        resource_id: int,
        source: Location,
        target: Location,
    ) -> int:
        """Copy a full row into the other store, returning the id assigned there."""

    @abstractmethod
    async def update(
        self,
        kind: ResourceKind,
        resource_id: int,
        fields: dict[str, Any],
    ) -> None:
        """Update fields of an active row."""

    @abstractmethod
    async def erase(
        self,
        kind: ResourceKind,
        resource_id: int,
        location: Location,
    ) -> None:
        ...


class LifecycleStore(ABC):
    """Factory for lifecycle transactions."""

    @abstractmethod
    async def begin(self, immediate: bool = True) -> LifecycleTransaction:
        """
        Open a transaction.

        ``immediate`` transactions take the store's write lock before doing
        anything else, so concurrent writers are serialized.
        """

    @asynccontextmanager
    async def transaction(self, immediate: bool = True) -> AsyncIterator[LifecycleTransaction]:
        """
        Open a transaction and guarantee it is closed on exit.

        Anything neither committed nor rolled back by the body is rolled back.
        """
        tx = await self.begin(immediate=immediate)
        try:
            yield tx
        finally:
            if not tx.closed:
                logger.debug("Rolling back unfinished transaction")
                await tx.rollback()
