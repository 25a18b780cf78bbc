"""
Pytest Configuration and Shared Fixtures.

This module provides shared fixtures for testing the ticket lifecycle service:
an in-memory transactional store, reference holders that act on it, actors,
RBAC and settings.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ticketlife.config.settings import LifecycleSettings, Settings, get_settings
from ticketlife.graph.neo4j_client import TicketGraphClient
from ticketlife.graph.schema import (
    Location,
    PermissionNode,
    ResourceKind,
    TagResourceNode,
)
from ticketlife.lifecycle.cascade import ORPHANED_RESOURCE, CascadeNotifier, ReferenceHolder
from ticketlife.lifecycle.results import StoreError
from ticketlife.lifecycle.service import LifecycleService
from ticketlife.lifecycle.store import LifecycleStore, LifecycleTransaction
from ticketlife.security.actor import Actor
from ticketlife.security.authorization import RBACManager


# =============================================================================
# In-Memory Store
# =============================================================================


@dataclass
class MemoryState:
    """Everything a transaction can touch; copied on begin, swapped in on commit."""

    rows: dict[Location, dict[int, dict[str, Any]]] = field(
        default_factory=lambda: {Location.TABLE: {}, Location.TRASH: {}}
    )
    sequences: dict[Location, int] = field(
        default_factory=lambda: {Location.TABLE: 0, Location.TRASH: 0}
    )
    tags: list[TagResourceNode] = field(default_factory=list)
    permissions: list[PermissionNode] = field(default_factory=list)


class MemoryTransaction(LifecycleTransaction):
    """Works on a private copy of the state; commit publishes it."""

    def __init__(self, store: "MemoryLifecycleStore") -> None:
        self._store = store
        self.state = copy.deepcopy(store.state)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _check(self, operation: str) -> None:
        if self._closed:
            raise StoreError("Transaction already closed")
        if operation in self._store.fail_on:
            raise StoreError(f"Injected failure in {operation}")

    async def commit(self) -> None:
        self._check("commit")
        self._store.state = self.state
        self._store.commits += 1
        self._closed = True

    async def rollback(self) -> None:
        self._store.rollbacks += 1
        self._closed = True

    def _is_admin(self, actor: Actor) -> bool:
        settings = self._store.settings
        return settings.admin_bypass and actor.has_role(settings.admin_role)

    def _visible(self, row: dict[str, Any], kind: ResourceKind, actor: Actor,
                 capability: str, location: Location) -> bool:
        if row["owner"] == actor.id or self._is_admin(actor):
            return True
        for grant in self.state.permissions:
            if (grant.resource_type == kind.name and grant.resource == row["id"]
                    and grant.resource_location == location and grant.name == capability):
                if grant.subject_type == "user" and grant.subject == actor.id:
                    return True
                if grant.subject_type == "role" and grant.subject in actor.roles:
                    return True
        return False

    async def resolve_with_capability(self, kind, resource_uuid, actor, capability,
                                      location=Location.TABLE):
        self._check("resolve_with_capability")
        for row in self.state.rows[location].values():
            if row["uuid"] == resource_uuid:
                if self._visible(row, kind, actor, capability, location):
                    return row["id"]
                return None
        return None

    async def resolve_in_trash(self, kind, resource_uuid, actor):
        self._check("resolve_in_trash")
        for row in self.state.rows[Location.TRASH].values():
            if row["uuid"] == resource_uuid and (
                row["owner"] == actor.id or self._is_admin(actor)
            ):
                return row["id"]
        return None

    async def name_exists(self, kind, name, owner, excluding_id=None):
        self._check("name_exists")
        return any(
            row["name"] == name and row["owner"] == owner and row["id"] != excluding_id
            for row in self.state.rows[Location.TABLE].values()
        )

    async def fetch(self, kind, resource_id, location):
        self._check("fetch")
        row = self.state.rows[location].get(resource_id)
        return dict(row) if row else None

    def _filtered(self, kind, location, actor, capability, list_filter):
        rows = [
            row for row in self.state.rows[location].values()
            if self._visible(row, kind, actor, capability, location)
        ]
        if list_filter.name is not None:
            rows = [r for r in rows if list_filter.name.lower() in r["name"].lower()]
        if list_filter.host is not None:
            rows = [r for r in rows if r.get("host") == list_filter.host]
        return sorted(rows, key=lambda r: (r["name"], r["id"]))

    async def list_rows(self, kind, location, actor, capability, list_filter):
        self._check("list_rows")
        rows = self._filtered(kind, location, actor, capability, list_filter)
        end = list_filter.offset + list_filter.limit
        return [dict(r) for r in rows[list_filter.offset:end]]

    async def count_rows(self, kind, location, actor, capability, list_filter):
        self._check("count_rows")
        return len(self._filtered(kind, location, actor, capability, list_filter))

    def _next_id(self, location: Location) -> int:
        self.state.sequences[location] += 1
        return self.state.sequences[location]

    async def insert(self, kind, row, location=Location.TABLE):
        self._check("insert")
        new_id = self._next_id(location)
        self.state.rows[location][new_id] = {**row, "id": new_id}
        return new_id

    async def copy_row(self, kind, resource_id, source, target):
        self._check("copy_row")
        row = self.state.rows[source].get(resource_id)
        if row is None:
            raise StoreError(f"{resource_id} vanished during copy")
        new_id = self._next_id(target)
        self.state.rows[target][new_id] = {**copy.deepcopy(row), "id": new_id}
        return new_id

    async def update(self, kind, resource_id, fields):
        self._check("update")
        self.state.rows[Location.TABLE][resource_id].update(fields)

    async def erase(self, kind, resource_id, location):
        self._check("erase")
        self.state.rows[location].pop(resource_id, None)


class MemoryLifecycleStore(LifecycleStore):
    """Transactional in-memory store with failure injection and bookkeeping."""

    def __init__(self, settings: LifecycleSettings | None = None) -> None:
        self.settings = settings or LifecycleSettings()
        self.state = MemoryState()
        self.fail_on: set[str] = set()
        self.begun: list[bool] = []
        self.commits = 0
        self.rollbacks = 0

    async def begin(self, immediate: bool = True) -> MemoryTransaction:
        self.begun.append(immediate)
        return MemoryTransaction(self)

    # Helpers for arranging and inspecting state

    def locate(self, resource_uuid: str) -> list[tuple[Location, dict[str, Any]]]:
        """Every (location, row) carrying this uuid."""
        return [
            (location, row)
            for location, rows in self.state.rows.items()
            for row in rows.values()
            if row["uuid"] == resource_uuid
        ]

    def row(self, resource_uuid: str) -> dict[str, Any]:
        (found,) = self.locate(resource_uuid)
        return found[1]

    def tag(self, kind: ResourceKind, resource_uuid: str, tag_id: str = "tag-1") -> TagResourceNode:
        location, row = self.locate(resource_uuid)[0]
        attachment = TagResourceNode(
            tag_id=tag_id,
            resource_type=kind.name,
            resource=row["id"],
            resource_uuid=resource_uuid,
            resource_location=location,
        )
        self.state.tags.append(attachment)
        return attachment

    def grant(
        self,
        kind: ResourceKind,
        resource_uuid: str,
        capability: str,
        subject: str,
        subject_type: str = "user",
    ) -> PermissionNode:
        location, row = self.locate(resource_uuid)[0]
        grant = PermissionNode(
            uuid=f"perm-{len(self.state.permissions) + 1}",
            name=capability,
            subject_type=subject_type,
            subject=subject,
            resource_type=kind.name,
            resource=row["id"],
            resource_uuid=resource_uuid,
            resource_location=location,
        )
        self.state.permissions.append(grant)
        return grant


class MemoryTagReferences(ReferenceHolder):
    name = "tags"

    async def set_locations(self, tx, kind, old_id, old_location, new_id, new_location):
        moved = 0
        for tag in tx.state.tags:
            if (tag.resource_type == kind.name and tag.resource == old_id
                    and tag.resource_location == old_location):
                tag.resource = new_id
                tag.resource_location = new_location
                moved += 1
        return moved

    async def discard(self, tx, kind, resource_id, location):
        keep = [
            t for t in tx.state.tags
            if not (t.resource_type == kind.name and t.resource == resource_id
                    and t.resource_location == location)
        ]
        removed = len(tx.state.tags) - len(keep)
        tx.state.tags = keep
        return removed


class MemoryPermissionReferences(ReferenceHolder):
    name = "permissions"

    def _matching(self, tx, kind, resource_id, location):
        return [
            p for p in tx.state.permissions
            if p.resource_type == kind.name and p.resource == resource_id
            and p.resource_location == location
        ]

    async def set_locations(self, tx, kind, old_id, old_location, new_id, new_location):
        grants = self._matching(tx, kind, old_id, old_location)
        for grant in grants:
            grant.resource = new_id
            grant.resource_location = new_location
        return len(grants)

    async def discard(self, tx, kind, resource_id, location):
        grants = self._matching(tx, kind, resource_id, location)
        for grant in grants:
            grant.resource = ORPHANED_RESOURCE
        return len(grants)


class StepClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(seconds=1)
        return current


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Provide test settings with mock values."""
    with patch.dict(
        "os.environ",
        {
            "NEO4J_URI": "bolt://localhost:7687",
            "NEO4J_USERNAME": "neo4j",
            "NEO4J_PASSWORD": "password123",
            "LIFECYCLE_CLONE_SUFFIX": " Clone",
        },
    ):
        # Clear cache and get fresh settings
        get_settings.cache_clear()
        settings = get_settings()
    get_settings.cache_clear()
    return settings


@pytest.fixture
def lifecycle_settings() -> LifecycleSettings:
    return LifecycleSettings()


# =============================================================================
# Actor / RBAC Fixtures
# =============================================================================


@pytest.fixture
def rbac() -> RBACManager:
    return RBACManager()


@pytest.fixture
def owner() -> Actor:
    return Actor(id="user-1", username="alice", roles=("manager",))


@pytest.fixture
def other_user() -> Actor:
    return Actor(id="user-2", username="bob", roles=("manager",))


@pytest.fixture
def viewer() -> Actor:
    return Actor(id="user-3", username="carol", roles=("viewer",))


@pytest.fixture
def admin() -> Actor:
    return Actor(id="admin-1", username="root", roles=("admin",))


# =============================================================================
# Lifecycle Fixtures
# =============================================================================


@pytest.fixture
def memory_store(lifecycle_settings: LifecycleSettings) -> MemoryLifecycleStore:
    return MemoryLifecycleStore(lifecycle_settings)


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def notifier() -> CascadeNotifier:
    return CascadeNotifier([MemoryPermissionReferences(), MemoryTagReferences()])


@pytest.fixture
def service(
    memory_store: MemoryLifecycleStore,
    rbac: RBACManager,
    notifier: CascadeNotifier,
    clock: StepClock,
) -> LifecycleService:
    """Lifecycle service over the in-memory store."""
    return LifecycleService(
        store=memory_store,
        gate=rbac,
        notifier=notifier,
        clone_suffix=" Clone",
        clock=clock,
    )


# =============================================================================
# Neo4j Client Fixtures
# =============================================================================


@pytest.fixture
def mock_neo4j_client() -> MagicMock:
    """Create a mock Neo4j client."""
    client = MagicMock(spec=TicketGraphClient)

    # Connection methods
    client.connect = AsyncMock()
    client.close = AsyncMock()

    # Query methods
    client.execute_cypher = AsyncMock(return_value=[])
    client.setup_schema = AsyncMock(
        return_value={"constraints": [], "indexes": [], "errors": []}
    )

    return client
