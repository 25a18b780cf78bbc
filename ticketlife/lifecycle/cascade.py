"""
Cascade Notification.

Tags and permissions reference a resource by ``(type, id, location)``. When a
row moves between the active and trash stores every such reference is
re-pointed; when a row is destroyed the references are discarded. All calls
run inside the caller's transaction, so references and rows commit together.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Protocol

import structlog

from ticketlife.graph.schema import Location, NodeLabel, ResourceKind

logger = structlog.get_logger(__name__)

ORPHANED_RESOURCE = -1


class CypherRunner(Protocol):
    """Anything that runs Cypher inside an open transaction."""

    async def run(self, query: str, parameters: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        ...


class ReferenceHolder(ABC):
    """A dependent subsystem holding references to lifecycle resources."""

    name: str = "references"

    @abstractmethod
    async def set_locations(
        self,
        tx: Any,
        kind: ResourceKind,
        old_id: int,
        old_location: Location,
        new_id: int,
        new_location: Location,
    ) -> int:
        """Re-point references; returns how many were rewritten."""

    @abstractmethod
    async def discard(
        self,
        tx: Any,
        kind: ResourceKind,
        resource_id: int,
        location: Location,
    ) -> int:
        """Drop references to a destroyed resource; returns how many."""


class TagReferences(ReferenceHolder):
    """Tag attachments (``TagResource`` nodes). Discarding deletes them."""

    name = "tags"

    async def set_locations(
        self,
        tx: CypherRunner,
        kind: ResourceKind,
        old_id: int,
        old_location: Location,
        new_id: int,
        new_location: Location,
    ) -> int:
        query = f"""
        MATCH (t:{NodeLabel.TAG_RESOURCE.value}
               {{resource_type: $type, resource: $old_id, resource_location: $old_location}})
        SET t.resource = $new_id,
            t.resource_location = $new_location
        RETURN count(t) AS affected
        """
        rows = await tx.run(query, {
            "type": kind.name,
            "old_id": old_id,
            "old_location": old_location.value,
            "new_id": new_id,
            "new_location": new_location.value,
        })
        return rows[0]["affected"] if rows else 0

    async def discard(
        self,
        tx: CypherRunner,
        kind: ResourceKind,
        resource_id: int,
        location: Location,
    ) -> int:
        query = f"""
        MATCH (t:{NodeLabel.TAG_RESOURCE.value}
               {{resource_type: $type, resource: $id, resource_location: $location}})
        WITH collect(t) AS attachments
        FOREACH (t IN attachments | DETACH DELETE t)
        RETURN size(attachments) AS affected
        """
        rows = await tx.run(query, {
            "type": kind.name,
            "id": resource_id,
            "location": location.value,
        })
        return rows[0]["affected"] if rows else 0


class PermissionReferences(ReferenceHolder):
    """Permission grants (``Permission`` nodes). Discarding orphans them."""

    name = "permissions"

    async def set_locations(
        self,
        tx: CypherRunner,
        kind: ResourceKind,
        old_id: int,
        old_location: Location,
        new_id: int,
        new_location: Location,
    ) -> int:
        query = f"""
        MATCH (p:{NodeLabel.PERMISSION.value}
               {{resource_type: $type, resource: $old_id, resource_location: $old_location}})
        SET p.resource = $new_id,
            p.resource_location = $new_location
        RETURN count(p) AS affected
        """
        rows = await tx.run(query, {
            "type": kind.name,
            "old_id": old_id,
            "old_location": old_location.value,
            "new_id": new_id,
            "new_location": new_location.value,
        })
        return rows[0]["affected"] if rows else 0

    async def discard(
        self,
        tx: CypherRunner,
        kind: ResourceKind,
        resource_id: int,
        location: Location,
    ) -> int:
        # The grant survives as an orphan; resource_uuid still says what it was for.
        query = f"""
        MATCH (p:{NodeLabel.PERMISSION.value}
               {{resource_type: $type, resource: $id, resource_location: $location}})
        SET p.resource = $orphan
        RETURN count(p) AS affected
        """
        rows = await tx.run(query, {
            "type": kind.name,
            "id": resource_id,
            "location": location.value,
            "orphan": ORPHANED_RESOURCE,
        })
        return rows[0]["affected"] if rows else 0


class CascadeNotifier:
    """
    Informs dependent subsystems of resource moves and destruction.

    Usage:
        ```python
        notifier = CascadeNotifier()

        # Active -> trash
        await notifier.rewrite_locations(tx, TICKET, 7, Location.TABLE, 3, Location.TRASH)

        # Hard delete of an active row
        await notifier.discard_references(tx, TICKET, 7, Location.TABLE)
        ```
    """

    def __init__(self, holders: Sequence[ReferenceHolder] | None = None) -> None:
        if holders is None:
            holders = [PermissionReferences(), TagReferences()]
        self._holders = list(holders)

    @property
    def holders(self) -> list[ReferenceHolder]:
        return list(self._holders)

    async def rewrite_locations(
        self,
        tx: Any,
        kind: ResourceKind,
        old_id: int,
        old_location: Location,
        new_id: int,
        new_location: Location,
    ) -> dict[str, int]:
        """Re-point every reference from (old_location, old_id) to (new_location, new_id)."""
        affected = {}
        for holder in self._holders:
            affected[holder.name] = await holder.set_locations(
                tx, kind, old_id, old_location, new_id, new_location
            )

        logger.debug(
            "References rewritten",
            resource_type=kind.name,
            old_id=old_id,
            old_location=old_location.value,
            new_id=new_id,
            new_location=new_location.value,
            **affected,
        )
        return affected

    async def discard_references(
        self,
        tx: Any,
        kind: ResourceKind,
        resource_id: int,
        location: Location,
    ) -> dict[str, int]:
        """Discard references to an active row that is being destroyed."""
        return await self._discard(tx, kind, resource_id, location, "References discarded")

    async def remove_references(
        self,
        tx: Any,
        kind: ResourceKind,
        resource_id: int,
        location: Location = Location.TRASH,
    ) -> dict[str, int]:
        """Remove references to a trashed row that is being purged."""
        return await self._discard(tx, kind, resource_id, location, "Trash references removed")

    async def _discard(
        self,
        tx: Any,
        kind: ResourceKind,
        resource_id: int,
        location: Location,
        event: str,
    ) -> dict[str, int]:
        affected = {}
        for holder in self._holders:
            affected[holder.name] = await holder.discard(tx, kind, resource_id, location)

        logger.debug(
            event,
            resource_type=kind.name,
            resource_id=resource_id,
            location=location.value,
            **affected,
        )
        return affected
