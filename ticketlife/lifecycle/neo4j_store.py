"""
Neo4j Lifecycle Store.

Active rows are ``Ticket`` nodes, trashed rows are ``TicketTrash`` nodes.
Internal ids come from a per-label ``IdSequence`` node and are never reused.
Immediate transactions first take a write lock on a single ``WriteLock`` node,
which serializes writers the way an exclusive-write transaction would.
"""

from typing import Any

import structlog
from neo4j import AsyncSession, AsyncTransaction
from neo4j.exceptions import DriverError, Neo4jError
from neo4j.time import Date, DateTime

from ticketlife.config.settings import LifecycleSettings, get_settings
from ticketlife.graph.neo4j_client import TicketGraphClient, get_ticket_client
from ticketlife.graph.schema import Location, NodeLabel, ResourceKind
from ticketlife.lifecycle.results import StoreError
from ticketlife.lifecycle.store import LifecycleStore, LifecycleTransaction, ListFilter
from ticketlife.security.actor import Actor

logger = structlog.get_logger(__name__)


def _native(value: Any) -> Any:
    if isinstance(value, (DateTime, Date)):
        return value.to_native()
    return value


def _native_row(row: dict[str, Any]) -> dict[str, Any]:
    return {key: _native(value) for key, value in row.items()}


class Neo4jLifecycleTransaction(LifecycleTransaction):
    """An explicit Neo4j transaction plus the session that owns it."""

    def __init__(
        self,
        session: AsyncSession,
        tx: AsyncTransaction,
        settings: LifecycleSettings,
    ) -> None:
        self._session = session
        self._tx = tx
        self._settings = settings
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def run(self, query: str, parameters: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Run Cypher inside this transaction."""
        if self._closed:
            raise StoreError("Transaction already closed")
        try:
            result = await self._tx.run(query, parameters or {})
            return await result.data()
        except (Neo4jError, DriverError) as e:
            raise StoreError(f"Cypher failed: {e}") from e

    async def commit(self) -> None:
        try:
            await self._tx.commit()
        except (Neo4jError, DriverError) as e:
            raise StoreError(f"Commit failed: {e}") from e
        finally:
            await self._close()

    async def rollback(self) -> None:
        try:
            await self._tx.rollback()
        except (Neo4jError, DriverError) as e:
            raise StoreError(f"Rollback failed: {e}") from e
        finally:
            await self._close()

    async def _close(self) -> None:
        self._closed = True
        await self._session.close()

    async def lock(self, name: str) -> None:
        """Take the write lock; held until commit or rollback."""
        query = f"""
        MERGE (l:{NodeLabel.WRITE_LOCK.value} {{name: $name}})
        SET l.acquired_at = datetime()
        """
        await self.run(query, {"name": name})

    async def _next_id(self, label: str) -> int:
        query = f"""
        MERGE (s:{NodeLabel.ID_SEQUENCE.value} {{label: $label}})
        ON CREATE SET s.value = 0
        SET s.value = s.value + 1
        RETURN s.value AS id
        """
        rows = await self.run(query, {"label": label})
        return rows[0]["id"]

    # =========================================================================
    # Lookups
    # =========================================================================

    def _visibility(self, alias: str = "r") -> str:
        return f"""
        ({alias}.owner = $actor
         OR ($admin_bypass AND $is_admin)
         OR EXISTS {{
             MATCH (p:{NodeLabel.PERMISSION.value}
                    {{resource_type: $type, resource: {alias}.id, resource_location: $location}})
             WHERE p.name = $capability
               AND ((p.subject_type = 'user' AND p.subject = $actor)
                    OR (p.subject_type = 'role' AND p.subject IN $roles))
         }})
        """

    def _visibility_params(
        self,
        kind: ResourceKind,
        actor: Actor,
        capability: str,
        location: Location,
    ) -> dict[str, Any]:
        return {
            "type": kind.name,
            "actor": actor.id,
            "roles": list(actor.roles),
            "is_admin": actor.has_role(self._settings.admin_role),
            "admin_bypass": self._settings.admin_bypass,
            "capability": capability,
            "location": location.value,
        }

    async def resolve_with_capability(
        self,
        kind: ResourceKind,
        resource_uuid: str,
        actor: Actor,
        capability: str,
        location: Location = Location.TABLE,
    ) -> int | None:
        query = f"""
        MATCH (r:{kind.label(location)} {{uuid: $uuid}})
        WHERE {self._visibility()}
        RETURN r.id AS id
        """
        params = self._visibility_params(kind, actor, capability, location)
        params["uuid"] = resource_uuid
        rows = await self.run(query, params)
        return rows[0]["id"] if rows else None

    async def resolve_in_trash(
        self,
        kind: ResourceKind,
        resource_uuid: str,
        actor: Actor,
    ) -> int | None:
        query = f"""
        MATCH (r:{kind.trash_label} {{uuid: $uuid}})
        WHERE r.owner = $actor OR ($admin_bypass AND $is_admin)
        RETURN r.id AS id
        """
        rows = await self.run(query, {
            "uuid": resource_uuid,
            "actor": actor.id,
            "is_admin": actor.has_role(self._settings.admin_role),
            "admin_bypass": self._settings.admin_bypass,
        })
        return rows[0]["id"] if rows else None

    async def name_exists(
        self,
        kind: ResourceKind,
        name: str,
        owner: str,
        excluding_id: int | None = None,
    ) -> bool:
        query = f"""
        MATCH (r:{kind.table_label} {{name: $name, owner: $owner}})
        WHERE $excluding IS NULL OR r.id <> $excluding
        RETURN count(r) AS matches
        """
        rows = await self.run(query, {"name": name, "owner": owner, "excluding": excluding_id})
        return bool(rows and rows[0]["matches"])

    async def fetch(
        self,
        kind: ResourceKind,
        resource_id: int,
        location: Location,
    ) -> dict[str, Any] | None:
        query = f"""
        MATCH (r:{kind.label(location)} {{id: $id}})
        RETURN r {{.*}} AS row
        """
        rows = await self.run(query, {"id": resource_id})
        return _native_row(rows[0]["row"]) if rows else None

    def _filter_clause(self) -> str:
        return """
          AND ($name IS NULL OR toLower(r.name) CONTAINS toLower($name))
          AND ($host IS NULL OR r.host = $host)
        """

    async def list_rows(
        self,
        kind: ResourceKind,
        location: Location,
        actor: Actor,
        capability: str,
        list_filter: ListFilter,
    ) -> list[dict[str, Any]]:
        query = f"""
        MATCH (r:{kind.label(location)})
        WHERE {self._visibility()}
        {self._filter_clause()}
        RETURN r {{.*}} AS row
        ORDER BY r.name, r.id
        SKIP $offset LIMIT $limit
        """
        params = self._visibility_params(kind, actor, capability, location)
        params.update({
            "name": list_filter.name,
            "host": list_filter.host,
            "offset": list_filter.offset,
            "limit": list_filter.limit,
        })
        rows = await self.run(query, params)
        return [_native_row(r["row"]) for r in rows]

    async def count_rows(
        self,
        kind: ResourceKind,
        location: Location,
        actor: Actor,
        capability: str,
        list_filter: ListFilter,
    ) -> int:
        query = f"""
        MATCH (r:{kind.label(location)})
        WHERE {self._visibility()}
        {self._filter_clause()}
        RETURN count(r) AS total
        """
        params = self._visibility_params(kind, actor, capability, location)
        params.update({"name": list_filter.name, "host": list_filter.host})
        rows = await self.run(query, params)
        return rows[0]["total"] if rows else 0

    # =========================================================================
    # Mutations
    # =========================================================================

    async def insert(
        self,
        kind: ResourceKind,
        row: dict[str, Any],
        location: Location = Location.TABLE,
    ) -> int:
        label = kind.label(location)
        new_id = await self._next_id(label)
        props = {key: value for key, value in row.items() if value is not None}
        props["id"] = new_id

        query = f"""
        CREATE (r:{label})
        SET r = $props
        RETURN r.id AS id
        """
        rows = await self.run(query, {"props": props})
        return rows[0]["id"]

    async def copy_row(
        self,
        kind: ResourceKind,
        resource_id: int,
        source: Location,
        target: Location,
    ) -> int:
        new_id = await self._next_id(kind.label(target))
        query = f"""
        MATCH (src:{kind.label(source)} {{id: $id}})
        CREATE (dst:{kind.label(target)})
        SET dst = properties(src),
            dst.id = $new_id
        RETURN dst.id AS id
        """
        rows = await self.run(query, {"id": resource_id, "new_id": new_id})
        if not rows:
            raise StoreError(f"{kind.label(source)} {resource_id} vanished during copy")
        return rows[0]["id"]

    async def update(
        self,
        kind: ResourceKind,
        resource_id: int,
        fields: dict[str, Any],
    ) -> None:
        query = f"""
        MATCH (r:{kind.table_label} {{id: $id}})
        SET r += $fields
        RETURN r.id AS id
        """
        rows = await self.run(query, {"id": resource_id, "fields": fields})
        if not rows:
            raise StoreError(f"{kind.table_label} {resource_id} vanished during update")

    async def erase(
        self,
        kind: ResourceKind,
        resource_id: int,
        location: Location,
    ) -> None:
        query = f"""
        MATCH (r:{kind.label(location)} {{id: $id}})
        DETACH DELETE r
        """
        await self.run(query, {"id": resource_id})


class Neo4jLifecycleStore(LifecycleStore):
    """
    Lifecycle store backed by Neo4j.

    Usage:
        ```python
        store = Neo4jLifecycleStore()

        async with store.transaction() as tx:
            ticket_id = await tx.resolve_in_trash(TICKET, uuid, actor)
            ...
            await tx.commit()
        ```
    """

    def __init__(
        self,
        client: TicketGraphClient | None = None,
        settings: LifecycleSettings | None = None,
    ) -> None:
        self._client = client or get_ticket_client()
        self._settings = settings or get_settings().lifecycle

    async def begin(self, immediate: bool = True) -> Neo4jLifecycleTransaction:
        try:
            session = await self._client.open_session()
        except (Neo4jError, DriverError) as e:
            raise StoreError(f"Could not open session: {e}") from e

        try:
            tx = await session.begin_transaction(
                timeout=self._client.settings.transaction_timeout_seconds,
            )
        except (Neo4jError, DriverError) as e:
            await session.close()
            raise StoreError(f"Could not begin transaction: {e}") from e

        transaction = Neo4jLifecycleTransaction(session, tx, self._settings)
        if immediate:
            try:
                await transaction.lock(self._settings.write_lock_name)
            except StoreError as e:
                logger.warning(
                    "Write lock not acquired",
                    lock=self._settings.write_lock_name,
                    error=str(e),
                )
                try:
                    await transaction.rollback()
                except StoreError as rollback_error:
                    logger.warning("Rollback after lock failure failed", error=str(rollback_error))
                raise e

        logger.debug("Transaction opened", immediate=immediate)
        return transaction
