"""
Lifecycle Service.

Moves resources between the active set and the trash set:
- create / modify / copy in the active set
- soft delete (active -> trash) and restore (trash -> active)
- ultimate delete from either store

Each operation runs in one immediate transaction: the capability check,
existence and uniqueness checks, row moves, and cascade notifications all
commit together or not at all.
"""

from typing import Any

import structlog
from pydantic import BaseModel

from ticketlife.config.settings import get_settings
from ticketlife.graph.schema import (
    TICKET,
    Location,
    ResourceKind,
    TicketPayload,
    TicketRecord,
)
from ticketlife.lifecycle.cascade import CascadeNotifier
from ticketlife.lifecycle.neo4j_store import Neo4jLifecycleStore
from ticketlife.lifecycle.results import (
    InternalError,
    LifecycleResult,
    LifecycleStatus,
    PermissionDenied,
    StoreError,
)
from ticketlife.lifecycle.store import LifecycleStore, LifecycleTransaction, ListFilter
from ticketlife.lifecycle.timestamps import (
    Clock,
    UuidFactory,
    creation_stamps,
    modification_stamp,
    new_uuid,
    utc_now,
)
from ticketlife.lifecycle.usage import UsagePolicy
from ticketlife.observability.logging import LogContext, operation_context
from ticketlife.security.actor import Actor
from ticketlife.security.authorization import PermissionGate, get_rbac_manager

logger = structlog.get_logger(__name__)


class LifecycleService:
    """
    Orchestrates the resource lifecycle state machine.

    Usage:
        ```python
        service = LifecycleService()
        actor = Actor(id="user-1", roles=("manager",))

        created = await service.create(actor, name="CVE-2024-1234 on web01")
        await service.delete(actor, created.resource_uuid)            # to trash
        await service.restore(actor, created.resource_uuid)           # back again
        await service.delete(actor, created.resource_uuid, ultimate=True)
        ```
    """

    def __init__(
        self,
        store: LifecycleStore | None = None,
        gate: PermissionGate | None = None,
        notifier: CascadeNotifier | None = None,
        kind: ResourceKind = TICKET,
        payload_model: type[BaseModel] = TicketPayload,
        usage: UsagePolicy | None = None,
        clone_suffix: str | None = None,
        clock: Clock = utc_now,
        uuid_factory: UuidFactory = new_uuid,
    ) -> None:
        if clone_suffix is None:
            clone_suffix = get_settings().lifecycle.clone_suffix

        self._store = store or Neo4jLifecycleStore()
        self._gate = gate or get_rbac_manager()
        self._notifier = notifier or CascadeNotifier()
        self.kind = kind
        self._payload_model = payload_model
        self._usage = usage or UsagePolicy()
        self._clone_suffix = clone_suffix
        self._clock = clock
        self._new_uuid = uuid_factory

    def _log_context(self, actor: Actor, operation: str) -> LogContext:
        return operation_context(actor.id, operation, self.kind.name)

    def _internal_error(self, result: LifecycleResult, error: StoreError) -> LifecycleResult:
        logger.error("Lifecycle operation failed, rolled back", error=str(error))
        return result.fail(LifecycleStatus.INTERNAL_ERROR, f"{result.operation} failed: {error}")

    # =========================================================================
    # Create
    # =========================================================================

    async def create(
        self,
        actor: Actor,
        name: str,
        comment: str | None = None,
        payload: BaseModel | dict[str, Any] | None = None,
    ) -> LifecycleResult:
        """
        Create a resource in the active set.

        Args:
            actor: Acting user; becomes the owner
            name: Name, unique among the actor's active resources
            comment: Optional comment (stored as "" when omitted)
            payload: Domain fields, validated against the payload model

        Returns:
            LifecycleResult carrying the new id and uuid
        """
        result = LifecycleResult(operation="create")
        fields = self._validate_payload(payload)

        with self._log_context(actor, "create"):
            try:
                async with self._store.transaction(immediate=True) as tx:
                    if not self._gate.may(actor, self.kind.capability("create")):
                        await tx.rollback()
                        logger.warning("Create denied")
                        return result.fail(
                            LifecycleStatus.PERMISSION_DENIED,
                            f"Permission denied: {self.kind.capability('create')}",
                        )

                    if await tx.name_exists(self.kind, name, actor.id):
                        await tx.rollback()
                        logger.warning("Create blocked by existing name", name=name)
                        return result.fail(
                            LifecycleStatus.NAME_CONFLICT,
                            f"{self.kind.name} named '{name}' exists already",
                        )

                    row = {
                        **fields,
                        "uuid": self._new_uuid(),
                        "owner": actor.id,
                        "name": name,
                        "comment": comment if comment is not None else "",
                        **creation_stamps(self._clock),
                    }
                    result.resource_id = await tx.insert(self.kind, row, Location.TABLE)
                    result.resource_uuid = row["uuid"]
                    result.location = Location.TABLE

                    await tx.commit()

            except StoreError as e:
                return self._internal_error(result, e)

            logger.info("Resource created", resource_id=result.resource_id, uuid=result.resource_uuid)
            return result

    def _validate_payload(self, payload: BaseModel | dict[str, Any] | None) -> dict[str, Any]:
        if payload is None:
            model = self._payload_model()
        elif isinstance(payload, self._payload_model):
            model = payload
        elif isinstance(payload, BaseModel):
            model = self._payload_model.model_validate(payload.model_dump())
        else:
            model = self._payload_model.model_validate(payload)
        dumped = model.model_dump()
        return {f: dumped.get(f) for f in self.kind.payload_fields}

    # =========================================================================
    # Modify
    # =========================================================================

    async def modify(
        self,
        actor: Actor,
        resource_uuid: str,
        name: str | None = None,
        comment: str | None = None,
    ) -> LifecycleResult:
        """
        Rename and/or re-comment an active resource.

        Either field may be omitted; both changes commit together or neither does.
        """
        result = LifecycleResult(operation="modify", resource_uuid=resource_uuid)
        capability = self.kind.capability("modify")

        with self._log_context(actor, "modify"):
            try:
                async with self._store.transaction(immediate=True) as tx:
                    if not self._gate.may(actor, capability):
                        await tx.rollback()
                        logger.warning("Modify denied")
                        return result.fail(
                            LifecycleStatus.PERMISSION_DENIED,
                            f"Permission denied: {capability}",
                        )

                    resource_id = await tx.resolve_with_capability(
                        self.kind, resource_uuid, actor, capability
                    )
                    if resource_id is None:
                        await tx.rollback()
                        return result.fail(
                            LifecycleStatus.NOT_FOUND,
                            f"Failed to find {self.kind.name} '{resource_uuid}'",
                        )

                    changes: dict[str, Any] = {}
                    if name is not None:
                        if name == "":
                            await tx.rollback()
                            return result.fail(LifecycleStatus.EMPTY_NAME, "Name must not be empty")
                        if await tx.name_exists(self.kind, name, actor.id, excluding_id=resource_id):
                            await tx.rollback()
                            logger.warning("Rename blocked by existing name", name=name)
                            return result.fail(
                                LifecycleStatus.NAME_CONFLICT,
                                f"{self.kind.name} named '{name}' exists already",
                            )
                        changes["name"] = name

                    if comment is not None:
                        changes["comment"] = comment

                    if changes:
                        changes.update(modification_stamp(self._clock))
                        await tx.update(self.kind, resource_id, changes)

                    result.resource_id = resource_id
                    result.location = Location.TABLE
                    await tx.commit()

            except StoreError as e:
                return self._internal_error(result, e)

            logger.info(
                "Resource modified",
                resource_id=result.resource_id,
                renamed=name is not None,
                recommented=comment is not None,
            )
            return result

    # =========================================================================
    # Delete
    # =========================================================================

    async def delete(
        self,
        actor: Actor,
        resource_uuid: str,
        ultimate: bool = False,
    ) -> LifecycleResult:
        """
        Move a resource to the trash, or destroy it.

        Args:
            actor: Acting user
            resource_uuid: UUID of the resource, active or trashed
            ultimate: Destroy instead of trashing (empties it from the trash too)

        Returns:
            LifecycleResult; after a soft delete it carries the trash id
        """
        result = LifecycleResult(operation="delete", resource_uuid=resource_uuid)
        capability = self.kind.capability("delete")

        with self._log_context(actor, "delete"):
            try:
                async with self._store.transaction(immediate=True) as tx:
                    if not self._gate.may(actor, capability):
                        await tx.rollback()
                        logger.warning("Delete denied")
                        return result.fail(
                            LifecycleStatus.PERMISSION_DENIED,
                            f"Permission denied: {capability}",
                        )

                    resource_id = await tx.resolve_with_capability(
                        self.kind, resource_uuid, actor, capability
                    )
                    if resource_id is None:
                        return await self._delete_from_trash(tx, result, actor, ultimate)

                    if await self._usage.in_use(tx, self.kind, resource_id, Location.TABLE):
                        await tx.rollback()
                        return result.fail(
                            LifecycleStatus.STILL_IN_USE,
                            f"{self.kind.name} '{resource_uuid}' is in use",
                        )

                    if not ultimate:
                        trash_id = await tx.copy_row(
                            self.kind, resource_id, Location.TABLE, Location.TRASH
                        )
                        await self._notifier.rewrite_locations(
                            tx, self.kind, resource_id, Location.TABLE, trash_id, Location.TRASH
                        )
                        result.resource_id = trash_id
                        result.location = Location.TRASH
                    else:
                        await self._notifier.discard_references(
                            tx, self.kind, resource_id, Location.TABLE
                        )

                    await tx.erase(self.kind, resource_id, Location.TABLE)
                    await tx.commit()

            except StoreError as e:
                return self._internal_error(result, e)

            if result.success:
                logger.info(
                    "Resource destroyed" if ultimate else "Resource moved to trash",
                    resource_id=result.resource_id,
                )
            return result

    async def _delete_from_trash(
        self,
        tx: LifecycleTransaction,
        result: LifecycleResult,
        actor: Actor,
        ultimate: bool,
    ) -> LifecycleResult:
        resource_uuid = result.resource_uuid
        assert resource_uuid is not None

        trash_id = await tx.resolve_in_trash(self.kind, resource_uuid, actor)
        if trash_id is None:
            await tx.rollback()
            return result.fail(
                LifecycleStatus.NOT_FOUND,
                f"Failed to find {self.kind.name} '{resource_uuid}'",
            )

        if not ultimate:
            # Already in the trash
            await tx.commit()
            result.resource_id = trash_id
            result.location = Location.TRASH
            logger.debug("Resource already in trash", resource_id=trash_id)
            return result

        if await self._usage.in_use(tx, self.kind, trash_id, Location.TRASH):
            await tx.rollback()
            return result.fail(
                LifecycleStatus.STILL_IN_USE,
                f"Trashed {self.kind.name} '{resource_uuid}' is in use",
            )

        await self._notifier.remove_references(tx, self.kind, trash_id, Location.TRASH)
        await tx.erase(self.kind, trash_id, Location.TRASH)
        await tx.commit()

        logger.info("Resource purged from trash", resource_id=trash_id)
        return result

    # =========================================================================
    # Restore
    # =========================================================================

    async def restore(self, actor: Actor, resource_uuid: str) -> LifecycleResult:
        """
        Move a trashed resource back into the active set.

        Fails with a name conflict when the actor already owns an active
        resource with the same name.
        """
        result = LifecycleResult(operation="restore", resource_uuid=resource_uuid)

        with self._log_context(actor, "restore"):
            try:
                async with self._store.transaction(immediate=True) as tx:
                    trash_id = await tx.resolve_in_trash(self.kind, resource_uuid, actor)
                    if trash_id is None:
                        await tx.rollback()
                        return result.fail(
                            LifecycleStatus.NOT_FOUND,
                            f"Failed to find trashed {self.kind.name} '{resource_uuid}'",
                        )

                    row = await tx.fetch(self.kind, trash_id, Location.TRASH)
                    if row is None:
                        await tx.rollback()
                        return result.fail(
                            LifecycleStatus.NOT_FOUND,
                            f"Failed to find trashed {self.kind.name} '{resource_uuid}'",
                        )

                    if await tx.name_exists(self.kind, row["name"], actor.id):
                        await tx.rollback()
                        result.restore_conflict = True
                        logger.warning("Restore blocked by active name", name=row["name"])
                        return result.fail(
                            LifecycleStatus.NAME_CONFLICT,
                            f"Restore blocked: an active {self.kind.name} "
                            f"named '{row['name']}' exists",
                        )

                    new_id = await tx.copy_row(self.kind, trash_id, Location.TRASH, Location.TABLE)
                    await self._notifier.rewrite_locations(
                        tx, self.kind, trash_id, Location.TRASH, new_id, Location.TABLE
                    )
                    await tx.erase(self.kind, trash_id, Location.TRASH)

                    result.resource_id = new_id
                    result.location = Location.TABLE
                    await tx.commit()

            except StoreError as e:
                return self._internal_error(result, e)

            logger.info("Resource restored", resource_id=result.resource_id)
            return result

    # =========================================================================
    # Copy
    # =========================================================================

    async def copy(
        self,
        actor: Actor,
        source_uuid: str,
        name: str | None = None,
        comment: str | None = None,
        from_trash: bool = False,
    ) -> LifecycleResult:
        """
        Create an independent resource seeded from an existing one.

        The copy gets a fresh id and uuid, the actor as owner, and no tags or
        permissions. Without a name it is called "<source name> Clone N".
        """
        result = LifecycleResult(operation="copy")
        source_location = Location.TRASH if from_trash else Location.TABLE
        create_capability = self.kind.capability("create")

        with self._log_context(actor, "copy"):
            try:
                async with self._store.transaction(immediate=True) as tx:
                    if not self._gate.may(actor, create_capability):
                        await tx.rollback()
                        logger.warning("Copy denied")
                        return result.fail(
                            LifecycleStatus.PERMISSION_DENIED,
                            f"Permission denied: {create_capability}",
                        )

                    source_id = await tx.resolve_with_capability(
                        self.kind,
                        source_uuid,
                        actor,
                        self.kind.capability("read"),
                        location=source_location,
                    )
                    source = (
                        await tx.fetch(self.kind, source_id, source_location)
                        if source_id is not None
                        else None
                    )
                    if source is None:
                        await tx.rollback()
                        return result.fail(
                            LifecycleStatus.NOT_FOUND,
                            f"Failed to find {self.kind.name} '{source_uuid}'",
                        )

                    if name:
                        if await tx.name_exists(self.kind, name, actor.id):
                            await tx.rollback()
                            logger.warning("Copy blocked by existing name", name=name)
                            return result.fail(
                                LifecycleStatus.NAME_CONFLICT,
                                f"{self.kind.name} named '{name}' exists already",
                            )
                        new_name = name
                    else:
                        new_name = await self._clone_name(tx, source["name"], actor.id)

                    row = {
                        **self.kind.payload_of(source),
                        "uuid": self._new_uuid(),
                        "owner": actor.id,
                        "name": new_name,
                        "comment": comment if comment is not None else source.get("comment") or "",
                        **creation_stamps(self._clock),
                    }
                    result.resource_id = await tx.insert(self.kind, row, Location.TABLE)
                    result.resource_uuid = row["uuid"]
                    result.location = Location.TABLE
                    await tx.commit()

            except StoreError as e:
                return self._internal_error(result, e)

            logger.info(
                "Resource copied",
                source_uuid=source_uuid,
                resource_id=result.resource_id,
                uuid=result.resource_uuid,
            )
            return result

    async def _clone_name(self, tx: LifecycleTransaction, source_name: str, owner: str) -> str:
        number = 1
        while True:
            candidate = f"{source_name}{self._clone_suffix} {number}"
            if not await tx.name_exists(self.kind, candidate, owner):
                return candidate
            number += 1

    # =========================================================================
    # Read Side
    # =========================================================================

    async def get(
        self,
        actor: Actor,
        resource_uuid: str,
        trash: bool = False,
    ) -> TicketRecord | None:
        """
        Fetch one visible resource, or None.

        Raises:
            PermissionDenied: The actor may not read this resource type at all
            InternalError: The store failed
        """
        capability = self.kind.capability("read")
        location = Location.TRASH if trash else Location.TABLE
        self._require(actor, capability)

        try:
            async with self._store.transaction(immediate=False) as tx:
                resource_id = await tx.resolve_with_capability(
                    self.kind, resource_uuid, actor, capability, location=location
                )
                if resource_id is None:
                    await tx.rollback()
                    return None

                row = await tx.fetch(self.kind, resource_id, location)
                if row is None:
                    await tx.rollback()
                    return None
                record = await self._record(tx, row, location)
                await tx.commit()
        except StoreError as e:
            raise InternalError(f"get failed: {e}", "get") from e

        return record

    async def list(
        self,
        actor: Actor,
        trash: bool = False,
        name: str | None = None,
        host: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[TicketRecord]:
        """List visible resources in one store, ordered by name."""
        capability = self.kind.capability("read")
        location = Location.TRASH if trash else Location.TABLE
        self._require(actor, capability)

        list_filter = ListFilter(name=name, host=host, limit=limit, offset=offset)
        try:
            async with self._store.transaction(immediate=False) as tx:
                rows = await tx.list_rows(self.kind, location, actor, capability, list_filter)
                records = [await self._record(tx, row, location) for row in rows]
                await tx.commit()
        except StoreError as e:
            raise InternalError(f"list failed: {e}", "list") from e

        return records

    async def count(
        self,
        actor: Actor,
        trash: bool = False,
        name: str | None = None,
        host: str | None = None,
    ) -> int:
        """Count visible resources in one store."""
        capability = self.kind.capability("read")
        location = Location.TRASH if trash else Location.TABLE
        self._require(actor, capability)

        try:
            async with self._store.transaction(immediate=False) as tx:
                total = await tx.count_rows(
                    self.kind, location, actor, capability, ListFilter(name=name, host=host)
                )
                await tx.commit()
        except StoreError as e:
            raise InternalError(f"count failed: {e}", "count") from e

        return total

    async def resource_uuid(self, resource_id: int) -> str | None:
        """UUID of an active resource by internal id."""
        try:
            async with self._store.transaction(immediate=False) as tx:
                row = await tx.fetch(self.kind, resource_id, Location.TABLE)
                await tx.commit()
        except StoreError as e:
            raise InternalError(f"uuid lookup failed: {e}", "resource_uuid") from e

        return row["uuid"] if row else None

    def _require(self, actor: Actor, capability: str) -> None:
        if not self._gate.may(actor, capability):
            logger.warning("Read denied", actor=actor.id, capability=capability)
            raise PermissionDenied(f"Permission denied: {capability}", capability)

    async def _record(
        self,
        tx: LifecycleTransaction,
        row: dict[str, Any],
        location: Location,
    ) -> TicketRecord:
        in_use = await self._usage.in_use(tx, self.kind, row["id"], location)
        writable = await self._usage.writable(tx, self.kind, row["id"], location)
        return TicketRecord.model_validate({
            **row,
            "resource_location": location,
            "in_use": in_use,
            "writable": writable,
        })
