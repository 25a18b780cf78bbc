"""
Lifecycle operation results and errors.

Every public lifecycle operation returns a ``LifecycleResult``. Callers that
prefer exceptions can call ``raise_for_status()``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ticketlife.graph.schema import Location


class LifecycleStatus(str, Enum):
    """Outcome of a lifecycle operation."""

    SUCCESS = "success"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    NAME_CONFLICT = "name_conflict"
    EMPTY_NAME = "empty_name"
    STILL_IN_USE = "still_in_use"
    INTERNAL_ERROR = "internal_error"


class StoreError(Exception):
    """Failure of the underlying transactional store."""


class LifecycleError(Exception):
    """Base class for lifecycle failures raised by ``raise_for_status``."""

    status = LifecycleStatus.INTERNAL_ERROR

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


class PermissionDenied(LifecycleError):
    status = LifecycleStatus.PERMISSION_DENIED


class ResourceNotFound(LifecycleError):
    status = LifecycleStatus.NOT_FOUND


class NameConflict(LifecycleError):
    status = LifecycleStatus.NAME_CONFLICT

    def __init__(self, message: str, operation: str | None = None, on_restore: bool = False):
        super().__init__(message, operation)
        self.on_restore = on_restore


class EmptyName(LifecycleError):
    status = LifecycleStatus.EMPTY_NAME


class StillInUse(LifecycleError):
    status = LifecycleStatus.STILL_IN_USE


class InternalError(LifecycleError):
    status = LifecycleStatus.INTERNAL_ERROR


_ERRORS: dict[LifecycleStatus, type[LifecycleError]] = {
    LifecycleStatus.NOT_FOUND: ResourceNotFound,
    LifecycleStatus.PERMISSION_DENIED: PermissionDenied,
    LifecycleStatus.NAME_CONFLICT: NameConflict,
    LifecycleStatus.EMPTY_NAME: EmptyName,
    LifecycleStatus.STILL_IN_USE: StillInUse,
    LifecycleStatus.INTERNAL_ERROR: InternalError,
}


@dataclass
class LifecycleResult:
    """Result of a lifecycle operation."""

    operation: str  # "create", "modify", "delete", "restore", "copy"
    status: LifecycleStatus = LifecycleStatus.SUCCESS

    # Where the resource ended up (None once it no longer exists)
    resource_id: int | None = None
    resource_uuid: str | None = None
    location: Location | None = None

    # Errors
    errors: list[str] = field(default_factory=list)
    restore_conflict: bool = False

    @property
    def success(self) -> bool:
        return self.status is LifecycleStatus.SUCCESS

    def fail(self, status: LifecycleStatus, message: str) -> "LifecycleResult":
        self.status = status
        self.errors.append(message)
        return self

    def raise_for_status(self) -> "LifecycleResult":
        """Raise the matching ``LifecycleError`` unless the operation succeeded."""
        if self.success:
            return self

        message = "; ".join(self.errors) or self.status.value
        error_cls = _ERRORS[self.status]
        if error_cls is NameConflict:
            raise NameConflict(message, self.operation, on_restore=self.restore_conflict)
        raise error_cls(message, self.operation)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "operation": self.operation,
            "status": self.status.value,
            "resource_id": self.resource_id,
            "resource_uuid": self.resource_uuid,
            "location": self.location.value if self.location else None,
            "errors": self.errors,
            "restore_conflict": self.restore_conflict,
        }
