"""
Graph Schema Models.

Defines node labels, storage locations, and property schemas for tickets and
the tag/permission references that point at them.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class NodeLabel(str, Enum):
    """Node labels in the lifecycle graph."""

    TICKET = "Ticket"
    TICKET_TRASH = "TicketTrash"
    TAG_RESOURCE = "TagResource"
    PERMISSION = "Permission"
    ID_SEQUENCE = "IdSequence"
    WRITE_LOCK = "WriteLock"


class Location(str, Enum):
    """Which store currently holds a resource row."""

    TABLE = "table"  # Active set
    TRASH = "trash"  # Trash set


class TicketStatus(str, Enum):
    """Remediation ticket workflow states."""

    OPEN = "Open"
    FIXED = "Fixed"
    FIX_VERIFIED = "Fix Verified"
    CLOSED = "Closed"
    ORPHANED = "Orphaned"


class TicketPayload(BaseModel):
    """
    Domain fields of a ticket.

    Opaque to the lifecycle protocol: copied verbatim on trash, restore and copy.
    """

    model_config = ConfigDict(extra="forbid", use_enum_values=True)

    task: str | None = Field(default=None, description="UUID of the task the result came from")
    report: str | None = Field(default=None, description="UUID of the report the result came from")
    severity: float | None = Field(default=None, ge=-3.0, le=10.0, description="Result severity")
    host: str | None = Field(default=None, description="Affected host")
    location: str | None = Field(default=None, description="Port/location on the host")
    solution_type: str | None = Field(default=None, description="NVT solution type")
    assigned_to: str | None = Field(default=None, description="User the ticket is assigned to")
    status: TicketStatus = Field(default=TicketStatus.OPEN, description="Workflow status")
    open_time: datetime | None = None
    solved_time: datetime | None = None
    solved_comment: str | None = None
    confirmed_time: datetime | None = None
    confirmed_result: str | None = None
    closed_time: datetime | None = None
    closed_rationale: str | None = None
    orphaned_time: datetime | None = None


TICKET_PAYLOAD_FIELDS: tuple[str, ...] = tuple(TicketPayload.model_fields)


class TicketRecord(TicketPayload):
    """A stored ticket row together with its derived location."""

    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    id: int = Field(..., description="Internal id, unique within the holding store")
    uuid: str = Field(..., description="Stable external identifier")
    owner: str = Field(..., description="Actor id of the creator")
    name: str = Field(..., description="Human-readable label")
    comment: str = Field(default="", description="Free text")
    creation_time: datetime
    modification_time: datetime

    # Derived, never stored
    resource_location: Location = Location.TABLE
    in_use: bool = False
    writable: bool = True


class TagResourceNode(BaseModel):
    """Attachment of a tag to a resource."""

    tag_id: str = Field(..., description="UUID of the tag")
    resource_type: str
    resource: int = Field(..., description="Internal id of the tagged resource")
    resource_uuid: str
    resource_location: Location = Location.TABLE


class PermissionNode(BaseModel):
    """A resource-instance permission grant. ``resource == -1`` marks an orphan."""

    uuid: str
    name: str = Field(..., description="Capability granted, e.g. 'ticket:modify'")
    subject_type: str = Field(default="user", description="'user' or 'role'")
    subject: str
    resource_type: str
    resource: int
    resource_uuid: str
    resource_location: Location = Location.TABLE


@dataclass(frozen=True)
class ResourceKind:
    """A resource type managed with trash semantics."""

    name: str
    table_label: str
    trash_label: str
    payload_fields: tuple[str, ...]

    def label(self, location: Location) -> str:
        return self.table_label if location is Location.TABLE else self.trash_label

    def capability(self, verb: str) -> str:
        return f"{self.name}:{verb}"

    def payload_of(self, row: dict[str, Any]) -> dict[str, Any]:
        return {f: row.get(f) for f in self.payload_fields}


TICKET = ResourceKind(
    name="ticket",
    table_label=NodeLabel.TICKET.value,
    trash_label=NodeLabel.TICKET_TRASH.value,
    payload_fields=TICKET_PAYLOAD_FIELDS,
)
