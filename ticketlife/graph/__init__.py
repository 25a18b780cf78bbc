"""
Graph Module.

Neo4j storage for the active and trash ticket sets.
"""

from ticketlife.graph.neo4j_client import (
    TicketGraphClient,
    get_ticket_client,
)
from ticketlife.graph.schema import (
    TICKET,
    Location,
    NodeLabel,
    PermissionNode,
    ResourceKind,
    TagResourceNode,
    TicketPayload,
    TicketRecord,
    TicketStatus,
)

__all__ = [
    # Schema
    "NodeLabel",
    "Location",
    "TicketStatus",
    "TicketPayload",
    "TicketRecord",
    "TagResourceNode",
    "PermissionNode",
    "ResourceKind",
    "TICKET",
    # Client
    "TicketGraphClient",
    "get_ticket_client",
]
