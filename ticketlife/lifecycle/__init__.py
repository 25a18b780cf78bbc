"""
Resource Lifecycle Management.

Provides trash semantics for tickets:
- Create, modify and copy in the active set
- Soft delete into the trash set and restore from it
- Ultimate delete from either set
- Tag and permission reference rewriting on every move
"""

from ticketlife.lifecycle.cascade import (
    CascadeNotifier,
    PermissionReferences,
    ReferenceHolder,
    TagReferences,
)
from ticketlife.lifecycle.neo4j_store import (
    Neo4jLifecycleStore,
    Neo4jLifecycleTransaction,
)
from ticketlife.lifecycle.results import (
    EmptyName,
    InternalError,
    LifecycleError,
    LifecycleResult,
    LifecycleStatus,
    NameConflict,
    PermissionDenied,
    ResourceNotFound,
    StillInUse,
    StoreError,
)
from ticketlife.lifecycle.service import LifecycleService
from ticketlife.lifecycle.store import (
    LifecycleStore,
    LifecycleTransaction,
    ListFilter,
)
from ticketlife.lifecycle.usage import UsagePolicy

__all__ = [
    # Service
    "LifecycleService",
    # Results
    "LifecycleResult",
    "LifecycleStatus",
    "LifecycleError",
    "PermissionDenied",
    "ResourceNotFound",
    "NameConflict",
    "EmptyName",
    "StillInUse",
    "InternalError",
    "StoreError",
    # Store
    "LifecycleStore",
    "LifecycleTransaction",
    "ListFilter",
    "Neo4jLifecycleStore",
    "Neo4jLifecycleTransaction",
    # Cascade
    "CascadeNotifier",
    "ReferenceHolder",
    "PermissionReferences",
    "TagReferences",
    # Usage
    "UsagePolicy",
]
