"""
Security Module.

Provides the actor identity and the coarse-grained authorization gate:
- Explicit actor passed to every operation
- Authorization (RBAC) behind the ``PermissionGate`` protocol
"""

from ticketlife.security.actor import Actor
from ticketlife.security.authorization import (
    Permission,
    PermissionGate,
    RBACManager,
    Role,
    get_rbac_manager,
)

__all__ = [
    "Actor",
    "Permission",
    "PermissionGate",
    "RBACManager",
    "Role",
    "get_rbac_manager",
]
