"""
Authorization Module - Role-Based Access Control (RBAC).

Provides the coarse-grained capability check consulted by every lifecycle
operation:
- Hierarchical roles with inheritance
- Granular per-resource-type permissions
- A ``PermissionGate`` protocol so other policy engines can be plugged in
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, runtime_checkable

import structlog

from ticketlife.security.actor import Actor

logger = structlog.get_logger(__name__)


class Permission(str, Enum):
    """System permissions (``<resource type>:<verb>``)."""

    TICKET_READ = "ticket:read"
    TICKET_CREATE = "ticket:create"
    TICKET_MODIFY = "ticket:modify"
    TICKET_DELETE = "ticket:delete"

    SYSTEM_ADMIN = "system:admin"


@runtime_checkable
class PermissionGate(Protocol):
    """Boolean capability check: may this actor perform this operation at all."""

    def may(self, actor: Actor, capability: str) -> bool:
        ...


@dataclass
class Role:
    """
    Role definition with permissions.

    Roles can inherit from parent roles.
    """

    name: str
    description: str
    permissions: set[Permission] = field(default_factory=set)
    parent_roles: list[str] = field(default_factory=list)
    is_system_role: bool = False

    def get_all_permissions(self, role_registry: dict[str, "Role"]) -> set[Permission]:
        """Get all permissions including inherited ones."""
        all_perms = set(self.permissions)

        for parent_name in self.parent_roles:
            parent = role_registry.get(parent_name)
            if parent:
                all_perms.update(parent.get_all_permissions(role_registry))

        return all_perms


class RBACManager:
    """
    Role-Based Access Control Manager.

    Features:
    - Hierarchical role management
    - Permission checking with inheritance
    - Implements ``PermissionGate``
    """

    def __init__(self):
        self._roles: dict[str, Role] = {}
        self._user_roles: dict[str, set[str]] = {}  # actor id -> role names

        self._init_system_roles()

    def _init_system_roles(self):
        """Initialize default system roles."""
        viewer = Role(
            name="viewer",
            description="Read-only access to tickets",
            permissions={
                Permission.TICKET_READ,
            },
            is_system_role=True,
        )

        editor = Role(
            name="editor",
            description="Can create and modify tickets",
            permissions={
                Permission.TICKET_CREATE,
                Permission.TICKET_MODIFY,
            },
            parent_roles=["viewer"],
            is_system_role=True,
        )

        manager = Role(
            name="manager",
            description="Full ticket management including deletion",
            permissions={Permission.TICKET_DELETE},
            parent_roles=["editor"],
            is_system_role=True,
        )

        admin = Role(
            name="admin",
            description="Full system administration access",
            permissions={Permission.SYSTEM_ADMIN},
            parent_roles=["manager"],
            is_system_role=True,
        )

        for role in [viewer, editor, manager, admin]:
            self._roles[role.name] = role

        logger.info("System roles initialized", roles=list(self._roles.keys()))

    def create_role(
        self,
        name: str,
        description: str,
        permissions: list[Permission] | None = None,
        parent_roles: list[str] | None = None,
    ) -> Role:
        """Create a new custom role."""
        if name in self._roles:
            raise ValueError(f"Role '{name}' already exists")

        for parent in parent_roles or []:
            if parent not in self._roles:
                raise ValueError(f"Parent role '{parent}' does not exist")

        role = Role(
            name=name,
            description=description,
            permissions=set(permissions or []),
            parent_roles=parent_roles or [],
            is_system_role=False,
        )

        self._roles[name] = role
        logger.info("Role created", role=name, permissions=len(role.permissions))
        return role

    def get_role(self, name: str) -> Role | None:
        """Get a role by name."""
        return self._roles.get(name)

    def assign_role(self, user_id: str, role_name: str):
        """Assign a role to an actor."""
        if role_name not in self._roles:
            raise ValueError(f"Role '{role_name}' does not exist")

        self._user_roles.setdefault(user_id, set()).add(role_name)
        logger.info("Role assigned", user_id=user_id, role=role_name)

    def revoke_role(self, user_id: str, role_name: str):
        """Revoke a role from an actor."""
        if user_id in self._user_roles:
            self._user_roles[user_id].discard(role_name)
            logger.info("Role revoked", user_id=user_id, role=role_name)

    def get_user_permissions(self, user_id: str) -> set[Permission]:
        """Get all permissions for an actor (including inherited)."""
        permissions = set()

        for role_name in self._user_roles.get(user_id, set()):
            role = self._roles.get(role_name)
            if role:
                permissions.update(role.get_all_permissions(self._roles))

        return permissions

    def check_permission(
        self,
        user_id: str,
        permission: Permission,
        user_roles: list[str] | tuple[str, ...] | None = None,
    ) -> bool:
        """
        Check if an actor has a specific permission.

        Args:
            user_id: The actor ID
            permission: The permission to check
            user_roles: Optional roles carried by the actor itself
        """
        roles_to_check = set()
        if user_roles:
            roles_to_check.update(user_roles)
        roles_to_check.update(self._user_roles.get(user_id, set()))

        for role_name in roles_to_check:
            role = self._roles.get(role_name)
            if role:
                if permission in role.get_all_permissions(self._roles):
                    return True

        return False

    def may(self, actor: Actor, capability: str) -> bool:
        """``PermissionGate`` entry point."""
        try:
            permission = Permission(capability)
        except ValueError:
            logger.warning("Unknown capability requested", capability=capability)
            return False

        allowed = self.check_permission(actor.id, permission, actor.roles)
        if not allowed:
            logger.debug("Capability denied", actor=actor.id, capability=capability)
        return allowed


# =============================================================================
# Global Instance
# =============================================================================

_rbac_manager: RBACManager | None = None


def get_rbac_manager() -> RBACManager:
    """Get global RBAC manager instance."""
    global _rbac_manager
    if _rbac_manager is None:
        _rbac_manager = RBACManager()
    return _rbac_manager
