"""
Actor Module.

The identity on whose behalf a lifecycle operation runs. Passed explicitly to
every service call; there is no ambient "current user".
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Actor:
    """Authenticated actor information."""

    id: str
    username: str = ""
    roles: tuple[str, ...] = field(default_factory=tuple)

    def has_role(self, role: str) -> bool:
        """Check if actor has a specific role."""
        return role in self.roles

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "roles": list(self.roles),
        }
