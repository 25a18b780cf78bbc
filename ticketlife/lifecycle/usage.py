"""
In-use and writable predicates.

A resource that is in use cannot be deleted (from either store). Tickets are
never in use; other resource kinds plug in a real predicate, e.g. "referenced
by an active workflow".
"""

from collections.abc import Awaitable, Callable

from ticketlife.graph.schema import Location, ResourceKind
from ticketlife.lifecycle.store import LifecycleTransaction

InUsePredicate = Callable[
    [LifecycleTransaction, ResourceKind, int, Location],
    Awaitable[bool],
]


async def never_in_use(
    tx: LifecycleTransaction,
    kind: ResourceKind,
    resource_id: int,
    location: Location,
) -> bool:
    return False


class UsagePolicy:
    """Answers in-use and writable questions for one resource kind."""

    def __init__(self, in_use: InUsePredicate | None = None) -> None:
        self._in_use = in_use or never_in_use

    async def in_use(
        self,
        tx: LifecycleTransaction,
        kind: ResourceKind,
        resource_id: int,
        location: Location,
    ) -> bool:
        return await self._in_use(tx, kind, resource_id, location)

    async def writable(
        self,
        tx: LifecycleTransaction,
        kind: ResourceKind,
        resource_id: int,
        location: Location,
    ) -> bool:
        # Active rows are always writable; trashed rows only while unused.
        if location is Location.TABLE:
            return True
        return not await self.in_use(tx, kind, resource_id, location)
