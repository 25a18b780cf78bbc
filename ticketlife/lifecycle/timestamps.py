"""
Timestamp and identifier generation for lifecycle rows.

``creation_time`` is set once; ``modification_time`` moves on every mutating
operation. Both come from an injectable clock so callers (and tests) can pin
time.
"""

import uuid
from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]
UuidFactory = Callable[[], str]


def utc_now() -> datetime:
    """Current time, UTC, truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def new_uuid() -> str:
    return str(uuid.uuid4())


def creation_stamps(clock: Clock) -> dict[str, datetime]:
    """Timestamps for a freshly inserted row."""
    now = clock()
    return {"creation_time": now, "modification_time": now}


def modification_stamp(clock: Clock) -> dict[str, datetime]:
    return {"modification_time": clock()}
