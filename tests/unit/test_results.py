"""
Unit Tests for Lifecycle Results and Timestamps.
"""

from datetime import datetime, timezone

import pytest

from ticketlife.graph.schema import Location
from ticketlife.lifecycle.results import (
    EmptyName,
    LifecycleResult,
    LifecycleStatus,
    NameConflict,
    StillInUse,
)
from ticketlife.lifecycle.timestamps import creation_stamps, modification_stamp, new_uuid, utc_now


class TestLifecycleResult:

    def test_success_passes_through(self) -> None:
        result = LifecycleResult(operation="delete", resource_id=3, location=Location.TRASH)

        assert result.raise_for_status() is result
        assert result.to_dict() == {
            "success": True,
            "operation": "delete",
            "status": "success",
            "resource_id": 3,
            "resource_uuid": None,
            "location": "trash",
            "errors": [],
            "restore_conflict": False,
        }

    @pytest.mark.parametrize(
        "status,error",
        [
            (LifecycleStatus.EMPTY_NAME, EmptyName),
            (LifecycleStatus.STILL_IN_USE, StillInUse),
            (LifecycleStatus.NAME_CONFLICT, NameConflict),
        ],
    )
    def test_failure_raises_matching_error(self, status, error) -> None:
        result = LifecycleResult(operation="modify").fail(status, "went wrong")

        assert not result.success
        with pytest.raises(error, match="went wrong") as excinfo:
            result.raise_for_status()
        assert excinfo.value.operation == "modify"
        assert excinfo.value.status is status


class TestTimestamps:

    def test_utc_now_is_aware_and_whole_seconds(self) -> None:
        now = utc_now()

        assert now.tzinfo is not None
        assert now.microsecond == 0

    def test_creation_stamps_share_one_reading(self) -> None:
        moment = datetime(2026, 3, 1, tzinfo=timezone.utc)

        stamps = creation_stamps(lambda: moment)

        assert stamps == {"creation_time": moment, "modification_time": moment}
        assert modification_stamp(lambda: moment) == {"modification_time": moment}

    def test_new_uuid_is_unique(self) -> None:
        assert new_uuid() != new_uuid()
