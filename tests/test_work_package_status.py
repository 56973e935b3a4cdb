"""
tests/test_work_package_status.py — schedule_status transitions.

Covers:
    1. in_progress stamps actual_start once
    2. complete stamps actual_end and back-fills actual_start
    3. on_hold is reachable from and returns to any state
    4. Unknown status rejected with ValidationError (422 over HTTP)
    5. HTTP: status endpoint returns previous/new status
"""

from datetime import datetime, timezone

import pytest

from installplan.core.exceptions import NotFoundError, ValidationError
from installplan.models import db
from installplan.models.scheduling import ScheduleStatus, WorkPackageSchedule
from installplan.services.schedule_service import update_work_package_status
from installplan.services.work_package_service import find_work_package
from installplan.utils.helpers import as_utc

PN = "P-1001"


def _make_wp(status=ScheduleStatus.SCHEDULED.value, **kw):
    wp = WorkPackageSchedule(project_number=PN, pl_number="WP-1",
                             pwbs_categories=["K"], schedule_status=status, **kw)
    db.session.add(wp)
    db.session.commit()
    return wp


class TestStatusTransitions:
    def test_in_progress_sets_actual_start_once(self):
        earlier = datetime(2026, 1, 1, tzinfo=timezone.utc)
        _make_wp(actual_start=earlier)

        result = update_work_package_status(PN, "WP-1", "in_progress")

        assert result == {"success": True, "previous_status": "scheduled",
                          "new_status": "in_progress"}
        assert as_utc(find_work_package(PN, "WP-1").actual_start) == earlier

    def test_in_progress_stamps_when_unset(self):
        _make_wp()
        before = datetime.now(timezone.utc)

        update_work_package_status(PN, "WP-1", ScheduleStatus.IN_PROGRESS)

        wp = find_work_package(PN, "WP-1")
        assert as_utc(wp.actual_start) >= before.replace(microsecond=0)
        assert wp.actual_end is None

    def test_complete_backfills_actual_start(self):
        _make_wp()

        update_work_package_status(PN, "WP-1", "complete")

        wp = find_work_package(PN, "WP-1")
        assert wp.actual_start is not None
        assert wp.actual_end is not None
        assert wp.schedule_status == "complete"

    def test_on_hold_round_trip(self):
        _make_wp(status=ScheduleStatus.IN_PROGRESS.value)

        held = update_work_package_status(PN, "WP-1", "on_hold")
        resumed = update_work_package_status(PN, "WP-1", "in_progress")

        assert held["previous_status"] == "in_progress"
        assert resumed["previous_status"] == "on_hold"
        assert find_work_package(PN, "WP-1").schedule_status == "in_progress"

    def test_unknown_status_rejected(self):
        _make_wp()
        with pytest.raises(ValidationError):
            update_work_package_status(PN, "WP-1", "finished")
        assert find_work_package(PN, "WP-1").schedule_status == "scheduled"

    def test_unknown_work_package(self):
        with pytest.raises(NotFoundError):
            update_work_package_status(PN, "WP-404", "complete")


class TestStatusAPI:
    URL = f"/api/v1/projects/{PN}/work-packages/WP-1/status"

    def test_transition(self, client):
        _make_wp()
        res = client.post(self.URL, json={"status": "in_progress"})
        assert res.status_code == 200
        assert res.get_json()["new_status"] == "in_progress"

    def test_invalid_status_is_422(self, client):
        _make_wp()
        res = client.post(self.URL, json={"status": "bogus"})
        assert res.status_code == 422
        assert "details" in res.get_json()

    def test_missing_status_is_400(self, client):
        _make_wp()
        res = client.post(self.URL, json={})
        assert res.status_code == 400
