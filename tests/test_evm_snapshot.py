"""
tests/test_evm_snapshot.py — Daily EVM snapshots and trend queries.

Covers:
    1. One snapshot per project, per PWBS code and per work package
    2. Complete projects skipped
    3. Re-running the same day overwrites (no duplicates) with fresh values
    4. snapshot_date is the UTC run day; metrics as of midnight UTC
    5. A failing project is rolled back and reported; others still run
    6. Trend: last-N-days window and its boundary, scope filtering, ordering,
       MissingScopeIdError
    7. Scheduled job wrapper + HTTP trend endpoint
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from installplan.core.exceptions import MissingScopeIdError
from installplan.models import db
from installplan.models.logistics import InstallationStatus, Project, SupplyItem
from installplan.models.scheduling import EvmSnapshot
from installplan.services import evm_service
from installplan.services.snapshot import EvmSnapshotService, snapshot_daily_evm
from installplan.services.work_package_service import aggregate_work_packages

RUN_AT = datetime(2026, 6, 10, 14, 30, tzinfo=timezone.utc)


def _project(pn, status="active"):
    db.session.add(Project(project_number=pn, name=pn, status=status))
    db.session.commit()


def _items(pn, n, *, pl="WP-1", pwbs="K", installed_at=None):
    for _ in range(n):
        item = SupplyItem(project_number=pn, pl_number=pl, pwbs=pwbs)
        db.session.add(item)
        db.session.flush()
        if installed_at is not None:
            db.session.add(InstallationStatus(supply_item_id=item.id, project_number=pn,
                                              pl_number=pl, status="installed",
                                              installed_at=installed_at))
    db.session.commit()
    aggregate_work_packages(pn)


def _snapshots(pn=None):
    query = EvmSnapshot.query
    if pn:
        query = query.filter_by(project_number=pn)
    return query.order_by(EvmSnapshot.scope, EvmSnapshot.scope_key).all()


class TestSnapshotDailyEvm:
    def test_snapshots_every_scope(self):
        _project("P-1")
        _items("P-1", 3, pl="WP-1", pwbs="K")
        _items("P-1", 2, pl="WP-2", pwbs="F")

        report = snapshot_daily_evm(RUN_AT)

        assert report["snapshot_date"] == "2026-06-10"
        assert report["projects_processed"] == 1
        assert report["project_snapshots"] == 1
        assert report["pwbs_snapshots_created"] == 2
        assert report["work_package_snapshots_created"] == 2
        assert report["failures"] == []
        keys = [(s.scope, s.scope_id) for s in _snapshots("P-1")]
        assert keys == [("project", None), ("pwbs", "F"), ("pwbs", "K"),
                        ("work_package", "WP-1"), ("work_package", "WP-2")]

    def test_complete_projects_skipped(self):
        _project("P-1")
        _project("P-2", status="complete")
        _items("P-2", 2)

        report = snapshot_daily_evm(RUN_AT)

        assert report["projects_processed"] == 1
        assert _snapshots("P-2") == []

    def test_idempotent_same_day(self):
        _project("P-1")
        _items("P-1", 4)

        snapshot_daily_evm(RUN_AT)
        first_count = len(_snapshots())

        # an install recorded before midnight changes the recomputed value
        item = SupplyItem.query.first()
        db.session.add(InstallationStatus(supply_item_id=item.id, project_number="P-1",
                                          pl_number="WP-1", status="installed",
                                          installed_at=datetime(2026, 6, 9, tzinfo=timezone.utc)))
        db.session.commit()
        snapshot_daily_evm(RUN_AT + timedelta(hours=5))

        assert len(_snapshots()) == first_count == 3
        project_row = EvmSnapshot.query.filter_by(scope="project").one()
        assert project_row.ev == 1
        assert project_row.items_remaining == 3

    def test_metrics_as_of_midnight_utc(self):
        _project("P-1")
        _items("P-1", 2, installed_at=datetime(2026, 6, 10, 8, 0, tzinfo=timezone.utc))

        snapshot_daily_evm(RUN_AT)

        row = EvmSnapshot.query.filter_by(scope="project").one()
        assert row.snapshot_date == date(2026, 6, 10)
        assert row.ev == 0
        assert row.bac == 2

    def test_failing_project_is_isolated(self, monkeypatch):
        _project("P-1")
        _project("P-2")
        _project("P-3")
        for pn in ("P-1", "P-2", "P-3"):
            _items(pn, 2)

        original = EvmSnapshotService.snapshot_project

        def _flaky(project_number, snapshot_date, as_of):
            counts = original(project_number, snapshot_date, as_of)
            if project_number == "P-2":
                raise RuntimeError("boom")
            return counts

        monkeypatch.setattr(EvmSnapshotService, "snapshot_project", staticmethod(_flaky))

        report = snapshot_daily_evm(RUN_AT)

        assert report["projects_processed"] == 2
        assert report["failures"] == [{"project_number": "P-2", "error": "boom"}]
        assert _snapshots("P-2") == []
        assert len(_snapshots("P-1")) == len(_snapshots("P-3")) == 3


class TestEvmTrend:
    def _seed(self, pn, days_ago, scope="project", scope_id=None, ev=0, today=None):
        today = today or datetime.now(timezone.utc).date()
        db.session.add(EvmSnapshot(
            project_number=pn,
            snapshot_date=today - timedelta(days=days_ago),
            scope=scope, scope_id=scope_id, scope_key=scope_id or "",
            bac=10, pv=10, ev=ev, sv=ev - 10, spi=ev / 10, percent_complete=ev * 10,
            items_remaining=10 - ev,
        ))
        db.session.commit()

    def test_window_and_order(self):
        for days_ago, ev in ((40, 1), (3, 3), (10, 2), (0, 4)):
            self._seed("P-1", days_ago, ev=ev)

        trend = evm_service.get_evm_trend("P-1", 30)

        assert [s.ev for s in trend] == [2, 3, 4]

    def test_window_boundary(self):
        now = datetime(2026, 6, 10, 9, 15, tzinfo=timezone.utc)
        for days_ago in range(10):
            self._seed("P-1", days_ago, ev=days_ago, today=now.date())

        week = evm_service.get_evm_trend("P-1", 7, now=now)

        assert len(week) == 7
        assert [s.ev for s in week] == [6, 5, 4, 3, 2, 1, 0]
        assert evm_service.get_evm_trend("P-1", 0, now=now) == []

    def test_window_at_exact_midnight_includes_cutoff_day(self):
        now = datetime(2026, 6, 10, tzinfo=timezone.utc)
        self._seed("P-1", 7, today=now.date())

        assert len(evm_service.get_evm_trend("P-1", 7, now=now)) == 1
        assert evm_service.get_evm_trend("P-1", 6, now=now) == []

    def test_default_scope_is_project_only(self):
        self._seed("P-1", 1)
        self._seed("P-1", 1, scope="pwbs", scope_id="K")

        assert [s.scope for s in evm_service.get_evm_trend("P-1", 7)] == ["project"]

    def test_scope_and_id_must_match(self):
        self._seed("P-1", 1, scope="pwbs", scope_id="K", ev=5)
        self._seed("P-1", 1, scope="pwbs", scope_id="F", ev=6)

        trend = evm_service.get_evm_trend("P-1", 7, "pwbs", "F")

        assert [s.ev for s in trend] == [6]

    def test_missing_scope_id(self):
        with pytest.raises(MissingScopeIdError):
            evm_service.get_evm_trend("P-1", 7, "work_package")

    def test_trend_endpoint(self, client):
        self._seed("P-1", 2, ev=7)

        res = client.get("/api/v1/projects/P-1/evm/trend?days=5")

        assert res.status_code == 200
        body = res.get_json()
        assert body["total"] == 1
        assert body["items"][0]["ev"] == 7

    def test_trend_default_days(self, client, app):
        self._seed("P-1", app.config["EVM_TREND_DEFAULT_DAYS"] + 1)
        res = client.get("/api/v1/projects/P-1/evm/trend")
        assert res.get_json()["days"] == app.config["EVM_TREND_DEFAULT_DAYS"]
        assert res.get_json()["total"] == 0

    def test_bad_days_is_400(self, client):
        res = client.get("/api/v1/projects/P-1/evm/trend?days=week")
        assert res.status_code == 400
