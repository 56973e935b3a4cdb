"""
tests/test_cascade.py — Downstream cascade proposals and their application.

Covers:
    1. K end moves to day 20 → F (day 5..15) proposed start day 20
    2. Applying the proposal keeps F's 10-day duration (20..30)
    3. Proposals never move a successor earlier
    4. Successors with no start are proposed
    5. start_to_start and none edges never cascade
    6. One proposal per successor even across several matching edges
    7. Computing proposals writes nothing
    8. Apply: no end → estimated_duration_days, else end = new_start;
       unknown ids skipped; unscheduled promoted
    9. HTTP: schedule with cascade, then POST downstream-updates
"""

from datetime import datetime, timedelta, timezone

from installplan.models import db
from installplan.models.scheduling import PwbsDependency, ScheduleStatus, WorkPackageSchedule
from installplan.services import schedule_service
from installplan.services.dependency_service import resolve_dependencies
from installplan.services.schedule_service import DownstreamProposal
from installplan.services.work_package_service import find_work_package, list_work_packages
from installplan.utils.helpers import as_utc

PN = "P-1001"
DAY0 = datetime(2026, 3, 2, tzinfo=timezone.utc)


def day(n):
    return DAY0 + timedelta(days=n)


def _make_wp(pl_number, pwbs, start=None, end=None):
    wp = WorkPackageSchedule(
        project_number=PN,
        pl_number=pl_number,
        pwbs_categories=list(pwbs),
        planned_start=start,
        planned_end=end,
        schedule_status=(ScheduleStatus.SCHEDULED.value if start
                         else ScheduleStatus.UNSCHEDULED.value),
    )
    db.session.add(wp)
    db.session.commit()
    return wp


def _dep(from_pwbs, to_pwbs, dep_type="finish_to_start"):
    db.session.add(PwbsDependency(from_pwbs=from_pwbs, to_pwbs=to_pwbs,
                                  dependency_type=dep_type, is_default=True))
    db.session.commit()


def _plan(wp, new_end):
    return schedule_service.plan_downstream(
        wp, new_end, resolve_dependencies(PN), list_work_packages(PN),
    )


class TestPlanDownstream:
    def test_pushes_successor_to_new_end(self):
        _dep("K", "F")
        wp_k = _make_wp("WP-K", ["K"], day(0), day(10))
        wp_f = _make_wp("WP-F", ["F"], day(5), day(15))

        proposals = _plan(wp_k, day(20))

        assert len(proposals) == 1
        assert proposals[0].work_package_id == wp_f.id
        assert proposals[0].pl_number == "WP-F"
        assert proposals[0].new_start == day(20)
        assert proposals[0].current_start == day(5)

    def test_never_proposes_earlier_start(self):
        _dep("K", "F")
        wp_k = _make_wp("WP-K", ["K"], day(0), day(10))
        _make_wp("WP-F-late", ["F"], day(25), day(30))
        _make_wp("WP-F-equal", ["F"], day(20), day(30))

        assert _plan(wp_k, day(20)) == []

    def test_unstarted_successor_is_proposed(self):
        _dep("K", "F")
        wp_k = _make_wp("WP-K", ["K"], day(0), day(10))
        _make_wp("WP-F", ["F"])

        proposals = _plan(wp_k, day(12))

        assert [p.pl_number for p in proposals] == ["WP-F"]
        assert proposals[0].current_start is None

    def test_start_to_start_and_none_do_not_cascade(self):
        _dep("K", "F", "start_to_start")
        _dep("K", "M", "none")
        wp_k = _make_wp("WP-K", ["K"], day(0), day(10))
        _make_wp("WP-F", ["F"], day(1), day(5))
        _make_wp("WP-M", ["M"], day(1), day(5))

        assert _plan(wp_k, day(20)) == []

    def test_one_proposal_per_successor(self):
        _dep("K", "F")
        _dep("K", "M")
        _dep("E", "F")
        wp = _make_wp("WP-KE", ["E", "K"], day(0), day(10))
        _make_wp("WP-FM", ["F", "M"], day(5), day(15))
        _make_wp("WP-M", ["M"], day(2), day(3))

        proposals = _plan(wp, day(20))

        assert [p.pl_number for p in proposals] == ["WP-FM", "WP-M"]
        assert {p.new_start for p in proposals} == {day(20)}

    def test_planning_has_no_side_effects(self):
        _dep("K", "F")
        wp_k = _make_wp("WP-K", ["K"], day(0), day(10))
        _make_wp("WP-F", ["F"], day(5), day(15))

        _plan(wp_k, day(20))
        db.session.expire_all()

        assert as_utc(find_work_package(PN, "WP-F").planned_start) == day(5)


class TestApplyDownstreamUpdates:
    def test_preserves_duration(self):
        _dep("K", "F")
        wp_k = _make_wp("WP-K", ["K"], day(0), day(10))
        wp_f = _make_wp("WP-F", ["F"], day(5), day(15))

        result = schedule_service.apply_downstream_updates(_plan(wp_k, day(20)))

        assert result == {"success": True, "updated_count": 1, "skipped": []}
        wp_f = db.session.get(WorkPackageSchedule, wp_f.id)
        assert as_utc(wp_f.planned_start) == day(20)
        assert as_utc(wp_f.planned_end) == day(30)
        assert wp_f.planned_end - wp_f.planned_start == timedelta(days=10)

    def test_without_end_sets_end_to_start(self):
        wp = _make_wp("WP-F", ["F"])

        schedule_service.apply_downstream_updates(
            [DownstreamProposal(work_package_id=wp.id, new_start=day(7))]
        )

        wp = db.session.get(WorkPackageSchedule, wp.id)
        assert as_utc(wp.planned_start) == day(7)
        assert as_utc(wp.planned_end) == day(7)
        assert wp.schedule_status == ScheduleStatus.SCHEDULED.value

    def test_without_dates_uses_estimated_duration(self):
        wp = _make_wp("WP-F", ["F"])
        wp.estimated_duration_days = 4
        db.session.commit()

        schedule_service.apply_downstream_updates(
            [DownstreamProposal(work_package_id=wp.id, new_start=day(7))]
        )

        wp = db.session.get(WorkPackageSchedule, wp.id)
        assert as_utc(wp.planned_start) == day(7)
        assert as_utc(wp.planned_end) == day(11)

    def test_unknown_ids_are_skipped(self):
        wp = _make_wp("WP-F", ["F"], day(1), day(2))

        result = schedule_service.apply_downstream_updates([
            DownstreamProposal(work_package_id=wp.id, new_start=day(3)),
            DownstreamProposal(work_package_id=99999, new_start=day(3)),
        ])

        assert result["updated_count"] == 1
        assert result["skipped"] == [99999]

    def test_project_scope_filters_foreign_ids(self):
        other = WorkPackageSchedule(project_number="P-2002", pl_number="WP-X",
                                    pwbs_categories=["F"])
        db.session.add(other)
        db.session.commit()

        result = schedule_service.apply_downstream_updates(
            [DownstreamProposal(work_package_id=other.id, new_start=day(3))],
            project_number=PN,
        )

        assert result["updated_count"] == 0
        assert result["skipped"] == [other.id]


class TestCascadeAPI:
    def test_schedule_with_cascade_then_apply(self, client):
        _dep("K", "F")
        _make_wp("WP-K", ["K"], day(0), day(10))
        wp_f = _make_wp("WP-F", ["F"], day(5), day(15))
        base = f"/api/v1/projects/{PN}"

        res = client.post(f"{base}/work-packages/WP-K/schedule", json={
            "planned_start": day(0).isoformat(), "planned_end": day(20).isoformat(),
            "cascade": True,
        })
        assert res.status_code == 200
        proposals = res.get_json()["downstream_proposals"]
        assert [p["work_package_id"] for p in proposals] == [wp_f.id]

        res = client.post(f"{base}/downstream-updates", json={"proposals": proposals})

        assert res.status_code == 200
        assert res.get_json()["updated_count"] == 1
        data = client.get(f"{base}/work-packages/WP-F").get_json()["work_package"]
        assert data["planned_start"] == day(20).isoformat()
        assert data["planned_end"] == day(30).isoformat()

    def test_apply_requires_list(self, client):
        res = client.post(f"/api/v1/projects/{PN}/downstream-updates", json={})
        assert res.status_code == 400
