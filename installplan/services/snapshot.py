"""
EvmSnapshotService — Daily EVM snapshot materialisation.

Once per day every project that is not complete gets one snapshot at
project scope, one per PWBS code present on its items, and one per work
package. Rows are keyed by (project_number, snapshot_date, scope, scope_id)
and upserted, so re-running a day overwrites instead of duplicating.

Projects are processed independently: a failure rolls back that project's
snapshots, is logged and reported, and the run moves on to the next one.
"""

import logging
from datetime import date, datetime, timezone

from sqlalchemy import select

from installplan.models import db
from installplan.models.logistics import Project, ProjectStatus
from installplan.models.scheduling import EvmScope, EvmSnapshot
from installplan.services.evm_service import EvmMetrics, calculate_evm, list_pwbs_codes
from installplan.services.work_package_service import list_work_packages
from installplan.utils.helpers import as_utc, utc_midnight

logger = logging.getLogger(__name__)


class EvmSnapshotService:
    """Captures daily EVM snapshots."""

    # ── Capture ───────────────────────────────────────────────────────

    @staticmethod
    def capture(metrics: EvmMetrics, snapshot_date: date) -> tuple[EvmSnapshot, bool]:
        """
        Upsert the snapshot for *metrics* on *snapshot_date*.

        Flushes but does not commit; the caller owns the transaction.
        Returns (snapshot, created).
        """
        scope_key = metrics.scope_id or ""
        existing = db.session.execute(
            select(EvmSnapshot).where(
                EvmSnapshot.project_number == metrics.project_number,
                EvmSnapshot.snapshot_date == snapshot_date,
                EvmSnapshot.scope == metrics.scope.value,
                EvmSnapshot.scope_key == scope_key,
            )
        ).scalar_one_or_none()

        snapshot = existing or EvmSnapshot(
            project_number=metrics.project_number,
            snapshot_date=snapshot_date,
            scope=metrics.scope.value,
            scope_id=metrics.scope_id,
            scope_key=scope_key,
        )
        snapshot.bac = metrics.bac
        snapshot.pv = metrics.pv
        snapshot.ev = metrics.ev
        snapshot.sv = metrics.sv
        snapshot.spi = metrics.spi
        snapshot.percent_complete = metrics.percent_complete
        snapshot.items_remaining = metrics.items_remaining
        snapshot.eac = metrics.eac
        snapshot.vac = metrics.vac
        if existing is None:
            db.session.add(snapshot)
        db.session.flush()
        return snapshot, existing is None

    @staticmethod
    def snapshot_project(project_number: str, snapshot_date: date, as_of: datetime) -> dict:
        """Snapshot every scope of one project. Caller commits."""
        capture = EvmSnapshotService.capture
        capture(calculate_evm(project_number, EvmScope.PROJECT, None, as_of), snapshot_date)

        pwbs_count = 0
        for code in list_pwbs_codes(project_number):
            capture(calculate_evm(project_number, EvmScope.PWBS, code, as_of), snapshot_date)
            pwbs_count += 1

        wp_count = 0
        for wp in list_work_packages(project_number):
            capture(calculate_evm(project_number, EvmScope.WORK_PACKAGE, wp.pl_number, as_of),
                    snapshot_date)
            wp_count += 1

        return {"pwbs": pwbs_count, "work_packages": wp_count}


def snapshot_daily_evm(run_at: datetime | None = None) -> dict:
    """
    Materialise today's EVM snapshots for every non-complete project.

    ``snapshot_date`` is the UTC date of *run_at*; metrics are computed as of
    midnight UTC of that date.
    """
    run_at = as_utc(run_at) if run_at is not None else datetime.now(timezone.utc)
    as_of = utc_midnight(run_at)
    snapshot_date = as_of.date()

    projects = list(db.session.execute(
        select(Project.project_number)
        .where(Project.status != ProjectStatus.COMPLETE.value)
        .order_by(Project.project_number)
    ).scalars())

    report = {
        "snapshot_date": snapshot_date.isoformat(),
        "projects_processed": 0,
        "project_snapshots": 0,
        "pwbs_snapshots_created": 0,
        "work_package_snapshots_created": 0,
        "failures": [],
    }

    for project_number in projects:
        try:
            counts = EvmSnapshotService.snapshot_project(project_number, snapshot_date, as_of)
            db.session.commit()
        except Exception as exc:
            db.session.rollback()
            logger.exception("EVM snapshot failed for project %s", project_number,
                             extra={"project_number": project_number})
            report["failures"].append({"project_number": project_number, "error": str(exc)})
            continue
        report["projects_processed"] += 1
        report["project_snapshots"] += 1
        report["pwbs_snapshots_created"] += counts["pwbs"]
        report["work_package_snapshots_created"] += counts["work_packages"]

    report["timestamp"] = datetime.now(timezone.utc).isoformat()
    logger.info(
        "EVM snapshot %s: projects=%d pwbs=%d work_packages=%d failures=%d",
        report["snapshot_date"], report["projects_processed"],
        report["pwbs_snapshots_created"], report["work_package_snapshots_created"],
        len(report["failures"]),
    )
    return report
