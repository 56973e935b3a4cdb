"""
Work-Package Aggregator — service layer.

Rebuilds WorkPackageSchedule aggregates (item_count, total_quantity,
total_weight_kg, pwbs_categories) from the live supply items of a project
and serves work-package lookups to the rest of the planning core.

Aggregation must run (or re-run) before scheduling, readiness or EVM give
meaningful answers for a project.
"""

import logging
from collections import Counter

from sqlalchemy import select

from installplan.core.exceptions import NotFoundError
from installplan.models import db
from installplan.models.logistics import InstallationStatus, InstallStatus, SupplyItem
from installplan.models.scheduling import (
    ReadinessStatus,
    ScheduleStatus,
    WorkPackageSchedule,
)

logger = logging.getLogger(__name__)


def live_items_query(project_number: str):
    """select() of the project's non-deleted supply items."""
    return select(SupplyItem).where(
        SupplyItem.project_number == project_number,
        SupplyItem.is_deleted.is_(False),
    )


def list_work_packages(project_number: str) -> list[WorkPackageSchedule]:
    """All work packages of a project ordered by pl_number."""
    stmt = (
        select(WorkPackageSchedule)
        .where(WorkPackageSchedule.project_number == project_number)
        .order_by(WorkPackageSchedule.pl_number)
    )
    return list(db.session.execute(stmt).scalars())


def find_work_package(project_number: str, pl_number: str) -> WorkPackageSchedule:
    """Return the schedule record or raise NotFoundError."""
    wp = db.session.execute(
        select(WorkPackageSchedule).where(
            WorkPackageSchedule.project_number == project_number,
            WorkPackageSchedule.pl_number == pl_number,
        )
    ).scalar_one_or_none()
    if wp is None:
        raise NotFoundError(resource="Work package", resource_id=pl_number,
                            project_number=project_number)
    return wp


def get_work_package(project_number: str, pl_number: str) -> dict:
    """Work package plus its non-deleted items."""
    wp = find_work_package(project_number, pl_number)
    items = db.session.execute(
        live_items_query(project_number)
        .where(SupplyItem.pl_number == pl_number)
        .order_by(SupplyItem.id)
    ).scalars()
    return {
        "work_package": wp.to_dict(),
        "items": [item.to_dict() for item in items],
    }


def aggregate_work_packages(project_number: str) -> dict:
    """
    Group the project's non-deleted items by pl_number and upsert one
    WorkPackageSchedule per group.

    New records start as unscheduled / blocked. Existing records only have
    their aggregate fields (and pl_name) patched; planning state is kept.

    Returns {"created", "updated", "total"}.
    """
    groups: dict[str, dict] = {}
    for item in db.session.execute(live_items_query(project_number)).scalars():
        if not item.pl_number:
            continue
        group = groups.setdefault(item.pl_number, {
            "pl_name": None,
            "item_count": 0,
            "total_quantity": 0.0,
            "total_weight_kg": 0.0,
            "pwbs": set(),
        })
        if group["pl_name"] is None and item.pl_name:
            group["pl_name"] = item.pl_name
        group["item_count"] += 1
        group["total_quantity"] += item.quantity or 0
        group["total_weight_kg"] += item.weight_kg or 0
        if item.pwbs:
            group["pwbs"].add(item.pwbs)

    existing = {wp.pl_number: wp for wp in list_work_packages(project_number)}
    created = updated = 0

    for pl_number in sorted(groups):
        data = groups[pl_number]
        fields = {
            "pl_name": data["pl_name"],
            "item_count": data["item_count"],
            "total_quantity": data["total_quantity"],
            "total_weight_kg": data["total_weight_kg"],
            "pwbs_categories": sorted(data["pwbs"]),
        }
        wp = existing.get(pl_number)
        if wp:
            for key, value in fields.items():
                setattr(wp, key, value)
            updated += 1
        else:
            db.session.add(WorkPackageSchedule(
                project_number=project_number,
                pl_number=pl_number,
                schedule_status=ScheduleStatus.UNSCHEDULED.value,
                readiness_status=ReadinessStatus.BLOCKED.value,
                **fields,
            ))
            created += 1

    db.session.commit()
    logger.info("Aggregated work packages: created=%d updated=%d total=%d",
                created, updated, len(groups),
                extra={"project_number": project_number})
    return {"created": created, "updated": updated, "total": len(groups)}


def get_work_packages_with_issues(project_number: str) -> list[dict]:
    """Work packages having items in ``issue`` installation status, most issues first."""
    stmt = select(InstallationStatus.pl_number).where(
        InstallationStatus.project_number == project_number,
        InstallationStatus.status == InstallStatus.ISSUE.value,
        InstallationStatus.pl_number.is_not(None),
    )
    issue_counts = Counter(db.session.execute(stmt).scalars())

    result = []
    for wp in list_work_packages(project_number):
        count = issue_counts.get(wp.pl_number)
        if count:
            result.append({**wp.to_dict(), "issue_count": count})
    result.sort(key=lambda row: (-row["issue_count"], row["pl_number"]))
    return result
