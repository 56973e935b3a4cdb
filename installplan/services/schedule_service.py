"""
Work-Package Scheduling — service layer.

Business logic for:
    - Dependency validation:  candidate dates vs. predecessor work packages
                              (advisory warnings, never raised)
    - Downstream cascade:     finish-to-start successors pushed to the new end
                              (proposals only; applying them is a separate call)
    - Scheduling:             persist planned dates, optional override/cascade
    - Status transitions:     schedule_status updates with actual-date stamping

Rules:
    - planned_start must be strictly before planned_end (InvalidRangeError)
    - cascades only ever move a successor later, never earlier
    - applying a proposal preserves the successor's (end - start)
    - start_to_start edges are validated but never cascaded
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from installplan.core.exceptions import InvalidRangeError, ValidationError
from installplan.models import db
from installplan.models.scheduling import (
    DependencyType,
    ScheduleStatus,
    WorkPackageSchedule,
)
from installplan.services.dependency_service import EffectiveDependency, resolve_dependencies
from installplan.services.work_package_service import find_work_package, list_work_packages
from installplan.utils.helpers import as_utc, isoformat

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Result types
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class ScheduleWarning:
    """Non-fatal dependency ordering problem."""

    kind: str  # predecessor_unscheduled | finish_to_start | start_to_start
    message: str
    predecessor_pl_number: str
    from_pwbs: str
    to_pwbs: str

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "predecessor_pl_number": self.predecessor_pl_number,
            "from_pwbs": self.from_pwbs,
            "to_pwbs": self.to_pwbs,
        }


@dataclass
class ValidationResult:
    warnings: list[ScheduleWarning] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.warnings

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass(frozen=True)
class DownstreamProposal:
    """Suggested new start for a successor work package."""

    work_package_id: int
    new_start: datetime
    pl_number: str | None = None
    current_start: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "work_package_id": self.work_package_id,
            "pl_number": self.pl_number,
            "current_start": isoformat(self.current_start),
            "new_start": isoformat(self.new_start),
        }


# ═════════════════════════════════════════════════════════════════════════════
# Pure checks (no DB access)
# ═════════════════════════════════════════════════════════════════════════════


def check_dependencies(
    work_package: WorkPackageSchedule,
    planned_start: datetime,
    dependencies: Iterable[EffectiveDependency],
    project_work_packages: Iterable[WorkPackageSchedule],
) -> ValidationResult:
    """
    Check *planned_start* of *work_package* against every predecessor.

    For each PWBS of the package, edges pointing at it (type != none) name a
    predecessor category; every other work package carrying that category is
    a predecessor. Unscheduled predecessors and ordering violations each add
    one warning.
    """
    planned_start = as_utc(planned_start)
    dependencies = [d for d in dependencies if d.dependency_type is not DependencyType.NONE]
    others = [wp for wp in project_work_packages if wp.id != work_package.id]
    result = ValidationResult()

    for pwbs in sorted(work_package.pwbs_categories or []):
        for dep in dependencies:
            if dep.to_pwbs != pwbs:
                continue
            for pred in others:
                if not pred.has_pwbs(dep.from_pwbs):
                    continue
                warning = _check_predecessor(work_package, pwbs, planned_start, dep, pred)
                if warning:
                    result.warnings.append(warning)
    return result


def _check_predecessor(wp, pwbs, planned_start, dep, pred) -> ScheduleWarning | None:
    if not pred.is_scheduled:
        return ScheduleWarning(
            kind="predecessor_unscheduled",
            message=(f"Work package {pred.pl_number} ({dep.from_pwbs}) is not "
                     f"scheduled yet but is a predecessor"),
            predecessor_pl_number=pred.pl_number,
            from_pwbs=dep.from_pwbs,
            to_pwbs=pwbs,
        )
    if dep.dependency_type is DependencyType.FINISH_TO_START:
        if planned_start < as_utc(pred.planned_end):
            return ScheduleWarning(
                kind=DependencyType.FINISH_TO_START.value,
                message=(f"Finish-to-Start violation: {wp.pl_number} ({pwbs}) should "
                         f"start after {pred.pl_number} ({dep.from_pwbs}) ends"),
                predecessor_pl_number=pred.pl_number,
                from_pwbs=dep.from_pwbs,
                to_pwbs=pwbs,
            )
    elif dep.dependency_type is DependencyType.START_TO_START:
        if planned_start < as_utc(pred.planned_start):
            return ScheduleWarning(
                kind=DependencyType.START_TO_START.value,
                message=(f"Start-to-Start violation: {wp.pl_number} ({pwbs}) should "
                         f"start after {pred.pl_number} ({dep.from_pwbs}) starts"),
                predecessor_pl_number=pred.pl_number,
                from_pwbs=dep.from_pwbs,
                to_pwbs=pwbs,
            )
    return None


def plan_downstream(
    work_package: WorkPackageSchedule,
    planned_end: datetime,
    dependencies: Iterable[EffectiveDependency],
    project_work_packages: Iterable[WorkPackageSchedule],
) -> list[DownstreamProposal]:
    """
    Propose start shifts for finish-to-start successors of *work_package*.

    The suggested start is exactly *planned_end*; a successor is proposed
    only when it has no start yet or starts earlier. One proposal per
    successor, ordered by pl_number.
    """
    planned_end = as_utc(planned_end)
    if planned_end is None:
        return []
    categories = set(work_package.pwbs_categories or [])
    successor_categories = {
        dep.to_pwbs for dep in dependencies
        if dep.from_pwbs in categories
        and dep.dependency_type is DependencyType.FINISH_TO_START
    }
    if not successor_categories:
        return []

    proposals: dict[int, DownstreamProposal] = {}
    for succ in project_work_packages:
        if succ.id == work_package.id:
            continue
        if not successor_categories.intersection(succ.pwbs_categories or []):
            continue
        current = as_utc(succ.planned_start)
        if current is not None and current >= planned_end:
            continue
        proposals[succ.id] = DownstreamProposal(
            work_package_id=succ.id,
            pl_number=succ.pl_number,
            current_start=current,
            new_start=planned_end,
        )
    return sorted(proposals.values(), key=lambda p: (p.pl_number or "", p.work_package_id))


# ═════════════════════════════════════════════════════════════════════════════
# Service operations
# ═════════════════════════════════════════════════════════════════════════════


def _check_range(planned_start: datetime, planned_end: datetime) -> tuple[datetime, datetime]:
    start, end = as_utc(planned_start), as_utc(planned_end)
    if start is None or end is None or start >= end:
        raise InvalidRangeError(start, end)
    return start, end


def validate_schedule(project_number: str, pl_number: str,
                      planned_start: datetime, planned_end: datetime) -> dict:
    """Dry run: validation warnings and cascade proposals, nothing persisted."""
    wp = find_work_package(project_number, pl_number)
    start, end = _check_range(planned_start, planned_end)
    deps = resolve_dependencies(project_number)
    siblings = list_work_packages(project_number)
    validation = check_dependencies(wp, start, deps, siblings)
    proposals = plan_downstream(wp, end, deps, siblings)
    return {
        "validation": validation.to_dict(),
        "downstream_proposals": [p.to_dict() for p in proposals],
    }


def schedule_work_package(
    project_number: str,
    pl_number: str,
    planned_start: datetime,
    planned_end: datetime,
    *,
    estimated_duration_days: float | None = None,
    override: bool = False,
    cascade: bool = False,
) -> dict:
    """
    Set planned dates on a work package.

    Validation warnings never block the write; ``override=True`` skips
    validation and is persisted as ``dependency_override`` for audit.
    With ``cascade=True`` downstream proposals are computed and returned,
    never applied.
    """
    wp = find_work_package(project_number, pl_number)
    start, end = _check_range(planned_start, planned_end)

    deps = resolve_dependencies(project_number)
    siblings = list_work_packages(project_number)

    validation = ValidationResult()
    if not override:
        validation = check_dependencies(wp, start, deps, siblings)

    wp.planned_start = start
    wp.planned_end = end
    wp.dependency_override = bool(override)
    if estimated_duration_days is not None:
        wp.estimated_duration_days = estimated_duration_days
    if wp.schedule_status == ScheduleStatus.UNSCHEDULED.value:
        wp.schedule_status = ScheduleStatus.SCHEDULED.value

    proposals = plan_downstream(wp, end, deps, siblings) if cascade else []

    db.session.commit()
    logger.info(
        "Work package %s scheduled %s → %s (warnings=%d, override=%s, proposals=%d)",
        pl_number, start.isoformat(), end.isoformat(),
        len(validation.warnings), override, len(proposals),
        extra={"project_number": project_number, "pl_number": pl_number},
    )
    return {
        "success": True,
        "work_package_id": wp.id,
        "pl_number": wp.pl_number,
        "validation": validation.to_dict(),
        "downstream_proposals": [p.to_dict() for p in proposals],
    }


def update_work_package_status(project_number: str, pl_number: str, new_status) -> dict:
    """
    Move a work package to *new_status*.

    Any status may follow any other (on_hold is a side flag). Entering
    in_progress stamps actual_start; entering complete stamps actual_end and
    back-fills actual_start so a completed package always has both.
    """
    try:
        status = ScheduleStatus(new_status)
    except ValueError:
        raise ValidationError(
            f"Invalid schedule status: {new_status!r}",
            details={"status": f"must be one of {[s.value for s in ScheduleStatus]}"},
        ) from None

    wp = find_work_package(project_number, pl_number)
    previous = wp.schedule_status
    now = datetime.now(timezone.utc)

    wp.schedule_status = status.value
    if status is ScheduleStatus.IN_PROGRESS and wp.actual_start is None:
        wp.actual_start = now
    if status is ScheduleStatus.COMPLETE:
        if wp.actual_end is None:
            wp.actual_end = now
        if wp.actual_start is None:
            wp.actual_start = now

    db.session.commit()
    logger.info("Work package %s status: %s → %s", pl_number, previous, status.value,
                extra={"project_number": project_number, "pl_number": pl_number})
    return {"success": True, "previous_status": previous, "new_status": status.value}


def apply_downstream_updates(
    proposals: Iterable[DownstreamProposal],
    *,
    project_number: str | None = None,
) -> dict:
    """
    Apply cascade proposals: move each successor's start to ``new_start`` and
    shift its end by the same delta. Successors without a positive planned
    duration take ``estimated_duration_days`` when set, else
    ``end = new_start``. Unknown ids (or ids outside *project_number*) are
    skipped.
    """
    proposals = list(proposals)
    ids = {p.work_package_id for p in proposals}
    stmt = select(WorkPackageSchedule).where(WorkPackageSchedule.id.in_(ids))
    if project_number is not None:
        stmt = stmt.where(WorkPackageSchedule.project_number == project_number)
    found = {wp.id: wp for wp in db.session.execute(stmt).scalars()}

    updated, skipped = 0, []
    for proposal in proposals:
        wp = found.get(proposal.work_package_id)
        if wp is None:
            logger.warning("Downstream update skipped: work package id=%s not found",
                           proposal.work_package_id,
                           extra={"project_number": project_number})
            skipped.append(proposal.work_package_id)
            continue

        new_start = as_utc(proposal.new_start)
        start, end = as_utc(wp.planned_start), as_utc(wp.planned_end)
        duration = end - start if start is not None and end is not None else None

        if not duration or duration.total_seconds() <= 0:
            duration = (timedelta(days=wp.estimated_duration_days)
                        if wp.estimated_duration_days and wp.estimated_duration_days > 0
                        else timedelta(0))

        wp.planned_start = new_start
        wp.planned_end = new_start + duration
        if wp.schedule_status == ScheduleStatus.UNSCHEDULED.value:
            wp.schedule_status = ScheduleStatus.SCHEDULED.value
        updated += 1

    db.session.commit()
    logger.info("Applied %d downstream updates (%d skipped)", updated, len(skipped),
                extra={"project_number": project_number})
    return {"success": True, "updated_count": updated, "skipped": skipped}
