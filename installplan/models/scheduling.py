"""
Installation Planning Service
Scheduling & EVM models.

Models:
    - WorkPackageSchedule: one per (project_number, pl_number); aggregate stats,
                           planned/actual dates, schedule and readiness status
    - PwbsDependency:      PWBS → PWBS ordering edge, default template or project override
    - EvmSnapshot:         daily materialised EVM metrics per scope
    - ScheduledJob:        persisted schedule registry (run history + config)

Lifecycle states:
    WorkPackageSchedule.schedule_status:
        unscheduled → scheduled → in_progress → complete
        on_hold reachable from and returning to any state
    WorkPackageSchedule.readiness_status:  ready | partial | blocked
"""

from datetime import datetime, timezone
from enum import Enum

from installplan.models import db
from installplan.models.logistics import enum_check
from installplan.utils.helpers import isoformat


# ── Enums ────────────────────────────────────────────────────────────────────


class ScheduleStatus(str, Enum):
    UNSCHEDULED = "unscheduled"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    ON_HOLD = "on_hold"


class ReadinessStatus(str, Enum):
    READY = "ready"
    PARTIAL = "partial"
    BLOCKED = "blocked"


class DependencyType(str, Enum):
    FINISH_TO_START = "finish_to_start"
    START_TO_START = "start_to_start"
    NONE = "none"


class EvmScope(str, Enum):
    PROJECT = "project"
    PWBS = "pwbs"
    WORK_PACKAGE = "work_package"


def _now():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# 1. WorkPackageSchedule
# ═════════════════════════════════════════════════════════════════════════════


class WorkPackageSchedule(db.Model):
    """
    Schedule record for one work package.

    Aggregate fields (item_count, totals, pwbs_categories) are rebuilt from
    supply items by the aggregator; planning fields are set by scheduling
    calls; schedule_status changes only through explicit status updates
    (plus the unscheduled → scheduled promotion when dates are first set).
    """

    __tablename__ = "work_package_schedules"
    __table_args__ = (
        db.UniqueConstraint("project_number", "pl_number", name="uq_wps_project_pl"),
        db.CheckConstraint(enum_check("schedule_status", ScheduleStatus),
                           name="ck_wps_schedule_status"),
        db.CheckConstraint(enum_check("readiness_status", ReadinessStatus),
                           name="ck_wps_readiness_status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_number = db.Column(db.String(50), nullable=False, index=True)
    pl_number = db.Column(db.String(50), nullable=False)
    pl_name = db.Column(db.String(200), nullable=True)

    # Aggregates
    pwbs_categories = db.Column(db.JSON, nullable=False, default=list,
                                comment="Sorted PWBS codes of the package's items")
    item_count = db.Column(db.Integer, nullable=False, default=0)
    total_quantity = db.Column(db.Float, nullable=False, default=0)
    total_weight_kg = db.Column(db.Float, nullable=False, default=0)

    # Planning
    planned_start = db.Column(db.DateTime(timezone=True), nullable=True)
    planned_end = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_start = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_end = db.Column(db.DateTime(timezone=True), nullable=True)
    estimated_duration_days = db.Column(db.Float, nullable=True)
    schedule_status = db.Column(db.String(20), nullable=False,
                                default=ScheduleStatus.UNSCHEDULED.value)
    readiness_status = db.Column(db.String(20), nullable=False,
                                 default=ReadinessStatus.BLOCKED.value)
    dependency_override = db.Column(
        db.Boolean, nullable=False, default=False,
        comment="Validation warnings were acknowledged at the last scheduling call",
    )

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    @property
    def is_scheduled(self) -> bool:
        return self.planned_start is not None and self.planned_end is not None

    def has_pwbs(self, code: str) -> bool:
        return code in (self.pwbs_categories or [])

    def to_dict(self):
        return {
            "id": self.id,
            "project_number": self.project_number,
            "pl_number": self.pl_number,
            "pl_name": self.pl_name,
            "pwbs_categories": list(self.pwbs_categories or []),
            "item_count": self.item_count,
            "total_quantity": self.total_quantity,
            "total_weight_kg": self.total_weight_kg,
            "planned_start": isoformat(self.planned_start),
            "planned_end": isoformat(self.planned_end),
            "actual_start": isoformat(self.actual_start),
            "actual_end": isoformat(self.actual_end),
            "estimated_duration_days": self.estimated_duration_days,
            "schedule_status": self.schedule_status,
            "readiness_status": self.readiness_status,
            "dependency_override": self.dependency_override,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<WorkPackageSchedule {self.project_number}/{self.pl_number} [{self.schedule_status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. PwbsDependency
# ═════════════════════════════════════════════════════════════════════════════


class PwbsDependency(db.Model):
    """
    Ordering edge from_pwbs → to_pwbs.

    Defaults (is_default=True, project_number NULL) form the global template.
    Overrides (is_default=False) are scoped to one project and shadow the
    default with the same (from_pwbs, to_pwbs) for that project only.
    """

    __tablename__ = "pwbs_dependencies"
    __table_args__ = (
        db.Index("ix_pwbs_dependencies_edge", "from_pwbs", "to_pwbs"),
        db.Index("ix_pwbs_dependencies_project", "project_number"),
        db.Index("uq_pwbs_dependencies_default_edge", "from_pwbs", "to_pwbs", unique=True,
                 sqlite_where=db.text("is_default"), postgresql_where=db.text("is_default")),
        db.Index("uq_pwbs_dependencies_project_edge", "project_number", "from_pwbs", "to_pwbs",
                 unique=True, sqlite_where=db.text("NOT is_default"),
                 postgresql_where=db.text("NOT is_default")),
        db.CheckConstraint(enum_check("dependency_type", DependencyType),
                           name="ck_pwbs_dependencies_type"),
        db.CheckConstraint(
            "(is_default AND project_number IS NULL) "
            "OR (NOT is_default AND project_number IS NOT NULL)",
            name="ck_pwbs_dependencies_scope",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    from_pwbs = db.Column(db.String(50), nullable=False)
    to_pwbs = db.Column(db.String(50), nullable=False)
    dependency_type = db.Column(db.String(20), nullable=False,
                                default=DependencyType.FINISH_TO_START.value)
    is_default = db.Column(db.Boolean, nullable=False, default=True)
    project_number = db.Column(db.String(50), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    @property
    def key(self) -> tuple[str, str]:
        return (self.from_pwbs, self.to_pwbs)

    def to_dict(self):
        return {
            "id": self.id,
            "from_pwbs": self.from_pwbs,
            "to_pwbs": self.to_pwbs,
            "dependency_type": self.dependency_type,
            "is_default": self.is_default,
            "project_number": self.project_number,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        scope = "default" if self.is_default else self.project_number
        return f"<PwbsDependency {self.from_pwbs}→{self.to_pwbs} {self.dependency_type} ({scope})>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. EvmSnapshot
# ═════════════════════════════════════════════════════════════════════════════


class EvmSnapshot(db.Model):
    """
    One day's EVM metrics for a scope.

    Upserted by the daily snapshot job on (project_number, snapshot_date,
    scope, scope_key); scope_key mirrors scope_id with "" for project scope
    so the unique constraint also holds where scope_id is NULL.
    """

    __tablename__ = "evm_snapshots"
    __table_args__ = (
        db.UniqueConstraint("project_number", "snapshot_date", "scope", "scope_key",
                            name="uq_evm_snapshots_scope_day"),
        db.Index("ix_evm_snapshots_project_date", "project_number", "snapshot_date"),
        db.CheckConstraint(enum_check("scope", EvmScope), name="ck_evm_snapshots_scope"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_number = db.Column(db.String(50), nullable=False)
    snapshot_date = db.Column(db.Date, nullable=False)
    scope = db.Column(db.String(20), nullable=False)
    scope_id = db.Column(db.String(50), nullable=True,
                         comment="PWBS code or pl_number; NULL for project scope")
    scope_key = db.Column(db.String(50), nullable=False, default="")

    bac = db.Column(db.Integer, nullable=False, default=0)
    pv = db.Column(db.Integer, nullable=False, default=0)
    ev = db.Column(db.Integer, nullable=False, default=0)
    sv = db.Column(db.Integer, nullable=False, default=0)
    spi = db.Column(db.Float, nullable=False, default=0)
    percent_complete = db.Column(db.Float, nullable=False, default=0)
    items_remaining = db.Column(db.Integer, nullable=False, default=0)
    eac = db.Column(db.Float, nullable=True)
    vac = db.Column(db.Float, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    def to_dict(self):
        return {
            "id": self.id,
            "project_number": self.project_number,
            "snapshot_date": self.snapshot_date.isoformat(),
            "scope": self.scope,
            "scope_id": self.scope_id,
            "bac": self.bac,
            "pv": self.pv,
            "ev": self.ev,
            "sv": self.sv,
            "spi": self.spi,
            "percent_complete": self.percent_complete,
            "items_remaining": self.items_remaining,
            "eac": self.eac,
            "vac": self.vac,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<EvmSnapshot {self.project_number} {self.snapshot_date} {self.scope}:{self.scope_key}>"


# ═════════════════════════════════════════════════════════════════════════════
# 4. ScheduledJob
# ═════════════════════════════════════════════════════════════════════════════


class ScheduledJob(db.Model):
    """
    Registry of scheduled background jobs.

    Tracks job configuration, last run time, and run history.
    """

    __tablename__ = "scheduled_jobs"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(100), unique=True, nullable=False,
                         comment="Unique job identifier, e.g. evm_daily_snapshot")
    description = db.Column(db.String(500), default="")
    schedule_type = db.Column(db.String(30), default="cron",
                              comment="cron, interval, once")
    schedule_config = db.Column(db.JSON, default=dict,
                                comment="Cron fields or interval config")
    status = db.Column(db.String(20), default="active",
                       comment="active, paused, completed, failed")
    is_enabled = db.Column(db.Boolean, default=True)

    # Execution tracking
    last_run_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_run_status = db.Column(db.String(20), nullable=True,
                                comment="success, failed, skipped")
    last_run_duration_ms = db.Column(db.Integer, nullable=True)
    last_run_result = db.Column(db.JSON, nullable=True,
                                comment="Summary of last execution")
    run_count = db.Column(db.Integer, default=0)
    error_count = db.Column(db.Integer, default=0)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    def record_run(self, *, status="success", duration_ms=0, result=None, error=None):
        """Record a job execution."""
        self.last_run_at = _now()
        self.last_run_status = status
        self.last_run_duration_ms = duration_ms
        self.last_run_result = result
        self.run_count = (self.run_count or 0) + 1
        if status == "failed":
            self.error_count = (self.error_count or 0) + 1
            self.last_error = str(error) if error else None

    def to_dict(self):
        return {
            "id": self.id,
            "job_name": self.job_name,
            "description": self.description,
            "schedule_type": self.schedule_type,
            "schedule_config": self.schedule_config,
            "status": self.status,
            "is_enabled": self.is_enabled,
            "last_run_at": isoformat(self.last_run_at),
            "last_run_status": self.last_run_status,
            "last_run_duration_ms": self.last_run_duration_ms,
            "last_run_result": self.last_run_result,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<ScheduledJob {self.job_name} [{self.status}]>"
