"""
EVM Engine — Earned Value metrics per scope.

Item-count based EVM for a project, one PWBS category, or one work package
at an arbitrary as-of instant:

    BAC  live (non-deleted) items in scope
    PV   scope items belonging to work packages whose planned_start ≤ as_of
    EV   scope items installed with installed_at ≤ as_of
    SV   EV − PV
    SPI  EV / PV              (0 when PV = 0)
    %    100 · EV / BAC       (0 when BAC = 0, unrounded)
    EAC  BAC / SPI            (None when SPI = 0)
    VAC  BAC − EAC            (None when EAC is None)

calculate_evm() is the single computation used by live queries and by the
daily snapshot job.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select

from installplan.core.exceptions import MissingScopeIdError, ValidationError
from installplan.models import db
from installplan.models.logistics import InstallationStatus, InstallStatus, SupplyItem
from installplan.models.scheduling import EvmScope, EvmSnapshot
from installplan.services.work_package_service import list_work_packages, live_items_query
from installplan.utils.helpers import as_utc, isoformat, utc_midnight

logger = logging.getLogger(__name__)


@dataclass
class EvmMetrics:
    project_number: str
    scope: EvmScope
    scope_id: str | None
    as_of: datetime

    bac: int
    pv: int
    ev: int
    sv: int
    spi: float
    percent_complete: float
    items_remaining: int
    eac: float | None
    vac: float | None

    not_started_count: int = 0
    in_progress_count: int = 0
    installed_count: int = 0
    issue_count: int = 0

    def to_dict(self) -> dict:
        return {
            "project_number": self.project_number,
            "scope": self.scope.value,
            "scope_id": self.scope_id,
            "as_of": isoformat(self.as_of),
            "bac": self.bac,
            "pv": self.pv,
            "ev": self.ev,
            "sv": self.sv,
            "spi": self.spi,
            "percent_complete": self.percent_complete,
            "items_remaining": self.items_remaining,
            "eac": self.eac,
            "vac": self.vac,
            "not_started_count": self.not_started_count,
            "in_progress_count": self.in_progress_count,
            "installed_count": self.installed_count,
            "issue_count": self.issue_count,
        }


def derive_metrics(bac: int, pv: int, ev: int) -> dict:
    """Derived EVM figures with the division guards applied."""
    spi = ev / pv if pv > 0 else 0.0
    eac = bac / spi if spi > 0 else None
    return {
        "sv": ev - pv,
        "spi": spi,
        "percent_complete": 100 * ev / bac if bac > 0 else 0.0,
        "items_remaining": bac - ev,
        "eac": eac,
        "vac": bac - eac if eac is not None else None,
    }


def normalize_scope(scope, scope_id: str | None) -> EvmScope:
    """Coerce *scope* to EvmScope and enforce the scope_id rule."""
    try:
        scope = EvmScope(scope or EvmScope.PROJECT)
    except ValueError:
        raise ValidationError(
            f"Invalid EVM scope: {scope!r}",
            details={"scope": f"must be one of {[s.value for s in EvmScope]}"},
        ) from None
    if scope is not EvmScope.PROJECT and not scope_id:
        raise MissingScopeIdError(scope.value)
    return scope


def _scope_items_query(project_number: str, scope: EvmScope, scope_id: str | None):
    stmt = live_items_query(project_number)
    if scope is EvmScope.PWBS:
        stmt = stmt.where(SupplyItem.pwbs == scope_id)
    elif scope is EvmScope.WORK_PACKAGE:
        stmt = stmt.where(SupplyItem.pl_number == scope_id)
    return stmt


def _started_work_packages(project_number: str, scope: EvmScope,
                           scope_id: str | None, as_of: datetime) -> set[str]:
    """pl_numbers of in-scope work packages planned to have started by *as_of*."""
    started = set()
    for wp in list_work_packages(project_number):
        if wp.planned_start is None:
            continue
        if scope is EvmScope.WORK_PACKAGE and wp.pl_number != scope_id:
            continue
        if scope is EvmScope.PWBS and not wp.has_pwbs(scope_id):
            continue
        if as_utc(wp.planned_start) <= as_of:
            started.add(wp.pl_number)
    return started


def calculate_evm(project_number: str, scope=EvmScope.PROJECT,
                  scope_id: str | None = None, as_of: datetime | None = None) -> EvmMetrics:
    """Compute EVM metrics for one scope at *as_of* (default: now, UTC)."""
    scope = normalize_scope(scope, scope_id)
    if scope is EvmScope.PROJECT:
        scope_id = None
    as_of = as_utc(as_of) if as_of is not None else datetime.now(timezone.utc)

    rows = db.session.execute(
        _scope_items_query(project_number, scope, scope_id)
        .outerjoin(InstallationStatus, InstallationStatus.supply_item_id == SupplyItem.id)
        .add_columns(InstallationStatus.status, InstallationStatus.installed_at)
    ).all()

    started = _started_work_packages(project_number, scope, scope_id, as_of)

    bac = len(rows)
    pv = ev = 0
    breakdown = Counter()
    for item, status, installed_at in rows:
        status = status or InstallStatus.NOT_STARTED.value
        breakdown[status] += 1
        if item.pl_number in started:
            pv += 1
        if (status == InstallStatus.INSTALLED.value
                and installed_at is not None
                and as_utc(installed_at) <= as_of):
            ev += 1

    return EvmMetrics(
        project_number=project_number,
        scope=scope,
        scope_id=scope_id,
        as_of=as_of,
        bac=bac,
        pv=pv,
        ev=ev,
        not_started_count=breakdown[InstallStatus.NOT_STARTED.value],
        in_progress_count=breakdown[InstallStatus.IN_PROGRESS.value],
        installed_count=breakdown[InstallStatus.INSTALLED.value],
        issue_count=breakdown[InstallStatus.ISSUE.value],
        **derive_metrics(bac, pv, ev),
    )


# ── Convenience wrappers ─────────────────────────────────────────────────────


def get_evm_by_project(project_number: str, as_of: datetime | None = None) -> EvmMetrics:
    return calculate_evm(project_number, EvmScope.PROJECT, None, as_of)


def get_evm_by_pwbs(project_number: str, pwbs_code: str, as_of: datetime | None = None) -> EvmMetrics:
    return calculate_evm(project_number, EvmScope.PWBS, pwbs_code, as_of)


def get_evm_by_work_package(project_number: str, pl_number: str,
                            as_of: datetime | None = None) -> EvmMetrics:
    return calculate_evm(project_number, EvmScope.WORK_PACKAGE, pl_number, as_of)


def list_pwbs_codes(project_number: str) -> list[str]:
    """Distinct PWBS codes present on the project's live items."""
    stmt = (
        select(SupplyItem.pwbs)
        .where(
            SupplyItem.project_number == project_number,
            SupplyItem.is_deleted.is_(False),
            SupplyItem.pwbs.is_not(None),
            SupplyItem.pwbs != "",
        )
        .distinct()
        .order_by(SupplyItem.pwbs)
    )
    return list(db.session.execute(stmt).scalars())


def _worst_first(metrics: list[EvmMetrics]) -> list[EvmMetrics]:
    return sorted(metrics, key=lambda m: (m.spi, m.scope_id or ""))


def get_evm_by_all_pwbs(project_number: str, as_of: datetime | None = None) -> list[EvmMetrics]:
    """EVM per PWBS category, lowest SPI first."""
    as_of = as_of or datetime.now(timezone.utc)
    return _worst_first([
        calculate_evm(project_number, EvmScope.PWBS, code, as_of)
        for code in list_pwbs_codes(project_number)
    ])


def get_evm_by_all_work_packages(project_number: str,
                                 as_of: datetime | None = None) -> list[EvmMetrics]:
    """EVM per work package, lowest SPI first."""
    as_of = as_of or datetime.now(timezone.utc)
    return _worst_first([
        calculate_evm(project_number, EvmScope.WORK_PACKAGE, wp.pl_number, as_of)
        for wp in list_work_packages(project_number)
    ])


# ── Trend (materialised snapshots) ───────────────────────────────────────────


def _trend_since(days: int, now: datetime | None = None) -> date:
    """First snapshot_date whose midnight UTC is at or after ``now - days``."""
    cutoff = (as_utc(now) if now is not None else datetime.now(timezone.utc)) - timedelta(days=days)
    if cutoff == utc_midnight(cutoff):
        return cutoff.date()
    return cutoff.date() + timedelta(days=1)


def get_evm_trend(project_number: str, days: int, scope=None,
                  scope_id: str | None = None, *, now: datetime | None = None) -> list[EvmSnapshot]:
    """
    Stored daily snapshots taken within the last *days* x 24h, oldest first.

    A snapshot counts when its midnight UTC is at or after ``now - days``,
    so ``days=7`` yields at most seven daily points and ``days=0`` none
    (except when run exactly at midnight).

    Without a scope only project-level snapshots are returned; with one,
    both scope and scope_id must match.
    """
    if days < 0:
        raise ValidationError("days must be non-negative", details={"days": days})
    scope = normalize_scope(scope, scope_id)
    scope_key = "" if scope is EvmScope.PROJECT else scope_id
    since = _trend_since(days, now)

    stmt = (
        select(EvmSnapshot)
        .where(
            EvmSnapshot.project_number == project_number,
            EvmSnapshot.snapshot_date >= since,
            EvmSnapshot.scope == scope.value,
            EvmSnapshot.scope_key == scope_key,
        )
        .order_by(EvmSnapshot.snapshot_date)
    )
    return list(db.session.execute(stmt).scalars())
