"""
Material Readiness — service layer.

Classifies whether a work package's material is on site by cross-checking
each item's case against case inventory, per-item inventory verdicts and
shipment transit state:

    inventoried   case inventory status is complete or discrepancy
    missing       inventoried, and the item's own verdict is missing/damaged
    in transit    not inventoried, and the case rides a shipment that is
                  at_factory / in_transit / at_port / customs

    blocked   (in_transit + missing) / total ≥ threshold (default 0.20),
              or the package has no items at all
    ready     every item inventoried and nothing missing
    partial   anything else
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app
from sqlalchemy import func, select

from installplan.models import db
from installplan.models.logistics import (
    INVENTORIED_CASE_STATUSES,
    IN_TRANSIT_SHIPMENT_STATUSES,
    UNAVAILABLE_ITEM_STATUSES,
    CaseShipment,
    CaseTracking,
    InventoryItem,
    PickingStatus,
    PickingTask,
    SupplyItem,
)
from installplan.models.scheduling import ReadinessStatus, WorkPackageSchedule
from installplan.services.work_package_service import (
    find_work_package,
    list_work_packages,
    live_items_query,
)
from installplan.utils.helpers import isoformat

logger = logging.getLogger(__name__)

DEFAULT_BLOCKED_THRESHOLD = 0.20


@dataclass
class EtaInfo:
    case_number: str
    shipment_ref: str
    eta: datetime | None
    status: str

    def to_dict(self) -> dict:
        return {
            "case_number": self.case_number,
            "shipment_ref": self.shipment_ref,
            "eta": isoformat(self.eta),
            "status": self.status,
        }


@dataclass
class ReadinessResult:
    project_number: str
    pl_number: str
    readiness_status: ReadinessStatus
    total_items: int = 0
    inventoried_items: int = 0
    picked_items: int = 0
    in_transit_items: int = 0
    missing_items: int = 0
    blocked_cases: list[str] = field(default_factory=list)
    eta_info: list[EtaInfo] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "project_number": self.project_number,
            "pl_number": self.pl_number,
            "readiness_status": self.readiness_status.value,
            "total_items": self.total_items,
            "inventoried_items": self.inventoried_items,
            "picked_items": self.picked_items,
            "in_transit_items": self.in_transit_items,
            "missing_items": self.missing_items,
            "blocked_cases": list(self.blocked_cases),
            "eta_info": [e.to_dict() for e in self.eta_info],
        }


def classify_readiness(
    total_items: int,
    inventoried_items: int,
    in_transit_items: int,
    missing_items: int,
    threshold: float = DEFAULT_BLOCKED_THRESHOLD,
) -> ReadinessStatus:
    """Pure classification from the item counters."""
    if total_items == 0:
        return ReadinessStatus.BLOCKED
    if (in_transit_items + missing_items) / total_items >= threshold:
        return ReadinessStatus.BLOCKED
    if inventoried_items == total_items and missing_items == 0:
        return ReadinessStatus.READY
    return ReadinessStatus.PARTIAL


def _threshold() -> float:
    return float(current_app.config.get("READINESS_BLOCKED_THRESHOLD", DEFAULT_BLOCKED_THRESHOLD))


def assess_readiness(wp: WorkPackageSchedule) -> ReadinessResult:
    """Compute readiness for *wp* without writing anything."""
    project_number, pl_number = wp.project_number, wp.pl_number
    items = list(db.session.execute(
        live_items_query(project_number).where(SupplyItem.pl_number == pl_number)
    ).scalars())

    if not items:
        return ReadinessResult(project_number, pl_number, ReadinessStatus.BLOCKED)

    cases = {item.case_number for item in items if item.case_number}
    case_status = _case_inventory_status(project_number, cases)
    item_verdicts = _inventory_verdicts(project_number, cases)
    case_shipments = _case_shipments(project_number, cases)

    inventoried = in_transit = missing = 0
    blocked_cases: set[str] = set()
    eta_by_case: dict[str, EtaInfo] = {}

    for item in items:
        case = item.case_number
        if not case:
            continue
        if case_status.get(case) in INVENTORIED_CASE_STATUSES:
            inventoried += 1
            if item_verdicts.get(item.id) in UNAVAILABLE_ITEM_STATUSES:
                missing += 1
            continue
        shipment = case_shipments.get(case)
        if shipment is not None and shipment.status in IN_TRANSIT_SHIPMENT_STATUSES:
            in_transit += 1
            blocked_cases.add(case)
            if shipment.eta is not None and case not in eta_by_case:
                eta_by_case[case] = EtaInfo(case, shipment.shipment_ref, shipment.eta, shipment.status)

    picked = db.session.execute(
        select(func.count(PickingTask.id)).where(
            PickingTask.project_number == project_number,
            PickingTask.pl_number == pl_number,
            PickingTask.status == PickingStatus.PICKED.value,
        )
    ).scalar_one()

    return ReadinessResult(
        project_number=project_number,
        pl_number=pl_number,
        readiness_status=classify_readiness(len(items), inventoried, in_transit, missing, _threshold()),
        total_items=len(items),
        inventoried_items=inventoried,
        picked_items=picked,
        in_transit_items=in_transit,
        missing_items=missing,
        blocked_cases=sorted(blocked_cases),
        eta_info=[eta_by_case[c] for c in sorted(eta_by_case)],
    )


def _case_inventory_status(project_number: str, cases: set[str]) -> dict[str, str]:
    if not cases:
        return {}
    rows = db.session.execute(
        select(CaseTracking.case_number, CaseTracking.inventory_status).where(
            CaseTracking.project_number == project_number,
            CaseTracking.case_number.in_(cases),
        )
    )
    return {case: status for case, status in rows}


def _inventory_verdicts(project_number: str, cases: set[str]) -> dict[int, str]:
    """First recorded verdict per supply item within the given cases."""
    if not cases:
        return {}
    rows = db.session.execute(
        select(InventoryItem.supply_item_id, InventoryItem.status)
        .where(
            InventoryItem.project_number == project_number,
            InventoryItem.case_number.in_(cases),
            InventoryItem.supply_item_id.is_not(None),
        )
        .order_by(InventoryItem.id)
    )
    verdicts: dict[int, str] = {}
    for item_id, status in rows:
        verdicts.setdefault(item_id, status)
    return verdicts


def _case_shipments(project_number: str, cases: set[str]) -> dict:
    """First shipment assignment per case."""
    if not cases:
        return {}
    links = db.session.execute(
        select(CaseShipment)
        .where(
            CaseShipment.project_number == project_number,
            CaseShipment.case_number.in_(cases),
        )
        .order_by(CaseShipment.id)
    ).scalars()
    shipments = {}
    for link in links:
        shipments.setdefault(link.case_number, link.shipment)
    return shipments


# ── Entry points ─────────────────────────────────────────────────────────────


def calculate_readiness(project_number: str, pl_number: str) -> ReadinessResult:
    """Recompute readiness and store it on the work package."""
    wp = find_work_package(project_number, pl_number)
    result = assess_readiness(wp)
    wp.readiness_status = result.readiness_status.value
    db.session.commit()
    logger.info("Readiness %s: %s (in_transit=%d missing=%d of %d)",
                pl_number, result.readiness_status.value,
                result.in_transit_items, result.missing_items, result.total_items,
                extra={"project_number": project_number, "pl_number": pl_number})
    return result


def get_readiness_status(project_number: str, pl_number: str) -> dict:
    """Stored readiness, without recomputation."""
    wp = find_work_package(project_number, pl_number)
    return {
        "project_number": wp.project_number,
        "pl_number": wp.pl_number,
        "readiness_status": wp.readiness_status,
        "updated_at": isoformat(wp.updated_at),
    }


def calculate_project_readiness(project_number: str) -> dict:
    """Recompute and store readiness for every work package of a project."""
    results = []
    for wp in list_work_packages(project_number):
        result = assess_readiness(wp)
        wp.readiness_status = result.readiness_status.value
        results.append(result)
    db.session.commit()

    counts = {status: 0 for status in ReadinessStatus}
    for result in results:
        counts[result.readiness_status] += 1
    logger.info("Project readiness: ready=%d partial=%d blocked=%d",
                counts[ReadinessStatus.READY], counts[ReadinessStatus.PARTIAL],
                counts[ReadinessStatus.BLOCKED],
                extra={"project_number": project_number})
    return {
        "project_number": project_number,
        "total_work_packages": len(results),
        "ready_count": counts[ReadinessStatus.READY],
        "partial_count": counts[ReadinessStatus.PARTIAL],
        "blocked_count": counts[ReadinessStatus.BLOCKED],
        "results": [r.to_dict() for r in results],
    }
