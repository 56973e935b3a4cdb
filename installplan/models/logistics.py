"""
Installation Planning Service
Logistics collaborator models.

These tables are owned by the field-logistics subsystems (item master,
installation tracking, case inventory, shipping, picking). The planning
core only reads them; they are declared here so the core can query them
and so tests can populate them.

Models:
    - Project:             installation project (keyed by project_number)
    - SupplyItem:          one physical item, grouped by pl_number / pwbs
    - InstallationStatus:  per-item installation progress
    - CaseTracking:        per-case inventory progress on site
    - InventoryItem:       per-item inventory verdict inside an inventoried case
    - Shipment:            transport leg carrying cases to site
    - CaseShipment:        case → shipment assignment
    - PickingTask:         per-item picking task for a work package

Architecture:
    Project ──1:N──▶ SupplyItem ──1:1──▶ InstallationStatus
    SupplyItem.case_number ──▶ CaseTracking / InventoryItem / CaseShipment ──▶ Shipment
"""

from datetime import datetime, timezone
from enum import Enum

from installplan.models import db
from installplan.utils.helpers import isoformat


def enum_check(column: str, enum_cls) -> str:
    """SQL CHECK expression restricting *column* to the values of *enum_cls*."""
    values = ",".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


# ── Status enums ─────────────────────────────────────────────────────────────


class ProjectStatus(str, Enum):
    PLANNING = "planning"
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    COMPLETE = "complete"


class InstallStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    INSTALLED = "installed"
    ISSUE = "issue"


class CaseInventoryStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    DISCREPANCY = "discrepancy"


class InventoryItemStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    MISSING = "missing"
    DAMAGED = "damaged"
    EXTRA = "extra"


class ShipmentStatus(str, Enum):
    AT_FACTORY = "at_factory"
    IN_TRANSIT = "in_transit"
    AT_PORT = "at_port"
    CUSTOMS = "customs"
    DELIVERED = "delivered"


class PickingStatus(str, Enum):
    PENDING = "pending"
    PICKED = "picked"
    PARTIAL = "partial"
    UNAVAILABLE = "unavailable"


# A case is on site and counted once its inventory is finished, with or without findings
INVENTORIED_CASE_STATUSES = frozenset({
    CaseInventoryStatus.COMPLETE.value, CaseInventoryStatus.DISCREPANCY.value,
})
UNAVAILABLE_ITEM_STATUSES = frozenset({
    InventoryItemStatus.MISSING.value, InventoryItemStatus.DAMAGED.value,
})
IN_TRANSIT_SHIPMENT_STATUSES = frozenset({
    ShipmentStatus.AT_FACTORY.value, ShipmentStatus.IN_TRANSIT.value,
    ShipmentStatus.AT_PORT.value, ShipmentStatus.CUSTOMS.value,
})


def _now():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# 1. Project
# ═════════════════════════════════════════════════════════════════════════════


class Project(db.Model):
    """Installation project. Only non-complete projects are snapshotted."""

    __tablename__ = "projects"
    __table_args__ = (
        db.CheckConstraint(enum_check("status", ProjectStatus), name="ck_projects_status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_number = db.Column(db.String(50), unique=True, nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False, default="")
    customer = db.Column(db.String(200), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=ProjectStatus.ACTIVE.value)

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    def to_dict(self):
        return {
            "id": self.id,
            "project_number": self.project_number,
            "name": self.name,
            "customer": self.customer,
            "status": self.status,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<Project {self.project_number} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. SupplyItem + InstallationStatus
# ═════════════════════════════════════════════════════════════════════════════


class SupplyItem(db.Model):
    """One physical supply item. Soft-deleted items are ignored by planning."""

    __tablename__ = "supply_items"
    __table_args__ = (
        db.Index("ix_supply_items_project_pl", "project_number", "pl_number"),
        db.Index("ix_supply_items_project_pwbs", "project_number", "pwbs"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_number = db.Column(db.String(50), nullable=False, index=True)
    pl_number = db.Column(db.String(50), nullable=True,
                          comment="Work package (packing list) number")
    pl_name = db.Column(db.String(200), nullable=True)
    pwbs = db.Column(db.String(50), nullable=True,
                     comment="PWBS category code")
    description = db.Column(db.String(500), default="")
    quantity = db.Column(db.Float, default=0)
    weight_kg = db.Column(db.Float, default=0)
    case_number = db.Column(db.String(50), nullable=True, index=True)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    installation = db.relationship(
        "InstallationStatus", back_populates="supply_item", uselist=False,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_number": self.project_number,
            "pl_number": self.pl_number,
            "pl_name": self.pl_name,
            "pwbs": self.pwbs,
            "description": self.description,
            "quantity": self.quantity,
            "weight_kg": self.weight_kg,
            "case_number": self.case_number,
            "is_deleted": self.is_deleted,
        }

    def __repr__(self):
        return f"<SupplyItem {self.id} {self.project_number}/{self.pl_number} pwbs={self.pwbs}>"


class InstallationStatus(db.Model):
    """Installation progress for one supply item (written by field operations)."""

    __tablename__ = "installation_statuses"
    __table_args__ = (
        db.CheckConstraint(enum_check("status", InstallStatus), name="ck_installation_statuses_status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    supply_item_id = db.Column(
        db.Integer, db.ForeignKey("supply_items.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    project_number = db.Column(db.String(50), nullable=False, index=True)
    pl_number = db.Column(db.String(50), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=InstallStatus.NOT_STARTED.value)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    installed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    supply_item = db.relationship("SupplyItem", back_populates="installation")

    def __repr__(self):
        return f"<InstallationStatus item={self.supply_item_id} {self.status}>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. Case inventory
# ═════════════════════════════════════════════════════════════════════════════


class CaseTracking(db.Model):
    """Inventory progress of one shipping case on site."""

    __tablename__ = "case_tracking"
    __table_args__ = (
        db.UniqueConstraint("project_number", "case_number", name="uq_case_tracking_case"),
        db.CheckConstraint(enum_check("inventory_status", CaseInventoryStatus),
                           name="ck_case_tracking_inventory_status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_number = db.Column(db.String(50), nullable=False)
    case_number = db.Column(db.String(50), nullable=False)
    inventory_status = db.Column(db.String(20), nullable=False,
                                 default=CaseInventoryStatus.PENDING.value)

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    def __repr__(self):
        return f"<CaseTracking {self.project_number}/{self.case_number} {self.inventory_status}>"


class InventoryItem(db.Model):
    """Per-item inventory verdict recorded while a case is counted."""

    __tablename__ = "inventory_items"
    __table_args__ = (
        db.Index("ix_inventory_items_case", "project_number", "case_number"),
        db.CheckConstraint(enum_check("status", InventoryItemStatus), name="ck_inventory_items_status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_number = db.Column(db.String(50), nullable=False)
    case_number = db.Column(db.String(50), nullable=False)
    supply_item_id = db.Column(
        db.Integer, db.ForeignKey("supply_items.id", ondelete="CASCADE"), nullable=True,
    )
    status = db.Column(db.String(20), nullable=False, default=InventoryItemStatus.PENDING.value)

    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    def __repr__(self):
        return f"<InventoryItem case={self.case_number} item={self.supply_item_id} {self.status}>"


# ═════════════════════════════════════════════════════════════════════════════
# 4. Shipping
# ═════════════════════════════════════════════════════════════════════════════


class Shipment(db.Model):
    """Transport leg. Cases on a non-delivered shipment are in transit."""

    __tablename__ = "shipments"
    __table_args__ = (
        db.CheckConstraint(enum_check("status", ShipmentStatus), name="ck_shipments_status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    shipment_ref = db.Column(db.String(50), unique=True, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=ShipmentStatus.AT_FACTORY.value)
    eta = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    def __repr__(self):
        return f"<Shipment {self.shipment_ref} [{self.status}]>"


class CaseShipment(db.Model):
    """Assignment of a case to the shipment carrying it."""

    __tablename__ = "case_shipments"
    __table_args__ = (
        db.Index("ix_case_shipments_case", "project_number", "case_number"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_number = db.Column(db.String(50), nullable=False)
    case_number = db.Column(db.String(50), nullable=False)
    shipment_id = db.Column(
        db.Integer, db.ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False,
    )

    shipment = db.relationship("Shipment")

    def __repr__(self):
        return f"<CaseShipment {self.case_number} → {self.shipment_id}>"


# ═════════════════════════════════════════════════════════════════════════════
# 5. Picking
# ═════════════════════════════════════════════════════════════════════════════


class PickingTask(db.Model):
    """Warehouse picking task for one item of a work package."""

    __tablename__ = "picking_tasks"
    __table_args__ = (
        db.Index("ix_picking_tasks_work_package", "project_number", "pl_number"),
        db.CheckConstraint(enum_check("status", PickingStatus), name="ck_picking_tasks_status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_number = db.Column(db.String(50), nullable=False)
    pl_number = db.Column(db.String(50), nullable=False)
    supply_item_id = db.Column(
        db.Integer, db.ForeignKey("supply_items.id", ondelete="CASCADE"), nullable=True,
    )
    status = db.Column(db.String(20), nullable=False, default=PickingStatus.PENDING.value)

    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    def __repr__(self):
        return f"<PickingTask {self.pl_number} item={self.supply_item_id} {self.status}>"
