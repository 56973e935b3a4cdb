"""initial_installplan_schema

Create the logistics collaborator tables and the planning tables
(work_package_schedules, pwbs_dependencies, evm_snapshots, scheduled_jobs).

Revision ID: 7c1e5a9b2d40
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e5a9b2d40"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    # ── Logistics collaborators ──────────────────────────────────────────
    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_number", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False, server_default=""),
            sa.Column("customer", sa.String(length=200), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "status IN ('planning','active','on_hold','complete')", name="ck_projects_status",
            ),
        )
        op.create_index("ix_projects_project_number", "projects", ["project_number"], unique=True)

    if "supply_items" not in existing_tables:
        op.create_table(
            "supply_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_number", sa.String(length=50), nullable=False),
            sa.Column("pl_number", sa.String(length=50), nullable=True),
            sa.Column("pl_name", sa.String(length=200), nullable=True),
            sa.Column("pwbs", sa.String(length=50), nullable=True),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("quantity", sa.Float(), nullable=True),
            sa.Column("weight_kg", sa.Float(), nullable=True),
            sa.Column("case_number", sa.String(length=50), nullable=True),
            sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_supply_items_project_number", "supply_items", ["project_number"])
        op.create_index("ix_supply_items_case_number", "supply_items", ["case_number"])
        op.create_index("ix_supply_items_project_pl", "supply_items", ["project_number", "pl_number"])
        op.create_index("ix_supply_items_project_pwbs", "supply_items", ["project_number", "pwbs"])

    if "installation_statuses" not in existing_tables:
        op.create_table(
            "installation_statuses",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("supply_item_id", sa.Integer(), nullable=False),
            sa.Column("project_number", sa.String(length=50), nullable=False),
            sa.Column("pl_number", sa.String(length=50), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="not_started"),
            sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("installed_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["supply_item_id"], ["supply_items.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("supply_item_id"),
            sa.CheckConstraint(
                "status IN ('not_started','in_progress','installed','issue')",
                name="ck_installation_statuses_status",
            ),
        )
        op.create_index("ix_installation_statuses_project_number", "installation_statuses",
                        ["project_number"])

    if "case_tracking" not in existing_tables:
        op.create_table(
            "case_tracking",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_number", sa.String(length=50), nullable=False),
            sa.Column("case_number", sa.String(length=50), nullable=False),
            sa.Column("inventory_status", sa.String(length=20), nullable=False,
                      server_default="pending"),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_number", "case_number", name="uq_case_tracking_case"),
            sa.CheckConstraint(
                "inventory_status IN ('pending','in_progress','complete','discrepancy')",
                name="ck_case_tracking_inventory_status",
            ),
        )

    if "inventory_items" not in existing_tables:
        op.create_table(
            "inventory_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_number", sa.String(length=50), nullable=False),
            sa.Column("case_number", sa.String(length=50), nullable=False),
            sa.Column("supply_item_id", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["supply_item_id"], ["supply_items.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "status IN ('pending','verified','missing','damaged','extra')",
                name="ck_inventory_items_status",
            ),
        )
        op.create_index("ix_inventory_items_case", "inventory_items",
                        ["project_number", "case_number"])

    if "shipments" not in existing_tables:
        op.create_table(
            "shipments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("shipment_ref", sa.String(length=50), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="at_factory"),
            sa.Column("eta", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("shipment_ref"),
            sa.CheckConstraint(
                "status IN ('at_factory','in_transit','at_port','customs','delivered')",
                name="ck_shipments_status",
            ),
        )

    if "case_shipments" not in existing_tables:
        op.create_table(
            "case_shipments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_number", sa.String(length=50), nullable=False),
            sa.Column("case_number", sa.String(length=50), nullable=False),
            sa.Column("shipment_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["shipment_id"], ["shipments.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_case_shipments_case", "case_shipments",
                        ["project_number", "case_number"])

    if "picking_tasks" not in existing_tables:
        op.create_table(
            "picking_tasks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_number", sa.String(length=50), nullable=False),
            sa.Column("pl_number", sa.String(length=50), nullable=False),
            sa.Column("supply_item_id", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["supply_item_id"], ["supply_items.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "status IN ('pending','picked','partial','unavailable')",
                name="ck_picking_tasks_status",
            ),
        )
        op.create_index("ix_picking_tasks_work_package", "picking_tasks",
                        ["project_number", "pl_number"])

    # ── Planning ─────────────────────────────────────────────────────────
    if "work_package_schedules" not in existing_tables:
        op.create_table(
            "work_package_schedules",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_number", sa.String(length=50), nullable=False),
            sa.Column("pl_number", sa.String(length=50), nullable=False),
            sa.Column("pl_name", sa.String(length=200), nullable=True),
            sa.Column("pwbs_categories", sa.JSON(), nullable=False),
            sa.Column("item_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("total_quantity", sa.Float(), nullable=False, server_default="0"),
            sa.Column("total_weight_kg", sa.Float(), nullable=False, server_default="0"),
            sa.Column("planned_start", sa.DateTime(timezone=True), nullable=True),
            sa.Column("planned_end", sa.DateTime(timezone=True), nullable=True),
            sa.Column("actual_start", sa.DateTime(timezone=True), nullable=True),
            sa.Column("actual_end", sa.DateTime(timezone=True), nullable=True),
            sa.Column("estimated_duration_days", sa.Float(), nullable=True),
            sa.Column("schedule_status", sa.String(length=20), nullable=False,
                      server_default="unscheduled"),
            sa.Column("readiness_status", sa.String(length=20), nullable=False,
                      server_default="blocked"),
            sa.Column("dependency_override", sa.Boolean(), nullable=False,
                      server_default=sa.false()),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_number", "pl_number", name="uq_wps_project_pl"),
            sa.CheckConstraint(
                "schedule_status IN ('unscheduled','scheduled','in_progress','complete','on_hold')",
                name="ck_wps_schedule_status",
            ),
            sa.CheckConstraint(
                "readiness_status IN ('ready','partial','blocked')",
                name="ck_wps_readiness_status",
            ),
        )
        op.create_index("ix_work_package_schedules_project_number", "work_package_schedules",
                        ["project_number"])

    if "pwbs_dependencies" not in existing_tables:
        op.create_table(
            "pwbs_dependencies",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("from_pwbs", sa.String(length=50), nullable=False),
            sa.Column("to_pwbs", sa.String(length=50), nullable=False),
            sa.Column("dependency_type", sa.String(length=20), nullable=False,
                      server_default="finish_to_start"),
            sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("project_number", sa.String(length=50), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "dependency_type IN ('finish_to_start','start_to_start','none')",
                name="ck_pwbs_dependencies_type",
            ),
            sa.CheckConstraint(
                "(is_default AND project_number IS NULL) "
                "OR (NOT is_default AND project_number IS NOT NULL)",
                name="ck_pwbs_dependencies_scope",
            ),
        )
        op.create_index("ix_pwbs_dependencies_edge", "pwbs_dependencies", ["from_pwbs", "to_pwbs"])
        op.create_index("ix_pwbs_dependencies_project", "pwbs_dependencies", ["project_number"])
        # one default and one override per project for each (from_pwbs, to_pwbs)
        op.create_index(
            "uq_pwbs_dependencies_default_edge", "pwbs_dependencies",
            ["from_pwbs", "to_pwbs"], unique=True,
            sqlite_where=sa.text("is_default"), postgresql_where=sa.text("is_default"),
        )
        op.create_index(
            "uq_pwbs_dependencies_project_edge", "pwbs_dependencies",
            ["project_number", "from_pwbs", "to_pwbs"], unique=True,
            sqlite_where=sa.text("NOT is_default"), postgresql_where=sa.text("NOT is_default"),
        )

    if "evm_snapshots" not in existing_tables:
        op.create_table(
            "evm_snapshots",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_number", sa.String(length=50), nullable=False),
            sa.Column("snapshot_date", sa.Date(), nullable=False),
            sa.Column("scope", sa.String(length=20), nullable=False),
            sa.Column("scope_id", sa.String(length=50), nullable=True),
            sa.Column("scope_key", sa.String(length=50), nullable=False, server_default=""),
            sa.Column("bac", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("pv", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("ev", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("sv", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("spi", sa.Float(), nullable=False, server_default="0"),
            sa.Column("percent_complete", sa.Float(), nullable=False, server_default="0"),
            sa.Column("items_remaining", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("eac", sa.Float(), nullable=True),
            sa.Column("vac", sa.Float(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_number", "snapshot_date", "scope", "scope_key",
                                name="uq_evm_snapshots_scope_day"),
            sa.CheckConstraint(
                "scope IN ('project','pwbs','work_package')", name="ck_evm_snapshots_scope",
            ),
        )
        op.create_index("ix_evm_snapshots_project_date", "evm_snapshots",
                        ["project_number", "snapshot_date"])

    if "scheduled_jobs" not in existing_tables:
        op.create_table(
            "scheduled_jobs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("schedule_type", sa.String(length=30), nullable=True),
            sa.Column("schedule_config", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("is_enabled", sa.Boolean(), nullable=True),
            sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_run_status", sa.String(length=20), nullable=True),
            sa.Column("last_run_duration_ms", sa.Integer(), nullable=True),
            sa.Column("last_run_result", sa.JSON(), nullable=True),
            sa.Column("run_count", sa.Integer(), nullable=True),
            sa.Column("error_count", sa.Integer(), nullable=True),
            sa.Column("last_error", sa.Text(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("job_name"),
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in (
        "scheduled_jobs",
        "evm_snapshots",
        "pwbs_dependencies",
        "work_package_schedules",
        "picking_tasks",
        "case_shipments",
        "shipments",
        "inventory_items",
        "case_tracking",
        "installation_statuses",
        "supply_items",
        "projects",
    ):
        if table in existing_tables:
            op.drop_table(table)
