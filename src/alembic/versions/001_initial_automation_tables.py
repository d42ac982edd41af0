"""Initial automation tables

Revision ID: 001
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
import sqlmodel
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # 1. Flows
    op.create_table(
        "automation_flows",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("name", sqlmodel.sql.sqltypes.AutoString(length=200), nullable=False),
        sa.Column(
            "status",
            sqlmodel.sql.sqltypes.AutoString(length=20),
            nullable=False,
            server_default="draft",
        ),
        sa.Column(
            "trigger_config", postgresql.JSONB(), nullable=False, server_default="{}"
        ),
        sa.Column("conditions", postgresql.JSONB(none_as_null=True), nullable=True),
        sa.Column("blocks", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("run_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_run", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        schema="public",
    )
    op.create_index(
        "ix_automation_flows_tenant_id", "automation_flows", ["tenant_id"], schema="public"
    )
    op.create_index(
        "ix_automation_flows_tenant_status",
        "automation_flows",
        ["tenant_id", "status"],
        schema="public",
    )

    # 2. Queue
    op.create_table(
        "automation_queue",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("flow_id", sa.Uuid(), nullable=False),
        sa.Column("trigger_event_id", sa.Text(), nullable=False),
        sa.Column("event_data", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column(
            "context_payload", postgresql.JSONB(), nullable=False, server_default="{}"
        ),
        sa.Column("block_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("execute_at", sa.DateTime(), nullable=False),
        sa.Column(
            "status",
            sqlmodel.sql.sqltypes.AutoString(length=20),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("last_error", sqlmodel.sql.sqltypes.AutoString(length=2000), nullable=True),
        sa.Column("locked_at", sa.DateTime(), nullable=True),
        sa.Column("locked_by", sqlmodel.sql.sqltypes.AutoString(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "tenant_id", "flow_id", "trigger_event_id", name="uq_automation_queue_event"
        ),
        schema="public",
    )
    op.create_index(
        "ix_automation_queue_tenant_id", "automation_queue", ["tenant_id"], schema="public"
    )
    op.create_index(
        "ix_automation_queue_flow_id", "automation_queue", ["flow_id"], schema="public"
    )
    op.create_index(
        "ix_automation_queue_status_execute_at",
        "automation_queue",
        ["status", "execute_at"],
        schema="public",
    )

    # 3. Idempotency ledger
    op.create_table(
        "automation_runs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("flow_id", sa.Uuid(), nullable=False),
        sa.Column("trigger_event_id", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sqlmodel.sql.sqltypes.AutoString(length=20),
            nullable=False,
            server_default="claimed",
        ),
        sa.Column("trace", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column(
            "error_details", sqlmodel.sql.sqltypes.AutoString(length=2000), nullable=True
        ),
        sa.Column("execution_time_ms", sa.Integer(), nullable=True),
        sa.Column("attempt", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("claimed_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "flow_id", "trigger_event_id", "tenant_id", name="uq_automation_runs_key"
        ),
        schema="public",
    )
    op.create_index(
        "ix_automation_runs_tenant_claimed",
        "automation_runs",
        ["tenant_id", "claimed_at"],
        schema="public",
    )

    # 4. Execution logs
    op.create_table(
        "automation_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("flow_id", sa.Uuid(), nullable=False),
        sa.Column("queue_item_id", sa.Uuid(), nullable=True),
        sa.Column("status", sqlmodel.sql.sqltypes.AutoString(length=20), nullable=False),
        sa.Column("trigger_data", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("trace", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("error", sqlmodel.sql.sqltypes.AutoString(length=2000), nullable=True),
        sa.Column("execution_time_ms", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        schema="public",
    )
    op.create_index(
        "ix_automation_logs_tenant_id", "automation_logs", ["tenant_id"], schema="public"
    )
    op.create_index(
        "ix_automation_logs_flow_created",
        "automation_logs",
        ["flow_id", "created_at"],
        schema="public",
    )

    # 5. Memberships are owned by the auth service; create only for standalone installs
    if not sa.inspect(op.get_bind()).has_table("user_tenant_membership", schema="public"):
        op.create_table(
            "user_tenant_membership",
            sa.Column("user_id", sa.Uuid(), nullable=False),
            sa.Column("tenant_id", sa.Uuid(), nullable=False),
            sa.Column(
                "role",
                sqlmodel.sql.sqltypes.AutoString(length=50),
                nullable=False,
                server_default="member",
            ),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("user_id", "tenant_id"),
            schema="public",
        )


def downgrade() -> None:
    op.drop_index("ix_automation_logs_flow_created", table_name="automation_logs", schema="public")
    op.drop_index("ix_automation_logs_tenant_id", table_name="automation_logs", schema="public")
    op.drop_table("automation_logs", schema="public")

    op.drop_index(
        "ix_automation_runs_tenant_claimed", table_name="automation_runs", schema="public"
    )
    op.drop_table("automation_runs", schema="public")

    op.drop_index(
        "ix_automation_queue_status_execute_at", table_name="automation_queue", schema="public"
    )
    op.drop_index("ix_automation_queue_flow_id", table_name="automation_queue", schema="public")
    op.drop_index("ix_automation_queue_tenant_id", table_name="automation_queue", schema="public")
    op.drop_table("automation_queue", schema="public")

    op.drop_index(
        "ix_automation_flows_tenant_status", table_name="automation_flows", schema="public"
    )
    op.drop_index("ix_automation_flows_tenant_id", table_name="automation_flows", schema="public")
    op.drop_table("automation_flows", schema="public")
    # user_tenant_membership is left in place: other services may own it
