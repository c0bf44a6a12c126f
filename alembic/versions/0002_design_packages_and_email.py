from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


revision = "0002_design_packages_and_email"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def _has_table(bind, table_name: str) -> bool:
    return table_name in inspect(bind).get_table_names()


def _has_index(bind, table_name: str, index_name: str) -> bool:
    return any(idx["name"] == index_name for idx in inspect(bind).get_indexes(table_name))


def upgrade() -> None:
    bind = op.get_bind()

    if not _has_table(bind, "design_package_orders"):
        op.create_table(
            "design_package_orders",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("order_id", sa.String(length=255), nullable=False, unique=True),
            sa.Column("client_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("payment_id", sa.Integer(), sa.ForeignKey("payments.id"), nullable=True),
            sa.Column("virtual_prototype_status", sa.String(length=50), nullable=False, server_default="not_started"),
            sa.Column("virtual_prototype_job_id", sa.Integer(), sa.ForeignKey("jobs.id"), nullable=True),
            sa.Column("virtual_prototype_completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("sell_sheet_status", sa.String(length=50), nullable=False, server_default="locked"),
            sa.Column("sell_sheet_job_id", sa.Integer(), sa.ForeignKey("jobs.id"), nullable=True),
            sa.Column("sell_sheet_completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("package_status", sa.String(length=50), nullable=False, server_default="active"),
            sa.Column("purchase_date", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
    if not _has_index(bind, "design_package_orders", "ix_design_package_orders_client_id"):
        op.create_index("ix_design_package_orders_client_id", "design_package_orders", ["client_id"], unique=False)

    if not _has_table(bind, "email_templates"):
        op.create_table(
            "email_templates",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=255), nullable=False, unique=True),
            sa.Column("subject", sa.String(length=500), nullable=False),
            sa.Column("body", sa.Text(), nullable=False),
            sa.Column("trigger_event", sa.String(length=100), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
    if not _has_index(bind, "email_templates", "ix_email_templates_trigger_event"):
        op.create_index("ix_email_templates_trigger_event", "email_templates", ["trigger_event"], unique=False)

    if not _has_table(bind, "email_outbox"):
        op.create_table(
            "email_outbox",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("recipient", sa.String(length=320), nullable=False),
            sa.Column("subject", sa.String(length=500), nullable=False),
            sa.Column("body", sa.Text(), nullable=False),
            sa.Column("trigger_event", sa.String(length=100), nullable=True),
            sa.Column("reference_type", sa.String(length=50), nullable=True),
            sa.Column("reference_id", sa.String(length=255), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("last_error", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        )
    for column in ("status", "reference_id"):
        if not _has_index(bind, "email_outbox", f"ix_email_outbox_{column}"):
            op.create_index(f"ix_email_outbox_{column}", "email_outbox", [column], unique=False)

    if not _has_table(bind, "email_logs"):
        op.create_table(
            "email_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("outbox_id", sa.Integer(), sa.ForeignKey("email_outbox.id"), nullable=True),
            sa.Column("recipient", sa.String(length=320), nullable=False),
            sa.Column("subject", sa.String(length=500), nullable=False),
            sa.Column("body", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("error", sa.Text(), nullable=True),
            sa.Column("provider_message_id", sa.String(length=255), nullable=True),
            sa.Column("resent_from", sa.Integer(), sa.ForeignKey("email_logs.id"), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
    if not _has_index(bind, "email_logs", "ix_email_logs_outbox_id"):
        op.create_index("ix_email_logs_outbox_id", "email_logs", ["outbox_id"], unique=False)


def downgrade() -> None:
    bind = op.get_bind()
    for table_name in ("email_logs", "email_outbox", "email_templates", "design_package_orders"):
        if _has_table(bind, table_name):
            op.drop_table(table_name)
