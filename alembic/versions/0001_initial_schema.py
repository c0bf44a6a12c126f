from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _has_table(bind, table_name: str) -> bool:
    return table_name in inspect(bind).get_table_names()


def _has_index(bind, table_name: str, index_name: str) -> bool:
    return any(idx["name"] == index_name for idx in inspect(bind).get_indexes(table_name))


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()

    if not _has_table(bind, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("open_id", sa.String(length=64), nullable=False, unique=True),
            sa.Column("name", sa.String(), nullable=True),
            sa.Column("email", sa.String(length=320), nullable=True),
            sa.Column("phone", sa.String(length=32), nullable=True),
            sa.Column("login_method", sa.String(length=64), nullable=True),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="client"),
            *_timestamps(),
            sa.Column("last_signed_in", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
    if not _has_index(bind, "users", "ix_users_email"):
        op.create_index("ix_users_email", "users", ["email"], unique=False)

    if not _has_table(bind, "jobs"):
        op.create_table(
            "jobs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("client_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("designer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("department_id", sa.Integer(), nullable=True),
            sa.Column("title", sa.String(length=500), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=50), nullable=False, server_default="Draft"),
            sa.Column("priority", sa.String(length=20), nullable=False, server_default="Medium"),
            sa.Column("package_type", sa.String(length=100), nullable=True),
            sa.Column("is_draft", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_date", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.Column("last_activity_date", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
    for column in ("client_id", "designer_id", "status"):
        if not _has_index(bind, "jobs", f"ix_jobs_{column}"):
            op.create_index(f"ix_jobs_{column}", "jobs", [column], unique=False)

    if not _has_table(bind, "job_status_history"):
        op.create_table(
            "job_status_history",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False),
            sa.Column("changed_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("old_status", sa.String(length=50), nullable=True),
            sa.Column("new_status", sa.String(length=50), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
    if not _has_index(bind, "job_status_history", "ix_job_status_history_job_id"):
        op.create_index("ix_job_status_history_job_id", "job_status_history", ["job_id"], unique=False)

    if not _has_table(bind, "designer_assignments"):
        op.create_table(
            "designer_assignments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("job_type", sa.String(length=50), nullable=False),
            sa.Column("designer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
        )
    if not _has_index(bind, "designer_assignments", "ix_designer_assignments_job_type_active"):
        op.create_index(
            "ix_designer_assignments_job_type_active",
            "designer_assignments",
            ["job_type", "is_active"],
            unique=False,
        )
    if not _has_index(bind, "designer_assignments", "ix_designer_assignments_designer_id"):
        op.create_index("ix_designer_assignments_designer_id", "designer_assignments", ["designer_id"], unique=False)

    if not _has_table(bind, "pricing_tiers"):
        op.create_table(
            "pricing_tiers",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=100), nullable=False, unique=True),
            sa.Column("display_name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("membership_level", sa.String(length=100), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
        )

    if not _has_table(bind, "product_pricing"):
        op.create_table(
            "product_pricing",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("product_key", sa.String(length=100), nullable=False),
            sa.Column("product_name", sa.String(length=255), nullable=False),
            sa.Column("product_description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=50), nullable=False, server_default="service"),
            sa.Column("department_id", sa.Integer(), nullable=True),
            sa.Column("pricing_tier_id", sa.Integer(), sa.ForeignKey("pricing_tiers.id"), nullable=True),
            sa.Column("price", sa.Numeric(10, 2), nullable=False),
            sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("parent_product_key", sa.String(length=100), nullable=True),
            sa.Column("minimum_quantity", sa.Integer(), nullable=True),
            sa.Column("minimum_price", sa.Numeric(10, 2), nullable=True),
            sa.Column("per_unit_price", sa.Numeric(10, 2), nullable=True),
            sa.Column("maximum_quantity", sa.Integer(), nullable=True),
            *_timestamps(),
        )
    for column in ("product_key", "pricing_tier_id"):
        if not _has_index(bind, "product_pricing", f"ix_product_pricing_{column}"):
            op.create_index(f"ix_product_pricing_{column}", "product_pricing", [column], unique=False)

    if not _has_table(bind, "voucher_codes"):
        op.create_table(
            "voucher_codes",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("code", sa.String(length=50), nullable=False),
            sa.Column("discount_type", sa.String(length=20), nullable=False),
            sa.Column("discount_value", sa.Numeric(10, 2), nullable=False),
            sa.Column("max_uses", sa.Integer(), nullable=True),
            sa.Column("uses_per_user", sa.Integer(), nullable=True),
            sa.Column("used_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("valid_from", sa.DateTime(timezone=True), nullable=True),
            sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
        )
    if not _has_index(bind, "voucher_codes", "ix_voucher_codes_code"):
        op.create_index("ix_voucher_codes_code", "voucher_codes", ["code"], unique=True)

    if not _has_table(bind, "voucher_usage"):
        op.create_table(
            "voucher_usage",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "voucher_id",
                sa.Integer(),
                sa.ForeignKey("voucher_codes.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("order_ref", sa.String(length=255), nullable=True),
            sa.Column("used_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
    for column in ("voucher_id", "user_id"):
        if not _has_index(bind, "voucher_usage", f"ix_voucher_usage_{column}"):
            op.create_index(f"ix_voucher_usage_{column}", "voucher_usage", [column], unique=False)

    if not _has_table(bind, "payments"):
        op.create_table(
            "payments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id", ondelete="SET NULL"), nullable=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("gateway_payment_intent_id", sa.String(length=255), nullable=False, unique=True),
            sa.Column("gateway_charge_id", sa.String(length=255), nullable=True),
            sa.Column("amount", sa.Numeric(10, 2), nullable=False),
            sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
            sa.Column("status", sa.String(length=50), nullable=False, server_default="completed"),
            sa.Column("payment_method", sa.String(length=50), nullable=True),
            sa.Column("voucher_code", sa.String(length=50), nullable=True),
            sa.Column("discount_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
    for column in ("job_id", "user_id"):
        if not _has_index(bind, "payments", f"ix_payments_{column}"):
            op.create_index(f"ix_payments_{column}", "payments", [column], unique=False)

    if not _has_table(bind, "payment_line_items"):
        op.create_table(
            "payment_line_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("payment_id", sa.Integer(), sa.ForeignKey("payments.id", ondelete="CASCADE"), nullable=False),
            sa.Column("product_key", sa.String(length=100), nullable=False),
            sa.Column("product_name", sa.String(length=255), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
            sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
            sa.Column("item_type", sa.String(length=50), nullable=False, server_default="service"),
        )
    if not _has_index(bind, "payment_line_items", "ix_payment_line_items_payment_id"):
        op.create_index("ix_payment_line_items_payment_id", "payment_line_items", ["payment_id"], unique=False)


def downgrade() -> None:
    bind = op.get_bind()
    for table_name in (
        "payment_line_items",
        "payments",
        "voucher_usage",
        "voucher_codes",
        "product_pricing",
        "pricing_tiers",
        "designer_assignments",
        "job_status_history",
        "jobs",
        "users",
    ):
        if _has_table(bind, table_name):
            op.drop_table(table_name)
