"""initial subscription tracking schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-01-05
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False, primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        *_base_columns(),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("full_name", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "departments",
        *_base_columns(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("short_code", sa.String(length=16), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_departments_name", "departments", ["name"], unique=True)

    op.create_table(
        "locations",
        *_base_columns(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("location_type", sa.String(length=64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_locations_name", "locations", ["name"])

    for table in ("vendors", "products"):
        op.create_table(
            table,
            *_base_columns(),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False),
        )
        op.create_index(f"ix_{table}_name", table, ["name"], unique=True)

    op.create_table(
        "subscription_sequences",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False, primary_key=True),
        sa.Column("prefix", sa.String(length=16), nullable=False),
        sa.Column("fiscal_year", sa.Integer(), nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False),
        sa.UniqueConstraint("prefix", "fiscal_year", name="uq_sequence_prefix_year"),
    )

    for table, owner in (("poc_department_access", "poc_id"), ("hod_departments", "hod_id")):
        op.create_table(
            table,
            *_base_columns(),
            sa.Column(owner, sa.Uuid(as_uuid=True), nullable=False),
            sa.Column("department_id", sa.Uuid(as_uuid=True), nullable=False),
            sa.ForeignKeyConstraint([owner], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="CASCADE"),
            sa.UniqueConstraint(
                owner,
                "department_id",
                name="uq_poc_department" if owner == "poc_id" else "uq_hod_department",
            ),
        )
        op.create_index(f"ix_{table}_{owner}", table, [owner])
        op.create_index(f"ix_{table}_department_id", table, ["department_id"])

    op.create_table(
        "subscriptions",
        *_base_columns(),
        sa.Column("subscription_code", sa.String(length=64), nullable=False),
        sa.Column("request_type", sa.String(length=16), nullable=False),
        sa.Column("tool_name", sa.String(length=255), nullable=False),
        sa.Column("vendor_name", sa.String(length=255), nullable=False),
        sa.Column("product_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("vendor_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("department_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("location_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("equivalent_inr_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("billing_frequency", sa.String(length=16), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("login_url", sa.String(length=500), nullable=True),
        sa.Column("subscription_email", sa.String(length=255), nullable=True),
        sa.Column("poc_email", sa.String(length=255), nullable=True),
        sa.Column("mandate_id", sa.String(length=100), nullable=True),
        sa.Column("requester_remarks", sa.String(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("payment_status", sa.String(length=16), nullable=False),
        sa.Column("accounting_status", sa.String(length=16), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_by", sa.Uuid(as_uuid=True), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], name="fk_subscriptions_product"),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"], name="fk_subscriptions_vendor"),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"], name="fk_subscriptions_department"),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"], name="fk_subscriptions_location"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], name="fk_subscriptions_creator"),
    )
    op.create_index("ix_subscriptions_subscription_code", "subscriptions", ["subscription_code"], unique=True)
    op.create_index("ix_subscriptions_department_id", "subscriptions", ["department_id"])
    op.create_index("ix_subscriptions_location_id", "subscriptions", ["location_id"])
    op.create_index("ix_subscriptions_status", "subscriptions", ["status"])
    op.create_index("ix_subscriptions_tool_name", "subscriptions", ["tool_name"])
    op.create_index("ix_subscriptions_vendor_name", "subscriptions", ["vendor_name"])
    op.create_index("ix_subscriptions_created_by", "subscriptions", ["created_by"])

    op.create_table(
        "subscription_approvals",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False, primary_key=True),
        sa.Column("subscription_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("approver_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(length=16), nullable=False),
        sa.Column("comments", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["subscription_id"], ["subscriptions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["approver_id"], ["users.id"], name="fk_approvals_approver"),
    )
    op.create_index("ix_subscription_approvals_subscription_id", "subscription_approvals", ["subscription_id"])

    op.create_table(
        "subscription_files",
        *_base_columns(),
        sa.Column("subscription_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("file_type", sa.String(length=32), nullable=False),
        sa.Column("storage_path", sa.String(), nullable=False),
        sa.Column("original_filename", sa.String(length=255), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("mime_type", sa.String(length=128), nullable=False),
        sa.Column("uploaded_by", sa.Uuid(as_uuid=True), nullable=False),
        sa.ForeignKeyConstraint(["subscription_id"], ["subscriptions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["uploaded_by"], ["users.id"], name="fk_files_uploader"),
    )
    op.create_index("ix_subscription_files_subscription_id", "subscription_files", ["subscription_id"])

    op.create_table(
        "subscription_payments",
        *_base_columns(),
        sa.Column("subscription_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("cycle_number", sa.Integer(), nullable=False),
        sa.Column("cycle_start_date", sa.Date(), nullable=False),
        sa.Column("cycle_end_date", sa.Date(), nullable=False),
        sa.Column("invoice_deadline", sa.Date(), nullable=False),
        sa.Column("cycle_status", sa.String(length=32), nullable=False),
        sa.Column("payment_status", sa.String(length=16), nullable=False),
        sa.Column("accounting_status", sa.String(length=16), nullable=False),
        sa.Column("payment_utr", sa.String(length=100), nullable=True),
        sa.Column("mandate_id", sa.String(length=100), nullable=True),
        sa.Column("payment_recorded_by", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("payment_recorded_at", sa.DateTime(), nullable=True),
        sa.Column("poc_approval_status", sa.String(length=16), nullable=False),
        sa.Column("poc_approved_by", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("poc_approved_at", sa.DateTime(), nullable=True),
        sa.Column("poc_rejection_reason", sa.String(), nullable=True),
        sa.Column("cancellation_reason", sa.String(), nullable=True),
        sa.Column("invoice_file_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("invoice_uploaded_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["subscription_id"], ["subscriptions.id"], name="fk_payments_subscription"),
        sa.ForeignKeyConstraint(["payment_recorded_by"], ["users.id"], name="fk_payments_recorder"),
        sa.ForeignKeyConstraint(["poc_approved_by"], ["users.id"], name="fk_payments_approver"),
        sa.ForeignKeyConstraint(["invoice_file_id"], ["subscription_files.id"], name="fk_payments_invoice"),
        sa.UniqueConstraint("subscription_id", "cycle_number", name="uq_cycle_number"),
    )
    op.create_index("ix_subscription_payments_subscription_id", "subscription_payments", ["subscription_id"])
    op.create_index("ix_subscription_payments_cycle_status", "subscription_payments", ["cycle_status"])
    op.create_index("ix_subscription_payments_invoice_deadline", "subscription_payments", ["invoice_deadline"])

    op.create_table(
        "audit_logs",
        *_base_columns(),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("actor_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("actor_role", sa.String(length=16), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(["actor_id"], ["users.id"], name="fk_audit_actor"),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])

    op.create_table(
        "auth_logs",
        *_base_columns(),
        sa.Column("user_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_auth_logs_user"),
    )
    op.create_index("ix_auth_logs_user_id", "auth_logs", ["user_id"])
    op.create_index("ix_auth_logs_email", "auth_logs", ["email"])
    op.create_index("ix_auth_logs_event_type", "auth_logs", ["event_type"])

    op.create_table(
        "user_notifications",
        *_base_columns(),
        sa.Column("recipient_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("subscription_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("cycle_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.String(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["recipient_id"], ["users.id"], name="fk_notifications_recipient"),
        sa.ForeignKeyConstraint(["subscription_id"], ["subscriptions.id"], name="fk_notifications_subscription"),
        sa.ForeignKeyConstraint(["cycle_id"], ["subscription_payments.id"], name="fk_notifications_cycle"),
    )
    op.create_index("ix_user_notifications_recipient_id", "user_notifications", ["recipient_id"])
    op.create_index("ix_user_notifications_subscription_id", "user_notifications", ["subscription_id"])
    op.create_index("ix_user_notifications_cycle_id", "user_notifications", ["cycle_id"])
    op.create_index("ix_user_notifications_read_at", "user_notifications", ["read_at"])


def downgrade() -> None:
    for table in (
        "user_notifications",
        "auth_logs",
        "audit_logs",
        "subscription_payments",
        "subscription_files",
        "subscription_approvals",
        "subscriptions",
        "hod_departments",
        "poc_department_access",
        "subscription_sequences",
        "products",
        "vendors",
        "locations",
        "departments",
        "users",
    ):
        op.drop_table(table)
