"""create risk schema

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _is_deleted() -> sa.Column:
    return sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("false"))


def upgrade() -> None:
    op.create_table(
        "organization",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("application_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("debtor_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("client_count", sa.Integer(), nullable=False, server_default="0"),
        _is_deleted(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "risk_user",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("module_access", sa.JSON(), nullable=False),
        sa.Column("manage_columns", sa.JSON(), nullable=False),
        sa.Column("max_credit_limit", sa.Numeric(18, 2), nullable=True),
        _is_deleted(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "insurer",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("crm_insurer_id", sa.String(length=64), nullable=True),
        _is_deleted(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "insurer_user",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("insurer_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("crm_contact_id", sa.String(length=64), nullable=True),
        _is_deleted(),
        *_timestamps(),
        sa.ForeignKeyConstraint(["insurer_id"], ["insurer.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "client",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("client_code", sa.String(length=32), nullable=True),
        sa.Column("crm_client_id", sa.String(length=64), nullable=True),
        sa.Column("risk_analyst_id", sa.Uuid(), nullable=True),
        sa.Column("service_manager_id", sa.Uuid(), nullable=True),
        sa.Column("insurer_id", sa.Uuid(), nullable=True),
        sa.Column("abn", sa.String(length=32), nullable=True),
        sa.Column("acn", sa.String(length=32), nullable=True),
        sa.Column("sector", sa.Text(), nullable=True),
        _is_deleted(),
        *_timestamps(),
        sa.ForeignKeyConstraint(["risk_analyst_id"], ["risk_user.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["service_manager_id"], ["risk_user.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["insurer_id"], ["insurer.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "client_user",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("client_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("crm_contact_id", sa.String(length=64), nullable=True),
        sa.Column("has_portal_access", sa.Boolean(), nullable=False),
        sa.Column("module_access", sa.JSON(), nullable=False),
        sa.Column("manage_columns", sa.JSON(), nullable=False),
        _is_deleted(),
        *_timestamps(),
        sa.ForeignKeyConstraint(["client_id"], ["client.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "debtor",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("entity_name", sa.Text(), nullable=False),
        sa.Column("debtor_code", sa.String(length=32), nullable=True),
        sa.Column("entity_type", sa.String(length=64), nullable=True),
        sa.Column("abn", sa.String(length=32), nullable=True),
        sa.Column("acn", sa.String(length=32), nullable=True),
        sa.Column("registration_number", sa.String(length=64), nullable=True),
        _is_deleted(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "client_debtor",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("client_id", sa.Uuid(), nullable=False),
        sa.Column("debtor_id", sa.Uuid(), nullable=False),
        sa.Column("credit_limit", sa.Numeric(18, 2), nullable=True),
        sa.Column("is_endorsed_limit", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("active_application_id", sa.Uuid(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["client_id"], ["client.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["debtor_id"], ["debtor.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_client_debtor_client_id", "client_debtor", ["client_id"], unique=False)
    op.create_index("ix_client_debtor_debtor_id", "client_debtor", ["debtor_id"], unique=False)
    op.create_index(
        "uq_client_debtor_live_pair",
        "client_debtor",
        ["client_id", "debtor_id"],
        unique=True,
        postgresql_where=sa.text("is_active = true"),
    )

    op.create_table(
        "debtor_director",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("debtor_id", sa.Uuid(), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=True),
        sa.Column("middle_name", sa.Text(), nullable=True),
        sa.Column("last_name", sa.Text(), nullable=True),
        sa.Column("entity_name", sa.Text(), nullable=True),
        sa.Column("abn", sa.String(length=32), nullable=True),
        sa.Column("acn", sa.String(length=32), nullable=True),
        sa.Column("registration_number", sa.String(length=64), nullable=True),
        _is_deleted(),
        *_timestamps(),
        sa.ForeignKeyConstraint(["debtor_id"], ["debtor.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_debtor_director_debtor_id", "debtor_director", ["debtor_id"], unique=False)

    op.create_table(
        "application",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("application_id", sa.String(length=64), nullable=False),
        sa.Column("client_id", sa.Uuid(), nullable=False),
        sa.Column("debtor_id", sa.Uuid(), nullable=False),
        sa.Column("client_debtor_id", sa.Uuid(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("credit_limit", sa.Numeric(18, 2), nullable=True),
        sa.Column("accepted_amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("is_endorsed_limit", sa.Boolean(), nullable=False),
        sa.Column("limit_type", sa.String(length=32), nullable=True),
        sa.Column("request_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approval_or_declining_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("created_by_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["client_id"], ["client.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["debtor_id"], ["debtor.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["client_debtor_id"], ["client_debtor.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_application_client_id_status", "application", ["client_id", "status"], unique=False)
    op.create_index("ix_application_client_debtor_id", "application", ["client_debtor_id"], unique=False)

    op.create_table(
        "policy",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("client_id", sa.Uuid(), nullable=False),
        sa.Column("insurer_id", sa.Uuid(), nullable=True),
        sa.Column("crm_policy_id", sa.String(length=64), nullable=True),
        sa.Column("product", sa.Text(), nullable=False),
        sa.Column("policy_number", sa.String(length=64), nullable=True),
        sa.Column("discretionary_limit", sa.Numeric(18, 2), nullable=True),
        sa.Column("aggregate_of_credit_limit", sa.Numeric(18, 2), nullable=True),
        sa.Column("credit_checks", sa.Integer(), nullable=True),
        sa.Column("nz_credit_checks", sa.Integer(), nullable=True),
        sa.Column("inception_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=True),
        _is_deleted(),
        *_timestamps(),
        sa.ForeignKeyConstraint(["client_id"], ["client.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["insurer_id"], ["insurer.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_policy_client_id", "policy", ["client_id"], unique=False)

    op.create_table(
        "task",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=True),
        sa.Column("entity_id", sa.Uuid(), nullable=True),
        sa.Column("client_id", sa.Uuid(), nullable=True),
        sa.Column("assignee_type", sa.String(length=16), nullable=True),
        sa.Column("assignee_id", sa.Uuid(), nullable=True),
        sa.Column("created_by_type", sa.String(length=16), nullable=True),
        sa.Column("created_by_id", sa.Uuid(), nullable=True),
        sa.Column("priority", sa.String(length=16), nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_completed", sa.Boolean(), nullable=False),
        _is_deleted(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "note",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("note_for", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("client_id", sa.Uuid(), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False),
        sa.Column("created_by_type", sa.String(length=16), nullable=False),
        sa.Column("created_by_id", sa.Uuid(), nullable=False),
        _is_deleted(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_note_entity", "note", ["note_for", "entity_id"], unique=False)

    op.create_table(
        "document_type",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("document_title", sa.Text(), nullable=False),
        sa.Column("document_for", sa.String(length=32), nullable=False),
        _is_deleted(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_ref_id", sa.String(length=128), nullable=False),
        sa.Column("action_type", sa.String(length=32), nullable=False),
        sa.Column("user_type", sa.String(length=32), nullable=False),
        sa.Column("user_ref_id", sa.String(length=128), nullable=True),
        sa.Column("log_description", sa.Text(), nullable=True),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("correlation_id", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_ref_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("document_type")
    op.drop_index("ix_note_entity", table_name="note")
    op.drop_table("note")
    op.drop_table("task")
    op.drop_index("ix_policy_client_id", table_name="policy")
    op.drop_table("policy")
    op.drop_index("ix_application_client_debtor_id", table_name="application")
    op.drop_index("ix_application_client_id_status", table_name="application")
    op.drop_table("application")
    op.drop_index("ix_debtor_director_debtor_id", table_name="debtor_director")
    op.drop_table("debtor_director")
    op.drop_index("uq_client_debtor_live_pair", table_name="client_debtor")
    op.drop_index("ix_client_debtor_debtor_id", table_name="client_debtor")
    op.drop_index("ix_client_debtor_client_id", table_name="client_debtor")
    op.drop_table("client_debtor")
    op.drop_table("debtor")
    op.drop_table("client_user")
    op.drop_table("client")
    op.drop_table("insurer_user")
    op.drop_table("insurer")
    op.drop_table("risk_user")
    op.drop_table("organization")
