"""create loan pipeline tables

Revision ID: 20261019_loan_pipeline
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261019_loan_pipeline"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("names", sa.String(length=150), nullable=False),
        sa.Column("first_last_name", sa.String(length=100), nullable=False),
        sa.Column("second_last_name", sa.String(length=100), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "identity_documents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("document_type", sa.String(length=20), nullable=False, server_default="CC"),
        sa.Column("number", sa.String(length=50), nullable=True),
        sa.Column("document_sides", sa.String(length=1024), nullable=True),
        sa.Column("up_id", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "document_type IN ('CC', 'CE', 'PASAPORTE')", name="ck_identity_document_type"
        ),
    )
    op.create_index("ix_identity_documents_user_id", "identity_documents", ["user_id"])

    op.create_table(
        "loan_applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("employee_id", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="DRAFT"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("cantity", sa.String(length=50), nullable=False),
        sa.Column("new_cantity", sa.String(length=50), nullable=True),
        sa.Column("new_cantity_opt", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reason_change_cantity", sa.String(length=1000), nullable=True),
        sa.Column("reason_reject", sa.String(length=1000), nullable=True),
        sa.Column("entity", sa.String(length=150), nullable=True),
        sa.Column("bank_saving_account", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("bank_number_account", sa.LargeBinary(), nullable=True),
        sa.Column("signature", sa.String(length=2048), nullable=True),
        sa.Column("up_signature_id", sa.String(length=100), nullable=True),
        sa.Column("terms_and_conditions", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("first_flyer", sa.String(length=1024), nullable=True),
        sa.Column("upid_first_flyer", sa.String(length=100), nullable=True),
        sa.Column("second_flyer", sa.String(length=1024), nullable=True),
        sa.Column("upid_second_flyer", sa.String(length=100), nullable=True),
        sa.Column("third_flyer", sa.String(length=1024), nullable=True),
        sa.Column("upid_third_flyer", sa.String(length=100), nullable=True),
        sa.Column("labor_card", sa.String(length=1024), nullable=True),
        sa.Column("upid_labor_card", sa.String(length=100), nullable=True),
        sa.Column("is_disbursed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("disbursed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cycode", sa.String(length=100), nullable=True),
        sa.Column("extract", sa.String(length=1024), nullable=True),
        sa.Column("documents_claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "status IN ('DRAFT', 'PENDING', 'APPROVED', 'POSTPONED', 'ARCHIVED')",
            name="ck_loan_app_status",
        ),
        sa.CheckConstraint(
            "NOT new_cantity_opt OR (new_cantity IS NOT NULL AND status = 'PENDING')",
            name="ck_loan_app_open_offer",
        ),
        sa.CheckConstraint(
            "NOT is_disbursed OR status = 'APPROVED'", name="ck_loan_app_disbursed_approved"
        ),
        sa.CheckConstraint("version >= 1", name="ck_loan_app_version_positive"),
    )
    op.create_index("ix_loan_applications_user_id", "loan_applications", ["user_id"])
    op.create_index("ix_loan_applications_employee_id", "loan_applications", ["employee_id"])
    op.create_index("ix_loan_applications_status", "loan_applications", ["status"])
    op.create_index("ix_loan_applications_cycode", "loan_applications", ["cycode"])

    op.create_table(
        "generated_documents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("loan_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("upload_id", sa.String(length=100), nullable=False),
        sa.Column("public_url", sa.String(length=2048), nullable=True),
        sa.Column("object_key", sa.String(length=1024), nullable=False),
        sa.Column("file_type", sa.String(length=100), nullable=False, server_default="application/pdf"),
        sa.Column("document_types", sa.JSON(), nullable=False),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["loan_id"], ["loan_applications.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_generated_documents_loan_id", "generated_documents", ["loan_id"])
    op.create_index(
        "ix_generated_documents_loan_created", "generated_documents", ["loan_id", "created_at"]
    )

    op.create_table(
        "loan_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("loan_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event_type", sa.String(length=30), nullable=False),
        sa.Column("is_answered", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("answered_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["loan_id"], ["loan_applications.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "event_type IN ('CHANGE_CANTITY', 'DOCS_REJECT')", name="ck_loan_event_type"
        ),
    )
    op.create_index("ix_loan_events_loan_id", "loan_events", ["loan_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("actor_id", sa.String(length=100), nullable=True),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("resource_type", sa.String(length=255), nullable=False),
        sa.Column("resource_id", sa.String(length=255), nullable=False),
        sa.Column("old_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_logs_resource_id", "audit_logs", ["resource_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_resource_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_actor_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_loan_events_loan_id", table_name="loan_events")
    op.drop_table("loan_events")
    op.drop_index("ix_generated_documents_loan_created", table_name="generated_documents")
    op.drop_index("ix_generated_documents_loan_id", table_name="generated_documents")
    op.drop_table("generated_documents")
    op.drop_index("ix_loan_applications_cycode", table_name="loan_applications")
    op.drop_index("ix_loan_applications_status", table_name="loan_applications")
    op.drop_index("ix_loan_applications_employee_id", table_name="loan_applications")
    op.drop_index("ix_loan_applications_user_id", table_name="loan_applications")
    op.drop_table("loan_applications")
    op.drop_index("ix_identity_documents_user_id", table_name="identity_documents")
    op.drop_table("identity_documents")
    op.drop_table("users")
