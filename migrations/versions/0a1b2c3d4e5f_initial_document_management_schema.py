"""initial document management schema

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-10-19 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0a1b2c3d4e5f'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, audit ledger, taxonomy, workflow catalog, documents and signatures."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("role", sa.String(32), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("signature", sa.String(255), nullable=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "audit_log_entries",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("sequence", sa.Integer(), nullable=False, unique=True),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("actor_user_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("summary", sa.String(512), nullable=False),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("compliance_refs_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("prev_hash", sa.String(64), nullable=True),
        sa.Column("entry_hash", sa.String(64), nullable=False),
    )
    op.create_index("idx_audit_entity", "audit_log_entries", ["entity_type", "entity_id"])
    op.create_index("idx_audit_timestamp", "audit_log_entries", ["timestamp"])

    ledger_head = op.create_table(
        "audit_ledger_head",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("last_sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_hash", sa.String(64), nullable=True),
        sa.Column("locked_at", sa.DateTime(), nullable=True),
    )
    op.bulk_insert(ledger_head, [{"id": 1, "last_sequence": 0}])

    op.create_table(
        "document_types",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("label", sa.String(64), nullable=False, unique=True),
        sa.Column("description", sa.String(512), nullable=False, server_default=""),
        sa.Column("obsolete", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("created_by_id", sa.String(36), nullable=False),
    )

    op.create_table(
        "workflow_templates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("compliance_scope", sa.JSON(), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("created_by_id", sa.String(36), nullable=False),
    )

    op.create_table(
        "workflow_step_definitions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "template_id",
            sa.String(36),
            sa.ForeignKey("workflow_templates.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("label", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("role", sa.String(32), nullable=False),
        sa.Column("sla_hours", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("requires_signature", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("signature_meaning", sa.String(512), nullable=False),
        sa.UniqueConstraint("template_id", "position", name="uq_workflow_step_position"),
    )

    op.create_table(
        "documents",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("document_number", sa.String(64), nullable=False, unique=True),
        sa.Column("current_version", sa.String(32), nullable=False),
        sa.Column(
            "document_type_id",
            sa.String(36),
            sa.ForeignKey("document_types.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("created_by_id", sa.String(36), nullable=False),
        sa.Column("date_created", sa.Date(), nullable=True),
        sa.Column("date_of_issue", sa.Date(), nullable=True),
        sa.Column("issued_by_id", sa.String(36), nullable=True),
        sa.Column("issuer_role", sa.String(32), nullable=True),
        sa.Column("effective_from", sa.Date(), nullable=True),
        sa.Column("next_issue_date", sa.Date(), nullable=True),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("security", sa.String(32), nullable=False),
        sa.Column("change_control_id", sa.String(64), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("attachments", sa.JSON(), nullable=False),
        sa.Column("risk_classification", sa.String(16), nullable=False, server_default="Low"),
        sa.Column("last_updated_at", sa.DateTime(), nullable=False),
        # Template referenced by id only; the engine reports dangling references.
        sa.Column("workflow_template_id", sa.String(36), nullable=False),
        sa.Column("workflow_status", sa.String(32), nullable=False, server_default="Draft"),
        sa.Column("current_step_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("workflow_initiated_at", sa.DateTime(), nullable=False),
        sa.Column("row_version", sa.Integer(), nullable=False),
    )
    op.create_index("idx_documents_workflow_status", "documents", ["workflow_status"])

    op.create_table(
        "document_workflow_steps",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("document_id", sa.String(36), sa.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("step_id", sa.String(36), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="Pending"),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("actor_user_id", sa.String(36), nullable=True),
        sa.Column("signature_id", sa.String(36), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.UniqueConstraint("document_id", "position", name="uq_document_workflow_step_position"),
    )

    op.create_table(
        "document_versions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("document_id", sa.String(36), sa.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("version_label", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("created_by_id", sa.String(36), nullable=False),
        sa.Column("summary", sa.String(1024), nullable=False, server_default=""),
        sa.Column("superseded_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("document_id", "sequence", name="uq_document_version_sequence"),
    )

    op.create_table(
        "electronic_signatures",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("document_id", sa.String(36), sa.ForeignKey("documents.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("workflow_step_id", sa.String(36), nullable=False),
        sa.Column("signed_at", sa.DateTime(), nullable=False),
        sa.Column("meaning", sa.String(512), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("evidence", sa.Text(), nullable=False),
    )
    op.create_index("idx_signatures_document", "electronic_signatures", ["document_id"])
    op.create_index("idx_signatures_user", "electronic_signatures", ["user_id"])


def downgrade() -> None:
    op.drop_index("idx_signatures_user", table_name="electronic_signatures")
    op.drop_index("idx_signatures_document", table_name="electronic_signatures")
    op.drop_table("electronic_signatures")
    op.drop_table("document_versions")
    op.drop_table("document_workflow_steps")
    op.drop_index("idx_documents_workflow_status", table_name="documents")
    op.drop_table("documents")
    op.drop_table("workflow_step_definitions")
    op.drop_table("workflow_templates")
    op.drop_table("document_types")
    op.drop_index("idx_audit_timestamp", table_name="audit_log_entries")
    op.drop_index("idx_audit_entity", table_name="audit_log_entries")
    op.drop_table("audit_ledger_head")
    op.drop_table("audit_log_entries")
    op.drop_table("users")
