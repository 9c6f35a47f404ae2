"""Initial schema: identity/RBAC, audit, document registry and export log, approvals, e-sign, distribution,
change requests, external document register.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("position", sa.String(128), nullable=True),
        sa.Column("department", sa.String(128), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("email"),
    )
    op.create_index("idx_users_department", "users", ["department"])

    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(64), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("key"),
    )
    op.create_table(
        "permissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(128), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("key"),
    )
    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id", "role_id"),
    )
    op.create_table(
        "role_permissions",
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.Column("permission_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["permission_id"], ["permissions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("role_id", "permission_id"),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("actor_user_email", sa.String(320), nullable=True),
        sa.Column("client_ip", sa.String(64), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_audit_events_entity", "audit_events", ["entity_type", "entity_id"])
    op.create_index("idx_audit_events_action", "audit_events", ["action"])

    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_code", sa.String(64), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("department", sa.String(128), nullable=False),
        sa.Column("current_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("current_revision", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("owner_user_id", sa.Integer(), nullable=False),
        sa.Column("lifecycle_status", sa.String(32), nullable=False, server_default="DRAFT"),
        sa.Column("control_type", sa.String(32), nullable=False, server_default="CONTROLLED"),
        sa.Column("sign_required", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("effective_date", sa.Date(), nullable=True),
        sa.Column("next_review_date", sa.Date(), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("keywords", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["owner_user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("document_code"),
        sa.CheckConstraint(
            "lifecycle_status IN ('DRAFT','IN_REVIEW','APPROVED','ESIGN_PENDING','SIGNED','PUBLISHED','ARCHIVED','DISPOSED')",
            name="ck_documents_lifecycle_status",
        ),
    )
    op.create_index("idx_documents_category", "documents", ["category"])
    op.create_index("idx_documents_department", "documents", ["department"])
    op.create_index("idx_documents_lifecycle_status", "documents", ["lifecycle_status"])
    op.create_index("idx_documents_owner", "documents", ["owner_user_id"])
    op.create_index("idx_documents_expiry_date", "documents", ["expiry_date"])

    op.create_table(
        "document_versions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("revision_number", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_path", sa.String(512), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("mime_type", sa.String(128), nullable=False, server_default="application/pdf"),
        sa.Column("sha256", sa.String(64), nullable=True),
        sa.Column("signed_file_path", sa.String(512), nullable=True),
        sa.Column("signed_at", sa.DateTime(), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="DRAFT"),
        sa.Column("changes_note", sa.Text(), nullable=True),
        sa.Column("uploaded_by_user_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["uploaded_by_user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("document_id", "version_number", "revision_number", name="uq_document_version_revision"),
        sa.CheckConstraint(
            "status IN ('DRAFT','PENDING_APPROVAL','APPROVED','SIGNED','ACTIVE','SUPERSEDED')",
            name="ck_document_versions_status",
        ),
    )
    op.create_index("idx_document_versions_document", "document_versions", ["document_id"])
    op.create_index("idx_document_versions_status", "document_versions", ["status"])

    op.create_table(
        "document_disposal_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("document_code", sa.String(64), nullable=True),
        sa.Column("document_title", sa.String(255), nullable=True),
        sa.Column("disposed_by_user_id", sa.Integer(), nullable=True),
        sa.Column("disposed_at", sa.DateTime(), nullable=False),
        sa.Column("method", sa.String(64), nullable=False, server_default="ELECTRONIC_DELETION"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["disposed_by_user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_disposal_records_document", "document_disposal_records", ["document_id"])

    op.create_table(
        "document_export_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(16), nullable=False),
        sa.Column("exported_by_user_id", sa.Integer(), nullable=False),
        sa.Column("exported_by_name", sa.String(255), nullable=False),
        sa.Column("watermark_text", sa.String(512), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["version_id"], ["document_versions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["exported_by_user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.CheckConstraint("action IN ('DOWNLOAD','PRINT','VIEW')", name="ck_document_export_logs_action"),
    )
    op.create_index("idx_document_export_logs_document", "document_export_logs", ["document_id"])
    op.create_index("idx_document_export_logs_exported_by", "document_export_logs", ["exported_by_user_id"])

    op.create_table(
        "approval_workflows",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("workflow_name", sa.String(255), nullable=True),
        sa.Column("total_steps", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("current_step", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("final_decision", sa.String(16), nullable=True),
        sa.Column("final_notes", sa.Text(), nullable=True),
        sa.Column("initiated_by_user_id", sa.Integer(), nullable=False),
        sa.Column("initiated_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["version_id"], ["document_versions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["initiated_by_user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.CheckConstraint("status IN ('PENDING','APPROVED','REJECTED')", name="ck_approval_workflows_status"),
        sa.CheckConstraint(
            "current_step >= 1 AND current_step <= total_steps", name="ck_approval_workflows_current_step"
        ),
    )
    op.create_index("idx_approval_workflows_document", "approval_workflows", ["document_id"])
    op.create_index("idx_approval_workflows_status", "approval_workflows", ["status"])
    op.create_index(
        "uq_approval_workflows_open_document",
        "approval_workflows",
        ["document_id"],
        unique=True,
        postgresql_where=sa.text("status = 'PENDING'"),
        sqlite_where=sa.text("status = 'PENDING'"),
    )

    op.create_table(
        "approval_steps",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("workflow_id", sa.Integer(), nullable=False),
        sa.Column("step_number", sa.Integer(), nullable=False),
        sa.Column("step_name", sa.String(255), nullable=True),
        sa.Column("mode", sa.String(16), nullable=False, server_default="SERIAL"),
        sa.Column("completion_policy", sa.String(16), nullable=False, server_default="QUORUM"),
        sa.Column("quorum_target", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("quorum_required", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("quorum_achieved", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["workflow_id"], ["approval_workflows.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("workflow_id", "step_number", name="uq_approval_steps_workflow_step"),
        sa.CheckConstraint("mode IN ('SERIAL','PARALLEL')", name="ck_approval_steps_mode"),
        sa.CheckConstraint("completion_policy IN ('QUORUM','ALL')", name="ck_approval_steps_policy"),
        sa.CheckConstraint(
            "status IN ('PENDING','IN_PROGRESS','COMPLETED','REJECTED')", name="ck_approval_steps_status"
        ),
        sa.CheckConstraint(
            "quorum_required >= 0 AND quorum_required <= quorum_target", name="ck_approval_steps_quorum"
        ),
    )
    op.create_index("idx_approval_steps_workflow", "approval_steps", ["workflow_id"])

    op.create_table(
        "approval_step_assignees",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("step_id", sa.Integer(), nullable=False),
        sa.Column("assignee_user_id", sa.Integer(), nullable=False),
        sa.Column("assignee_name", sa.String(255), nullable=False),
        sa.Column("assignee_position", sa.String(128), nullable=True),
        sa.Column("sequence", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("decision", sa.String(16), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
        sa.Column("notified_at", sa.DateTime(), nullable=True),
        sa.Column("deadline", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["step_id"], ["approval_steps.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["assignee_user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("step_id", "assignee_user_id", name="uq_step_assignees_step_user"),
        sa.CheckConstraint(
            "decision IS NULL OR decision IN ('APPROVED','REJECTED')", name="ck_step_assignees_decision"
        ),
    )
    op.create_index("idx_step_assignees_step", "approval_step_assignees", ["step_id"])
    op.create_index("idx_step_assignees_assignee", "approval_step_assignees", ["assignee_user_id"])

    op.create_table(
        "esign_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("workflow_id", sa.Integer(), nullable=True),
        sa.Column("provider", sa.String(64), nullable=False, server_default="local"),
        sa.Column("external_request_id", sa.String(128), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="PENDING"),
        sa.Column("signer_user_id", sa.Integer(), nullable=False),
        sa.Column("signer_name", sa.String(255), nullable=False),
        sa.Column("signer_position", sa.String(128), nullable=True),
        sa.Column("requested_at", sa.DateTime(), nullable=False),
        sa.Column("signed_at", sa.DateTime(), nullable=True),
        sa.Column("signed_file_path", sa.String(512), nullable=True),
        sa.Column("failed_reason", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_retry_at", sa.DateTime(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["version_id"], ["document_versions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["workflow_id"], ["approval_workflows.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["signer_user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint(
            "status IN ('PENDING','SIGNED','FAILED','FAILED_PERMANENT')", name="ck_esign_requests_status"
        ),
        sa.CheckConstraint("retry_count >= 0", name="ck_esign_requests_retry_count"),
    )
    op.create_index("idx_esign_requests_document", "esign_requests", ["document_id"])
    op.create_index("idx_esign_requests_version", "esign_requests", ["version_id"])
    op.create_index("idx_esign_requests_status", "esign_requests", ["status"])
    op.create_index("idx_esign_requests_signer", "esign_requests", ["signer_user_id"])
    op.create_index("uq_esign_requests_external_id", "esign_requests", ["external_request_id"], unique=True)

    op.create_table(
        "document_distributions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("recipient_user_id", sa.Integer(), nullable=False),
        sa.Column("recipient_name", sa.String(255), nullable=False),
        sa.Column("recipient_department", sa.String(128), nullable=True),
        sa.Column("is_mandatory", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("deadline", sa.Date(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.Column("acknowledged_at", sa.DateTime(), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("distributed_by_user_id", sa.Integer(), nullable=True),
        sa.Column("distributed_at", sa.DateTime(), nullable=False),
        sa.Column("deadline_notified_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["version_id"], ["document_versions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["recipient_user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["distributed_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("version_id", "recipient_user_id", name="uq_distributions_version_recipient"),
    )
    op.create_index("idx_distributions_document", "document_distributions", ["document_id"])
    op.create_index("idx_distributions_recipient", "document_distributions", ["recipient_user_id"])
    op.create_index("idx_distributions_is_read", "document_distributions", ["is_read"])
    op.create_index("idx_distributions_deadline", "document_distributions", ["deadline"])

    op.create_table(
        "change_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("request_type", sa.String(16), nullable=False, server_default="REVISION"),
        sa.Column("priority", sa.String(16), nullable=False, server_default="NORMAL"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("proposed_changes", sa.Text(), nullable=True),
        sa.Column("affected_sections", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("reviewed_by_user_id", sa.Integer(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("review_comments", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("new_version_id", sa.Integer(), nullable=True),
        sa.Column("requested_by_user_id", sa.Integer(), nullable=False),
        sa.Column("requested_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["reviewed_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["new_version_id"], ["document_versions.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["requested_by_user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.CheckConstraint(
            "status IN ('PENDING','APPROVED','REJECTED','COMPLETED')", name="ck_change_requests_status"
        ),
        sa.CheckConstraint("request_type IN ('REVISION','CORRECTION','UPDATE')", name="ck_change_requests_type"),
        sa.CheckConstraint("priority IN ('LOW','NORMAL','HIGH','URGENT')", name="ck_change_requests_priority"),
    )
    op.create_index("idx_change_requests_document", "change_requests", ["document_id"])
    op.create_index("idx_change_requests_status", "change_requests", ["status"])
    op.create_index("idx_change_requests_requested_by", "change_requests", ["requested_by_user_id"])

    op.create_table(
        "external_documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_code", sa.String(64), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("source", sa.String(64), nullable=False),
        sa.Column("issued_by", sa.String(255), nullable=True),
        sa.Column("version_number", sa.String(64), nullable=True),
        sa.Column("issue_date", sa.Date(), nullable=True),
        sa.Column("next_review_date", sa.Date(), nullable=True),
        sa.Column("file_type", sa.String(8), nullable=False, server_default="LINK"),
        sa.Column("file_url", sa.String(1024), nullable=True),
        sa.Column("file_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
        sa.Column("distribution_required", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("owner_user_id", sa.Integer(), nullable=True),
        sa.Column("department", sa.String(128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("superseded_by_id", sa.Integer(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["owner_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["superseded_by_id"], ["external_documents.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.CheckConstraint("status IN ('ACTIVE','OBSOLETE','SUPERSEDED')", name="ck_external_documents_status"),
        sa.CheckConstraint("file_type IN ('LINK','FILE')", name="ck_external_documents_file_type"),
    )
    op.create_index("idx_external_documents_code", "external_documents", ["document_code"])
    op.create_index("idx_external_documents_source", "external_documents", ["source"])
    op.create_index("idx_external_documents_status", "external_documents", ["status"])


def downgrade() -> None:
    op.drop_table("external_documents")
    op.drop_table("change_requests")
    op.drop_table("document_distributions")
    op.drop_table("esign_requests")
    op.drop_table("approval_step_assignees")
    op.drop_table("approval_steps")
    op.drop_index("uq_approval_workflows_open_document", table_name="approval_workflows")
    op.drop_table("approval_workflows")
    op.drop_table("document_export_logs")
    op.drop_table("document_disposal_records")
    op.drop_table("document_versions")
    op.drop_table("documents")
    op.drop_table("audit_events")
    op.drop_table("role_permissions")
    op.drop_table("user_roles")
    op.drop_table("permissions")
    op.drop_table("roles")
    op.drop_table("users")
