"""initial schema: directory, profiles, actions and notifications

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-01 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

PERMISSION_FLAGS = (
    "can_create",
    "can_edit",
    "can_delete",
    "can_mark_complete",
    "can_mark_delayed",
    "can_add_notes",
    "can_view_reports",
    "view_all_actions",
    "can_edit_user",
    "can_edit_action",
    "can_edit_client",
    "can_delete_client",
    "can_edit_company",
    "can_delete_company",
    "view_only_assigned_actions",
)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
    ]


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("logo", sa.String(), nullable=True),
        sa.Column("address", sa.String(), nullable=True),
        sa.Column("cnpj", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("is_main", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )

    op.create_table(
        "clients",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("contact_email", sa.String(), nullable=True),
        sa.Column("contact_phone", sa.String(), nullable=True),
        sa.Column("address", sa.String(), nullable=True),
        sa.Column("cnpj", sa.String(), nullable=True),
        sa.Column("company_id", sa.String(), sa.ForeignKey("companies.id"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_clients_company_id", "clients", ["company_id"])

    op.create_table(
        "profiles",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("cpf", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False, server_default="user"),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("company_ids", sa.JSON(), nullable=True),
        sa.Column("client_ids", sa.JSON(), nullable=True),
        sa.Column("responsible_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.UniqueConstraint("cpf", name="uq_profile_cpf"),
        sa.UniqueConstraint("email", name="uq_profile_email"),
    )

    op.create_table(
        "responsibles",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("department", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=True),
        sa.Column("type", sa.String(), nullable=False, server_default="responsible"),
        sa.Column("company_id", sa.String(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("user_id", sa.String(), sa.ForeignKey("profiles.id"), nullable=True),
        sa.Column("client_ids", sa.JSON(), nullable=True),
        sa.Column("is_system_user", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_responsibles_company_id", "responsibles", ["company_id"])

    op.create_table(
        "user_permissions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("profiles.id"), nullable=False),
        *[sa.Column(flag, sa.Boolean(), nullable=False, server_default=sa.false()) for flag in PERMISSION_FLAGS],
        sa.UniqueConstraint("user_id", name="uq_user_permissions_user"),
    )

    op.create_table(
        "user_notification_settings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("email_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("whatsapp_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sms_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("internal_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("reminder_before_hours", sa.Integer(), nullable=False, server_default="24"),
        sa.Column("reminder_frequency_hours", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.UniqueConstraint("user_id", name="uq_notification_settings_user"),
    )

    op.create_table(
        "actions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("subject", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="pendente"),
        sa.Column("responsible_id", sa.String(), sa.ForeignKey("responsibles.id"), nullable=False),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=False),
        sa.Column("company_id", sa.String(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("client_id", sa.String(), sa.ForeignKey("clients.id"), nullable=True),
        sa.Column("requester_id", sa.String(), sa.ForeignKey("responsibles.id"), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        sa.Column("is_personal_reminder", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("created_by_name", sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_actions_status", "actions", ["status"])
    op.create_index("ix_actions_company_id", "actions", ["company_id"])
    op.create_index("ix_actions_responsible_id", "actions", ["responsible_id"])

    op.create_table(
        "action_notes",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("action_id", sa.String(), sa.ForeignKey("actions.id"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=False, server_default="system"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_action_notes_action_id", "action_notes", ["action_id"])

    op.create_table(
        "action_attachments",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("action_id", sa.String(), sa.ForeignKey("actions.id"), nullable=False),
        sa.Column("file_path", sa.String(), nullable=False),
        sa.Column("file_name", sa.String(), nullable=False),
        sa.Column("content_type", sa.String(), nullable=True),
        sa.Column("size", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
    )
    op.create_index("ix_action_attachments_action_id", "action_attachments", ["action_id"])

    op.create_table(
        "internal_notifications",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("recipient_id", sa.String(), nullable=False),
        sa.Column("sender_id", sa.String(), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("reference_id", sa.String(), nullable=True),
        sa.Column("reference_type", sa.String(), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index(
        "ix_internal_notifications_recipient_id", "internal_notifications", ["recipient_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_internal_notifications_recipient_id", table_name="internal_notifications")
    op.drop_table("internal_notifications")
    op.drop_index("ix_action_attachments_action_id", table_name="action_attachments")
    op.drop_table("action_attachments")
    op.drop_index("ix_action_notes_action_id", table_name="action_notes")
    op.drop_table("action_notes")
    op.drop_index("ix_actions_responsible_id", table_name="actions")
    op.drop_index("ix_actions_company_id", table_name="actions")
    op.drop_index("ix_actions_status", table_name="actions")
    op.drop_table("actions")
    op.drop_table("user_notification_settings")
    op.drop_table("user_permissions")
    op.drop_index("ix_responsibles_company_id", table_name="responsibles")
    op.drop_table("responsibles")
    op.drop_table("profiles")
    op.drop_index("ix_clients_company_id", table_name="clients")
    op.drop_table("clients")
    op.drop_table("companies")
