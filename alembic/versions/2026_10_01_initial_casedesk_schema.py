"""Initial CaseDesk schema: users, roles, cases, TODOs and the audit trail.

Revision ID: casedesk_initial_20261001
Revises:
Create Date: 2026-10-01 00:00:00.000000
"""
from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from alembic import op
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision = "casedesk_initial_20261001"
down_revision = None
branch_labels = None
depends_on = None

AUDIT_ACTIONS = (
    "CREATE",
    "UPDATE",
    "DELETE",
    "RESTORE",
    "ARCHIVE",
    "READ",
    "DOWNLOAD",
    "VIEW",
    "EXPORT",
    "LOGIN",
    "LOGOUT",
    "LOGOUT_ALL",
    "FORCE_LOGOUT",
)
CHANGE_TYPES = ("ADDED", "MODIFIED", "REMOVED")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def upgrade() -> None:
    """Create the base schema."""
    bind = op.get_bind()
    inspector = inspect(bind)
    tables = set(inspector.get_table_names())

    if "roles" not in tables:
        op.create_table(
            "roles",
            sa.Column("id", sa.UUID(), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("permissions", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_roles_id"), "roles", ["id"], unique=False)
        op.create_index(op.f("ix_roles_name"), "roles", ["name"], unique=True)

    if "users" not in tables:
        op.create_table(
            "users",
            sa.Column("id", sa.UUID(), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column("full_name", sa.String(length=255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_users_id"), "users", ["id"], unique=False)
        op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    if "user_role_association" not in tables:
        op.create_table(
            "user_role_association",
            sa.Column("user_id", sa.UUID(), nullable=False),
            sa.Column("role_id", sa.UUID(), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("user_id", "role_id"),
        )

    if "cases" not in tables:
        op.create_table(
            "cases",
            sa.Column("id", sa.UUID(), nullable=False),
            sa.Column("case_number", sa.String(length=50), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=50), nullable=False, server_default="OPEN"),
            sa.Column("priority", sa.String(length=50), nullable=False, server_default="MEDIUM"),
            sa.Column("assigned_user_id", sa.UUID(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_cases_id"), "cases", ["id"], unique=False)
        op.create_index(op.f("ix_cases_case_number"), "cases", ["case_number"], unique=True)
        op.create_index(op.f("ix_cases_status"), "cases", ["status"], unique=False)
        op.create_index(op.f("ix_cases_assigned_user_id"), "cases", ["assigned_user_id"], unique=False)

    if "todos" not in tables:
        op.create_table(
            "todos",
            sa.Column("id", sa.UUID(), nullable=False),
            sa.Column("case_id", sa.UUID(), nullable=True),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("priority_id", sa.String(length=50), nullable=True),
            sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("assigned_user_id", sa.UUID(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["case_id"], ["cases.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_todos_id"), "todos", ["id"], unique=False)
        op.create_index(op.f("ix_todos_case_id"), "todos", ["case_id"], unique=False)
        op.create_index(op.f("ix_todos_assigned_user_id"), "todos", ["assigned_user_id"], unique=False)

    audit_action = postgresql.ENUM(*AUDIT_ACTIONS, name="audit_action", create_type=False)
    change_type = postgresql.ENUM(*CHANGE_TYPES, name="audit_change_type", create_type=False)
    audit_action.create(bind, checkfirst=True)
    change_type.create(bind, checkfirst=True)

    if "audit_logs" not in tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.UUID(), nullable=False),
            # No FK: the entry outlives the user it names
            sa.Column("user_id", sa.UUID(), nullable=True),
            sa.Column("user_email", sa.String(length=255), nullable=False),
            sa.Column("user_name", sa.String(length=500), nullable=True),
            sa.Column("user_role", sa.String(length=100), nullable=True),
            sa.Column("action", audit_action, nullable=False),
            sa.Column("entity_type", sa.String(length=100), nullable=False),
            sa.Column("entity_id", sa.String(length=255), nullable=False),
            sa.Column("entity_name", sa.String(length=500), nullable=True),
            sa.Column("module", sa.String(length=50), nullable=False),
            sa.Column("operation_context", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
            sa.Column("ip_address", sa.String(length=64), nullable=True),
            sa.Column("user_agent", sa.Text(), nullable=True),
            sa.Column("session_id", sa.String(length=255), nullable=True),
            sa.Column("request_path", sa.String(length=500), nullable=True),
            sa.Column("request_method", sa.String(length=10), nullable=True),
            sa.Column("operation_success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_audit_logs_id"), "audit_logs", ["id"], unique=False)
        op.create_index(op.f("ix_audit_logs_user_id"), "audit_logs", ["user_id"], unique=False)
        op.create_index(op.f("ix_audit_logs_action"), "audit_logs", ["action"], unique=False)
        op.create_index(op.f("ix_audit_logs_entity_type"), "audit_logs", ["entity_type"], unique=False)
        op.create_index(op.f("ix_audit_logs_entity_id"), "audit_logs", ["entity_id"], unique=False)
        op.create_index(op.f("ix_audit_logs_module"), "audit_logs", ["module"], unique=False)
        op.create_index(op.f("ix_audit_logs_ip_address"), "audit_logs", ["ip_address"], unique=False)
        op.create_index(op.f("ix_audit_logs_created_at"), "audit_logs", ["created_at"], unique=False)
        op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"], unique=False)
        op.create_index(
            "ix_audit_logs_user_action_created",
            "audit_logs",
            ["user_id", "action", "created_at"],
            unique=False,
        )

    if "audit_entity_changes" not in tables:
        op.create_table(
            "audit_entity_changes",
            sa.Column("id", sa.UUID(), nullable=False),
            sa.Column("audit_log_id", sa.UUID(), nullable=False),
            sa.Column("field_name", sa.String(length=100), nullable=False),
            sa.Column("field_type", sa.String(length=50), nullable=False),
            sa.Column("old_value", sa.Text(), nullable=True),
            sa.Column("new_value", sa.Text(), nullable=True),
            sa.Column("change_type", change_type, nullable=False),
            sa.Column("is_sensitive", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
            sa.ForeignKeyConstraint(["audit_log_id"], ["audit_logs.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_audit_entity_changes_id"), "audit_entity_changes", ["id"], unique=False)
        op.create_index(
            op.f("ix_audit_entity_changes_audit_log_id"), "audit_entity_changes", ["audit_log_id"], unique=False
        )
        op.create_index(
            op.f("ix_audit_entity_changes_field_name"), "audit_entity_changes", ["field_name"], unique=False
        )
        op.create_index(
            op.f("ix_audit_entity_changes_change_type"), "audit_entity_changes", ["change_type"], unique=False
        )


def downgrade() -> None:
    """Drop the base schema."""
    op.drop_table("audit_entity_changes")
    op.drop_table("audit_logs")
    postgresql.ENUM(name="audit_change_type").drop(op.get_bind(), checkfirst=True)
    postgresql.ENUM(name="audit_action").drop(op.get_bind(), checkfirst=True)
    op.drop_table("todos")
    op.drop_table("cases")
    op.drop_table("user_role_association")
    op.drop_table("users")
    op.drop_table("roles")
