"""Gmail scan schema: users, gmail_credentials, scan_cursors, job_entries, ingested_messages, oauth_state.

Revision ID: 001_gmail_scan
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_gmail_scan"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_id"), "users", ["id"], unique=False)
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "gmail_credentials",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_gmail_credentials_id"), "gmail_credentials", ["id"], unique=False)
    op.create_index(op.f("ix_gmail_credentials_owner_id"), "gmail_credentials", ["owner_id"], unique=True)

    op.create_table(
        "scan_cursors",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("last_scan_at", sa.DateTime(), nullable=True),
        sa.Column("status", sa.String(16), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("last_processed", sa.Integer(), nullable=True),
        sa.Column("last_job_related", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_scan_cursors_id"), "scan_cursors", ["id"], unique=False)
    op.create_index(op.f("ix_scan_cursors_owner_id"), "scan_cursors", ["owner_id"], unique=True)

    op.create_table(
        "job_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("company", sa.String(), nullable=False),
        sa.Column("position", sa.String(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("applied_at", sa.DateTime(), nullable=False),
        sa.Column("source", sa.String(), nullable=True),
        sa.Column("portal", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_job_entries_id"), "job_entries", ["id"], unique=False)
    op.create_index(op.f("ix_job_entries_owner_id"), "job_entries", ["owner_id"], unique=False)
    op.create_index(op.f("ix_job_entries_company"), "job_entries", ["company"], unique=False)
    op.create_index(
        "ix_job_entries_owner_company_position", "job_entries", ["owner_id", "company", "position"], unique=False
    )

    op.create_table(
        "ingested_messages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("provider_message_id", sa.String(), nullable=False),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("raw_text", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("is_job_related", sa.Boolean(), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column(
            "linked_entry_id", sa.Integer(), sa.ForeignKey("job_entries.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("owner_id", "provider_message_id", name="uq_ingested_messages_owner_message"),
    )
    op.create_index(op.f("ix_ingested_messages_id"), "ingested_messages", ["id"], unique=False)
    op.create_index(op.f("ix_ingested_messages_owner_id"), "ingested_messages", ["owner_id"], unique=False)
    op.create_index(
        op.f("ix_ingested_messages_linked_entry_id"), "ingested_messages", ["linked_entry_id"], unique=False
    )
    op.create_index(
        "ix_ingested_messages_owner_timestamp", "ingested_messages", ["owner_id", "timestamp"], unique=False
    )

    op.create_table(
        "oauth_state",
        sa.Column("state_token", sa.String(64), nullable=False),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("redirect_url", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("state_token"),
    )
    op.create_index(op.f("ix_oauth_state_owner_id"), "oauth_state", ["owner_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_oauth_state_owner_id"), table_name="oauth_state")
    op.drop_table("oauth_state")
    op.drop_index("ix_ingested_messages_owner_timestamp", table_name="ingested_messages")
    op.drop_index(op.f("ix_ingested_messages_linked_entry_id"), table_name="ingested_messages")
    op.drop_index(op.f("ix_ingested_messages_owner_id"), table_name="ingested_messages")
    op.drop_index(op.f("ix_ingested_messages_id"), table_name="ingested_messages")
    op.drop_table("ingested_messages")
    op.drop_index("ix_job_entries_owner_company_position", table_name="job_entries")
    op.drop_index(op.f("ix_job_entries_company"), table_name="job_entries")
    op.drop_index(op.f("ix_job_entries_owner_id"), table_name="job_entries")
    op.drop_index(op.f("ix_job_entries_id"), table_name="job_entries")
    op.drop_table("job_entries")
    op.drop_index(op.f("ix_scan_cursors_owner_id"), table_name="scan_cursors")
    op.drop_index(op.f("ix_scan_cursors_id"), table_name="scan_cursors")
    op.drop_table("scan_cursors")
    op.drop_index(op.f("ix_gmail_credentials_owner_id"), table_name="gmail_credentials")
    op.drop_index(op.f("ix_gmail_credentials_id"), table_name="gmail_credentials")
    op.drop_table("gmail_credentials")
    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_index(op.f("ix_users_id"), table_name="users")
    op.drop_table("users")
