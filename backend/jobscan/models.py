"""SQLAlchemy models."""
from datetime import datetime, timezone
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Text,
    Float,
    Boolean,
    ForeignKey,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

JOB_STATUSES = ("applied", "interview", "offer", "rejected", "withdrawn")
DEFAULT_JOB_STATUS = "applied"
AUTO_IMPORT_SOURCE = "Gmail Auto-Import"
MESSAGE_TYPE_GMAIL = "gmail"


def utcnow() -> datetime:
    """Naive UTC now; all timestamps in the schema are stored as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    """Owner account. Managed by the sign-in system; only referenced here."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class GmailCredential(Base):
    """OAuth tokens for the owner's single Gmail connection."""
    __tablename__ = "gmail_credentials"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=True)  # null = unknown expiry, used as-is
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class ScanCursor(Base):
    """Per-owner scan window plus the status of the latest scan."""
    __tablename__ = "scan_cursors"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    last_scan_at = Column(DateTime, nullable=True)
    status = Column(String(16), default="idle")  # idle, scanning, error
    last_error = Column(Text, nullable=True)
    last_processed = Column(Integer, default=0, nullable=True)
    last_job_related = Column(Integer, default=0, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class JobEntry(Base):
    __tablename__ = "job_entries"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    company = Column(String, nullable=False, index=True)
    position = Column(String, nullable=False)
    status = Column(String(16), nullable=False, default=DEFAULT_JOB_STATUS)  # see JOB_STATUSES
    applied_at = Column(DateTime, nullable=False)
    source = Column(String, nullable=True)
    portal = Column(String, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    messages = relationship("IngestedMessage", back_populates="linked_entry")


class IngestedMessage(Base):
    """One row per provider message per owner; the unique key is the dedup boundary."""
    __tablename__ = "ingested_messages"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    provider_message_id = Column(String, nullable=False)
    subject = Column(Text, nullable=False, default="")
    raw_text = Column(Text, nullable=False, default="")
    timestamp = Column(DateTime, nullable=False)
    type = Column(String(16), nullable=False, default=MESSAGE_TYPE_GMAIL)
    is_job_related = Column(Boolean, nullable=False, default=False)
    confidence = Column(Float, nullable=True)
    linked_entry_id = Column(Integer, ForeignKey("job_entries.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow)

    linked_entry = relationship("JobEntry", back_populates="messages")

    __table_args__ = (
        UniqueConstraint("owner_id", "provider_message_id", name="uq_ingested_messages_owner_message"),
    )


class OAuthState(Base):
    """OAuth CSRF state for the Gmail connect flow, bound to the owner who started it."""
    __tablename__ = "oauth_state"

    state_token = Column(String(64), primary_key=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    redirect_url = Column(String(512), nullable=True)
    created_at = Column(DateTime, nullable=False)


Index("ix_job_entries_owner_company_position", JobEntry.owner_id, JobEntry.company, JobEntry.position)
Index("ix_ingested_messages_owner_timestamp", IngestedMessage.owner_id, IngestedMessage.timestamp)
