"""Scan error taxonomy. Each error carries a stable code for API responses."""
from typing import Optional


class ScanError(Exception):
    """Base class for errors surfaced by a scan cycle."""

    code = "scan_error"

    def __init__(self, message: str = "", *, owner_id: Optional[int] = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.owner_id = owner_id

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class NoCredentialError(ScanError):
    """Gmail is not connected for this owner. Connect Gmail to start scanning."""

    code = "no_credential"


class TokenRefreshError(ScanError):
    """Gmail access could not be refreshed. Reconnect Gmail to continue scanning."""

    code = "token_refresh_failed"


class TransportError(ScanError):
    """A call to an external service failed or timed out."""

    code = "transport_error"


class MailboxAuthError(TransportError):
    """Gmail rejected the access token (401)."""

    code = "mailbox_unauthorized"


class MessageNotFoundError(ScanError):
    """Gmail has no message with this id."""

    code = "message_not_found"


class ClassificationError(ScanError):
    """The classification service failed or returned an unusable payload."""

    code = "classification_failed"


class PersistenceError(ScanError):
    """A database write failed."""

    code = "persistence_error"


class ScanInProgressError(ScanError):
    """A scan for this owner is already running."""

    code = "scan_in_progress"


class ScanCancelledError(ScanError):
    """The scan was cancelled before the cursor was updated."""

    code = "scan_cancelled"
