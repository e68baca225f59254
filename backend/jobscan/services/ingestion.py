"""Gmail scan cycle: token -> search -> per-message fetch/extract/dedup/classify/persist -> cursor.

One cycle per owner at a time (see services/locks.py). Messages inside a cycle
are processed strictly one after another. A failing message is logged and
skipped; only token acquisition and the initial search abort the cycle, and an
aborted cycle never moves the cursor.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..classifier import Classifier
from ..content import extract
from ..errors import (
    PersistenceError,
    ScanCancelledError,
    ScanError,
    TransportError,
)
from ..gmail_service import MailboxClient, MessageRef
from ..models import IngestedMessage, MESSAGE_TYPE_GMAIL, utcnow
from ..scan_state_db import (
    get_cursor,
    get_or_create_cursor,
    set_scan_state_error,
    set_scan_state_idle,
    set_scan_state_scanning,
)
from ..token_store import TokenStore
from .locks import owner_scan_lock, redis_owner_lock
from .projector import JobEntryProjector

logger = logging.getLogger(__name__)


class ScanState(str, Enum):
    IDLE = "idle"
    TOKEN_READY = "token_ready"
    SEARCHING = "searching"
    PROCESSING_MESSAGE = "processing_message"
    CURSOR_UPDATED = "cursor_updated"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ScanResult:
    processed_count: int = 0
    job_related_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    started_at: Optional[datetime] = None
    cursor_updated: bool = False

    def to_dict(self) -> dict:
        return {
            "processedCount": self.processed_count,
            "jobRelatedCount": self.job_related_count,
            "skippedCount": self.skipped_count,
            "errorCount": self.error_count,
        }


def _epoch_seconds(value: datetime) -> int:
    """Naive-UTC datetime -> epoch seconds."""
    return int(value.replace(tzinfo=timezone.utc).timestamp())


class IngestionPipeline:
    def __init__(
        self,
        db: Session,
        token_store: Optional[TokenStore] = None,
        mailbox: Optional[MailboxClient] = None,
        classifier: Optional[Classifier] = None,
        projector: Optional[JobEntryProjector] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.token_store = token_store or TokenStore(db, clock=clock)
        self.mailbox = mailbox or MailboxClient()
        self.classifier = classifier or Classifier()
        self.projector = projector or JobEntryProjector(db)
        self._clock = clock
        self.state = ScanState.IDLE

    # ------------------------------------------------------------------
    # Mailbox calls with the single forced-refresh retry
    # ------------------------------------------------------------------

    def _call_with_refresh(self, owner_id: int, token: str, call):
        """Run ``call(token)``; on 401/transport failure refresh once and retry once.

        Returns ``(result, token)`` so a refreshed token is reused for later calls.
        """
        try:
            return call(token), token
        except TransportError as e:
            logger.warning(f"Owner {owner_id}: {e}; refreshing token and retrying once")
        token = self.token_store.force_refresh(owner_id)
        return call(token), token

    # ------------------------------------------------------------------
    # Per-message processing
    # ------------------------------------------------------------------

    def _already_ingested(self, owner_id: int, provider_message_id: str) -> bool:
        return (
            self.db.query(IngestedMessage.id)
            .filter(
                IngestedMessage.owner_id == owner_id,
                IngestedMessage.provider_message_id == provider_message_id,
            )
            .first()
            is not None
        )

    def _process_message(self, owner_id: int, ref: MessageRef, token: str, result: ScanResult, started_at: datetime) -> str:
        raw, token = self._call_with_refresh(owner_id, token, lambda t: self.mailbox.fetch(t, ref.id))
        content = extract(raw)
        message_id = content.provider_message_id or ref.id

        if self._already_ingested(owner_id, message_id):
            logger.debug(f"Owner {owner_id}: message {message_id} already ingested, skipping")
            result.skipped_count += 1
            return token

        verdict = self.classifier.classify(content.subject, content.body)
        occurred_at = content.received_at or started_at

        message = IngestedMessage(
            owner_id=owner_id,
            provider_message_id=message_id,
            subject=content.subject,
            raw_text=content.body,
            timestamp=occurred_at,
            type=MESSAGE_TYPE_GMAIL,
            is_job_related=verdict.qualifies,
            confidence=verdict.confidence,
        )
        self.db.add(message)
        try:
            self.db.commit()
        except IntegrityError:
            # Same key written between the dedup check and the insert.
            self.db.rollback()
            logger.info(f"Owner {owner_id}: message {message_id} ingested concurrently, skipping")
            result.skipped_count += 1
            return token
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Could not store message {message_id}: {e}", owner_id=owner_id) from e
        result.processed_count += 1

        if verdict.qualifies and verdict.has_entry_fields:
            try:
                entry_id = self.projector.project(owner_id, verdict, occurred_at)
                if entry_id is not None:
                    message.linked_entry_id = entry_id
                    self.db.commit()
                    result.job_related_count += 1
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Owner {owner_id}: job entry for message {message_id} not stored: {e}")
        logger.info(
            f"Owner {owner_id}: message {message_id} job_related={verdict.qualifies} "
            f"confidence={verdict.confidence:.2f}"
        )
        return token

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def _check_cancelled(self, owner_id: int, cancel_event: Optional[threading.Event]):
        if cancel_event is not None and cancel_event.is_set():
            self.state = ScanState.CANCELLED
            logger.info(f"Owner {owner_id}: scan cancelled; cursor left unchanged")
            raise ScanCancelledError(owner_id=owner_id)

    def _advance_cursor(self, owner_id: int, started_at: datetime) -> bool:
        try:
            cursor = get_or_create_cursor(self.db, owner_id)
            if cursor.last_scan_at is None or cursor.last_scan_at < started_at:
                cursor.last_scan_at = started_at
            self.db.commit()
            return True
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Owner {owner_id}: scan cursor not updated: {e}")
            return False

    def run(self, owner_id: int, cancel_event: Optional[threading.Event] = None) -> ScanResult:
        started_at = self._clock()
        result = ScanResult(started_at=started_at)
        self.state = ScanState.IDLE

        try:
            token = self.token_store.get_valid_access_token(owner_id)
        except ScanError:
            self.state = ScanState.FAILED
            raise
        self.state = ScanState.TOKEN_READY

        cursor = get_cursor(self.db, owner_id)
        after = _epoch_seconds(cursor.last_scan_at) if cursor and cursor.last_scan_at else None

        self.state = ScanState.SEARCHING
        try:
            refs, token = self._call_with_refresh(
                owner_id, token, lambda t: self.mailbox.search(t, after_epoch_seconds=after)
            )
        except ScanError:
            self.state = ScanState.FAILED
            raise
        logger.info(f"Owner {owner_id}: {len(refs)} candidate messages")

        for i, ref in enumerate(refs, 1):
            self._check_cancelled(owner_id, cancel_event)
            self.state = ScanState.PROCESSING_MESSAGE
            try:
                token = self._process_message(owner_id, ref, token, result, started_at)
            except ScanError as e:
                result.error_count += 1
                logger.error(f"Owner {owner_id}: message {i}/{len(refs)} ({ref.id}) skipped: {e}")
            except Exception as e:
                result.error_count += 1
                logger.exception(f"Owner {owner_id}: message {i}/{len(refs)} ({ref.id}) failed: {e}")
                self.db.rollback()

        self._check_cancelled(owner_id, cancel_event)
        result.cursor_updated = self._advance_cursor(owner_id, started_at)
        self.state = ScanState.CURSOR_UPDATED
        logger.info(
            f"Owner {owner_id}: scan complete: processed={result.processed_count} "
            f"job_related={result.job_related_count} skipped={result.skipped_count} "
            f"errors={result.error_count}"
        )
        self.state = ScanState.DONE
        return result


def run_scan_for_owner(
    db: Session,
    owner_id: int,
    cancel_event: Optional[threading.Event] = None,
    pipeline: Optional[IngestionPipeline] = None,
) -> ScanResult:
    """
    The exposed "scan this owner" operation.

    Serializes cycles per owner across processes (Redis) and threads, records
    scan status on the cursor row and re-raises ScanError subclasses for the
    caller to render. Any other failure is recorded as an error status too.
    """
    with redis_owner_lock(owner_id), owner_scan_lock(owner_id):
        set_scan_state_scanning(db, owner_id)
        pipeline = pipeline or IngestionPipeline(db)
        try:
            result = pipeline.run(owner_id, cancel_event=cancel_event)
        except ScanError as e:
            db.rollback()
            logger.error(f"Owner {owner_id}: scan failed ({e.code}): {e}")
            set_scan_state_error(db, owner_id, e.message)
            raise
        except Exception as e:
            db.rollback()
            logger.exception(f"Owner {owner_id}: scan failed: {e}")
            set_scan_state_error(db, owner_id, str(e))
            raise
        set_scan_state_idle(db, owner_id, result.to_dict())
        return result
