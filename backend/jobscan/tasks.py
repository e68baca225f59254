"""Celery tasks: scan one owner, fan out scans to every connected owner."""
import logging

from celery import shared_task

from .database import SessionLocal
from .errors import ScanError
from .models import GmailCredential
from .oauth_state_db import oauth_state_cleanup_expired
from .services.ingestion import run_scan_for_owner

logger = logging.getLogger(__name__)


@shared_task(bind=True, name="jobscan.tasks.run_gmail_scan")
def run_gmail_scan(self, owner_id: int) -> dict:
    """
    Run one scan cycle for ``owner_id``.

    run_scan_for_owner holds the per-owner Redis lock, so a worker never scans
    a mailbox the API (or another worker) is already scanning. Returns the
    counts, or ``{error, message}`` for scan errors (those are recorded on the
    cursor row and not retried by Celery).
    """
    db = SessionLocal()
    try:
        result = run_scan_for_owner(db, owner_id)
        return result.to_dict()
    except ScanError as e:
        return e.to_dict()
    finally:
        db.close()


@shared_task(name="jobscan.tasks.scan_all_owners")
def scan_all_owners() -> int:
    """
    Queue a scan for every owner with a stored Gmail credential and drop
    expired OAuth connect states. Returns how many scans were queued.
    """
    db = SessionLocal()
    try:
        removed = oauth_state_cleanup_expired(db)
        if removed:
            logger.info(f"Removed {removed} expired OAuth states")
        owner_ids = [row.owner_id for row in db.query(GmailCredential.owner_id).all()]
    finally:
        db.close()
    for owner_id in owner_ids:
        run_gmail_scan.delay(owner_id)
    logger.info(f"Queued Gmail scans for {len(owner_ids)} owners")
    return len(owner_ids)
