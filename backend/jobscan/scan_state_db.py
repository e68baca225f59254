"""Scan cursor and scan status per owner (ScanCursor rows)."""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from .models import ScanCursor, utcnow


def get_cursor(db: Session, owner_id: int) -> Optional[ScanCursor]:
    return db.query(ScanCursor).filter(ScanCursor.owner_id == owner_id).first()


def get_or_create_cursor(db: Session, owner_id: int) -> ScanCursor:
    """Return the owner's cursor row, adding (not committing) a fresh one if missing."""
    row = get_cursor(db, owner_id)
    if row is None:
        row = ScanCursor(owner_id=owner_id, last_scan_at=None, status="idle")
        db.add(row)
    return row


def set_scan_state_scanning(db: Session, owner_id: int):
    row = get_or_create_cursor(db, owner_id)
    row.status = "scanning"
    row.last_error = None
    row.updated_at = utcnow()
    db.commit()


def set_scan_state_idle(db: Session, owner_id: int, result: dict):
    row = get_or_create_cursor(db, owner_id)
    row.status = "idle"
    row.last_error = None
    row.last_processed = result.get("processedCount", 0)
    row.last_job_related = result.get("jobRelatedCount", 0)
    row.updated_at = utcnow()
    db.commit()


def set_scan_state_error(db: Session, owner_id: int, error: str):
    row = get_or_create_cursor(db, owner_id)
    row.status = "error"
    row.last_error = error
    row.updated_at = utcnow()
    db.commit()


def _state_dict(row: Optional[ScanCursor]) -> dict:
    if row is None:
        return {
            "status": "idle",
            "lastScanAt": None,
            "lastProcessed": 0,
            "lastJobRelated": 0,
            "error": None,
        }
    return {
        "status": row.status or "idle",
        "lastScanAt": row.last_scan_at.isoformat() if row.last_scan_at else None,
        "lastProcessed": row.last_processed or 0,
        "lastJobRelated": row.last_job_related or 0,
        "error": row.last_error,
    }


async def get_state_async(db: AsyncSession, owner_id: int) -> dict:
    """Status dict for the owner (idle defaults when no scan has run yet)."""
    result = await db.execute(select(ScanCursor).where(ScanCursor.owner_id == owner_id))
    return _state_dict(result.scalars().first())
