"""Turn a qualifying classification into a JobEntry row."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..classifier import Classification
from ..config import settings
from ..models import AUTO_IMPORT_SOURCE, DEFAULT_JOB_STATUS, JobEntry

logger = logging.getLogger(__name__)


class JobEntryProjector:
    """
    Creates a JobEntry when company and position are both present.

    The caller decides whether the classification qualifies; this component only
    checks the fields it needs. By default every call inserts a new row, so
    repeated messages about the same role produce several entries. With
    ``merge_duplicates`` the newest message updates the existing entry instead.
    Adds to the session and flushes; the caller commits.
    """

    def __init__(self, db: Session, merge_duplicates: Optional[bool] = None):
        self.db = db
        self.merge_duplicates = (
            settings.job_entry_merge_duplicates if merge_duplicates is None else merge_duplicates
        )

    def _find_existing(self, owner_id: int, company: str, position: str) -> Optional[JobEntry]:
        return (
            self.db.query(JobEntry)
            .filter(
                JobEntry.owner_id == owner_id,
                func.lower(JobEntry.company) == company.lower(),
                func.lower(JobEntry.position) == position.lower(),
            )
            .order_by(JobEntry.id.desc())
            .first()
        )

    def project(self, owner_id: int, classification: Classification, occurred_at: datetime) -> Optional[int]:
        company = (classification.company or "").strip()
        position = (classification.position or "").strip()
        if not company or not position:
            return None
        status = classification.status or DEFAULT_JOB_STATUS

        if self.merge_duplicates:
            existing = self._find_existing(owner_id, company, position)
            if existing is not None:
                existing.status = status
                if classification.portal:
                    existing.portal = classification.portal
                self.db.flush()
                logger.info(f"Updated job entry {existing.id} ({company} / {position}) -> {status}")
                return existing.id

        entry = JobEntry(
            owner_id=owner_id,
            company=company,
            position=position,
            status=status,
            applied_at=occurred_at,
            source=AUTO_IMPORT_SOURCE,
            portal=classification.portal,
        )
        self.db.add(entry)
        self.db.flush()
        logger.info(f"Created job entry {entry.id} ({company} / {position}, {status})")
        return entry.id
