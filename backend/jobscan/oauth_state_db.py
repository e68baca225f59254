"""OAuth CSRF state persisted in DB for the Gmail connect flow."""
from typing import Optional

from sqlalchemy.orm import Session

from .models import OAuthState, utcnow

OAUTH_STATE_TTL_SECONDS = 900  # 15 minutes (avoids invalid_state when slow or callback retried)


def _expired(row: OAuthState) -> bool:
    return (utcnow() - row.created_at).total_seconds() > OAUTH_STATE_TTL_SECONDS


def oauth_state_set(db: Session, state_token: str, owner_id: int, redirect_url: Optional[str] = None) -> None:
    """Store OAuth state token bound to the owner. Overwrites if exists."""
    now = utcnow()
    row = db.query(OAuthState).filter(OAuthState.state_token == state_token).first()
    if row:
        row.owner_id = owner_id
        row.redirect_url = redirect_url or ""
        row.created_at = now
    else:
        db.add(OAuthState(
            state_token=state_token,
            owner_id=owner_id,
            redirect_url=redirect_url or "",
            created_at=now,
        ))
    db.commit()


def oauth_state_consume(db: Session, state_token: str) -> Optional[dict]:
    """
    Look up state, validate TTL, delete row, return payload or None.
    Returns {"owner_id": int, "redirect_url": str} if valid; None if missing or expired.
    """
    row = db.query(OAuthState).filter(OAuthState.state_token == state_token).first()
    if not row:
        return None
    payload = None
    if not _expired(row):
        payload = {"owner_id": row.owner_id, "redirect_url": row.redirect_url or ""}
    db.delete(row)
    db.commit()
    return payload


def oauth_state_cleanup_expired(db: Session) -> int:
    """Delete expired state rows; returns how many were removed."""
    removed = 0
    for row in db.query(OAuthState).all():
        if _expired(row):
            db.delete(row)
            removed += 1
    db.commit()
    return removed
