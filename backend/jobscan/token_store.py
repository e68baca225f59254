"""Gmail OAuth credentials: load, refresh near expiry, persist.

One credential row per owner. An access token is never handed out when it has
less than ``settings.token_refresh_margin_s`` left; a single refresh exchange is
attempted instead. There is no retry loop here: a caller that still gets a 401
from Gmail calls ``force_refresh`` once and gives up after that.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import settings
from .errors import NoCredentialError, PersistenceError, TokenRefreshError, TransportError
from .models import GmailCredential, utcnow

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN_S = 3600


def expiry_from_expires_in(expires_in, now: datetime) -> datetime:
    try:
        seconds = int(expires_in)
    except (TypeError, ValueError):
        seconds = DEFAULT_EXPIRES_IN_S
    return now + timedelta(seconds=seconds)


class TokenStore:
    """Per-owner access-token provider backed by the gmail_credentials table."""

    def __init__(
        self,
        db: Session,
        http_client: Optional[httpx.Client] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self._http = http_client
        self._clock = clock
        self.margin = timedelta(seconds=settings.token_refresh_margin_s)

    def _get_credential(self, owner_id: int) -> Optional[GmailCredential]:
        return self.db.query(GmailCredential).filter(GmailCredential.owner_id == owner_id).first()

    def _load(self, owner_id: int) -> GmailCredential:
        cred = self._get_credential(owner_id)
        if cred is None:
            raise NoCredentialError(owner_id=owner_id)
        return cred

    def needs_refresh(self, cred: GmailCredential) -> bool:
        if cred.expires_at is None:
            return False
        return cred.expires_at - self._clock() < self.margin

    def get_valid_access_token(self, owner_id: int) -> str:
        """Return a usable access token, refreshing at most once if it is about to expire."""
        cred = self._load(owner_id)
        if not self.needs_refresh(cred):
            return cred.access_token
        logger.info(f"Gmail token for owner {owner_id} expires at {cred.expires_at}; refreshing")
        return self._refresh(cred)

    def force_refresh(self, owner_id: int) -> str:
        """Refresh unconditionally (after Gmail rejected the current token)."""
        cred = self._load(owner_id)
        logger.info(f"Forcing Gmail token refresh for owner {owner_id}")
        return self._refresh(cred)

    def _post_token_endpoint(self, data: dict) -> httpx.Response:
        try:
            if self._http is not None:
                return self._http.post(settings.google_token_url, data=data)
            with httpx.Client(timeout=settings.http_timeout_s) as client:
                return client.post(settings.google_token_url, data=data)
        except httpx.HTTPError as e:
            raise TransportError(f"Token endpoint unreachable: {e}") from e

    def _refresh(self, cred: GmailCredential) -> str:
        owner_id = cred.owner_id
        if not cred.refresh_token:
            raise TokenRefreshError(
                "No refresh token stored for Gmail. Reconnect Gmail to continue scanning.",
                owner_id=owner_id,
            )
        resp = self._post_token_endpoint({
            "client_id": settings.google_client_id,
            "client_secret": settings.google_client_secret,
            "refresh_token": cred.refresh_token,
            "grant_type": "refresh_token",
        })
        if not resp.is_success:
            logger.error(f"Token refresh failed for owner {owner_id}: {resp.status_code} {resp.text[:200]}")
            raise TokenRefreshError(
                f"Failed to refresh Gmail token ({resp.status_code}). Reconnect Gmail to continue scanning.",
                owner_id=owner_id,
            )
        try:
            payload = resp.json()
        except ValueError as e:
            raise TokenRefreshError("Token endpoint returned invalid JSON", owner_id=owner_id) from e
        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            raise TokenRefreshError("Token endpoint response has no access_token", owner_id=owner_id)

        now = self._clock()
        cred.access_token = access_token
        cred.expires_at = expiry_from_expires_in(payload.get("expires_in"), now)
        if payload.get("refresh_token"):
            cred.refresh_token = payload["refresh_token"]
        cred.updated_at = now
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Could not store refreshed token: {e}", owner_id=owner_id) from e
        logger.info(f"Gmail token refreshed for owner {owner_id}; expires at {cred.expires_at}")
        return access_token

    def save_grant(self, owner_id: int, payload: dict) -> GmailCredential:
        """Upsert the credential from an authorization-code exchange."""
        access_token = payload.get("access_token")
        if not access_token:
            raise TokenRefreshError("OAuth grant has no access_token", owner_id=owner_id)
        now = self._clock()
        cred = self._get_credential(owner_id)
        if cred is None:
            cred = GmailCredential(owner_id=owner_id, created_at=now)
            self.db.add(cred)
        cred.access_token = access_token
        # Google omits refresh_token on re-consent; keep the one we have.
        if payload.get("refresh_token"):
            cred.refresh_token = payload["refresh_token"]
        cred.expires_at = expiry_from_expires_in(payload.get("expires_in"), now)
        cred.updated_at = now
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Could not store Gmail credential: {e}", owner_id=owner_id) from e
        return cred

    def disconnect(self, owner_id: int) -> bool:
        """Delete the owner's credential. Returns False when none was stored."""
        cred = self._get_credential(owner_id)
        if cred is None:
            return False
        self.db.delete(cred)
        self.db.commit()
        logger.info(f"Gmail disconnected for owner {owner_id}")
        return True
