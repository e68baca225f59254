"""Gmail connect flow: consent URL with CSRF state, then code -> tokens exchange."""
import logging
import secrets
import urllib.parse
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from .config import settings
from .errors import TokenRefreshError, TransportError
from .oauth_state_db import oauth_state_consume, oauth_state_set
from .token_store import TokenStore

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]


def _require_client_config() -> str:
    if not settings.google_client_id or not settings.google_client_secret:
        raise ValueError("Google OAuth credentials not configured (GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET).")
    if not settings.gmail_oauth_redirect_uri:
        raise ValueError("GMAIL_OAUTH_REDIRECT_URI must be set to connect Gmail.")
    return settings.gmail_oauth_redirect_uri


def start_gmail_oauth(db: Session, owner_id: int, redirect_url_after: Optional[str] = None) -> str:
    """Return the Google consent URL; the state token is bound to ``owner_id``."""
    redirect_uri = _require_client_config()
    state = secrets.token_urlsafe(32)
    oauth_state_set(db, state, owner_id, redirect_url_after or settings.frontend_url)
    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{settings.google_auth_url}?{urllib.parse.urlencode(params)}"


def finish_gmail_oauth(db: Session, code: str, state: str, http_client: Optional[httpx.Client] = None) -> str:
    """
    Validate state, exchange the code and store the credential for the bound owner.
    Returns the URL to send the browser to. Raises ValueError for an invalid state.
    """
    entry = oauth_state_consume(db, state)
    if not entry or entry.get("owner_id") is None:
        raise ValueError("Invalid or expired OAuth state")
    owner_id = entry["owner_id"]
    redirect_uri = _require_client_config()
    data = {
        "client_id": settings.google_client_id,
        "client_secret": settings.google_client_secret,
        "code": code,
        "grant_type": "authorization_code",
        "redirect_uri": redirect_uri,
    }
    try:
        if http_client is not None:
            resp = http_client.post(settings.google_token_url, data=data)
        else:
            with httpx.Client(timeout=settings.http_timeout_s) as client:
                resp = client.post(settings.google_token_url, data=data)
    except httpx.HTTPError as e:
        raise TransportError(f"Token endpoint unreachable: {e}", owner_id=owner_id) from e
    if not resp.is_success:
        logger.error(f"Gmail code exchange failed for owner {owner_id}: {resp.status_code}")
        raise TokenRefreshError("Failed to exchange code for tokens", owner_id=owner_id)

    TokenStore(db).save_grant(owner_id, resp.json())
    logger.info(f"Gmail connected for owner {owner_id}")
    base = entry.get("redirect_url") or settings.frontend_url
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}gmail_connected=true"
