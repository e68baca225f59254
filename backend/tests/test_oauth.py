"""Gmail connect flow: state binding, code exchange and state expiry."""
import urllib.parse
from datetime import timedelta

import httpx
import pytest

from jobscan.config import settings
from jobscan.errors import TokenRefreshError
from jobscan.gmail_oauth import finish_gmail_oauth, start_gmail_oauth
from jobscan.models import GmailCredential, OAuthState, utcnow
from jobscan.oauth_state_db import (
    OAUTH_STATE_TTL_SECONDS,
    oauth_state_cleanup_expired,
    oauth_state_consume,
    oauth_state_set,
)


@pytest.fixture(autouse=True)
def google_config(monkeypatch):
    monkeypatch.setattr(settings, "google_client_id", "cid")
    monkeypatch.setattr(settings, "google_client_secret", "csecret")
    monkeypatch.setattr(settings, "gmail_oauth_redirect_uri", "http://localhost:8000/api/gmail/callback")
    monkeypatch.setattr(settings, "frontend_url", "http://localhost:5173")


def _state_from(url):
    return urllib.parse.parse_qs(urllib.parse.urlparse(url).query)["state"][0]


def _token_endpoint(status=200, payload=None, seen=None):
    def handler(request):
        if seen is not None:
            seen.append(dict(urllib.parse.parse_qsl(request.content.decode())))
        return httpx.Response(status, json=payload or {"access_token": "at", "refresh_token": "rt", "expires_in": 3599})

    return httpx.Client(transport=httpx.MockTransport(handler))


def test_start_builds_offline_consent_url(db, owner):
    url = start_gmail_oauth(db, owner.id)
    params = urllib.parse.parse_qs(urllib.parse.urlparse(url).query)
    assert url.startswith(settings.google_auth_url)
    assert params["client_id"] == ["cid"]
    assert params["response_type"] == ["code"]
    assert params["prompt"] == ["consent"]
    row = db.query(OAuthState).one()
    assert row.state_token == params["state"][0]
    assert row.owner_id == owner.id


def test_start_requires_client_config(db, owner, monkeypatch):
    monkeypatch.setattr(settings, "gmail_oauth_redirect_uri", None)
    with pytest.raises(ValueError):
        start_gmail_oauth(db, owner.id)


def test_finish_stores_credential_and_redirects(db, owner):
    state = _state_from(start_gmail_oauth(db, owner.id, "http://localhost:5173/settings?tab=gmail"))
    seen = []

    redirect = finish_gmail_oauth(db, code="auth-code", state=state, http_client=_token_endpoint(seen=seen))

    assert redirect == "http://localhost:5173/settings?tab=gmail&gmail_connected=true"
    assert seen[0]["grant_type"] == "authorization_code"
    assert seen[0]["code"] == "auth-code"
    cred = db.query(GmailCredential).one()
    assert cred.owner_id == owner.id
    assert cred.access_token == "at"
    assert cred.refresh_token == "rt"
    assert cred.expires_at is not None


def test_state_cannot_be_reused(db, owner):
    state = _state_from(start_gmail_oauth(db, owner.id))
    finish_gmail_oauth(db, code="c", state=state, http_client=_token_endpoint())
    with pytest.raises(ValueError):
        finish_gmail_oauth(db, code="c", state=state, http_client=_token_endpoint())


def test_rejected_code_exchange(db, owner):
    state = _state_from(start_gmail_oauth(db, owner.id))
    with pytest.raises(TokenRefreshError):
        finish_gmail_oauth(db, code="bad", state=state, http_client=_token_endpoint(status=400, payload={"error": "x"}))
    assert db.query(GmailCredential).count() == 0


def test_expired_state_is_rejected_and_removed(db, owner):
    oauth_state_set(db, "old-state", owner.id)
    row = db.query(OAuthState).one()
    row.created_at = utcnow() - timedelta(seconds=OAUTH_STATE_TTL_SECONDS + 60)
    db.commit()

    assert oauth_state_consume(db, "old-state") is None
    assert db.query(OAuthState).count() == 0


def test_cleanup_removes_only_expired_states(db, owner):
    oauth_state_set(db, "fresh", owner.id)
    oauth_state_set(db, "stale", owner.id)
    stale = db.query(OAuthState).filter(OAuthState.state_token == "stale").one()
    stale.created_at = utcnow() - timedelta(seconds=OAUTH_STATE_TTL_SECONDS + 1)
    db.commit()

    assert oauth_state_cleanup_expired(db) == 1
    assert [r.state_token for r in db.query(OAuthState).all()] == ["fresh"]
