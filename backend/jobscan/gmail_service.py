"""Gmail API access for scanning: search the inbox and fetch full messages.

The client is stateless with respect to credentials: every call takes the access
token to use, so the caller decides when to refresh and retry.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import google_auth_httplib2
import httplib2
from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .config import settings
from .errors import MailboxAuthError, MessageNotFoundError, TransportError

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (429, 500, 503)


@dataclass(frozen=True)
class MessageRef:
    id: str
    thread_id: Optional[str] = None


def build_query(base_query: Optional[str] = None, after_epoch_seconds: Optional[int] = None) -> str:
    """Relevance filter plus an optional ``after:`` lower bound (epoch seconds)."""
    query = base_query or settings.gmail_scan_query
    if after_epoch_seconds is not None:
        query += f" after:{int(after_epoch_seconds)}"
    return query


def _build_service(access_token: str):
    """Gmail v1 service bound to a bare access token, with a request timeout."""
    creds = Credentials(token=access_token)
    # No transparent refresh on 401: token lifecycle belongs to TokenStore.
    http = google_auth_httplib2.AuthorizedHttp(
        creds,
        http=httplib2.Http(timeout=settings.http_timeout_s),
        refresh_status_codes=(),
    )
    return build("gmail", "v1", http=http, cache_discovery=False)


def _with_backoff(fn, max_retries: int = 3, sleep: Callable[[float], None] = time.sleep):
    """Retry rate-limit and transient server errors with exponential backoff."""
    for attempt in range(max_retries):
        try:
            return fn()
        except HttpError as e:
            if e.resp.status in RETRYABLE_STATUSES and attempt < max_retries - 1:
                sleep(2 ** attempt)
                continue
            raise


def _status_of(e: HttpError) -> int:
    try:
        return int(e.resp.status)
    except (AttributeError, TypeError, ValueError):
        return 0


class MailboxClient:
    """search/fetch over the Gmail REST API, mapping failures onto the scan error taxonomy."""

    def __init__(
        self,
        service_factory: Callable[[str], object] = _build_service,
        max_results: Optional[int] = None,
        max_retries: int = 3,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._service_factory = service_factory
        self.max_results = max_results or settings.gmail_scan_max_results
        self.max_retries = max_retries
        self._sleep = sleep

    def _execute(self, what: str, fn):
        try:
            return _with_backoff(fn, max_retries=self.max_retries, sleep=self._sleep)
        except HttpError as e:
            status = _status_of(e)
            if status == 401:
                raise MailboxAuthError(f"Gmail rejected the access token during {what}") from e
            if status == 404:
                raise MessageNotFoundError(f"Gmail {what}: not found") from e
            raise TransportError(f"Gmail {what} failed with HTTP {status}") from e
        except RefreshError as e:
            raise MailboxAuthError(f"Gmail rejected the access token during {what}") from e
        except (httplib2.HttpLib2Error, OSError) as e:
            # socket timeouts and connection errors are OSError subclasses
            raise TransportError(f"Gmail {what} failed: {e}") from e

    def search(
        self,
        access_token: str,
        query: Optional[str] = None,
        after_epoch_seconds: Optional[int] = None,
    ) -> List[MessageRef]:
        """List up to ``max_results`` message refs matching the relevance query."""
        q = build_query(query, after_epoch_seconds)
        logger.info(f"Gmail search: {q} (max {self.max_results})")
        service = self._service_factory(access_token)
        result = self._execute(
            "search",
            lambda: service.users()
            .messages()
            .list(userId="me", q=q, maxResults=self.max_results)
            .execute(),
        )
        refs = [
            MessageRef(id=m["id"], thread_id=m.get("threadId"))
            for m in (result or {}).get("messages", [])
            if m.get("id")
        ]
        return refs[: self.max_results]

    def fetch(self, access_token: str, message_id: str) -> dict:
        """Full message (headers, payload tree, snippet, internalDate)."""
        service = self._service_factory(access_token)
        return self._execute(
            f"fetch {message_id}",
            lambda: service.users()
            .messages()
            .get(userId="me", id=message_id, format="full")
            .execute(),
        )
