"""Normalize a raw Gmail message into subject + plain-text body."""
import base64
import binascii
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class MessageContent:
    provider_message_id: str
    subject: str
    body: str
    received_at: Optional[datetime] = None  # naive UTC


def decode_base64url(data: Optional[str]) -> str:
    """Decode Gmail's URL-safe base64 (padding optional). Undecodable input gives ''."""
    if not data:
        return ""
    try:
        padded = data + "=" * (-len(data) % 4)
        return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError, UnicodeEncodeError):
        return ""


def _get_headers(payload: dict) -> dict:
    return {
        (h.get("name") or "").lower(): h.get("value") or ""
        for h in payload.get("headers", []) or []
    }


def _first_plain_text_part(parts) -> Optional[str]:
    """Depth-first search for the first text/plain part carrying data."""
    for part in parts or []:
        body_data = (part.get("body") or {}).get("data")
        if part.get("mimeType") == "text/plain" and body_data:
            return body_data
        found = _first_plain_text_part(part.get("parts"))
        if found:
            return found
    return None


def _get_body(email: dict) -> str:
    payload = email.get("payload") or {}
    flat = (payload.get("body") or {}).get("data")
    if flat:
        return decode_base64url(flat)
    part_data = _first_plain_text_part(payload.get("parts"))
    if part_data:
        return decode_base64url(part_data)
    return email.get("snippet") or ""


def _get_received_at(email: dict, headers: dict) -> Optional[datetime]:
    internal = email.get("internalDate")
    if internal:
        try:
            return datetime.fromtimestamp(int(internal) / 1000, tz=timezone.utc).replace(tzinfo=None)
        except (TypeError, ValueError, OverflowError, OSError):
            logger.debug(f"Unparseable internalDate {internal!r}")
    date_str = headers.get("date")
    if date_str:
        try:
            parsed = parsedate_to_datetime(date_str)
        except (TypeError, ValueError):
            return None
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    return None


def extract(email: dict) -> MessageContent:
    """Subject from the headers, body from flat payload / first text/plain part / snippet."""
    headers = _get_headers(email.get("payload") or {})
    return MessageContent(
        provider_message_id=email.get("id", ""),
        subject=headers.get("subject", ""),
        body=_get_body(email),
        received_at=_get_received_at(email, headers),
    )
