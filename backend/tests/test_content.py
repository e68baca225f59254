"""Message normalization: body selection, base64url decoding, headers and dates."""
from datetime import datetime

from jobscan.content import decode_base64url, extract

from conftest import b64url


def test_flat_body_is_decoded(make_message):
    content = extract(make_message("m1", "Hello", body="Plain body text"))
    assert content.provider_message_id == "m1"
    assert content.subject == "Hello"
    assert content.body == "Plain body text"


def test_first_plain_text_part_is_found_depth_first():
    email = {
        "id": "m2",
        "payload": {
            "mimeType": "multipart/mixed",
            "headers": [{"name": "subject", "value": "Nested"}],
            "body": {"size": 0},
            "parts": [
                {
                    "mimeType": "multipart/alternative",
                    "parts": [
                        {"mimeType": "text/html", "body": {"data": b64url("<p>html</p>")}},
                        {"mimeType": "text/plain", "body": {"data": b64url("deep plain")}},
                    ],
                },
                {"mimeType": "text/plain", "body": {"data": b64url("shallow plain")}},
            ],
        },
    }
    content = extract(email)
    assert content.body == "deep plain"
    assert content.subject == "Nested"


def test_snippet_used_when_no_text_part():
    email = {
        "id": "m3",
        "snippet": "Short preview",
        "payload": {
            "mimeType": "multipart/alternative",
            "parts": [{"mimeType": "text/html", "body": {"data": b64url("<b>x</b>")}}],
        },
    }
    assert extract(email).body == "Short preview"


def test_no_body_and_no_snippet_gives_empty_text():
    content = extract({"id": "m4", "payload": {"headers": []}})
    assert content.body == ""
    assert content.subject == ""
    assert content.received_at is None


def test_base64url_without_padding_and_with_url_safe_chars():
    assert decode_base64url("Pz4-") == "?>>"
    assert decode_base64url(b64url("ab")) == "ab"
    assert decode_base64url(b64url("héllo wörld")) == "héllo wörld"


def test_invalid_base64_decodes_to_empty_string():
    assert decode_base64url("abcde") == ""
    assert decode_base64url("") == ""
    assert decode_base64url(None) == ""


def test_received_at_from_internal_date(make_message):
    content = extract(make_message("m1", "Hi", body="x", internal_ms=1767960000000))
    assert content.received_at == datetime(2026, 1, 9, 12, 0, 0)


def test_received_at_falls_back_to_date_header():
    email = {
        "id": "m5",
        "payload": {
            "headers": [
                {"name": "Subject", "value": "Dated"},
                {"name": "Date", "value": "Fri, 09 Jan 2026 14:00:00 +0200"},
            ],
            "body": {"data": b64url("x")},
        },
    }
    assert extract(email).received_at == datetime(2026, 1, 9, 12, 0, 0)
