"""Classifier: response parsing, normalization, threshold and degraded verdicts."""
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from jobscan.classifier import (
    CLASSIFICATION_SCHEMA,
    SYSTEM_INSTRUCTION,
    Classification,
    Classifier,
    _parse_json_response,
    parse_classification,
)
from jobscan.errors import ClassificationError


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _client(content=None, side_effect=None):
    client = MagicMock()
    if side_effect is not None:
        client.chat.completions.create.side_effect = side_effect
    else:
        client.chat.completions.create.return_value = _completion(content)
    return client


ACME = {
    "isJobRelated": True,
    "company": "Acme Corp",
    "position": "Backend Engineer",
    "status": "interview",
    "portal": "LinkedIn",
    "confidence": 0.92,
}


def test_parse_plain_json():
    c = parse_classification(json.dumps(ACME))
    assert c.is_job_related is True
    assert c.company == "Acme Corp"
    assert c.status == "interview"
    assert c.portal == "LinkedIn"
    assert c.confidence == pytest.approx(0.92)


def test_parse_json_in_markdown_fence():
    text = "```json\n" + json.dumps(ACME) + "\n```"
    assert parse_classification(text).position == "Backend Engineer"


def test_parse_json_surrounded_by_prose():
    text = "Here is the result: " + json.dumps(ACME) + " Hope it helps."
    assert _parse_json_response(text)["company"] == "Acme Corp"


def test_parse_rejects_non_object_and_garbage():
    with pytest.raises(ClassificationError):
        _parse_json_response("[1, 2, 3]")
    with pytest.raises(ClassificationError):
        _parse_json_response("no json here")


def test_status_is_normalized():
    assert Classification(isJobRelated=True, status=" Offer ").status == "offer"
    assert Classification(isJobRelated=True, status="ghosted").status is None
    assert Classification(isJobRelated=True, status=None).status is None


def test_blank_fields_become_none():
    c = Classification(isJobRelated=True, company="  ", position="", portal=None)
    assert c.company is None
    assert c.position is None
    assert c.has_entry_fields is False


def test_confidence_is_clamped():
    assert Classification(confidence=1.7).confidence == 1.0
    assert Classification(confidence=-0.2).confidence == 0.0
    assert Classification(confidence=None).confidence == 0.0
    assert Classification(confidence=float("nan")).confidence == 0.0


def test_threshold_is_strictly_greater_than():
    assert Classification(isJobRelated=True, confidence=0.7).qualifies is False
    assert Classification(isJobRelated=True, confidence=0.70001).qualifies is True
    assert Classification(isJobRelated=False, confidence=0.99).qualifies is False


def test_classify_sends_structured_request():
    client = _client(json.dumps(ACME))
    verdict = Classifier(client=client).classify("Your application to Acme Corp", "We'd like to interview you.")

    assert verdict.qualifies is True
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["response_format"] == {"type": "json_schema", "json_schema": CLASSIFICATION_SCHEMA}
    system, user = kwargs["messages"]
    assert system == {"role": "system", "content": SYSTEM_INSTRUCTION}
    assert user["role"] == "user"
    assert user["content"].startswith("Email Subject: Your application to Acme Corp\nEmail Content: ")


def test_classify_truncates_long_bodies(monkeypatch):
    from jobscan.config import settings

    monkeypatch.setattr(settings, "classification_max_body_chars", 10)
    client = _client(json.dumps(ACME))
    Classifier(client=client).classify("s", "x" * 50)
    user = client.chat.completions.create.call_args.kwargs["messages"][1]
    assert user["content"].endswith("Email Content: " + "x" * 10)


def test_timeout_degrades_to_not_job_related():
    timeout = openai.APITimeoutError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
    verdict = Classifier(client=_client(side_effect=timeout)).classify("s", "b")
    assert verdict.is_job_related is False
    assert verdict.confidence == 0.0


def test_malformed_payload_degrades():
    verdict = Classifier(client=_client("I think this is about a job")).classify("s", "b")
    assert verdict == Classification.degraded()


def test_empty_content_degrades():
    assert Classifier(client=_client(None)).classify("s", "b").is_job_related is False


def test_missing_api_key_degrades(monkeypatch):
    from jobscan.config import settings

    monkeypatch.setattr(settings, "openai_api_key", "")
    assert Classifier().classify("s", "b") == Classification.degraded()
