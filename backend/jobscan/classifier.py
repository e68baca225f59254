"""Job-signal classification: one structured OpenAI call per message.

The model is asked for a strict JSON object
``{isJobRelated, company, position, status, portal, confidence}``. Anything that
goes wrong (no key, timeout, HTTP error, malformed payload) degrades to a
non-job-related, zero-confidence verdict; classification never fails a scan.
"""
import json
import logging
import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import settings
from .errors import ClassificationError
from .models import JOB_STATUSES

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "You are an assistant that analyzes emails for job application information. "
    "Decide whether the email is about one of the recipient's own job applications "
    "(confirmation, interview, assessment, offer, rejection, withdrawal). Newsletters, "
    "job alerts and marketing are not job-related. If it is job-related, extract the "
    "company, the position title, the application status (one of applied, interview, "
    "offer, rejected, withdrawn) and the portal or job board it came through, using null "
    "for anything not stated. confidence is a number from 0 to 1 for how sure you are "
    "that the email is job-related. Always respond with the JSON object only."
)

_NULLABLE_STRING = {"type": ["string", "null"]}

CLASSIFICATION_SCHEMA = {
    "name": "job_signal",
    "strict": True,
    "schema": {
        "type": "object",
        "properties": {
            "isJobRelated": {"type": "boolean"},
            "company": _NULLABLE_STRING,
            "position": _NULLABLE_STRING,
            "status": {"type": ["string", "null"], "enum": [*JOB_STATUSES, None]},
            "portal": _NULLABLE_STRING,
            "confidence": {"type": "number"},
        },
        "required": ["isJobRelated", "company", "position", "status", "portal", "confidence"],
        "additionalProperties": False,
    },
}


class Classification(BaseModel):
    """Verdict for one message."""

    model_config = ConfigDict(populate_by_name=True)

    is_job_related: bool = Field(False, alias="isJobRelated")
    company: Optional[str] = None
    position: Optional[str] = None
    status: Optional[str] = None
    portal: Optional[str] = None
    confidence: float = 0.0

    @field_validator("company", "position", "portal", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("status", mode="before")
    @classmethod
    def _known_status(cls, v):
        if not isinstance(v, str):
            return None
        v = v.strip().lower()
        return v if v in JOB_STATUSES else None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v):
        if v is None:
            return 0.0
        v = float(v)
        if v != v:  # NaN
            return 0.0
        return min(1.0, max(0.0, v))

    @classmethod
    def degraded(cls) -> "Classification":
        return cls(is_job_related=False, confidence=0.0)

    @property
    def qualifies(self) -> bool:
        """Job-related and strictly above the confidence threshold."""
        return self.is_job_related and self.confidence > settings.confidence_threshold

    @property
    def has_entry_fields(self) -> bool:
        return bool(self.company and self.position)


def _parse_json_response(text: str) -> dict:
    """Parse JSON from an LLM response, tolerating markdown fences and surrounding prose."""
    text = re.sub(r"```json\s*", "", text or "")
    text = re.sub(r"```\s*", "", text)
    text = text.strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        match = re.search(r"\{[\s\S]*\}", text)
        if not match:
            raise ClassificationError("No JSON object in classification response")
        try:
            data = json.loads(match.group())
        except json.JSONDecodeError as e:
            raise ClassificationError(f"Malformed classification JSON: {e}") from e
    if not isinstance(data, dict):
        raise ClassificationError("Classification response is not a JSON object")
    return data


def parse_classification(text: str) -> Classification:
    data = _parse_json_response(text)
    try:
        return Classification.model_validate(data)
    except (ValidationError, TypeError, ValueError) as e:
        raise ClassificationError(f"Classification payload failed validation: {e}") from e


def _get_client():
    api_key = settings.openai_api_key
    if not api_key:
        raise ClassificationError("OPENAI_API_KEY not set. Add to .env or environment.")
    from openai import OpenAI
    # One retry on transient failures, bounded by the shared request timeout.
    return OpenAI(api_key=api_key, timeout=settings.http_timeout_s, max_retries=1)


class Classifier:
    """Wraps the OpenAI client; ``classify`` always returns a Classification."""

    def __init__(self, client=None):
        self._client = client

    def _client_or_default(self):
        if self._client is None:
            self._client = _get_client()
        return self._client

    def _user_content(self, subject: str, body: str) -> str:
        body_sample = (body or "")[: settings.classification_max_body_chars]
        return f"Email Subject: {subject or ''}\nEmail Content: {body_sample}"

    def _request(self, subject: str, body: str) -> str:
        client = self._client_or_default()
        response = client.chat.completions.create(
            model=settings.openai_model,
            temperature=settings.openai_temperature,
            messages=[
                {"role": "system", "content": SYSTEM_INSTRUCTION},
                {"role": "user", "content": self._user_content(subject, body)},
            ],
            response_format={"type": "json_schema", "json_schema": CLASSIFICATION_SCHEMA},
        )
        return response.choices[0].message.content or ""

    def classify(self, subject: str, body: str) -> Classification:
        try:
            return parse_classification(self._request(subject, body))
        except ClassificationError as e:
            logger.warning(f"Classification degraded: {e}")
        except Exception as e:
            # openai.APITimeoutError, APIConnectionError, APIStatusError, ...
            logger.warning(f"Classification service failed ({type(e).__name__}): {e}")
        return Classification.degraded()
