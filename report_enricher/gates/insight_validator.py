from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import ValidationError, validate

from report_enricher.errors import MalformedResponse
from report_enricher.gates.parsers import extract_json
from report_enricher.utils.io import read_text

SCHEMAS_DIR = Path(__file__).resolve().parents[1] / "schemas"

SEVERITIES = ("low", "medium", "high", "critical")
DEFAULT_SEVERITY = "medium"
DEFAULT_CONFIDENCE = 0.5
NO_MODEL = "none"

SUMMARY_MAX_WORDS = 15
RECOMMENDATION_MIN_WORDS = 10
MAX_TAGS = 5
MAX_DERIVED_TAGS = 4
RECOMMENDATION_PADDING = "Please review the test logic and error stack for more details."

DEFAULT_FIELDS: Dict[str, str] = {
    "summary": "Investigate failure reason.",
    "humanError": "An error occurred during the test execution.",
    "testRootCause": "Assertion or selector failure detected in test code.",
    "productRootCause": "Possible defect in application logic or responsiveness.",
    "bugEffect": "User flow is blocked or behavior is inconsistent.",
    "inferredExpected": "The application should behave as defined in the test requirement.",
}

# Checked in order; a bucket matches when any keyword is a substring.
TAG_BUCKETS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("timing", ("timeout", "timed out", "waited")),
    ("selector", ("get", "find", "contains")),
    ("auth", ("401", "403", "login")),
    ("network", ("500", "fetch", "network")),
    ("assertion", ("expect", "assert")),
)
UNCLASSIFIED_TAG = "unclassified"

FALLBACK_SUMMARY = "AI analysis unavailable."
FALLBACK_RECOMMENDATION = (
    "Manual review required. Check the error logs and screenshot artifacts to diagnose the issue."
)
FALLBACK_TAG = "ai-unavailable"

_schema_cache: Dict[str, Dict] = {}


def _load_schema(name: str) -> Dict:
    if name not in _schema_cache:
        _schema_cache[name] = json.loads(read_text(SCHEMAS_DIR / name))
    return _schema_cache[name]


def clean_text(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return " ".join(value.split())


def count_words(text: str) -> int:
    return len(text.split())


def _error_message(test: Dict) -> str:
    err = test.get("err")
    if isinstance(err, dict):
        message = err.get("message")
        if isinstance(message, str):
            return message
    return ""


def derive_tags(error_text: Optional[str], title: Optional[str]) -> List[str]:
    text = f"{error_text or ''} {title or ''}".lower()
    tags = [tag for tag, keywords in TAG_BUCKETS if any(keyword in text for keyword in keywords)]
    return tags[:MAX_DERIVED_TAGS] or [UNCLASSIFIED_TAG]


def _summary(value: Any) -> str:
    words = clean_text(value).split(" ")
    summary = " ".join(words[:SUMMARY_MAX_WORDS]).strip()
    return summary or DEFAULT_FIELDS["summary"]


def _recommendation(value: Any) -> str:
    recommendation = clean_text(value)
    if count_words(recommendation) < RECOMMENDATION_MIN_WORDS:
        recommendation = f"{recommendation} {RECOMMENDATION_PADDING}".strip()
    if recommendation.endswith("..."):
        recommendation = recommendation[:-3].rstrip() + "."
    return recommendation


def _severity(value: Any) -> str:
    if isinstance(value, str):
        candidate = value.strip().lower()
        if candidate in SEVERITIES:
            return candidate
    return DEFAULT_SEVERITY


def _confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    if math.isnan(value):
        return DEFAULT_CONFIDENCE
    return float(min(max(value, 0.0), 1.0))


def _tags(value: Any, test: Dict) -> List[str]:
    if isinstance(value, list):
        tags = [clean_text(item) for item in value]
        tags = [tag for tag in tags if tag]
        if tags:
            return tags[:MAX_TAGS]
    return derive_tags(_error_message(test), test.get("title"))


def check_insight(insight: Dict) -> Dict:
    try:
        validate(instance=insight, schema=_load_schema("insight.schema.json"))
    except ValidationError as exc:
        raise MalformedResponse(f"Insight failed schema validation: {exc.message}") from exc
    return insight


def repair_insight(data: Dict, test: Dict, model_used: str = NO_MODEL) -> Dict:
    """Enforce the insight contract on a parsed model payload.

    Every required field is present and non-empty on return. Free-text fields
    missing from ``data`` take the matching ``DEFAULT_FIELDS`` placeholder.
    """
    insight: Dict[str, Any] = {"summary": _summary(data.get("summary"))}
    for key in ("humanError", "testRootCause", "productRootCause", "bugEffect", "inferredExpected"):
        insight[key] = clean_text(data.get(key)) or DEFAULT_FIELDS[key]
    insight["recommendation"] = _recommendation(data.get("recommendation"))
    insight["severity"] = _severity(data.get("severity"))
    insight["confidence"] = _confidence(data.get("confidence"))
    insight["tags"] = _tags(data.get("tags"), test)
    insight["modelUsed"] = clean_text(model_used) or NO_MODEL
    return check_insight(insight)


def validate_insight(raw_text: str, test: Dict, model_used: str = NO_MODEL) -> Dict:
    return repair_insight(extract_json(raw_text), test, model_used)


def fallback_insight(test: Dict) -> Dict:
    tags = [FALLBACK_TAG] + [
        tag for tag in derive_tags(_error_message(test), test.get("title")) if tag != UNCLASSIFIED_TAG
    ]
    insight: Dict[str, Any] = dict(DEFAULT_FIELDS)
    insight.update(
        {
            "summary": FALLBACK_SUMMARY,
            "recommendation": FALLBACK_RECOMMENDATION,
            "severity": DEFAULT_SEVERITY,
            "confidence": 0.0,
            "tags": tags[:MAX_TAGS],
            "modelUsed": NO_MODEL,
        }
    )
    return check_insight(insight)
