"""
Strict parsing of model replies.

The model is asked for bare JSON but may wrap it in a code fence or chatter
around it. After unwrapping, the reply must validate against the expected
schema; anything else raises AiResponseInvalidError.
"""

import json
import re
from typing import Any

from pydantic import ValidationError

from app.features.ai_insights.domain.models import (
    AiCategory,
    CategoryResult,
    InsightKind,
    SummaryResult,
)

_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_NON_CATEGORY_CHARS = re.compile(r"[^a-z_]")

REASON_MAX = 160
ONE_LINER_MAX = 380
LAST_MESSAGE_MAX = 160


class AiResponseInvalidError(Exception):
    """The model answered, but not in the agreed shape."""

    def __init__(self, message: str, raw: str | None = None):
        super().__init__(message)
        self.raw = (raw or "")[:500]


def strip_json_wrapper(text: str) -> str:
    """Code-fenced body if present, else the span from the first '{' to the last '}'."""
    fenced = _FENCE.search(text)
    if fenced:
        return fenced.group(1).strip()
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        return text[start : end + 1]
    return text.strip()


def load_json_object(text: str) -> dict[str, Any]:
    try:
        data = json.loads(strip_json_wrapper(text or ""))
    except json.JSONDecodeError as e:
        raise AiResponseInvalidError(f"Reply is not JSON: {e.msg}", raw=text) from e
    if not isinstance(data, dict):
        raise AiResponseInvalidError("Reply is not a JSON object", raw=text)
    return data


def normalize_category(value: Any) -> AiCategory | None:
    """Lenient on spelling (case, spaces, plurals), strict on meaning."""
    if not isinstance(value, str):
        return None
    cleaned = _NON_CATEGORY_CHARS.sub("", "_".join(value.lower().split()))
    aliases = {
        "closed": AiCategory.CLOSED,
        "close": AiCategory.CLOSED,
        "interested": AiCategory.INTERESTED,
        "not_interested": AiCategory.NOT_INTERESTED,
        "notinterested": AiCategory.NOT_INTERESTED,
        "uninterested": AiCategory.NOT_INTERESTED,
    }
    return aliases.get(cleaned) or aliases.get(cleaned.removesuffix("s"))


def normalize_confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return 0.5
    try:
        number = float(value)
    except ValueError:
        return 0.5
    if number != number:  # NaN
        return 0.5
    return min(1.0, max(0.0, number))


def _clip(value: Any, limit: int) -> str:
    return value.strip()[:limit] if isinstance(value, str) else ""


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def parse_category(text: str) -> CategoryResult:
    data = load_json_object(text)
    category = normalize_category(data.get("category"))
    if category is None:
        raise AiResponseInvalidError(f"Unknown category {data.get('category')!r}", raw=text)
    try:
        return CategoryResult(
            category=category,
            confidence=normalize_confidence(data.get("confidence", 0.5)),
            reason=_clip(data.get("reason"), REASON_MAX),
        )
    except ValidationError as e:
        raise AiResponseInvalidError(f"Category reply failed validation: {e}", raw=text) from e


def parse_summary(text: str) -> SummaryResult:
    data = load_json_object(text)
    try:
        summary = SummaryResult(
            one_liner=_clip(data.get("one_liner"), ONE_LINER_MAX),
            highlights=_string_list(data.get("highlights")),
            open_questions=_string_list(data.get("open_questions")),
            next_actions=_string_list(data.get("next_actions")),
            last_inbound=_clip(data.get("last_inbound"), LAST_MESSAGE_MAX),
            last_outbound=_clip(data.get("last_outbound"), LAST_MESSAGE_MAX),
        )
    except ValidationError as e:
        raise AiResponseInvalidError(f"Summary reply failed validation: {e}", raw=text) from e
    if not (summary.one_liner or summary.last_inbound or summary.last_outbound):
        raise AiResponseInvalidError("Summary reply has no content", raw=text)
    return summary


def parse_payload(kind: InsightKind, text: str) -> CategoryResult | SummaryResult:
    if kind is InsightKind.CATEGORY:
        return parse_category(text)
    return parse_summary(text)
