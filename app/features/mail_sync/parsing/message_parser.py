"""
MIME parser for raw mailbox messages.

parse_message never raises for a single message: every header or part that
cannot be decoded is recorded in ParsedMessage.parse_errors and left empty,
so one malformed message cannot abort a sync batch.
"""

import email
from collections.abc import Callable
from datetime import UTC, datetime
from email import policy
from email.message import EmailMessage
from email.utils import getaddresses, parsedate_to_datetime
from typing import TypeVar

from app.features.mail_sync.domain.models import ParsedAddress, ParsedAttachment, ParsedMessage
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

BODY_TYPES = ("text/plain", "text/html")


def strip_nul(text: str | None) -> str | None:
    """Drop NUL characters; Postgres text and jsonb columns reject them."""
    if text is None:
        return None
    return text.replace("\x00", "")


def parse_message(raw: bytes) -> ParsedMessage:
    """Decode raw RFC 5322 bytes into a ParsedMessage."""
    parsed = ParsedMessage()
    if not raw:
        parsed.parse_errors.append("message: empty payload")
        return parsed

    try:
        msg = email.message_from_bytes(raw, policy=policy.default)
    except Exception as e:
        parsed.parse_errors.append(f"message: {e}")
        return parsed

    errors = parsed.parse_errors
    parsed.from_addresses = _field(errors, "from", lambda: _addresses(msg, "from"), [])
    parsed.to_addresses = _field(errors, "to", lambda: _addresses(msg, "to"), [])
    parsed.cc_addresses = _field(errors, "cc", lambda: _addresses(msg, "cc"), [])
    parsed.bcc_addresses = _field(errors, "bcc", lambda: _addresses(msg, "bcc"), [])
    parsed.subject = _field(errors, "subject", lambda: _header_text(msg, "subject"), None)
    parsed.message_id = _field(errors, "message-id", lambda: _header_text(msg, "message-id"), None)
    parsed.in_reply_to = _field(
        errors, "in-reply-to", lambda: _header_text(msg, "in-reply-to"), None
    )
    parsed.references = _field(errors, "references", lambda: _header_text(msg, "references"), None)
    parsed.date = _field(errors, "date", lambda: _date(msg), None)
    parsed.headers = _field(errors, "headers", lambda: _headers(msg), [])

    _walk_parts(msg, parsed)

    if errors:
        logger.debug("Message parsed with errors", errors=errors)
    return parsed


def _field(errors: list[str], name: str, extract: Callable[[], T], default: T) -> T:
    try:
        return extract()
    except Exception as e:
        errors.append(f"{name}: {e}")
        return default


def _header_text(msg: EmailMessage, name: str) -> str | None:
    value = msg.get(name)
    if value is None:
        return None
    text = " ".join(strip_nul(str(value)).split())
    return text or None


def _addresses(msg: EmailMessage, name: str) -> list[ParsedAddress]:
    values = [strip_nul(str(v)) for v in msg.get_all(name, [])]
    result = []
    for display_name, address in getaddresses(values):
        address = address.strip().lower()
        if "@" not in address:
            continue
        result.append(ParsedAddress(address=address, name=display_name.strip() or None))
    return result


def _date(msg: EmailMessage) -> datetime | None:
    value = msg.get("date")
    if value is None:
        return None
    parsed = parsedate_to_datetime(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _headers(msg: EmailMessage) -> list[tuple[str, str]]:
    headers = []
    for name, value in msg.raw_items():
        try:
            text = str(msg.policy.header_fetch_parse(name, value))
        except Exception:
            text = " ".join(str(value).split())
        headers.append((strip_nul(name), strip_nul(text)))
    return headers


def _walk_parts(msg: EmailMessage, parsed: ParsedMessage) -> None:
    try:
        parts = [part for part in msg.walk() if not part.is_multipart()]
    except Exception as e:
        parsed.parse_errors.append(f"body: {e}")
        return

    for index, part in enumerate(parts):
        try:
            _consume_part(part, parsed)
        except Exception as e:
            parsed.parse_errors.append(f"part {index}: {e}")


def _consume_part(part: EmailMessage, parsed: ParsedMessage) -> None:
    content_type = part.get_content_type()
    disposition = part.get_content_disposition()
    filename = strip_nul(part.get_filename()) or None

    is_body = content_type in BODY_TYPES and disposition != "attachment" and not filename
    if is_body:
        text = _decode_text(part)
        if content_type == "text/plain":
            parsed.text_body = text if parsed.text_body is None else f"{parsed.text_body}\n{text}"
        else:
            parsed.html_body = text if parsed.html_body is None else f"{parsed.html_body}\n{text}"
        return

    payload = part.get_payload(decode=True)
    content = payload if isinstance(payload, bytes) else None
    content_id = _content_id(part)
    parsed.attachments.append(
        ParsedAttachment(
            filename=filename,
            content_type=content_type,
            size=len(content) if content else 0,
            content_id=content_id,
            disposition=disposition,
            content=content,
        )
    )


def _decode_text(part: EmailMessage) -> str:
    try:
        return strip_nul(part.get_content())
    except (LookupError, UnicodeError):
        # unknown or lying charset
        payload = part.get_payload(decode=True) or b""
        return strip_nul(payload.decode("utf-8", errors="replace"))


def _content_id(part: EmailMessage) -> str | None:
    value = part.get("content-id")
    if value is None:
        return None
    return strip_nul(str(value)).strip().strip("<>").strip() or None
