"""
Prompt text for contact classification and conversation summaries.
"""

import html
import re

from app.features.crm.domain.models import Contact

CATEGORY_BODY_CLIP = 600
SUMMARY_BODY_CLIP = 800

_TAGS = re.compile(r"<[^>]+>")
_STYLE_BLOCKS = re.compile(r"<(style|script)[^>]*>.*?</\1>", re.DOTALL | re.IGNORECASE)
# quoted history below "On ... wrote:" repeats older messages
_QUOTE_MARKER = re.compile(r"\n\s*On .{0,200}wrote:\s*\n", re.IGNORECASE)


def clean_body(text: str | None, html_body: str | None = None) -> str:
    if not text and html_body:
        text = html.unescape(_TAGS.sub(" ", _STYLE_BLOCKS.sub(" ", html_body)))
    if not text:
        return ""
    text = _QUOTE_MARKER.split(text, maxsplit=1)[0]
    lines = [line for line in text.splitlines() if not line.lstrip().startswith(">")]
    return " ".join(" ".join(lines).split())


def clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else f"{text[:limit]}…"


def _timestamp(value) -> str:
    if value is None:
        return "-"
    return value.isoformat() if hasattr(value, "isoformat") else str(value)


def format_emails(emails: list[dict], body_limit: int) -> str:
    blocks = []
    for index, email in enumerate(emails, start=1):
        direction = "Received" if email.get("direction") == "inbound" else "Sent"
        when = email.get("received_at") or email.get("created_at")
        body = clip(clean_body(email.get("text_body"), email.get("html_body")), body_limit)
        lines = [
            f"#{index} {direction} | {_timestamp(when)}",
            f"From: {email.get('from_email') or '-'}",
            f"To: {email.get('to_email') or '-'}",
            f"Subject: {(email.get('subject') or '').strip() or '(no subject)'}",
        ]
        if body:
            lines.append(f"Body: {body}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def _contact_line(contact: Contact) -> str:
    return f"Contact: {contact.name or 'Unknown'} ({contact.email or '-'})"


def build_category_prompt(contact: Contact, emails: list[dict]) -> str:
    return "\n".join(
        [
            "You classify CRM contacts from their most recent emails.",
            "Return ONLY valid JSON with the keys: category, confidence, reason.",
            "category must be exactly one of: closed, interested, not_interested.",
            "If unsure, use interested.",
            "confidence is a number between 0 and 1.",
            "reason is one short sentence (max 120 characters).",
            "Judge the context and meaning, not keywords.",
            "Examples:",
            "- interested: asks for details, confirms availability, keeps the conversation going.",
            "- not_interested: declines, says it is not needed or not the right time.",
            "- closed: the collaboration is concluded or the project is finished.",
            "",
            _contact_line(contact),
            "",
            "Emails (newest first):",
            format_emails(emails, CATEGORY_BODY_CLIP),
        ]
    )


def build_summary_prompt(contact: Contact, emails: list[dict]) -> str:
    return "\n".join(
        [
            "You summarize email conversations, concise and conversational.",
            "Return ONLY valid JSON with the keys:",
            "one_liner, highlights (array), open_questions (array), next_actions (array), "
            "last_inbound, last_outbound.",
            "Guidelines:",
            "- one_liner: a short 2-3 sentence summary (max 380 characters).",
            "- highlights, open_questions, next_actions: always an empty array [].",
            "- last_inbound: one short sentence about the last email received.",
            "- last_outbound: one short sentence about the last email sent.",
            "Use the contact's name when known. Use ONLY the emails provided.",
            "Skip repetition and non-essential detail. Do not give advice.",
            "",
            _contact_line(contact),
            "",
            "Emails (newest first):",
            format_emails(emails, SUMMARY_BODY_CLIP),
        ]
    )
