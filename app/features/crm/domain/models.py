"""
Domain models for contacts and their follow-up state.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

# Contact.email is free text and may hold several addresses
EMAIL_PATTERN = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)


def address_token_pattern(address: str) -> str:
    """
    Regex matching address only as a whole token, never inside a longer one
    (bob@x.com must not match jimbob@x.com). Valid for both Python re and
    Postgres ~* matching.
    """
    return rf"(^|[^a-z0-9._%+-]){re.escape(address.lower())}($|[^a-z0-9.-])"


class ContactStatus(str, Enum):
    TO_CONTACT = "to-contact"
    INTERESTED = "interested"
    NOT_INTERESTED = "not-interested"
    CLOSED = "closed"

    @property
    def is_inactive(self) -> bool:
        """Inactive contacts never carry a scheduled follow-up."""
        return self in (ContactStatus.CLOSED, ContactStatus.NOT_INTERESTED)

    @classmethod
    def parse(cls, value: str | None) -> "ContactStatus | None":
        """Lenient read of stored values ("Not interested", "closed", ...)."""
        if not value:
            return None
        normalized = value.strip().lower().replace(" ", "-").replace("_", "-")
        try:
            return cls(normalized)
        except ValueError:
            return None


class NotificationType(str, Enum):
    EMAIL_RECEIVED = "email_received"
    FOLLOWUP_DUE = "followup_due"


@dataclass(slots=True)
class Contact:
    id: str
    name: str | None
    email: str | None
    status: ContactStatus | None
    last_action_at: date | None
    last_action_note: str | None
    next_action_at: date | None
    next_action_note: str | None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict) -> "Contact":
        return cls(
            id=str(row["id"]),
            name=row.get("name"),
            email=row.get("email"),
            status=ContactStatus.parse(row.get("status")),
            last_action_at=row.get("last_action_at"),
            last_action_note=row.get("last_action_note"),
            next_action_at=row.get("next_action_at"),
            next_action_note=row.get("next_action_note"),
            created_at=row.get("created_at"),
        )

    def addresses(self) -> list[str]:
        """Every address found in the email field, lower-cased, in order."""
        if not self.email:
            return []
        seen: list[str] = []
        for match in EMAIL_PATTERN.findall(self.email):
            address = match.lower()
            if address not in seen:
                seen.append(address)
        return seen

    def label(self) -> str:
        return self.name or self.email or "Contact"


@dataclass(slots=True)
class FollowupUpdate:
    contact_id: str
    last_action_at: date
    last_action_note: str
    next_action_at: date
    next_action_note: str
