"""
Maps message addresses to a CRM contact.

Matching policy, in order:
  1. exact: the contact's email field, trimmed and lower-cased, equals a candidate
  2. token: the contact's email field lists the candidate as one of its addresses

Within a tier the earliest candidate wins, then the oldest contact. A mere
substring overlap (``bob@x.com`` inside ``jimbob@x.com``) never matches.
"""

from collections.abc import Iterable

from app.config import settings
from app.features.crm.domain.models import Contact
from app.features.crm.repository.contact_repository import ContactRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def normalize_candidates(addresses: Iterable[str | None], exclude: str | None = None) -> list[str]:
    """Trim, lower-case, drop blanks and the excluded address, keep first-seen order."""
    excluded = (exclude or "").strip().lower()
    result: list[str] = []
    for address in addresses:
        if not address:
            continue
        normalized = address.strip().lower()
        if not normalized or normalized == excluded or normalized in result:
            continue
        result.append(normalized)
    return result


def _pick(candidates: list[str], contacts: list[Contact], key) -> Contact | None:
    # contacts arrive ordered by created_at, id
    for candidate in candidates:
        for contact in contacts:
            if candidate in key(contact):
                return contact
    return None


class ContactResolver:
    def __init__(self, contacts=ContactRepository, owner_address: str | None = None):
        self.contacts = contacts
        self.owner_address = owner_address if owner_address is not None else settings.owner_address()

    async def resolve(self, addresses: Iterable[str | None]) -> str | None:
        """Contact id for the first matching candidate, or None."""
        candidates = normalize_candidates(addresses, exclude=self.owner_address)
        if not candidates:
            return None

        exact = await self.contacts.find_by_exact_emails(candidates)
        match = _pick(candidates, exact, lambda c: {(c.email or "").strip().lower()})
        if match is None:
            containing = await self.contacts.find_containing_emails(candidates)
            match = _pick(candidates, containing, lambda c: set(c.addresses()))

        if match is None:
            logger.debug("No contact matched", candidates=candidates)
            return None
        return match.id


contact_resolver = ContactResolver()
