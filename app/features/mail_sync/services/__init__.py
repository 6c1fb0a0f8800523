"""
Service layer for mailbox sync.
"""

from .backfill_service import BackfillService, EmailNotFoundError, backfill_service
from .contact_resolver import ContactResolver, contact_resolver
from .imap_client import ImapMailbox, MailboxError
from .message_processor import MessageProcessor
from .sync_service import MailSyncError, MailSyncService, mail_sync_service

__all__ = [
    "BackfillService",
    "ContactResolver",
    "EmailNotFoundError",
    "ImapMailbox",
    "MailSyncError",
    "MailSyncService",
    "MailboxError",
    "MessageProcessor",
    "backfill_service",
    "contact_resolver",
    "mail_sync_service",
]
