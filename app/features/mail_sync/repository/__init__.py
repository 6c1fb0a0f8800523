from .email_repository import UPDATABLE_COLUMNS, EmailRepository
from .sync_state_repository import MailboxLockUnavailable, SyncStateRepository, mailbox_lock

__all__ = [
    "UPDATABLE_COLUMNS",
    "EmailRepository",
    "MailboxLockUnavailable",
    "SyncStateRepository",
    "mailbox_lock",
]
