"""
Mailbox sync feature package.

Everything that moves mail from the owner's IMAP mailbox into the emails
table lives here: MIME parsing, attachment upload, contact matching, the
UID cursor and the incremental sync itself.
"""

from .api.router import router as mail_sync_router  # noqa: F401
from .services.backfill_service import BackfillService, backfill_service  # noqa: F401
from .services.sync_service import MailSyncService, mail_sync_service  # noqa: F401
