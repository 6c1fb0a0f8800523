"""
Domain subpackage for mailbox sync.
"""

from .models import (
    AttachmentMeta,
    EmailDirection,
    EmailRecord,
    ParsedAddress,
    ParsedAttachment,
    ParsedMessage,
    ProcessOutcome,
    SyncPhase,
    SyncRunResult,
    attachments_complete,
)

__all__ = [
    "AttachmentMeta",
    "EmailDirection",
    "EmailRecord",
    "ParsedAddress",
    "ParsedAttachment",
    "ParsedMessage",
    "ProcessOutcome",
    "SyncPhase",
    "SyncRunResult",
    "attachments_complete",
]
