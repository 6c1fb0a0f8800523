"""
Turns in-memory attachment payloads into stored objects plus metadata.

Object paths look like ``gmail/{uid}/{index}-{millis}-{safe_name}``. The
millisecond suffix means a re-run writes new blobs instead of clobbering
old ones; the email row's metadata is replaced wholesale either way.
"""

import re
import time
from collections.abc import Callable
from typing import Protocol

from app.config import settings
from app.features.mail_sync.domain.models import AttachmentMeta, ParsedAttachment
from app.infrastructure.observability.logging import get_logger
from app.services.infrastructure.storage_client import StorageError, storage_client

logger = get_logger(__name__)

DEFAULT_FILENAME = "attachment"
PATH_PREFIX = "gmail"
_UNSAFE_CHARS = re.compile(r"[^\w.\-]+", re.ASCII)


class ObjectUploader(Protocol):
    async def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str: ...


def sanitize_filename(name: str | None) -> str:
    """Collapse every run of characters outside [A-Za-z0-9_.-] into '_'."""
    cleaned = _UNSAFE_CHARS.sub("_", (name or "").strip())
    return cleaned or DEFAULT_FILENAME


class AttachmentMaterializer:
    """Uploads attachments for one message and returns their metadata."""

    def __init__(
        self,
        uploader: ObjectUploader | None = None,
        bucket: str | None = None,
        clock_ms: Callable[[], int] | None = None,
    ):
        self.uploader = uploader or storage_client
        self.bucket = bucket or settings.EMAIL_ATTACHMENTS_BUCKET
        self._clock_ms = clock_ms or (lambda: int(time.time() * 1000))

    def object_path(self, uid: int, index: int, filename: str | None) -> str:
        return f"{PATH_PREFIX}/{uid}/{index}-{self._clock_ms()}-{sanitize_filename(filename)}"

    async def materialize(self, uid: int, attachments: list[ParsedAttachment]) -> list[AttachmentMeta]:
        """
        Upload every attachment that carries bytes.

        Returns one AttachmentMeta per input, in input order. A failed upload
        yields url=None; it is logged and never raised.
        """
        metas: list[AttachmentMeta] = []
        uploaded = 0
        for index, attachment in enumerate(attachments):
            url = None
            if attachment.content:
                url = await self._upload_one(uid, index, attachment)
                uploaded += 1 if url else 0

            metas.append(
                AttachmentMeta(
                    filename=attachment.filename or DEFAULT_FILENAME,
                    content_type=attachment.content_type or "application/octet-stream",
                    size=attachment.size,
                    cid=attachment.content_id,
                    inline=bool(attachment.content_id) or attachment.disposition == "inline",
                    url=url,
                )
            )

        if attachments:
            logger.info(
                "Attachments materialized",
                uid=uid,
                total=len(attachments),
                uploaded=uploaded,
            )
        return metas

    async def _upload_one(self, uid: int, index: int, attachment: ParsedAttachment) -> str | None:
        path = self.object_path(uid, index, attachment.filename)
        try:
            return await self.uploader.upload(
                self.bucket,
                path,
                attachment.content,
                attachment.content_type or "application/octet-stream",
            )
        except StorageError as e:
            logger.warning(
                "Attachment upload failed",
                uid=uid,
                index=index,
                path=path,
                status_code=e.status_code,
                error=str(e),
            )
            return None
