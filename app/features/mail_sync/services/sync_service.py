"""
Incremental mailbox sync.

One run walks the phases

    idle -> connecting -> locating-mailbox -> locking-mailbox -> loading-cursor
         -> searching -> fetching <-> per-message-processing -> advancing-cursor -> done

and drops into error from any of them. Messages are handled strictly in
ascending UID order. The cursor moves to the highest UID that was fully
processed. A message whose processing fails is skipped and reported in
failed_uids; a fetch failure ends the batch and the cursor stays at the
last message stored before it.
"""

from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager

from app.config import settings
from app.features.mail_sync.domain.models import ProcessOutcome, SyncPhase, SyncRunResult
from app.features.mail_sync.repository.sync_state_repository import (
    MailboxLockUnavailable,
    SyncStateRepository,
    mailbox_lock,
)
from app.features.mail_sync.services.imap_client import ImapMailbox, open_mailbox
from app.features.mail_sync.services.message_processor import MessageProcessor
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class MailSyncError(Exception):
    """Terminates a run; carries the phase and UID it happened at."""

    def __init__(self, message: str, phase: SyncPhase, uid: int | None = None):
        super().__init__(message)
        self.phase = phase
        self.uid = uid

    def __str__(self) -> str:
        where = self.phase.value if self.uid is None else f"{self.phase.value} uid={self.uid}"
        return f"[{where}] {self.args[0]}"


def enter(result: SyncRunResult, phase: SyncPhase, **context) -> None:
    result.phase = phase
    logger.debug("Sync phase", phase=phase.value, **context)


def record_outcome(result: SyncRunResult, outcome: ProcessOutcome) -> None:
    result.processed += 1
    if outcome is ProcessOutcome.INSERTED:
        result.inserted += 1
    elif outcome is ProcessOutcome.UPDATED:
        result.updated += 1
    else:
        result.unchanged += 1


def fail(result: SyncRunResult, error: Exception, uid: int | None = None) -> None:
    """Move a result into the error state, keeping the phase it failed in."""
    if isinstance(error, MailSyncError):
        result.failed_phase = error.phase
        result.failed_uid = error.uid
        result.error = str(error)
    else:
        result.failed_phase = result.phase
        result.failed_uid = uid
        result.error = str(MailSyncError(str(error), result.phase, uid))
    result.conflict = isinstance(error, MailboxLockUnavailable)
    result.ok = False
    result.phase = SyncPhase.ERROR


class MailSyncService:
    """Runs the incremental sync against the owner's mailbox."""

    def __init__(
        self,
        mailbox_factory: Callable[[], ImapMailbox] = open_mailbox,
        state=SyncStateRepository,
        processor: MessageProcessor | None = None,
        lock=mailbox_lock,
        batch_limit: int | None = None,
    ):
        self.mailbox_factory = mailbox_factory
        self.state = state
        self.processor = processor or MessageProcessor()
        self.lock = lock
        self.batch_limit = batch_limit

    @asynccontextmanager
    async def session(
        self, result: SyncRunResult, locked: bool = True
    ) -> AsyncGenerator[ImapMailbox, None]:
        """
        Connected, selected and locked mailbox. Logout happens on every
        exit path; phase bookkeeping lands in result.
        """
        mailbox = None
        try:
            enter(result, SyncPhase.CONNECTING)
            mailbox = self.mailbox_factory()
            await mailbox.connect()

            enter(result, SyncPhase.LOCATING_MAILBOX)
            name = await mailbox.locate_mailbox()
            await mailbox.select(name)
            result.mailbox = name

            if locked:
                enter(result, SyncPhase.LOCKING_MAILBOX, mailbox=name)
                async with self.lock(name):
                    yield mailbox
            else:
                yield mailbox
        finally:
            if mailbox is not None:
                await mailbox.close()

    async def run(self) -> SyncRunResult:
        result = SyncRunResult()
        try:
            async with self.session(result) as mailbox:
                await self._sync_batch(mailbox, result)
        except Exception as e:
            fail(result, e)
            logger.error(
                "Mail sync failed",
                phase=result.failed_phase.value,
                uid=result.failed_uid,
                error=result.error,
                processed=result.processed,
                failed_uids=result.failed_uids,
                last_uid=result.last_uid,
            )
            return result

        logger.info(
            "Mail sync completed",
            mailbox=result.mailbox,
            processed=result.processed,
            inserted=result.inserted,
            updated=result.updated,
            failed=result.failed,
            failed_uids=result.failed_uids,
            cursor_before=result.cursor_before,
            last_uid=result.last_uid,
        )
        return result

    async def _sync_batch(self, mailbox: ImapMailbox, result: SyncRunResult) -> None:
        enter(result, SyncPhase.LOADING_CURSOR)
        cursor = await self.state.get_last_uid()
        result.cursor_before = result.last_uid = cursor

        enter(result, SyncPhase.SEARCHING, cursor=cursor)
        uids = await mailbox.search_uids_after(cursor)
        if not uids:
            enter(result, SyncPhase.DONE)
            return

        limit = self.batch_limit if self.batch_limit is not None else settings.sync_batch_limit()
        batch = uids[: max(1, limit)]
        result.range_start, result.range_end = batch[0], batch[-1]

        committed = cursor
        failure: MailSyncError | None = None
        for uid in batch:
            enter(result, SyncPhase.FETCHING, uid=uid)
            try:
                raw = await mailbox.fetch(uid)
            except Exception as e:
                failure = MailSyncError(str(e), SyncPhase.FETCHING, uid)
                break

            enter(result, SyncPhase.PROCESSING, uid=uid)
            try:
                outcome = await self.processor.process(uid, raw)
            except Exception as e:
                # isolated to this message; later ones still get stored
                result.failed += 1
                result.failed_uids.append(uid)
                logger.error("Message processing failed", uid=uid, error=str(e), error_type=type(e).__name__)
                continue

            record_outcome(result, outcome)
            committed = uid

        if committed > cursor:
            enter(result, SyncPhase.ADVANCING_CURSOR, last_uid=committed)
            result.last_uid = await self.state.advance(committed)

        if failure is not None:
            raise failure
        enter(result, SyncPhase.DONE)


mail_sync_service = MailSyncService()
