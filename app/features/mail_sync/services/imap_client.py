"""
Async facade over imaplib for the single synced mailbox.

imaplib is blocking, so every protocol call runs in a worker thread via
asyncio.to_thread. One ImapMailbox instance is one authenticated session;
it is not safe to share between concurrent runs.
"""

import asyncio
import imaplib
import re
from dataclasses import dataclass

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_LIST_LINE = re.compile(rb'\((?P<flags>[^)]*)\) (?P<delimiter>"(?:[^"\\]|\\.)*"|NIL) (?P<name>.+)$')
_UIDNEXT = re.compile(rb"UIDNEXT (\d+)")
_FETCH_UID = re.compile(rb"UID (\d+)")


class MailboxError(Exception):
    """Raised for any failed exchange with the mail server."""

    def __init__(self, message: str, command: str | None = None):
        super().__init__(message)
        self.command = command


@dataclass(slots=True)
class MailboxInfo:
    name: str
    flags: tuple[str, ...]


def quote_mailbox(name: str) -> str:
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def parse_list_line(line: bytes) -> MailboxInfo | None:
    """Parse one untagged LIST response line; None for lines that do not match."""
    match = _LIST_LINE.match(line.strip())
    if not match:
        return None
    flags = tuple(flag for flag in match.group("flags").decode("ascii", "replace").split() if flag)
    raw_name = match.group("name").decode("utf-8", "replace").strip()
    if len(raw_name) >= 2 and raw_name.startswith('"') and raw_name.endswith('"'):
        raw_name = raw_name[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return MailboxInfo(name=raw_name, flags=flags)


def choose_mailbox(mailboxes: list[MailboxInfo]) -> str:
    """
    Pick the mailbox holding the complete history.

    Order: the \\All special-use mailbox, a name containing "all mail",
    the \\Inbox special-use mailbox, then plain INBOX.
    """
    lowered = [(box, {flag.lower() for flag in box.flags}) for box in mailboxes]
    for box, flags in lowered:
        if "\\all" in flags:
            return box.name
    for box, _ in lowered:
        if "all mail" in box.name.lower():
            return box.name
    for box, flags in lowered:
        if "\\inbox" in flags:
            return box.name
    return "INBOX"


def build_address_query(addresses: list[str]) -> str:
    """IMAP search key matching any of the addresses in FROM/TO/CC/BCC."""
    keys = []
    for address in addresses:
        quoted = quote_mailbox(address)
        keys.append(f"OR OR OR FROM {quoted} TO {quoted} CC {quoted} BCC {quoted}")
    if not keys:
        raise ValueError("At least one address is required")
    query = keys[-1]
    for key in reversed(keys[:-1]):
        query = f"OR ({key}) ({query})"
    return query


def parse_uid_list(data: list) -> list[int]:
    uids: list[int] = []
    for chunk in data or []:
        if not chunk:
            continue
        uids.extend(int(token) for token in chunk.split() if token.isdigit())
    return sorted(set(uids))


class ImapMailbox:
    """One authenticated IMAP session against the owner's mailbox."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        user: str | None = None,
        password: str | None = None,
        timeout: float | None = None,
    ):
        self.host = host or settings.IMAP_HOST
        self.port = port or settings.IMAP_PORT
        self.user = user or settings.GMAIL_USER
        self.password = password or settings.GMAIL_APP_PASSWORD
        self.timeout = timeout or settings.IMAP_TIMEOUT_SECONDS
        self._conn: imaplib.IMAP4_SSL | None = None
        self.selected: str | None = None

    async def connect(self) -> None:
        if not self.user or not self.password:
            raise MailboxError("Mailbox credentials are not configured", command="LOGIN")

        def _connect() -> imaplib.IMAP4_SSL:
            conn = imaplib.IMAP4_SSL(self.host, self.port, timeout=self.timeout)
            conn.login(self.user, self.password)
            return conn

        try:
            self._conn = await asyncio.to_thread(_connect)
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxError(f"IMAP login failed: {e}", command="LOGIN") from e
        logger.info("IMAP session opened", host=self.host, user=self.user)

    async def _call(self, command: str, method: str, *args):
        if self._conn is None:
            raise MailboxError("IMAP session is not connected", command=command)
        try:
            typ, data = await asyncio.to_thread(getattr(self._conn, method), *args)
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxError(f"IMAP {command} failed: {e}", command=command) from e
        if typ != "OK":
            raise MailboxError(f"IMAP {command} returned {typ}: {data!r}", command=command)
        return data

    async def locate_mailbox(self) -> str:
        data = await self._call("LIST", "list")
        boxes = [info for line in data if isinstance(line, bytes) and (info := parse_list_line(line))]
        chosen = choose_mailbox(boxes)
        logger.debug("Mailbox located", mailbox=chosen, candidates=len(boxes))
        return chosen

    async def select(self, mailbox: str) -> int:
        """EXAMINE the mailbox (read-only) and return its message count."""
        data = await self._call("EXAMINE", "select", quote_mailbox(mailbox), True)
        self.selected = mailbox
        try:
            return int(data[0])
        except (TypeError, ValueError, IndexError):
            return 0

    async def search_uids_after(self, last_uid: int) -> list[int]:
        """UIDs strictly greater than last_uid, ascending."""
        data = await self._call("UID SEARCH", "uid", "SEARCH", None, f"UID {last_uid + 1}:*")
        # "n:*" always matches the newest message, even when its UID is below n
        return [uid for uid in parse_uid_list(data) if uid > last_uid]

    async def search_uids(self, criteria: str) -> list[int]:
        data = await self._call("UID SEARCH", "uid", "SEARCH", None, criteria)
        return parse_uid_list(data)

    async def uid_next(self) -> int | None:
        if not self.selected:
            raise MailboxError("No mailbox selected", command="STATUS")
        data = await self._call("STATUS", "status", quote_mailbox(self.selected), "(UIDNEXT)")
        for line in data:
            if isinstance(line, bytes) and (match := _UIDNEXT.search(line)):
                return int(match.group(1))
        return None

    async def fetch(self, uid: int) -> bytes | None:
        """Full source of one message, without setting \\Seen. None if the UID is gone."""
        data = await self._call("UID FETCH", "uid", "FETCH", str(uid), "(UID BODY.PEEK[])")
        for item in data:
            if isinstance(item, tuple) and len(item) >= 2:
                match = _FETCH_UID.search(item[0])
                if match and int(match.group(1)) != uid:
                    continue
                return item[1]
        return None

    async def close(self) -> None:
        """Log out; never raises."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None

        def _logout() -> None:
            try:
                if self.selected:
                    conn.close()
            except (imaplib.IMAP4.error, OSError) as e:
                logger.debug("IMAP CLOSE failed before logout", error=str(e))
            conn.logout()

        try:
            await asyncio.to_thread(_logout)
        except (imaplib.IMAP4.error, OSError) as e:
            logger.warning("IMAP logout failed", error=str(e))
        logger.debug("IMAP session closed")


def open_mailbox() -> ImapMailbox:
    return ImapMailbox()
