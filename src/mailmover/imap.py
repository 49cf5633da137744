"""IMAP client wrappers for the source and archive Gmail accounts."""

import imaplib
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from .errors import ProtocolError, StoreConnectionError


GMAIL_IMAP_HOST = "imap.gmail.com"
GMAIL_IMAP_PORT = 993
ALL_MAIL = "[Gmail]/All Mail"
TRASH = "[Gmail]/Trash"
LOGOUT_TIMEOUT = 30.0

HEADER_FIELDS = "X-GM-MSGID X-GM-THRID X-GM-LABELS FLAGS INTERNALDATE RFC822.SIZE BODY.PEEK[HEADER]"
FULL_FIELDS = f"{HEADER_FIELDS} BODY.PEEK[]"

# \Recent is server-managed and rejected by APPEND
UNSETTABLE_FLAGS = {"\\Recent"}

SEQ_RE = re.compile(r"^\s*(\d+)\s+\(")
UID_RE = re.compile(r"(?<![\w-])UID\s+(\d+)")
GM_MSGID_RE = re.compile(r"X-GM-MSGID\s+(\d+)")
GM_THRID_RE = re.compile(r"X-GM-THRID\s+(\d+)")
FLAGS_RE = re.compile(r"(?<![\w.-])FLAGS\s+\(([^)]*)\)")
LABELS_RE = re.compile(r'X-GM-LABELS\s+\(((?:"(?:[^"\\]|\\.)*"|[^()"])*)\)')
INTERNALDATE_RE = re.compile(r'INTERNALDATE\s+"([^"]+)"')
SIZE_RE = re.compile(r"RFC822\.SIZE\s+(\d+)")
HEADER_LITERAL_RE = re.compile(r"BODY\[HEADER\]\s*\{\d+\}\s*$")
BODY_LITERAL_RE = re.compile(r"BODY\[\]\s*\{\d+\}\s*$")
TOKEN_RE = re.compile(r'"((?:[^"\\]|\\.)*)"|([^\s()]+)')


def quote(s: str) -> str:
    """Quote a string for use as an IMAP quoted-string argument."""
    return '"' + s.replace("\\", "\\\\").replace('"', '\\"') + '"'


def parse_list(text: str) -> set[str]:
    """Parse the inside of a parenthesized IMAP list of atoms/quoted strings."""
    items = set()
    for quoted, atom in TOKEN_RE.findall(text):
        if atom:
            items.add(atom)
        else:
            items.add(re.sub(r"\\(.)", r"\1", quoted))
    return items


def format_labels(labels: Iterable[str]) -> str:
    """Render a label set as an X-GM-LABELS list; system labels stay atoms."""
    parts = [
        label if label.startswith("\\") else quote(label)
        for label in sorted(labels)
    ]
    return f"({' '.join(parts)})"


def parse_internaldate(value: str) -> datetime:
    """Parse an IMAP INTERNALDATE string, e.g. ``17-Jul-1996 02:44:25 -0700``."""
    return datetime.strptime(value.strip(), "%d-%b-%Y %H:%M:%S %z")


def parse_address(imapaddr: str | None) -> tuple[str, int]:
    """Split ``host[:port]``, defaulting to Gmail's IMAPS endpoint."""
    if not imapaddr:
        return GMAIL_IMAP_HOST, GMAIL_IMAP_PORT
    host, sep, port = imapaddr.rpartition(":")
    if not sep:
        return imapaddr, GMAIL_IMAP_PORT
    return host, int(port)


@dataclass
class CandidateMessage:
    """A matched source message as seen by one FETCH."""
    uid: str
    seq: int | None
    gm_msgid: str | None
    gm_thrid: str | None
    labels: set[str] = field(default_factory=set)
    flags: set[str] = field(default_factory=set)
    internal_date: datetime | None = None
    size: int = 0
    header: bytes = b""
    body: bytes | None = None

    @property
    def append_flags(self) -> str | None:
        flags = sorted(self.flags - UNSETTABLE_FLAGS)
        return f"({' '.join(flags)})" if flags else None


def parse_fetch(data: list, full: bool = False) -> CandidateMessage:
    """Build a CandidateMessage from an ``imaplib`` UID FETCH response.

    Raises ProtocolError when the response is empty or lacks a field we asked
    for, which means client and server have lost track of each other.
    """
    if not data or data == [None]:
        raise ProtocolError("Unexpected empty data set")

    meta_parts = []
    header = None
    body = None
    for item in data:
        if isinstance(item, tuple):
            meta = item[0].decode("utf-8", errors="replace")
            meta_parts.append(meta)
            if HEADER_LITERAL_RE.search(meta):
                header = item[1]
            elif BODY_LITERAL_RE.search(meta):
                body = item[1]
        elif isinstance(item, bytes):
            meta_parts.append(item.decode("utf-8", errors="replace"))
    meta = " ".join(meta_parts)

    uid = UID_RE.search(meta)
    flags = FLAGS_RE.search(meta)
    internal_date = INTERNALDATE_RE.search(meta)
    if not uid or not flags or not internal_date or header is None:
        raise ProtocolError(f"Unexpectedly short field set: {meta[:200]!r}")
    if full and body is None:
        raise ProtocolError(f"Message body missing from fetch of UID {uid.group(1)}")

    seq = SEQ_RE.search(meta_parts[0])
    msgid = GM_MSGID_RE.search(meta)
    thrid = GM_THRID_RE.search(meta)
    labels = LABELS_RE.search(meta)
    size = SIZE_RE.search(meta)
    return CandidateMessage(
        uid=uid.group(1),
        seq=int(seq.group(1)) if seq else None,
        gm_msgid=msgid.group(1) if msgid else None,
        gm_thrid=thrid.group(1) if thrid else None,
        labels=parse_list(labels.group(1)) if labels else set(),
        flags=set(flags.group(1).split()),
        internal_date=parse_internaldate(internal_date.group(1)),
        size=int(size.group(1)) if size else 0,
        header=header,
        body=body,
    )


class IMAPClient:
    """Base IMAP client with common operations.

    Every command goes through :meth:`_run`, so callers only ever see
    ProtocolError for a failed or refused command.
    """

    def __init__(self, host: str, port: int = 993):
        self.host = host
        self.port = port
        self.user: str | None = None
        self._conn: imaplib.IMAP4 | None = None

    def connect(self, user: str, password: str) -> None:
        """Dial, secure and log in. Port 993 is implicit TLS, others STARTTLS."""
        conn = None
        try:
            if self.port == 993:
                conn = imaplib.IMAP4_SSL(self.host, self.port)
            else:
                conn = imaplib.IMAP4(self.host, self.port)
                if "STARTTLS" in conn.capabilities:
                    conn.starttls()
            conn.login(user, password)
        except (imaplib.IMAP4.error, OSError) as e:
            if conn is not None:
                self._shutdown(conn)
            raise StoreConnectionError(f"Cannot connect to {self.host}:{self.port} as {user}: {e}") from e
        self._conn = conn
        self.user = user

    @staticmethod
    def _shutdown(conn: imaplib.IMAP4) -> None:
        try:
            conn.shutdown()
        except OSError:
            pass

    def logout(self, timeout: float = LOGOUT_TIMEOUT) -> None:
        """Best-effort logout; never raises."""
        if self._conn:
            try:
                self._conn.sock.settimeout(timeout)
                self._conn.logout()
            except (imaplib.IMAP4.error, OSError):
                pass
            self._conn = None

    @property
    def conn(self) -> imaplib.IMAP4:
        if not self._conn:
            raise ProtocolError("Not connected")
        return self._conn

    def _run(self, what: str, func, *args) -> list:
        try:
            typ, data = func(*args)
        except (imaplib.IMAP4.error, OSError) as e:
            raise ProtocolError(f"{what} failed: {e}") from e
        if typ != "OK":
            raise ProtocolError(f"{what} failed: {typ} {data!r}")
        return data

    def select_mailbox(self, mailbox: str, readonly: bool = False) -> int:
        """Select a mailbox, return message count."""
        data = self._run(f"SELECT {mailbox}", self.conn.select, quote(mailbox), readonly)
        return int(data[0]) if data and data[0] else 0

    def search(self, *criteria: str) -> list[str]:
        """UID SEARCH, returning UIDs as strings."""
        data = self._run("SEARCH", self.conn.uid, "SEARCH", None, *criteria)
        if not data or not data[0]:
            return []
        return data[0].decode().split()

    def fetch(self, uid: str, full: bool = False) -> CandidateMessage:
        """Fetch headers and metadata (plus the full message when ``full``)."""
        fields = FULL_FIELDS if full else HEADER_FIELDS
        data = self._run(f"FETCH {uid}", self.conn.uid, "FETCH", uid, f"({fields})")
        return parse_fetch(data, full=full)

    def append(self, mailbox: str, flags: str | None, date: datetime | None, message: bytes) -> None:
        internal_date = imaplib.Time2Internaldate(date) if date else None
        self._run(f"APPEND {mailbox}", self.conn.append, quote(mailbox), flags, internal_date, message)

    def create_mailbox(self, mailbox: str) -> bool:
        """Create a mailbox; False when the server refuses (usually: exists)."""
        try:
            typ, data = self.conn.create(quote(mailbox))
        except (imaplib.IMAP4.error, OSError) as e:
            raise ProtocolError(f"CREATE {mailbox} failed: {e}") from e
        return typ == "OK"

    def copy(self, uids: list[str], mailbox: str) -> None:
        self._run(f"COPY to {mailbox}", self.conn.uid, "COPY", ",".join(uids), quote(mailbox))

    def mark_deleted(self, uids: list[str]) -> None:
        self._run("STORE \\Deleted", self.conn.uid, "STORE", ",".join(uids), "+FLAGS.SILENT", "(\\Deleted)")

    def expunge(self, uids: list[str]) -> None:
        """Expunge only ``uids`` when UIDPLUS is available."""
        if "UIDPLUS" in self.conn.capabilities:
            self._run("UID EXPUNGE", self.conn.uid, "EXPUNGE", ",".join(uids))
        else:
            self._run("EXPUNGE", self.conn.expunge)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.logout()


class GmailClient(IMAPClient):
    """Gmail-specific IMAP client: raw search and label extensions."""

    def __init__(self, host: str = GMAIL_IMAP_HOST, port: int = GMAIL_IMAP_PORT):
        super().__init__(host, port)
        self.all_mail_folder = ALL_MAIL
        self.trash_folder = TRASH

    def search_raw(self, query: str) -> list[str]:
        """Search with Gmail's own query syntax (X-GM-RAW)."""
        if query.isascii():
            return self.search("X-GM-RAW", quote(query))
        # Non-ASCII queries go as a UTF-8 literal
        self.conn.literal = query.encode("utf-8")
        return self.search("CHARSET", "UTF-8", "X-GM-RAW")

    def search_message_id(self, message_id: str) -> list[str]:
        return self.search_raw(f"rfc822msgid:{message_id}")

    def set_labels(self, uids: list[str], labels: Iterable[str]) -> None:
        """Replace the label set of ``uids`` in one STORE."""
        self._run(
            "STORE X-GM-LABELS", self.conn.uid, "STORE", ",".join(uids), "X-GM-LABELS", format_labels(labels),
        )
