"""Shared fixtures: an in-memory Gmail store and message builders."""

from datetime import datetime, timezone

import pytest

from mailmover import headers
from mailmover.config import AccountConfig, MoverConfig
from mailmover.errors import ProtocolError
from mailmover.imap import ALL_MAIL, TRASH, CandidateMessage

DATE = datetime(2015, 3, 14, 9, 26, 53, tzinfo=timezone.utc)


def make_raw(
    subject: str | None = "Invoice",
    message_id: str | None = "<abc@x>",
    extra: str = "",
    body: str = "Please find the invoice attached.",
) -> bytes:
    lines = ["From: Billing <billing@example.com>", "To: me@example.com"]
    if subject is not None:
        lines.append(f"Subject: {subject}")
    if message_id is not None:
        lines.append(f"Message-ID: {message_id}")
    lines.append("Content-Type: text/plain; charset=us-ascii")
    if extra:
        lines.append(extra)
    return ("\r\n".join(lines) + "\r\n\r\n" + body + "\r\n").encode()


class StoredMessage:
    def __init__(self, uid: str, raw: bytes, flags=(), labels=(), date=DATE):
        self.uid = uid
        self.raw = raw
        self.flags = set(flags)
        self.labels = set(labels)
        self.date = date

    @property
    def header(self) -> bytes:
        head, _, _ = self.raw.partition(b"\r\n\r\n")
        return head + b"\r\n\r\n"

    @property
    def message_id(self) -> str | None:
        return headers.message_id(self.header)


class FakeGmail:
    """In-memory stand-in for GmailClient with Gmail's Trash semantics."""

    def __init__(self, host: str = "imap.gmail.com", port: int = 993):
        self.host = host
        self.port = port
        self.user = None
        self.mailboxes: dict[str, dict[str, StoredMessage]] = {ALL_MAIL: {}, TRASH: {}}
        self.selected = None
        self.readonly = None
        self.next_uid = 1
        self.mutations: list[tuple] = []
        self.created: list[str] = []
        self.logged_out = False
        self.searchable = True  # False simulates search-index lag
        self.copy_lands = True
        self.hide_placeholders = False  # placeholders never show up in Message-ID searches
        self.fail_on: set[str] = set()

    def _fail(self, op: str) -> None:
        if op in self.fail_on:
            raise ProtocolError(f"{op} failed")

    def add(self, raw: bytes, flags=(), labels=(), mailbox: str = ALL_MAIL) -> str:
        uid = str(self.next_uid)
        self.next_uid += 1
        self.mailboxes[mailbox][uid] = StoredMessage(uid, raw, flags, labels)
        return uid

    def messages(self, mailbox: str = ALL_MAIL) -> list[StoredMessage]:
        return list(self.mailboxes[mailbox].values())

    def connect(self, user: str, password: str) -> None:
        self._fail("connect")
        self.user = user

    def logout(self, timeout: float = 30.0) -> None:
        self.logged_out = True

    def select_mailbox(self, mailbox: str, readonly: bool = False) -> int:
        self._fail("select")
        self.selected = mailbox
        self.readonly = readonly
        return len(self.mailboxes[mailbox])

    def search_raw(self, query: str) -> list[str]:
        self._fail("search")
        box = self.mailboxes[self.selected]
        if query.startswith("rfc822msgid:"):
            if not self.searchable:
                return []
            wanted = query.partition(":")[2]
            return [
                uid for uid, m in box.items()
                if m.message_id == wanted and not (self.hide_placeholders and headers.is_placeholder(m.header))
            ]
        return list(box)

    def search_message_id(self, message_id: str) -> list[str]:
        return self.search_raw(f"rfc822msgid:{message_id}")

    def fetch(self, uid: str, full: bool = False) -> CandidateMessage:
        self._fail("fetch")
        m = self.mailboxes[self.selected].get(uid)
        if m is None:
            raise ProtocolError("Unexpected empty data set")
        return CandidateMessage(
            uid=uid,
            seq=int(uid),
            gm_msgid=f"1{uid:0>5}",
            gm_thrid=f"2{uid:0>5}",
            labels=set(m.labels),
            flags=set(m.flags),
            internal_date=m.date,
            size=len(m.raw),
            header=m.header,
            body=m.raw if full else None,
        )

    def append(self, mailbox, flags, date, message) -> None:
        self._fail("append")
        self.mutations.append(("append", mailbox))
        flag_set = set(flags.strip("()").split()) if flags else set()
        uid = self.add(message, flags=flag_set, mailbox=mailbox)
        self.mailboxes[mailbox][uid].date = date

    def create_mailbox(self, mailbox: str) -> bool:
        self.mutations.append(("create", mailbox))
        self.created.append(mailbox)
        return True

    def copy(self, uids, mailbox) -> None:
        self._fail("copy")
        self.mutations.append(("copy", tuple(uids), mailbox))
        box = self.mailboxes[self.selected]
        for uid in uids:
            m = box[uid]
            if mailbox == TRASH:
                # Gmail: putting a message in Trash removes it from All Mail
                del box[uid]
            if self.copy_lands:
                self.add(m.raw, m.flags, m.labels, mailbox=mailbox)

    def mark_deleted(self, uids) -> None:
        self.mutations.append(("delete", tuple(uids)))
        for uid in uids:
            self.mailboxes[self.selected][uid].flags.add("\\Deleted")

    def expunge(self, uids) -> None:
        self.mutations.append(("expunge", tuple(uids)))
        box = self.mailboxes[self.selected]
        for uid in uids:
            if "\\Deleted" in box[uid].flags:
                del box[uid]

    def set_labels(self, uids, labels) -> None:
        self._fail("set_labels")
        self.mutations.append(("labels", tuple(uids)))
        for uid in uids:
            self.mailboxes[self.selected][uid].labels = set(labels)


@pytest.fixture
def source():
    return FakeGmail()


@pytest.fixture
def archive():
    return FakeGmail()


@pytest.fixture
def factory(source, archive):
    """client_factory handing out the source store first, then the archive."""
    clients = iter([source, archive])
    return lambda host, port: next(clients)


@pytest.fixture
def config():
    return MoverConfig(
        main=AccountConfig("me@example.com", "secret", "imap.gmail.com"),
        archive=AccountConfig("archive@example.com", "secret2", "imap.gmail.com"),
        query="older_than:2y",
        max_messages=10,
    )


@pytest.fixture
def clock():
    return lambda: datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
