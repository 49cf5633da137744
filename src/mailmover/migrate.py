"""Move messages from the main account to the archive account.

Each message is carried through the whole pipeline before the next is
started:

    fetch headers -> classify -> fetch body -> append to archive
    -> locate in archive -> label -> trash + purge original
    -> insert placeholder

The two stores share no transaction, so ordering is what keeps this safe: the
original is only deleted once its copy can be found in the archive by
Message-ID, and the placeholder carries a marker that stops it from ever being
selected again.
"""

from dataclasses import dataclass, field
from datetime import datetime
from email.utils import make_msgid
from typing import Callable

from . import headers
from .classify import Classification, classify
from .config import MoverConfig
from .errors import DataIntegrityError, ProtocolError
from .imap import ALL_MAIL, TRASH, CandidateMessage, GmailClient
from .labels import MARKER_LABEL, LabelCache, placeholder_labels, user_labels
from .placeholder import PROGRAM_NAME, compose

ProgressCallback = Callable[[CandidateMessage | None, str, str | None], None]


@dataclass
class MigrationStats:
    """Track migration progress."""
    matched: int = 0
    limit: int = 0
    processed: int = 0
    migrated: int = 0
    would_migrate: int = 0
    skipped_placeholder: int = 0
    skipped_no_message_id: int = 0
    skipped_no_subject: int = 0
    unverified: int = 0
    labels_created: int = 0
    migrated_ids: list[str] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return self.skipped_placeholder + self.skipped_no_message_id + self.skipped_no_subject

    def count_skip(self, verdict: Classification) -> None:
        attr = f"skipped_{verdict.value}"
        setattr(self, attr, getattr(self, attr) + 1)


@dataclass
class RunState:
    """State that lives for exactly one run."""
    labels: LabelCache
    source_labels: LabelCache
    stats: MigrationStats = field(default_factory=MigrationStats)


def _default_clock() -> datetime:
    return datetime.now().astimezone()


class EmailMigrator:
    """Migrate matching messages from the main account to the archive account."""

    def __init__(
        self,
        config: MoverConfig,
        client_factory: Callable[[str, int], GmailClient] = GmailClient,
        clock: Callable[[], datetime] = _default_clock,
        program: str = PROGRAM_NAME,
    ):
        self.config = config
        self.client_factory = client_factory
        self.clock = clock
        self.program = program
        self._main: GmailClient | None = None
        self._archive: GmailClient | None = None
        self.state: RunState | None = None

    def connect(self) -> None:
        """Connect to both accounts. Nothing is modified until both succeed."""
        main, archive = self.config.main, self.config.archive
        self._main = self.client_factory(main.host, main.port)
        self._main.connect(main.username, main.password)
        self._archive = self.client_factory(archive.host, archive.port)
        self._archive.connect(archive.username, archive.password)

    def disconnect(self) -> None:
        """Log out of both accounts (best effort)."""
        if self._main:
            self._main.logout()
        if self._archive:
            self._archive.logout()

    @property
    def main(self) -> GmailClient:
        if not self._main:
            raise ProtocolError("Not connected to main account")
        return self._main

    @property
    def archive(self) -> GmailClient:
        if not self._archive:
            raise ProtocolError("Not connected to archive account")
        return self._archive

    def run(self, progress_callback: ProgressCallback | None = None) -> MigrationStats:
        """Run the migration.

        ProtocolError and DataIntegrityError abort the whole run; skipped
        messages are only counted.
        """
        def notify(candidate: CandidateMessage | None, status: str, detail: str | None = None) -> None:
            if progress_callback:
                progress_callback(candidate, status, detail)

        self.state = state = RunState(LabelCache(self.archive), LabelCache(self.main))
        stats = state.stats
        dry_run = self.config.dry_run

        self.main.select_mailbox(ALL_MAIL, readonly=dry_run)
        self.archive.select_mailbox(ALL_MAIL, readonly=dry_run)

        notify(None, "searching", self.config.query)
        uids = self.main.search_raw(self.config.query)
        stats.matched = len(uids)
        stats.limit = min(stats.matched, self.config.max_messages)
        if not uids:
            notify(None, "no_matches")
            return stats
        notify(None, "matched", str(stats.matched))
        if stats.limit < stats.matched:
            notify(None, "limited", str(stats.limit))

        for index, uid in enumerate(uids[:stats.limit], 1):
            notify(None, "fetching", f"message {index} of {stats.limit}")
            self._process(uid, state, notify)

        return stats

    def _process(self, uid: str, state: RunState, notify) -> None:
        stats = state.stats
        candidate = self.main.fetch(uid)
        stats.processed += 1

        verdict = classify(candidate, require_subject=self.config.require_subject)
        if verdict.skipped:
            stats.count_skip(verdict)
            notify(candidate, f"skipped:{verdict.value}", verdict.reason)
            return

        message_id = headers.message_id(candidate.header)
        if self.config.dry_run:
            stats.would_migrate += 1
            notify(candidate, "would_migrate")
            return

        notify(candidate, "downloading")
        candidate = self.main.fetch(uid, full=True)

        notify(candidate, "uploading", self.archive.user)
        self.archive.append(ALL_MAIL, candidate.append_flags, candidate.internal_date, candidate.body)

        notify(candidate, "locating", self.archive.user)
        archived = self.archive.search_message_id(message_id)
        if not archived:
            # Never delete the original without a copy we can find
            stats.unverified += 1
            notify(candidate, "unverified", message_id)
            return

        self._label_archived(candidate, archived, state, notify)
        self._purge_original(candidate, message_id, notify)
        self._insert_placeholder(candidate, message_id, state, notify)

        stats.migrated += 1
        stats.migrated_ids.append(message_id)
        notify(candidate, "migrated", message_id)

    def _label_archived(self, candidate: CandidateMessage, archived: list[str], state: RunState, notify) -> None:
        for label in sorted(user_labels(candidate.labels)):
            if state.labels.ensure_created(label):
                state.stats.labels_created += 1
                notify(candidate, "label_created", label)
        if candidate.labels:
            notify(candidate, "labeling", self.archive.user)
            self.archive.set_labels(archived, candidate.labels)

    def _purge_original(self, candidate: CandidateMessage, message_id: str, notify) -> None:
        """Move the original to Trash, then delete it from there for good."""
        notify(candidate, "removing", self.main.user)
        self.main.copy([candidate.uid], TRASH)
        self.main.select_mailbox(TRASH)
        trashed = self.main.search_message_id(message_id)
        if not trashed:
            raise DataIntegrityError(f"Message {message_id} not found in {TRASH} after moving it there")
        self.main.mark_deleted(trashed)
        self.main.expunge(trashed)
        self.main.select_mailbox(ALL_MAIL)

    def _insert_placeholder(self, candidate: CandidateMessage, message_id: str, state: RunState, notify) -> None:
        notify(candidate, "placeholder", self.main.user)
        archive_user = self.config.archive.username
        placeholder_id = make_msgid("mailmover", domain=archive_user.rpartition("@")[2] or None)
        message = compose(
            candidate.header,
            archive_user,
            message_id,
            self.config.query,
            self.clock(),
            placeholder_id,
            program=self.program,
        )
        self.main.append(ALL_MAIL, candidate.append_flags, candidate.internal_date, message)
        found = self.main.search_message_id(placeholder_id)
        if not found:
            raise DataIntegrityError(f"Placeholder {placeholder_id} not found after inserting it")
        state.source_labels.ensure_created(MARKER_LABEL)
        self.main.set_labels(found, placeholder_labels(candidate.labels))

    def __enter__(self):
        try:
            self.connect()
        except Exception:
            self.disconnect()
            raise
        return self

    def __exit__(self, *args):
        self.disconnect()
