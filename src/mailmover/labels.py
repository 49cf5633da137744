"""Gmail label helpers and the per-run label cache."""

from typing import Iterable

from .imap import IMAPClient

MARKER_LABEL = "Server/Automated Archival"
SYSTEM_PREFIXES = ("/", "\\")


def is_system_label(label: str) -> bool:
    """System/reserved labels (``\\Inbox``, ``\\Important`` ...) cannot be created."""
    return label.startswith(SYSTEM_PREFIXES)


def user_labels(labels: Iterable[str]) -> set[str]:
    return {label for label in labels if not is_system_label(label)}


def placeholder_labels(labels: Iterable[str]) -> set[str]:
    """Original labels plus the marker label."""
    return set(labels) | {MARKER_LABEL}


class LabelCache:
    """Remembers which labels have had a CREATE issued this run.

    Whether the CREATE succeeded is not tracked: Gmail refuses to create a
    label that already exists, which is the outcome we want anyway.
    """

    def __init__(self, client: IMAPClient):
        self.client = client
        self.created: set[str] = set()

    def ensure_created(self, label: str) -> bool:
        """Issue CREATE for ``label`` once per run. Returns True if issued now."""
        if label in self.created:
            return False
        self.client.create_mailbox(label)
        self.created.add(label)
        return True
