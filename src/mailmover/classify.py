"""Decide whether a candidate message may be migrated."""

from enum import Enum

from . import headers
from .imap import CandidateMessage


class Classification(Enum):
    ACCEPTED = "accepted"
    SKIP_PLACEHOLDER = "placeholder"
    SKIP_NO_MESSAGE_ID = "no_message_id"
    SKIP_NO_SUBJECT = "no_subject"

    @property
    def skipped(self) -> bool:
        return self is not Classification.ACCEPTED

    @property
    def reason(self) -> str:
        return {
            Classification.ACCEPTED: "accepted",
            Classification.SKIP_PLACEHOLDER: "it is a placeholder message",
            Classification.SKIP_NO_MESSAGE_ID: "it is missing a valid Message-ID header",
            Classification.SKIP_NO_SUBJECT: "it is missing a valid Subject header",
        }[self]


def classify(candidate: CandidateMessage, require_subject: bool = True) -> Classification:
    """Classify a candidate from its header block.

    Placeholders are checked first so a placeholder is never re-archived,
    whatever else is wrong with it.
    """
    header = candidate.header
    if headers.is_placeholder(header):
        return Classification.SKIP_PLACEHOLDER
    if not headers.message_id(header):
        return Classification.SKIP_NO_MESSAGE_ID
    if require_subject and not headers.subject(header):
        return Classification.SKIP_NO_SUBJECT
    return Classification.ACCEPTED
