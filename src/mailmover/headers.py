"""Textual header-block manipulation.

Headers are handled as raw text rather than parsed with :mod:`email`, so the
header block of the original message survives into the placeholder unchanged
apart from the lines we rewrite.
"""

import re

MARKER_HEADER = "X-Mail-Mover-Placeholder"
# Written by earlier archival tools that used the same marker label
LEGACY_MARKER_HEADERS = ("X-SCJMAILARCHIVE",)
ORIGINAL_ID_HEADER = "X-Mail-Mover-Original-Message-ID"
PLACEHOLDER_CONTENT_TYPE = "text/html; charset=UTF-8"

_MARKER_NAMES = "|".join(re.escape(name) for name in (MARKER_HEADER, *LEGACY_MARKER_HEADERS))
MARKER_RE = re.compile(rf"^(?:{_MARKER_NAMES}):", re.IGNORECASE | re.MULTILINE)
MESSAGE_ID_RE = re.compile(r"^Message-ID:[ \t]*(?:\r?\n[ \t]+)?(\S+)", re.IGNORECASE | re.MULTILINE)
SUBJECT_RE = re.compile(r"^Subject:[ \t]*(?:\r?\n[ \t]+)?(\S[^\r\n]*)", re.IGNORECASE | re.MULTILINE)


def _header_re(name: str) -> re.Pattern:
    """Match a header line plus any folded continuation lines."""
    return re.compile(
        rf"^{re.escape(name)}:[^\r\n]*(?:\r?\n[ \t][^\r\n]*)*(?:\r?\n)?",
        re.IGNORECASE | re.MULTILINE,
    )


CONTENT_TYPE_RE = _header_re("Content-Type")


def to_text(header: bytes | str, errors: str = "replace") -> str:
    if isinstance(header, bytes):
        return header.decode("utf-8", errors=errors)
    return header


def is_placeholder(header: bytes | str) -> bool:
    return bool(MARKER_RE.search(to_text(header)))


def message_id(header: bytes | str) -> str | None:
    """Return the Message-ID value, or None when absent or empty."""
    m = MESSAGE_ID_RE.search(to_text(header))
    return m.group(1) if m else None


def subject(header: bytes | str) -> str | None:
    m = SUBJECT_RE.search(to_text(header))
    return m.group(1).strip() if m else None


def header_body_split(header: str) -> tuple[str, str]:
    """Split off the blank line terminating a header block.

    Returns (headers, terminator) where headers ends with a line break.
    """
    if not header.strip():
        return "", "\r\n"
    m = re.search(r"(\r?\n)(\r?\n)\s*\Z", header)
    if m:
        return header[: m.start(2)], header[m.start(2):]
    if not header.endswith("\n"):
        header += "\r\n"
    return header, "\r\n"


def remove_header(header: str, name: str) -> str:
    return _header_re(name).sub("", header)


def set_header(header: str, name: str, value: str) -> str:
    """Replace every occurrence of ``name`` (folded or not) with one line."""
    headers, terminator = header_body_split(remove_header(header, name))
    return f"{headers}{name}: {value}\r\n{terminator}"


def rewrite_for_placeholder(header: bytes | str, new_message_id: str, original_id: str) -> str:
    """Turn an original header block into a placeholder header block.

    Content-Type is forced to HTML, the marker header is injected, and the
    Message-ID is replaced so the placeholder has its own identity. Each of
    these headers appears exactly once in the result. The original transfer
    encoding no longer describes the new body, so it is dropped.

    Bytes are decoded with ``surrogateescape`` so lines that are not rewritten
    keep their exact 8-bit content once encoded back the same way.
    """
    text = to_text(header, errors="surrogateescape")
    for name in ("Content-Transfer-Encoding", MARKER_HEADER, ORIGINAL_ID_HEADER):
        text = remove_header(text, name)
    text = CONTENT_TYPE_RE.sub("", text)
    text = set_header(text, "Message-ID", new_message_id)
    text = set_header(text, "Content-Type", PLACEHOLDER_CONTENT_TYPE)
    text = set_header(text, MARKER_HEADER, "true")
    text = set_header(text, ORIGINAL_ID_HEADER, original_id)
    return text
