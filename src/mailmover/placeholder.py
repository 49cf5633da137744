"""Compose the placeholder left behind in the source mailbox."""

import html
from datetime import datetime

from . import headers

PROGRAM_NAME = "mailmover/1.0"

NOTICE_TEMPLATE = """\
<span style='font-size:larger'><span style='font-size:larger;font-weight:bold'>NOTICE:</span><br/>
<span style='font-weight:bold'>This message was moved to an email archive account via an automated process.</span><br/>
<br/>
At the time of archival, the destination archive account was:<br/>
<span style='font-family:monospace'>{archive_account}</span><br/>
<br/>
If the archive account is a Gmail account, you may be able to locate the
message by searching for this string from within the archive account:<br/>
<span style='font-family:monospace'>rfc822msgid:{message_id}</span><br/>
<br/>
The query used to select this email for archival was:<br/>
<span style='font-family:monospace'>{query}</span><br/>
<br/>
This archival operation occurred at:<br/>
<span style='font-family:monospace'>{timestamp}</span><br/>
<br/>
This email was archived using:<br/>
<span style='font-family:monospace'>{program}</span></span><br/>
"""


def notice_html(
    archive_account: str,
    message_id: str,
    query: str,
    timestamp: datetime,
    program: str = PROGRAM_NAME,
) -> str:
    return NOTICE_TEMPLATE.format(
        archive_account=html.escape(archive_account),
        message_id=html.escape(message_id),
        query=html.escape(query),
        timestamp=html.escape(str(timestamp)),
        program=html.escape(program),
    )


def compose(
    original_header: bytes | str,
    archive_account: str,
    message_id: str,
    query: str,
    timestamp: datetime,
    placeholder_id: str,
    program: str = PROGRAM_NAME,
) -> bytes:
    """Build the full placeholder message (header block plus HTML notice).

    ``message_id`` is the original's Message-ID, quoted in the notice;
    ``placeholder_id`` becomes the placeholder's own Message-ID.
    """
    header = headers.rewrite_for_placeholder(original_header, placeholder_id, message_id)
    body = notice_html(archive_account, message_id, query, timestamp, program)
    body = body.replace("\n", "\r\n")
    return (header + body).encode("utf-8", errors="surrogateescape")
