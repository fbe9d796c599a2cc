"""
message.py — Message Assembler
===============================
Pure data step: normalized addresses + resolved body + decoded attachments
in, one OutboundMessage out. The transport layer speaks only OutboundMessage.

Header fields (sender, to, cc, reply_to) hold display forms. The SMTP
envelope travels separately as bare addresses in envelope_from/envelope_to,
so a quoted name like "Doe, John" can never become a recipient.
"""

import logging
from dataclasses import dataclass, field

from spam_relay.attachments import DecodedAttachment

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutboundMessage:
    """Provider-agnostic message envelope. All addresses are header-safe ASCII."""
    sender: str
    subject: str
    html_body: str
    to: tuple[str, ...] = ()
    cc: tuple[str, ...] = ()
    bcc: tuple[str, ...] = ()
    reply_to: tuple[str, ...] = ()
    attachments: tuple[DecodedAttachment, ...] = field(default_factory=tuple)
    envelope_from: str = ""
    envelope_to: tuple[str, ...] = ()


def assemble(
    *,
    sender: str,
    subject: str,
    body: str,
    to: tuple[str, ...] = (),
    cc: tuple[str, ...] = (),
    bcc: tuple[str, ...] = (),
    reply_to: tuple[str, ...] = (),
    attachments: tuple[DecodedAttachment, ...] = (),
    envelope_from: str = "",
    envelope_to: tuple[str, ...] = (),
) -> OutboundMessage:
    # Only one reply-to address is carried through
    if len(reply_to) > 1:
        log.warning(f"Dropping {len(reply_to) - 1} extra reply-to address(es), keeping {reply_to[0]}")

    return OutboundMessage(
        sender=sender,
        subject=subject,
        html_body=body,
        to=tuple(to),
        cc=tuple(cc),
        bcc=tuple(bcc),
        reply_to=tuple(reply_to[:1]),
        attachments=tuple(attachments),
        envelope_from=envelope_from,
        envelope_to=tuple(envelope_to),
    )
