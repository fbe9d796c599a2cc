"""
attachments.py — Attachment Decoder
====================================
Legacy callers send attachment bytes as text plus an encoding tag. Two
families are understood (case-insensitive):

  base64, BASE64, Base64 ...  -> standard base64
  utf-8, utf8, UTF-8, UTF8    -> the text itself, UTF-8 encoded

Anything else is rejected without looking at the buffer. One bad attachment
rejects the whole request.
"""

import base64
import binascii
from dataclasses import dataclass

from spam_relay.errors import AttachmentError
from spam_relay.models import Attachment

BASE64_TAGS = {"base64"}
UTF8_TAGS = {"utf-8", "utf8"}


@dataclass(frozen=True)
class DecodedAttachment:
    filename: str
    content_type: str
    data: bytes

    @property
    def maintype(self) -> str:
        return self.content_type.split("/", 1)[0]

    @property
    def subtype(self) -> str:
        return self.content_type.split("/", 1)[1]


def decode(att: Attachment) -> DecodedAttachment:
    tag = att.encoding.strip().lower()

    if tag in BASE64_TAGS:
        try:
            data = base64.b64decode(att.buffer, validate=True)
        except (binascii.Error, ValueError) as e:
            raise AttachmentError(f"Failed to decode attachment {att.originalname}: {e}") from e
    elif tag in UTF8_TAGS:
        data = att.buffer.encode("utf-8")
    else:
        raise AttachmentError(f"Unsupported attachment encoding: {att.encoding}")

    # Parameters such as "; charset=utf-8" are not part of the type
    essence = att.mimetype.split(";", 1)[0]
    maintype, _, subtype = essence.partition("/")
    maintype, subtype = maintype.strip(), subtype.strip()
    if not maintype or not subtype:
        raise AttachmentError(f"Invalid MIME type for {att.originalname}: '{att.mimetype}'")

    return DecodedAttachment(
        filename=att.originalname,
        content_type=f"{maintype}/{subtype}",
        data=data,
    )


def decode_all(attachments: tuple[Attachment, ...]) -> tuple[DecodedAttachment, ...]:
    return tuple(decode(att) for att in attachments)
