"""
models.py — Legacy Request Model
=================================
Turns a decoded legacy payload (JSON object or flattened form) into an
EmailRequest. Every "list or single?" question about address fields is
answered here, once, so later steps only ever see tuples of AddressField.

Accepted address shapes:
  "a@x.se"                               -> (BareAddress,)
  "a@x.se, Name <b@x.se>"                -> (BareAddress, BareAddress)
  {"name": "Name", "address": "b@x.se"}  -> (NamedAddress,)
  ["a@x.se", {"name": ..., "address": ...}] -> element-wise
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from spam_relay.errors import InvalidRequestError


class EmailTemplate(str, Enum):
    DEFAULT = "default"
    METASPEXET = "metaspexet"
    NONE = "none"


@dataclass(frozen=True)
class BareAddress:
    """A plain string as sent by the caller, possibly in 'Name <address>' form."""
    text: str


@dataclass(frozen=True)
class NamedAddress:
    name: str
    address: str


AddressField = Union[BareAddress, NamedAddress]


@dataclass(frozen=True)
class Attachment:
    originalname: str
    mimetype: str
    buffer: str
    encoding: str = "base64"


@dataclass(frozen=True)
class EmailRequest:
    key: str
    sender: AddressField
    subject: str
    template: EmailTemplate = EmailTemplate.DEFAULT
    reply_to: tuple[AddressField, ...] | None = None
    to: tuple[AddressField, ...] | None = None
    cc: tuple[AddressField, ...] | None = None
    bcc: tuple[AddressField, ...] | None = None
    content: str | None = None
    html: str | None = None
    attachments: tuple[Attachment, ...] = field(default_factory=tuple)


# ── Address fields ────────────────────────────────────────────────────────────

def parse_field(value: Any, field_name: str) -> AddressField:
    """Parse exactly one address field from a string or a name/address object."""
    if isinstance(value, str):
        if not value.strip():
            raise InvalidRequestError(f"'{field_name}' is empty")
        return BareAddress(value.strip())
    if isinstance(value, dict):
        name = value.get("name", "")
        address = value.get("address")
        if not isinstance(address, str) or not address.strip():
            raise InvalidRequestError(f"'{field_name}' object needs an 'address' string")
        if not isinstance(name, str):
            raise InvalidRequestError(f"'{field_name}.name' must be a string")
        return NamedAddress(name=name, address=address.strip())
    raise InvalidRequestError(f"'{field_name}' must be a string or a name/address object")


def parse_collection(value: Any, field_name: str) -> tuple[AddressField, ...] | None:
    """
    Parse an address collection. Returns None when the caller sent nothing
    usable (missing, null, "" or []), which downstream means "no addresses of
    this kind" rather than an error.
    """
    if value is None:
        return None
    if isinstance(value, str):
        segments = [s.strip() for s in value.split(",")] if "," in value else [value.strip()]
        fields = tuple(BareAddress(s) for s in segments if s)
        return fields or None
    if isinstance(value, dict):
        return (parse_field(value, field_name),)
    if isinstance(value, list):
        fields = tuple(
            parse_field(item, f"{field_name}[{i}]") for i, item in enumerate(value)
        )
        return fields or None
    raise InvalidRequestError(f"'{field_name}' must be a string, an object or an array")


# ── Attachments ───────────────────────────────────────────────────────────────

def _parse_attachment(value: Any, position: int) -> Attachment:
    if not isinstance(value, dict):
        raise InvalidRequestError(f"attachments[{position}] must be an object")
    missing = [k for k in ("originalname", "mimetype", "buffer") if not isinstance(value.get(k), str)]
    if missing:
        raise InvalidRequestError(
            f"attachments[{position}] missing string field(s): {', '.join(missing)}"
        )
    encoding = value.get("encoding") or "base64"
    if not isinstance(encoding, str):
        raise InvalidRequestError(f"attachments[{position}].encoding must be a string")
    return Attachment(
        originalname=value["originalname"],
        mimetype=value["mimetype"],
        buffer=value["buffer"],
        encoding=encoding,
    )


def _parse_attachments(payload: dict) -> tuple[Attachment, ...]:
    # Historical callers post the list as "attachments[]"
    raw = payload.get("attachments[]", payload.get("attachments"))
    if raw is None:
        return ()
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, list):
        raise InvalidRequestError("attachments must be an array of objects")
    return tuple(_parse_attachment(item, i) for i, item in enumerate(raw))


# ── Request ───────────────────────────────────────────────────────────────────

def _optional_text(payload: dict, name: str) -> str | None:
    value = payload.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidRequestError(f"'{name}' must be a string")
    return value


def _required_text(payload: dict, name: str) -> str:
    value = _optional_text(payload, name)
    if value is None:
        raise InvalidRequestError(f"missing field '{name}'")
    return value


def _parse_template(value: Any) -> EmailTemplate:
    if value is None or value == "":
        return EmailTemplate.DEFAULT
    try:
        return EmailTemplate(value)
    except ValueError:
        choices = ", ".join(t.value for t in EmailTemplate)
        raise InvalidRequestError(f"unknown template '{value}' (expected one of: {choices})")


def parse_request(payload: Any) -> EmailRequest:
    if not isinstance(payload, dict):
        raise InvalidRequestError("request body must be an object")

    if payload.get("from") is None:
        raise InvalidRequestError("missing field 'from'")

    return EmailRequest(
        key=_required_text(payload, "key"),
        sender=parse_field(payload["from"], "from"),
        subject=_required_text(payload, "subject"),
        template=_parse_template(payload.get("template")),
        reply_to=parse_collection(payload.get("replyTo"), "replyTo"),
        to=parse_collection(payload.get("to"), "to"),
        cc=parse_collection(payload.get("cc"), "cc"),
        bcc=parse_collection(payload.get("bcc"), "bcc"),
        content=_optional_text(payload, "content"),
        html=_optional_text(payload, "html"),
        attachments=_parse_attachments(payload),
    )
