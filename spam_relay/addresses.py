"""
addresses.py — Address Normalizer + Domain Guard
=================================================
The provider only accepts header-safe ASCII. Legacy callers send display
names in whatever script they like, so non-ASCII names are re-encoded as an
RFC 2047 encoded word:

    "åäö <sender@datasektionen.se>"  ->  "=?UTF-8?B?w6XDpMO2?= <sender@datasektionen.se>"

The address part itself is never re-encoded. A non-ASCII address is a hard
failure.

The SMTP envelope is built from the same fields (envelope_addresses), never
from the header strings, and the sender must name exactly one address.
"""

import base64
import logging
import re
from email.utils import formataddr, getaddresses

from spam_relay.errors import InvalidEmailDomainError, NotAsciiError
from spam_relay.models import AddressField, NamedAddress

log = logging.getLogger(__name__)

# Domains the provider has verified ownership of
VERIFIED_DOMAINS = frozenset({
    "metaspexet.se",
    "datasektionen.se",
    "ddagen.se",
})

NAME_ADDR = re.compile(r"^\s*(?P<name>.*?)\s*<(?P<address>[^<>]*)>\s*$", re.DOTALL)


def encode_word(text: str) -> str:
    payload = base64.b64encode(text.encode("utf-8")).decode("ascii")
    return f"=?UTF-8?B?{payload}?="


def _combine(name: str, address: str, label: str) -> str:
    if not address.isascii():
        raise NotAsciiError(f"{label}: address '{address}'")
    name = name.strip()
    if not name:
        return address
    if not name.isascii():
        return f"{encode_word(name)} <{address}>"
    # Quotes names holding specials, e.g. "Doe, John"
    return formataddr((name, address))


def normalize(field: AddressField, label: str = "address") -> str:
    """Return the ASCII-safe header form of one address field."""
    if isinstance(field, NamedAddress):
        return _combine(field.name, field.address.strip(), label)

    if field.text.isascii():
        return field.text

    match = NAME_ADDR.match(field.text)
    if not match:
        raise NotAsciiError(f"{label}: '{field.text}'")
    return _combine(match.group("name"), match.group("address").strip(), label)


def normalize_all(fields: tuple[AddressField, ...] | None, field_name: str) -> tuple[str, ...]:
    """
    Normalize a whole collection, order preserved. Stops at the first bad
    element; nothing is partially accepted.
    """
    if not fields:
        return ()
    return tuple(
        normalize(f, f"{field_name}[{i}]") for i, f in enumerate(fields)
    )


# ── Envelope ─────────────────────────────────────────────────────────────────
# SMTP gets bare addresses taken from the request fields, never re-parsed
# out of the header strings built above.

def envelope_addresses(field: AddressField) -> tuple[str, ...]:
    text = field.address if isinstance(field, NamedAddress) else field.text
    return tuple(addr for _, addr in getaddresses([text]) if addr)


def envelope_all(*collections: tuple[AddressField, ...] | None) -> tuple[str, ...]:
    return tuple(
        addr
        for fields in collections if fields
        for field in fields
        for addr in envelope_addresses(field)
    )


def sender_address(sender: AddressField) -> str:
    """The one bare address the sender field names."""
    found = envelope_addresses(sender)
    if not found:
        raise InvalidEmailDomainError("missing domain")
    if len(found) > 1:
        raise InvalidEmailDomainError(f"expected one sender address, got {len(found)}")
    return found[0]


def guard_domain(sender: AddressField) -> str:
    """Return the sender's domain if it is one we may send from."""
    address = sender_address(sender)
    _, at, domain = address.rpartition("@")
    if not at or not domain:
        raise InvalidEmailDomainError("missing domain")
    if domain not in VERIFIED_DOMAINS:
        raise InvalidEmailDomainError(domain)
    log.debug(f"Sender domain accepted: {domain}")
    return domain
