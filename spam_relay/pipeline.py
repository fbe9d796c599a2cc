"""
pipeline.py — Legacy Sendmail Pipeline
=======================================
Executes the processing steps for every legacy send request.
Each step is a rejection point. The provider is the last step and is never
reached after a failure; nothing is retried.

Steps:
1. Parse request payload
2. Domain guard on the sender
3. Normalize from/to/cc/bcc/reply-to
4. Check that html or content is present
5. Decode attachments
6. Hive permission check
7. Resolve content (template, markdown)
8. Assemble message
9. Hand off to transport, return the provider message id

Steps 2-5 are purely local and run before the Hive round trip so malformed
requests never cost an authorization call.
"""

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol

from spam_relay import addresses, attachments, content
from spam_relay.errors import ApiKeyInvalidError, InvalidContentTypeError, RelayError
from spam_relay.message import OutboundMessage, assemble
from spam_relay.models import parse_request
from spam_relay.templates import TemplateRegistry

log = logging.getLogger(__name__)


class Transport(Protocol):
    def send(self, msg: OutboundMessage) -> str: ...


class Stage(str, Enum):
    RECEIVED = "received"
    NORMALIZING = "normalizing"
    AUTHORIZING = "authorizing"
    RENDERING = "rendering"
    DISPATCHING = "dispatching"
    DONE = "done"


@dataclass(frozen=True)
class RelayContext:
    """Built once at startup, shared read-only by every request."""
    templates: TemplateRegistry
    transport: Transport
    authorize: Callable[[str], bool]


@dataclass
class SendResult:
    status: str            # "sent" | "rejected" | "error"
    stage: Stage
    message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    http_status: int = 200
    templated: bool | None = None


def _fail(request_id: str, stage: Stage, error: RelayError) -> SendResult:
    if error.is_client_error:
        log.warning(f"[{request_id}] Request rejected at {stage.value} [{error.code}]: {error.message}")
    else:
        log.error(f"[{request_id}] Request failed at {stage.value} [{error.code}]: {error.message}")
    return SendResult(
        status="rejected" if error.is_client_error else "error",
        stage=stage,
        error_code=error.code,
        error_message=error.message,
        http_status=error.status_code,
    )


def process(payload: Any, ctx: RelayContext) -> SendResult:
    """
    payload is the decoded JSON object or flattened form, or None when the
    body could not be read as either.
    """
    request_id = uuid.uuid4().hex[:12]
    stage = Stage.RECEIVED

    try:
        # ── Step 1: Parse request ─────────────────────────────────────────────
        if payload is None:
            raise InvalidContentTypeError()
        req = parse_request(payload)
        log.info(f"[{request_id}] Legacy sendmail, template={req.template.value} "
                 f"attachments={len(req.attachments)}")

        stage = Stage.NORMALIZING

        # ── Step 2: Domain guard ──────────────────────────────────────────────
        addresses.guard_domain(req.sender)
        envelope_from = addresses.sender_address(req.sender)

        # ── Step 3: Normalize addresses ───────────────────────────────────────
        sender = addresses.normalize(req.sender, "from")
        to = addresses.normalize_all(req.to, "to")
        cc = addresses.normalize_all(req.cc, "cc")
        bcc = addresses.normalize_all(req.bcc, "bcc")
        reply_to = addresses.normalize_all(req.reply_to, "replyTo")
        envelope_to = addresses.envelope_all(req.to, req.cc, req.bcc)

        # ── Step 4: Content present ───────────────────────────────────────────
        content.require_content(req)

        # ── Step 5: Decode attachments ────────────────────────────────────────
        decoded = attachments.decode_all(req.attachments)

        # ── Step 6: Hive permission check ─────────────────────────────────────
        stage = Stage.AUTHORIZING
        if not ctx.authorize(req.key):
            raise ApiKeyInvalidError()

        # ── Step 7: Resolve content ───────────────────────────────────────────
        stage = Stage.RENDERING
        outcome = content.resolve(req, ctx.templates)
        if outcome.fallback_used:
            log.warning(f"[{request_id}] Template '{req.template.value}' skipped: {outcome.fallback_reason}")

        # ── Step 8: Assemble ──────────────────────────────────────────────────
        msg = assemble(
            sender=sender,
            subject=req.subject,
            body=outcome.body,
            to=to,
            cc=cc,
            bcc=bcc,
            reply_to=reply_to,
            attachments=decoded,
            envelope_from=envelope_from,
            envelope_to=envelope_to,
        )

        # ── Step 9: Hand off to transport ─────────────────────────────────────
        stage = Stage.DISPATCHING
        message_id = ctx.transport.send(msg)

    except RelayError as e:
        return _fail(request_id, stage, e)

    log.info(f"[{request_id}] Sent, message_id={message_id} recipients={len(msg.envelope_to)}")
    return SendResult(
        status="sent",
        stage=Stage.DONE,
        message_id=message_id,
        templated=outcome.templated,
    )
