"""
transport.py — Email Transport Layer
=====================================
This is the ONLY file that knows about SMTP (or any delivery mechanism).
Everything above this layer speaks OutboundMessage and gets a message id back.

In production this points at the provider's SMTP interface (e.g. the SES SMTP
endpoint with STARTTLS and SMTP credentials). The provider only accepts mail
from verified domains, which addresses.guard_domain checks before we get here.

Configuration (environment variables, read once at startup):
  SMTP_HOST      — SMTP server hostname (default: localhost; empty = console fallback)
  SMTP_PORT      — SMTP port (default: 1025 for MailHog, 587 for real SMTP)
  SMTP_USER      — Username for SMTP auth (optional, leave empty for MailHog)
  SMTP_PASSWORD  — Password for SMTP auth (optional, leave empty for MailHog)
  SMTP_USE_TLS   — Use STARTTLS (default: false, set true for real SMTP)
  SMTP_TIMEOUT   — Socket timeout in seconds (default: 10)
"""

import os
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import make_msgid

from spam_relay.errors import EmailBodyError, EmailSendError
from spam_relay.message import OutboundMessage

log = logging.getLogger(__name__)


def _to_bool(value: str) -> bool:
    return value.strip().lower() in {"true", "1", "yes", "on"}


@dataclass(frozen=True)
class SmtpTransport:
    host: str = 'localhost'
    port: int = 1025
    user: str = ''
    password: str = ''
    use_tls: bool = False
    timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "SmtpTransport":
        return cls(
            host=os.environ.get('SMTP_HOST', 'localhost'),
            port=int(os.environ.get('SMTP_PORT', '1025')),
            user=os.environ.get('SMTP_USER', ''),
            password=os.environ.get('SMTP_PASSWORD', ''),
            use_tls=_to_bool(os.environ.get('SMTP_USE_TLS', 'false')),
            timeout=float(os.environ.get('SMTP_TIMEOUT', '10')),
        )

    # ── MIME ─────────────────────────────────────────────────────────────────

    def build_mime(self, msg: OutboundMessage, message_id: str) -> EmailMessage:
        """Single HTML part plus attachments. Bcc never becomes a header."""
        mime = EmailMessage()
        try:
            mime['Subject'] = msg.subject
            mime['From'] = msg.sender
            if msg.to:
                mime['To'] = ", ".join(msg.to)
            if msg.cc:
                mime['Cc'] = ", ".join(msg.cc)
            if msg.reply_to:
                mime['Reply-To'] = ", ".join(msg.reply_to)
            mime['Message-ID'] = message_id

            mime.set_content(msg.html_body, subtype='html', charset='utf-8', cte='quoted-printable')
            for att in msg.attachments:
                mime.add_attachment(
                    att.data,
                    maintype=att.maintype,
                    subtype=att.subtype,
                    filename=att.filename,
                )
        except (ValueError, TypeError) as e:
            raise EmailBodyError(str(e)) from e
        return mime

    # ── Delivery ─────────────────────────────────────────────────────────────

    def send(self, msg: OutboundMessage) -> str:
        """
        Public interface. Pipeline calls this.
        Returns the message id, raises EmailSendError/EmailBodyError.
        """
        envelope_from = msg.envelope_from
        envelope_to = list(msg.envelope_to)
        if not envelope_to:
            raise EmailSendError("no recipients in to, cc or bcc")

        message_id = make_msgid(domain=envelope_from.rpartition('@')[2] or None)
        mime = self.build_mime(msg, message_id)
        bare_id = message_id.strip('<>')

        if not self.host:
            log.warning(f"[{bare_id}] SMTP_HOST not set, falling back to console output")
            self._console_fallback(msg, bare_id)
            return bare_id

        try:
            log.info(f"[{bare_id}] Connecting to SMTP {self.host}:{self.port}")
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                    log.info(f"[{bare_id}] STARTTLS enabled")
                if self.user and self.password:
                    server.login(self.user, self.password)
                    log.info(f"[{bare_id}] Authenticated as {self.user}")

                refused = server.send_message(mime, from_addr=envelope_from, to_addrs=envelope_to)

        except smtplib.SMTPException as e:
            log.error(f"[{bare_id}] SMTP error: {e}")
            raise EmailSendError(f"Email failed to send: {e}") from e
        except OSError as e:
            log.error(f"[{bare_id}] Connection failed to {self.host}:{self.port}: {e}")
            raise EmailSendError(f"Connection failed: {e}") from e

        if refused:
            log.warning(f"[{bare_id}] Recipients refused: {', '.join(refused)}")
        log.info(f"[{bare_id}] Delivered: from={envelope_from} recipients={len(envelope_to)} "
                 f"attachments={len(msg.attachments)} subject='{msg.subject}'")
        return bare_id

    def _console_fallback(self, msg: OutboundMessage, message_id: str) -> None:
        """Development aid when no SMTP server is configured."""
        log.info("=" * 60)
        log.info("EMAIL (console fallback, no SMTP configured)")
        log.info(f"  message_id : {message_id}")
        log.info(f"  from       : {msg.sender}")
        log.info(f"  to         : {', '.join(msg.to) or '-'}")
        log.info(f"  cc         : {', '.join(msg.cc) or '-'}")
        log.info(f"  bcc        : {', '.join(msg.bcc) or '-'}")
        log.info(f"  subject    : {msg.subject}")
        log.info(f"  body       : {msg.html_body[:300]}{'...' if len(msg.html_body) > 300 else ''}")
        log.info("=" * 60)

    def summary(self) -> dict:
        """Current SMTP config for the health endpoint."""
        return {
            "host": self.host or "(not set, console fallback)",
            "port": self.port,
            "auth": bool(self.user),
            "tls":  self.use_tls,
            "mode": "smtp" if self.host else "console",
        }
