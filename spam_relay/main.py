"""
Spam Relay
==========
Language  : Python
Framework : Flask + Gunicorn

Accepts the legacy sendmail payload, authorizes it against Hive and relays it
through the email provider. One endpoint does the work:

  POST /api/legacy/sendmail   — JSON or form encoded, see models.py
  GET  /health                — liveness and configuration summary

Layers:
  models.py / addresses.py / content.py / attachments.py — request normalization
  templates.py — named layouts, loaded once at startup
  auth.py      — Hive permission check
  transport.py — SMTP delivery
  pipeline.py  — step-by-step processing

Run with `spam-relay` (Flask dev server) or
`gunicorn "spam_relay.main:create_app()"`.
"""

import os
import logging
from flask import Flask, Response, jsonify, request

from spam_relay import addresses, auth, pipeline
from spam_relay.templates import TemplateRegistry
from spam_relay.transport import SmtpTransport


def _log_level(name: str) -> str:
    return name if isinstance(logging.getLevelName(name), int) else 'INFO'


LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

logging.basicConfig(
    level=_log_level(LOG_LEVEL),
    format='%(asctime)s [spam-relay] %(levelname)s %(message)s'
)
log = logging.getLogger(__name__)

if _log_level(LOG_LEVEL) != LOG_LEVEL:
    log.warning(f"Invalid LOG_LEVEL {LOG_LEVEL!r}, using INFO")

FORM_MIMETYPES = {'application/x-www-form-urlencoded', 'multipart/form-data'}


def _read_payload():
    """Decoded body, or None when it is neither JSON nor a form."""
    if request.is_json:
        return request.get_json(silent=True)
    if request.mimetype in FORM_MIMETYPES:
        # Repeated keys (to=a&to=b) become lists, single keys stay strings
        return {
            key: values[0] if len(values) == 1 else values
            for key, values in request.form.lists()
        }
    return None


def build_context() -> pipeline.RelayContext:
    return pipeline.RelayContext(
        templates=TemplateRegistry.load(),
        transport=SmtpTransport.from_env(),
        authorize=auth.check_permission,
    )


def create_app(ctx: pipeline.RelayContext | None = None) -> Flask:
    ctx = ctx or build_context()
    app = Flask(__name__)

    @app.route('/health')
    def health():
        summary = getattr(ctx.transport, 'summary', None)
        return jsonify({
            "status": "healthy",
            "service": "spam-relay",
            "templates": ctx.templates.names,
            "verified_domains": sorted(addresses.VERIFIED_DOMAINS),
            "transport": summary() if callable(summary) else None,
        })

    @app.route('/api/legacy/sendmail', methods=['POST'])
    def send_mail_legacy():
        result = pipeline.process(_read_payload(), ctx)
        if result.status == "sent":
            return Response(result.message_id or "", status=200, mimetype='text/plain')
        return Response(result.error_message or "", status=result.http_status, mimetype='text/plain')

    return app


def _port() -> int:
    try:
        return int(os.environ.get('PORT', '8000'))
    except ValueError:
        log.warning(f"Invalid PORT {os.environ['PORT']!r}, using 8000")
        return 8000


def run() -> None:
    host = os.environ.get('HOST_ADDRESS', '0.0.0.0')
    port = _port()
    app = create_app()
    log.info(f"Spam Relay starting on {host}:{port}")
    log.info(f"  Verified domains: {', '.join(sorted(addresses.VERIFIED_DOMAINS))}")
    app.run(host=host, port=port)


if __name__ == '__main__':
    run()
