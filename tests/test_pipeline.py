"""
Pipeline ordering and error mapping.

Hive and the transport are MagicMocks (see conftest); the assertions that
matter most are which collaborators were NOT called.
"""

import base64

import pytest

from spam_relay.errors import (
    ApiKeyLookupError,
    ConfigurationMissingError,
    EmailSendError,
    TemplateRenderError,
)
from spam_relay.message import OutboundMessage
from spam_relay.pipeline import Stage, process


def _sent(transport) -> OutboundMessage:
    transport.send.assert_called_once()
    return transport.send.call_args[0][0]


# ---------------------------------------------------------------------------
# Success path
# ---------------------------------------------------------------------------

class TestSuccess:

    def test_sends_and_returns_message_id(self, ctx, payload, transport, authorize):
        result = process(payload, ctx)
        assert result.status == "sent"
        assert result.stage is Stage.DONE
        assert result.http_status == 200
        assert result.message_id == "0102018f-test-message-id"
        authorize.assert_called_once_with("test-api-key")

    def test_plain_content_is_templated_html(self, ctx, payload, transport):
        result = process(payload, ctx)
        msg = _sent(transport)
        assert result.templated is True
        assert "<p>Hello <strong>world</strong></p>" in msg.html_body

    def test_template_none_sends_bare_markdown_html(self, ctx, payload, transport):
        payload["template"] = "none"
        process(payload, ctx)
        assert _sent(transport).html_body == "<p>Hello <strong>world</strong></p>"

    def test_non_ascii_sender_name_is_encoded(self, ctx, payload, transport):
        payload["from"] = "åäö <sender@datasektionen.se>"
        process(payload, ctx)
        assert _sent(transport).sender == "=?UTF-8?B?w6XDpMO2?= <sender@datasektionen.se>"

    def test_comma_list_gives_ordered_destinations(self, ctx, payload, transport):
        payload["to"] = "a@x.se, Name <b@x.se>"
        process(payload, ctx)
        assert _sent(transport).to == ("a@x.se", "Name <b@x.se>")

    def test_all_destination_kinds(self, ctx, payload, transport):
        payload.update({
            "cc": [{"name": "Åsa", "address": "asa@x.se"}],
            "bcc": {"name": "Hidden", "address": "h@x.se"},
            "replyTo": ["r1@datasektionen.se", "r2@datasektionen.se"],
        })
        process(payload, ctx)
        msg = _sent(transport)
        assert msg.cc == ("=?UTF-8?B?w4VzYQ==?= <asa@x.se>",)
        assert msg.bcc == ("Hidden <h@x.se>",)
        assert msg.reply_to == ("r1@datasektionen.se",)

    def test_envelope_uses_bare_addresses(self, ctx, payload, transport):
        payload.update({
            "from": {"name": "Sektionen, DKM", "address": "dkm@datasektionen.se"},
            "to": [{"name": "Doe, John", "address": "john@x.se"}],
            "cc": ["\"Roe, Jane\" <jane@x.se>"],
            "bcc": "h@x.se",
        })
        process(payload, ctx)
        msg = _sent(transport)
        assert msg.sender == "\"Sektionen, DKM\" <dkm@datasektionen.se>"
        assert msg.to == ("\"Doe, John\" <john@x.se>",)
        assert msg.envelope_from == "dkm@datasektionen.se"
        assert msg.envelope_to == ("john@x.se", "jane@x.se", "h@x.se")

    def test_attachments_are_decoded(self, ctx, payload, transport):
        payload["attachments[]"] = [
            {"originalname": "a.bin", "mimetype": "application/octet-stream",
             "buffer": base64.b64encode(b"\x00\x01").decode()},
            {"originalname": "b.txt", "mimetype": "text/plain", "buffer": "hej", "encoding": "UTF8"},
        ]
        process(payload, ctx)
        assert [a.data for a in _sent(transport).attachments] == [b"\x00\x01", b"hej"]

    def test_render_failure_still_sends(self, ctx, payload, transport, registry, monkeypatch):
        def broken(*args, **kwargs):
            raise TemplateRenderError("boom")

        monkeypatch.setattr(registry, "render", broken)
        result = process(payload, ctx)
        assert result.status == "sent"
        assert result.templated is False
        assert _sent(transport).html_body == "<p>Hello <strong>world</strong></p>"


# ---------------------------------------------------------------------------
# Failures before authorization
# ---------------------------------------------------------------------------

class TestLocalValidation:

    def _assert_nothing_called(self, authorize, transport):
        authorize.assert_not_called()
        transport.send.assert_not_called()

    def test_unreadable_body(self, ctx, authorize, transport):
        result = process(None, ctx)
        assert (result.http_status, result.error_code) == (400, "invalid_content_type")
        assert result.stage is Stage.RECEIVED
        self._assert_nothing_called(authorize, transport)

    def test_malformed_payload(self, ctx, payload, authorize, transport):
        del payload["key"]
        result = process(payload, ctx)
        assert (result.http_status, result.error_code) == (400, "invalid_request")
        self._assert_nothing_called(authorize, transport)

    def test_invalid_domain(self, ctx, payload, authorize, transport):
        payload["from"] = "someone@example.com"
        result = process(payload, ctx)
        assert (result.http_status, result.error_code) == (400, "invalid_email_domain")
        assert "example.com" in result.error_message
        assert result.stage is Stage.NORMALIZING
        self._assert_nothing_called(authorize, transport)

    @pytest.mark.parametrize("sender", [
        "evil@example.com,x@datasektionen.se",
        "x@datasektionen.se, evil@example.com",
    ])
    def test_several_sender_addresses_rejected(self, ctx, payload, authorize, transport, sender):
        payload["from"] = sender
        result = process(payload, ctx)
        assert (result.http_status, result.error_code) == (400, "invalid_email_domain")
        self._assert_nothing_called(authorize, transport)

    def test_not_ascii_destination(self, ctx, payload, authorize, transport):
        payload["to"] = ["ok@x.se", "björn@x.se"]
        result = process(payload, ctx)
        assert (result.http_status, result.error_code) == (400, "not_ascii")
        assert "to[1]" in result.error_message
        self._assert_nothing_called(authorize, transport)

    def test_missing_content(self, ctx, payload, authorize, transport):
        del payload["content"]
        result = process(payload, ctx)
        assert (result.http_status, result.error_code) == (400, "missing_content")
        self._assert_nothing_called(authorize, transport)

    def test_bad_attachment_encoding(self, ctx, payload, authorize, transport):
        payload["attachments[]"] = [
            {"originalname": "a", "mimetype": "text/plain", "buffer": "x", "encoding": "rot13"},
        ]
        result = process(payload, ctx)
        assert (result.http_status, result.error_code) == (400, "attachment")
        assert "rot13" in result.error_message
        self._assert_nothing_called(authorize, transport)


# ---------------------------------------------------------------------------
# Authorization and dispatch failures
# ---------------------------------------------------------------------------

class TestBackendFailures:

    def test_key_denied_is_401(self, ctx, payload, authorize, transport):
        authorize.return_value = False
        result = process(payload, ctx)
        assert result.status == "rejected"
        assert (result.http_status, result.error_code) == (401, "api_key_invalid")
        assert result.stage is Stage.AUTHORIZING
        transport.send.assert_not_called()

    @pytest.mark.parametrize("error,code", [
        (ApiKeyLookupError("timeout"), "api_key_lookup"),
        (ConfigurationMissingError("HIVE_URL"), "config_missing"),
    ])
    def test_lookup_failures_are_500(self, ctx, payload, authorize, transport, error, code):
        authorize.side_effect = error
        result = process(payload, ctx)
        assert result.status == "error"
        assert (result.http_status, result.error_code) == (500, code)
        transport.send.assert_not_called()

    def test_provider_failure_is_500(self, ctx, payload, transport):
        transport.send.side_effect = EmailSendError("throttled")
        result = process(payload, ctx)
        assert (result.http_status, result.error_code) == (500, "email_send")
        assert result.stage is Stage.DISPATCHING
        assert result.message_id is None
        transport.send.assert_called_once()
