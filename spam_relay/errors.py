"""
errors.py — Error Kinds
========================
Every pipeline step raises one of these. pipeline.process() catches them at
the boundary and maps them straight to an HTTP status:
  4xx — caller-correctable input problems
  401 — key invalid or lacking the send permission
  5xx — backend, provider or configuration problems

TemplateRenderError is the one recoverable kind: content.resolve() catches it
and falls back to the untemplated body.
"""


class RelayError(Exception):
    code = "internal_error"
    status_code = 500
    label = "Internal error"

    def __init__(self, detail: str | None = None):
        self.detail = detail
        super().__init__(self.message)

    @property
    def message(self) -> str:
        if self.detail is None:
            return self.label
        return f"{self.label}: {self.detail}"

    @property
    def is_client_error(self) -> bool:
        return self.status_code < 500


class ConfigurationMissingError(RelayError):
    code = "config_missing"
    label = "Environment variable missing"


class InvalidContentTypeError(RelayError):
    code = "invalid_content_type"
    status_code = 400
    label = "Invalid content type"


class InvalidRequestError(RelayError):
    code = "invalid_request"
    status_code = 400
    label = "Invalid request"


class InvalidEmailDomainError(RelayError):
    code = "invalid_email_domain"
    status_code = 400
    label = "Invalid email domain"


class ApiKeyInvalidError(RelayError):
    code = "api_key_invalid"
    status_code = 401
    label = "API key is invalid or lacks permissions"


class ApiKeyLookupError(RelayError):
    code = "api_key_lookup"
    label = "API lookup failed"


class MissingContentError(RelayError):
    code = "missing_content"
    status_code = 400
    label = "No 'html' or 'content' field provided."


class EmailSendError(RelayError):
    code = "email_send"
    label = "Failed to send email"


class TemplateRenderError(RelayError):
    code = "template_render"
    label = "Failed to render template"


class TemplateLoadError(RelayError):
    code = "template_load"
    label = "Failed to load template"


class AttachmentError(RelayError):
    code = "attachment"
    status_code = 400
    label = "Failed to process attachment"


class NotAsciiError(RelayError):
    code = "not_ascii"
    status_code = 400
    label = "Contains non-ASCII characters"


class EmailBodyError(RelayError):
    code = "email_body"
    status_code = 400
    label = "Failed to process email body"
