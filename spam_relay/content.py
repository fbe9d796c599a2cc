"""
content.py — Content Resolver
==============================
Picks the body the provider will receive. The provider always gets HTML:

  html given     -> used as-is
  content given  -> treated as markdown, rendered to HTML
  neither        -> MissingContentError

Then, unless the template is "none", the HTML is wrapped in the named layout.
A layout that fails to render is logged and skipped; the request still goes
out with the unwrapped HTML.
"""

import logging
from dataclasses import dataclass

import markdown

from spam_relay.errors import MissingContentError, TemplateRenderError
from spam_relay.models import EmailRequest, EmailTemplate
from spam_relay.templates import TemplateRegistry

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderOutcome:
    body: str
    templated: bool
    fallback_reason: str | None = None

    @property
    def fallback_used(self) -> bool:
        return self.fallback_reason is not None


def require_content(req: EmailRequest) -> tuple[str, bool]:
    """Return (source, is_html). Cheap enough to run before authorization."""
    if req.html is not None:
        return req.html, True
    if req.content is not None:
        return req.content, False
    raise MissingContentError()


def to_html(source: str, is_html: bool) -> str:
    return source if is_html else markdown.markdown(source)


def resolve(req: EmailRequest, registry: TemplateRegistry) -> RenderOutcome:
    source, is_html = require_content(req)
    body = to_html(source, is_html)

    if req.template is EmailTemplate.NONE:
        return RenderOutcome(body=body, templated=False)

    try:
        rendered = registry.render(req.template.value, is_html=is_html, content=body)
    except TemplateRenderError as e:
        log.error(f"{e.message}; sending untemplated body")
        return RenderOutcome(body=body, templated=False, fallback_reason=e.message)

    return RenderOutcome(body=rendered, templated=True)
