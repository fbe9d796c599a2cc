"""
templates.py — Template Registry
=================================
Named email layouts, loaded once at startup and read-only afterwards.

Layout on disk (TEMPLATES_DIR, default: the templates/ directory shipped in
this package):

    default/email.html
    metaspexet/email.html

Every template receives {is_html, content}. `content` is always HTML by the
time it gets here (plain text has already been through markdown), `is_html`
tells the layout whether the caller wrote the HTML themselves.

Adding a layout: add a value to models.EmailTemplate and an entry to
TEMPLATE_FILES. A missing file stops the service from starting.
"""

import logging
import os
from pathlib import Path
from types import MappingProxyType

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    Template,
    TemplateError,
    select_autoescape,
)

from spam_relay.errors import TemplateLoadError, TemplateRenderError
from spam_relay.models import EmailTemplate

log = logging.getLogger(__name__)

DEFAULT_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

TEMPLATE_FILES: dict[EmailTemplate, str] = {
    EmailTemplate.DEFAULT:    "default/email.html",
    EmailTemplate.METASPEXET: "metaspexet/email.html",
}


class TemplateRegistry:

    def __init__(self, templates: dict[str, Template]):
        self._templates = MappingProxyType(dict(templates))

    @classmethod
    def load(cls, directory: Path | str | None = None) -> "TemplateRegistry":
        directory = Path(directory or os.environ.get("TEMPLATES_DIR") or DEFAULT_TEMPLATES_DIR)
        environment = Environment(
            loader=FileSystemLoader(directory),
            autoescape=select_autoescape(["html", "xml"]),
            undefined=StrictUndefined,
        )

        templates = {}
        for template_type, file_name in TEMPLATE_FILES.items():
            try:
                templates[template_type.value] = environment.get_template(file_name)
            except TemplateError as e:
                raise TemplateLoadError(f"{directory / file_name}: {e}") from e
            log.info(f"Loaded template '{template_type.value}' from {directory / file_name}")

        return cls(templates)

    @property
    def names(self) -> list[str]:
        return sorted(self._templates)

    def render(self, name: str, is_html: bool, content: str) -> str:
        """Raises TemplateRenderError; callers decide whether that is fatal."""
        template = self._templates.get(name)
        if template is None:
            raise TemplateRenderError(f"no template registered as '{name}'")
        try:
            rendered = template.render(is_html=is_html, content=content)
        except TemplateError as e:
            raise TemplateRenderError(f"{name}: {e}") from e
        log.debug(f"Rendered template '{name}': {rendered}")
        return rendered
