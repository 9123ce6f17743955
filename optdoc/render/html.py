"""Single-page HTML renderer backed by a Jinja2 template."""

from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape
from markupsafe import Markup, escape

from ..registry import ExpandedRecord
from .base import PLACEHOLDER, Renderer


def _nl2br(value: object) -> Markup:
    text = "" if value is None else str(value).strip()
    if not text:
        return Markup(PLACEHOLDER)
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    return Markup("<br>").join(escape(line) for line in lines)


class HtmlRenderer(Renderer):
    name = "html"
    extension = "html"

    TEMPLATE_NAME = "record.html.j2"

    def __init__(self, templates_dir: Path | None = None) -> None:
        self.templates_dir = templates_dir or Path(__file__).with_name("templates")
        self._env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)),
            autoescape=select_autoescape(["html", "j2"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._env.filters["nl2br"] = _nl2br

    def render(self, record: ExpandedRecord) -> str:
        template = self._env.get_template(self.TEMPLATE_NAME)
        rows = [
            {
                "key": key,
                "type": ".".join(descriptor.type_path),
                "default": descriptor.default,
                "doc": descriptor.doc,
                "deprecated": descriptor.deprecation,
            }
            for key, descriptor in record.fields
        ]
        return template.render(record=record, rows=rows)
