"""Markdown table renderer."""

from __future__ import annotations

from typing import List, Optional

from ..registry import ExpandedRecord
from .base import PLACEHOLDER, Renderer

_HEADER = ("Key", "Type", "Default", "Description", "Deprecated")


class MarkdownRenderer(Renderer):
    """Renders a heading, the record doc, then one table row per expanded field."""

    name = "markdown"
    extension = "md"

    NEWLINE_MARKER = "<br>"

    def render(self, record: ExpandedRecord) -> str:
        lines: List[str] = [f"# {record.name}", ""]
        if record.doc.strip():
            lines.extend([record.doc.strip(), ""])
        lines.append(self._row(_HEADER))
        lines.append(self._row(tuple("-" * max(3, len(title)) for title in _HEADER)))
        for key, descriptor in record.fields:
            lines.append(
                self._row(
                    (
                        self._cell(key),
                        self._cell(".".join(descriptor.type_path)),
                        self._cell(descriptor.default),
                        self._cell(descriptor.doc),
                        self._cell(descriptor.deprecation),
                    )
                )
            )
        return "\n".join(lines) + "\n"

    @staticmethod
    def _row(cells: tuple[str, ...]) -> str:
        return "| " + " | ".join(cells) + " |"

    def _cell(self, value: Optional[str]) -> str:
        if value is None or not value.strip():
            return PLACEHOLDER
        text = value.strip().replace("\r\n", "\n").replace("\r", "\n")
        text = text.replace("|", "\\|")
        return text.replace("\n", self.NEWLINE_MARKER)
