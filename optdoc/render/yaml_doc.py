"""YAML renderer listing every option with its default."""

from __future__ import annotations

from typing import Any, Dict, List

import yaml

from ..registry import ExpandedRecord
from .base import Renderer


class YamlRenderer(Renderer):
    name = "yaml"
    extension = "yaml"

    def render(self, record: ExpandedRecord) -> str:
        options: List[Dict[str, Any]] = []
        for key, descriptor in record.fields:
            option: Dict[str, Any] = {
                "key": key,
                "type": ".".join(descriptor.type_path),
                "default": descriptor.default,
            }
            if descriptor.doc.strip():
                option["doc"] = descriptor.doc.strip()
            if descriptor.deprecation:
                option["deprecated"] = descriptor.deprecation
            options.append(option)
        document = {"name": record.name, "doc": record.doc.strip(), "options": options}
        return yaml.safe_dump(document, sort_keys=False, allow_unicode=True)
