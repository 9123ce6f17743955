"""Output renderers for expanded records."""

from __future__ import annotations

from typing import Callable, Dict, List

from .base import PLACEHOLDER, Renderer
from .html import HtmlRenderer
from .markdown import MarkdownRenderer
from .yaml_doc import YamlRenderer

NO_RENDER = "none"

_RENDERERS: Dict[str, Callable[[], Renderer]] = {
    "markdown": MarkdownRenderer,
    "yaml": YamlRenderer,
    "html": HtmlRenderer,
}


def available_formats() -> List[str]:
    """Formats accepted by the CLI and config, including ``none``."""
    return [NO_RENDER, *_RENDERERS]


def get_renderer(name: str) -> Renderer:
    """Instantiate the renderer registered under ``name``."""
    key = name.strip().lower()
    if key == "md":
        key = "markdown"
    elif key == "yml":
        key = "yaml"
    factory = _RENDERERS.get(key)
    if factory is None:
        known = ", ".join(_RENDERERS)
        raise ValueError(f"Unknown render format '{name}'. Expected one of: {known}")
    return factory()


__all__ = [
    "HtmlRenderer",
    "MarkdownRenderer",
    "NO_RENDER",
    "PLACEHOLDER",
    "Renderer",
    "YamlRenderer",
    "available_formats",
    "get_renderer",
]
