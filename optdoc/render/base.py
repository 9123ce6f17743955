"""Render contract shared by every output format."""

from abc import ABC, abstractmethod

from ..registry import ExpandedRecord

PLACEHOLDER = "--"

_UNSAFE_NAME_CHARS = ("/", "\\", "\x00")


class Renderer(ABC):
    """Turns one expanded root record into a document."""

    name: str = ""
    extension: str = ""

    @abstractmethod
    def render(self, record: ExpandedRecord) -> str:
        """Return the document text for ``record``."""

    def filename(self, record: ExpandedRecord) -> str:
        """Destination file name derived from the root's name.

        Raises ``ValueError`` for names that are not a single path component.
        """
        name = record.name
        if name in {"", ".", ".."} or any(char in name for char in _UNSAFE_NAME_CHARS):
            raise ValueError(f"Record name '{name}' cannot be used as a file name")
        return f"{name}.{self.extension}"
