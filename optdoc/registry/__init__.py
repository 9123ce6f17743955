"""Registry construction, root detection and field expansion."""

from .builder import Registry, build_registry, find_roots
from .expander import (
    DEFAULT_DELIMITER,
    CycleError,
    ExpandedField,
    ExpandedRecord,
    expand,
    expand_record,
)

__all__ = [
    "CycleError",
    "DEFAULT_DELIMITER",
    "ExpandedField",
    "ExpandedRecord",
    "Registry",
    "build_registry",
    "expand",
    "expand_record",
    "find_roots",
]
