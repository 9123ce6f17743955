"""Flattens a root record into the scalar fields reachable from it."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Sequence, Tuple

from ..models import FieldDescriptor, RecordDescriptor
from .builder import Registry

DEFAULT_DELIMITER = "."

ExpandedField = Tuple[str, FieldDescriptor]


class CycleError(RuntimeError):
    """Raised when records reference each other in a loop."""

    def __init__(self, path: Sequence[str]) -> None:
        self.path = list(path)
        super().__init__("Cyclic reference between records: " + " -> ".join(self.path))


@dataclass(frozen=True)
class ExpandedRecord:
    """A root record whose fields are all terminal scalars with qualified names."""

    name: str
    doc: str
    fields: Tuple[ExpandedField, ...]


def expand(
    root: RecordDescriptor,
    registry: Registry,
    delimiter: str = DEFAULT_DELIMITER,
) -> List[ExpandedField]:
    """Depth-first substitution of record-typed fields by their own fields.

    A field whose leaf type names a registry entry is replaced by that
    record's fields, each qualified as ``<record><delimiter><field>``;
    qualification accumulates one segment per level. Terminal fields keep
    their key unchanged at the top level.
    """
    if not delimiter:
        raise ValueError("Expansion delimiter must not be empty")
    return list(_expand_fields(root.fields, (), (root.name,), registry, delimiter))


def expand_record(
    root: RecordDescriptor,
    registry: Registry,
    delimiter: str = DEFAULT_DELIMITER,
) -> ExpandedRecord:
    return ExpandedRecord(
        name=root.name,
        doc=root.doc,
        fields=tuple(expand(root, registry, delimiter)),
    )


def _expand_fields(
    fields: Sequence[ExpandedField],
    prefix: Tuple[str, ...],
    active: Tuple[str, ...],
    registry: Registry,
    delimiter: str,
) -> Iterator[ExpandedField]:
    for key, descriptor in fields:
        nested = registry.get(descriptor.leaf_type)
        if nested is None:
            yield delimiter.join(prefix + (key,)), descriptor
            continue
        if nested.name in active:
            cycle_start = active.index(nested.name)
            raise CycleError(active[cycle_start:] + (nested.name,))
        yield from _expand_fields(
            nested.fields,
            prefix + (nested.name,),
            active + (nested.name,),
            registry,
            delimiter,
        )


__all__ = ["CycleError", "DEFAULT_DELIMITER", "ExpandedField", "ExpandedRecord", "expand", "expand_record"]
