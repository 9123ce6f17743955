"""Aggregates received records into a name-keyed registry and finds its roots."""

from __future__ import annotations

from typing import Collection, Dict, Iterable, Iterator, List, Mapping, Optional, Set

from ..logging import get_logger
from ..models import RecordDescriptor

_LOGGER = get_logger("registry")


class Registry(Mapping[str, RecordDescriptor]):
    """Records keyed by name; a later record with the same name replaces the earlier one."""

    def __init__(self, records: Iterable[RecordDescriptor] = ()) -> None:
        self._records: Dict[str, RecordDescriptor] = {}
        for record in records:
            self.insert(record)

    def insert(self, record: RecordDescriptor) -> None:
        if record.name in self._records:
            _LOGGER.debug("Record '%s' received again; keeping the latest copy", record.name)
        self._records[record.name] = record

    def referenced_names(self) -> Set[str]:
        """Names that appear as the leaf type of some field in the registry."""
        return {
            descriptor.leaf_type
            for record in self._records.values()
            for _, descriptor in record.fields
        }

    def __getitem__(self, name: str) -> RecordDescriptor:
        return self._records[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"Registry({sorted(self._records)!r})"


def build_registry(records: Iterable[RecordDescriptor]) -> Registry:
    """Group records by name in arrival order (last write wins)."""
    return Registry(records)


def find_roots(
    registry: Registry,
    name_filter: Optional[Collection[str]] = None,
) -> List[RecordDescriptor]:
    """Return records no other record references, sorted by name.

    With ``name_filter`` only the named roots are kept. Names that are
    unknown or not roots are dropped without raising.
    """
    referenced = registry.referenced_names()
    roots = [registry[name] for name in sorted(registry) if name not in referenced]
    if name_filter is None:
        return roots

    wanted = set(name_filter)
    selected = [record for record in roots if record.name in wanted]
    missing = wanted.difference(record.name for record in selected)
    for name in sorted(missing):
        reason = "is referenced by another record" if name in registry else "was never received"
        _LOGGER.info("Requested root '%s' %s; nothing to render for it", name, reason)
    return selected


__all__ = ["Registry", "build_registry", "find_roots"]
