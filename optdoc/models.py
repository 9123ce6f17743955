"""Core data models shared across optdoc components."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple


@dataclass(frozen=True)
class FieldDescriptor:
    """Metadata for one field of a described type."""

    name: str
    type_path: Tuple[str, ...]
    doc: str = ""
    default: Optional[str] = None
    deprecation: Optional[str] = None

    def __post_init__(self) -> None:
        path = tuple(self.type_path)
        if not path:
            raise ValueError(f"Field '{self.name}' has an empty type path")
        object.__setattr__(self, "type_path", path)

    @property
    def leaf_type(self) -> str:
        """Last segment of the type path, used to resolve references between records."""
        return self.type_path[-1]

    @property
    def is_deprecated(self) -> bool:
        return bool(self.deprecation)


@dataclass(frozen=True)
class RecordDescriptor:
    """A described type: its name, documentation and ordered fields."""

    name: str
    doc: str = ""
    fields: Tuple[Tuple[str, FieldDescriptor], ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", tuple((key, value) for key, value in self.fields))

    def field_names(self) -> List[str]:
        return [key for key, _ in self.fields]


def deprecation_text(
    *,
    message: str | None = None,
    since: str | None = None,
    note: str | None = None,
) -> str:
    """Render a deprecation marker the way producers encode it on the wire.

    A bare marker becomes ``"true"``, a message is kept verbatim and a
    ``since``/``note`` pair becomes ``"since: <since>, note: <note>"``.
    """
    if since is not None or note is not None:
        since_part = f"since: {since}" if since else ""
        note_part = f"note: {note}" if note else ""
        return f"{since_part}, {note_part}"
    if message:
        return message
    return "true"


def field_to_dict(descriptor: FieldDescriptor) -> Dict[str, Any]:
    return {
        "name": descriptor.name,
        "doc": descriptor.doc,
        "ty": list(descriptor.type_path),
        "default": descriptor.default,
        "deprecated": descriptor.deprecation,
    }


def record_to_dict(record: RecordDescriptor) -> Dict[str, Any]:
    """Return the wire representation of a record."""
    return {
        "name": record.name,
        "doc": record.doc,
        "fields": [[key, field_to_dict(value)] for key, value in record.fields],
    }


def field_from_dict(payload: object, *, key: str) -> FieldDescriptor:
    if not isinstance(payload, Mapping):
        raise ValueError(f"Field '{key}' must be an object")
    type_path = payload.get("ty", payload.get("type"))
    if isinstance(type_path, str):
        type_path = [type_path]
    if not isinstance(type_path, Sequence) or not all(isinstance(part, str) for part in type_path):
        raise ValueError(f"Field '{key}' must carry a list of type path segments")
    name = payload.get("name")
    return FieldDescriptor(
        name=name if isinstance(name, str) and name else key,
        type_path=tuple(type_path),
        doc=_as_text(payload.get("doc")),
        default=_as_optional_text(payload.get("default")),
        deprecation=_as_deprecation(payload.get("deprecated", payload.get("deprecation"))),
    )


def record_from_dict(payload: object) -> RecordDescriptor:
    """Build a record from its wire representation, raising ``ValueError`` on schema errors."""
    if not isinstance(payload, Mapping):
        raise ValueError("Record must be a JSON object")
    name = payload.get("name")
    if not isinstance(name, str) or not name:
        raise ValueError("Record is missing a name")
    raw_fields = payload.get("fields", [])
    if not isinstance(raw_fields, list):
        raise ValueError(f"Record '{name}' fields must be a list of [name, field] pairs")
    fields: List[Tuple[str, FieldDescriptor]] = []
    for entry in raw_fields:
        if not isinstance(entry, (list, tuple)) or len(entry) != 2 or not isinstance(entry[0], str):
            raise ValueError(f"Record '{name}' has a malformed field entry: {entry!r}")
        key, raw_field = entry
        fields.append((key, field_from_dict(raw_field, key=key)))
    return RecordDescriptor(name=name, doc=_as_text(payload.get("doc")), fields=tuple(fields))


def records_from_payload(payload: object) -> List[RecordDescriptor]:
    """Accept a single record object or a list of them."""
    if isinstance(payload, list):
        return [record_from_dict(item) for item in payload]
    return [record_from_dict(payload)]


def records_to_payload(records: Iterable[RecordDescriptor]) -> List[Dict[str, Any]]:
    return [record_to_dict(record) for record in records]


def _as_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    raise ValueError(f"Expected a string, got {type(value).__name__}")


def _as_deprecation(value: object) -> Optional[str]:
    # A bare marker may arrive as JSON true; false and "" mean not deprecated.
    if isinstance(value, bool):
        return "true" if value else None
    return _as_optional_text(value) or None


def _as_optional_text(value: object) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return value if isinstance(value, str) else str(value)
    raise ValueError(f"Expected a string, got {type(value).__name__}")


__all__ = [
    "FieldDescriptor",
    "RecordDescriptor",
    "deprecation_text",
    "field_from_dict",
    "field_to_dict",
    "record_from_dict",
    "record_to_dict",
    "records_from_payload",
    "records_to_payload",
]
