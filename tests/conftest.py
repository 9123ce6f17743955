from __future__ import annotations

import logging
import time
from typing import Callable, Iterator, List, Sequence, Tuple

import pytest

from optdoc.models import FieldDescriptor, RecordDescriptor
from optdoc.transport import CollectorServer


def make_record(
    name: str,
    fields: Sequence[Tuple[str, Sequence[str]]] = (),
    *,
    doc: str = "",
    defaults: dict[str, str] | None = None,
) -> RecordDescriptor:
    """Build a record from ``(field, type_path)`` pairs."""
    defaults = defaults or {}
    return RecordDescriptor(
        name=name,
        doc=doc,
        fields=tuple(
            (key, FieldDescriptor(name=key, type_path=tuple(path), default=defaults.get(key)))
            for key, path in fields
        ),
    )


@pytest.fixture(autouse=True)
def _propagate_optdoc_logs() -> Iterator[None]:
    """Undo configure_logging side effects so caplog sees optdoc records."""
    logger = logging.getLogger("optdoc")
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def scenario_records() -> List[RecordDescriptor]:
    """The alpha -> B example: one root whose only field is a B."""
    alpha = RecordDescriptor(
        name="alpha",
        doc="root",
        fields=(("b", FieldDescriptor(name="b", type_path=("B",))),),
    )
    leaf = RecordDescriptor(
        name="B",
        doc="leaf",
        fields=(("x", FieldDescriptor(name="x", type_path=("int",), default="0")),),
    )
    return [alpha, leaf]


@pytest.fixture
def collector() -> Iterator[CollectorServer]:
    server = CollectorServer.bind("127.0.0.1:0")
    try:
        yield server
    finally:
        server.close()


@pytest.fixture
def pump() -> Callable[..., List[RecordDescriptor]]:
    """Poll a collector until ``expected`` records arrive or the deadline passes."""

    def _pump(server: CollectorServer, expected: int, timeout: float = 5.0) -> List[RecordDescriptor]:
        records: List[RecordDescriptor] = []
        deadline = time.monotonic() + timeout
        while len(records) < expected and time.monotonic() < deadline:
            records.extend(server.poll(0.02))
        return records

    return _pump


@pytest.fixture
def record_factory() -> Callable[..., RecordDescriptor]:
    return make_record
