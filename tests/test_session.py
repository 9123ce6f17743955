"""Tests for the build-driving collection loop."""

from __future__ import annotations

import os
import socket
import sys
import threading
from pathlib import Path
from typing import List, Optional

import pytest

from optdoc.models import FieldDescriptor, RecordDescriptor
from optdoc.session import CollectSession, SessionError
from optdoc.transport import URL_ENV_VAR, CollectorServer, encode_record

REPO_ROOT = Path(__file__).resolve().parents[1]

PRODUCER_SCRIPT = """
from optdoc.models import FieldDescriptor, RecordDescriptor
from optdoc.transport import describe

describe(RecordDescriptor(name="alpha", doc="root", fields=(("b", FieldDescriptor(name="b", type_path=("B",))),)))
describe(RecordDescriptor(name="B", doc="leaf", fields=(("x", FieldDescriptor(name="x", type_path=("int",), default="0")),)))
"""


def _python_env() -> dict:
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(REPO_ROOT), env.get("PYTHONPATH")]))
    return env


class FakeProcess:
    """Stands in for a running build that exits after ``running_polls`` checks."""

    def __init__(self, running_polls: int, returncode: int = 0) -> None:
        self._remaining = running_polls
        self._exit_code = returncode
        self.returncode: Optional[int] = None
        self.terminated = False

    def poll(self) -> Optional[int]:
        if self.returncode is not None:
            return self.returncode
        if self._remaining <= 0:
            self.returncode = self._exit_code
            return self.returncode
        self._remaining -= 1
        return None

    def terminate(self) -> None:
        self.terminated = True
        self.returncode = -15

    def kill(self) -> None:
        self.returncode = -9

    def wait(self, timeout: float | None = None) -> int:
        return self.returncode if self.returncode is not None else 0


class SenderProcess(FakeProcess):
    """A build that is running for as long as ``thread`` is."""

    def __init__(self, thread: threading.Thread) -> None:
        super().__init__(running_polls=0)
        self._thread = thread

    def poll(self) -> Optional[int]:
        if self._thread.is_alive():
            return None
        self.returncode = 0
        return self.returncode


def test_session_collects_records_from_build(collector: CollectorServer) -> None:
    session = CollectSession(
        collector,
        [sys.executable, "-c", PRODUCER_SCRIPT],
        env=_python_env(),
    )

    result = session.run()

    assert result.returncode == 0
    assert result.timed_out is False
    assert sorted(record.name for record in result.records) == ["B", "alpha"]
    assert result.diagnostics == []


def test_session_exports_collector_address(collector: CollectorServer) -> None:
    calls: List[dict] = []
    process = FakeProcess(running_polls=2)

    def fake_popen(command, **kwargs):
        calls.append({"command": command, **kwargs})
        return process

    session = CollectSession(collector, ["cargo", "doc"], env={}, popen=fake_popen, cwd=Path("/src"))
    result = session.run()

    assert calls[0]["command"] == ["cargo", "doc"]
    assert calls[0]["env"][URL_ENV_VAR] == collector.address
    assert calls[0]["cwd"] == str(Path("/src"))
    assert result.records == []
    assert result.returncode == 0


def test_session_reports_spawn_failure(collector: CollectorServer) -> None:
    session = CollectSession(collector, ["definitely-not-a-real-build-tool-xyz"])

    with pytest.raises(SessionError) as excinfo:
        session.run()

    assert excinfo.value.stage == "spawn"


def test_session_rejects_empty_command(collector: CollectorServer) -> None:
    with pytest.raises(ValueError):
        CollectSession(collector, [])


def test_session_timeout_keeps_collected_records(collector: CollectorServer) -> None:
    script = PRODUCER_SCRIPT + "\nimport time\ntime.sleep(30)\n"
    session = CollectSession(
        collector,
        [sys.executable, "-c", script],
        env=_python_env(),
        timeout=3.0,
    )

    result = session.run()

    assert result.timed_out is True
    assert result.returncode != 0
    assert sorted(record.name for record in result.records) == ["B", "alpha"]


def test_session_timeout_with_fake_clock(collector: CollectorServer) -> None:
    ticks = iter([0.0, 1.0, 2.0, 3.0, 4.0])
    process = FakeProcess(running_polls=100)

    session = CollectSession(
        collector,
        ["build"],
        popen=lambda *args, **kwargs: process,
        timeout=2.5,
        poll_interval=0.0,
        clock=lambda: next(ticks),
    )
    result = session.run()

    assert result.timed_out is True
    assert process.terminated is True


def test_strict_session_fails_on_malformed_frame() -> None:
    with CollectorServer.bind("127.0.0.1:0", strict=True) as server:
        host, port = server.address.rsplit(":", 1)
        with socket.create_connection((host, int(port))) as producer:
            producer.sendall(b"{not json\x04")
            process = FakeProcess(running_polls=500)
            session = CollectSession(
                server,
                ["build"],
                popen=lambda *args, **kwargs: process,
                poll_interval=0.01,
            )

            with pytest.raises(SessionError) as excinfo:
                session.run()

    assert excinfo.value.stage == "decode"
    assert process.terminated is True


def test_lenient_session_records_diagnostics(collector: CollectorServer, record_factory) -> None:
    host, port = collector.address.rsplit(":", 1)
    with socket.create_connection((host, int(port))) as producer:
        producer.sendall(b"{not json\x04" + encode_record(record_factory("Opt", [("a", ["int"])])))
        producer.shutdown(socket.SHUT_WR)
        process = FakeProcess(running_polls=50)
        session = CollectSession(
            collector,
            ["build"],
            popen=lambda *args, **kwargs: process,
            poll_interval=0.01,
        )
        result = session.run()

    assert [record.name for record in result.records] == ["Opt"]
    assert len(result.diagnostics) == 1


def test_flush_finishes_frames_larger_than_one_tick() -> None:
    big = RecordDescriptor(
        name="Big",
        doc="x" * 300_000,
        fields=(("size", FieldDescriptor(name="size", type_path=("u64",))),),
    )
    with CollectorServer.bind("127.0.0.1:0", max_reads_per_tick=1) as server:
        host, port = server.address.rsplit(":", 1)

        def produce() -> None:
            with socket.create_connection((host, int(port))) as producer:
                producer.sendall(encode_record(big))

        sender = threading.Thread(target=produce)
        sender.start()
        # The build exits once its producer has handed every byte to the kernel.
        process = SenderProcess(sender)
        session = CollectSession(
            server,
            ["build"],
            popen=lambda *args, **kwargs: process,
            poll_interval=0.01,
        )

        result = session.run()
        sender.join(timeout=5)

    assert [record.name for record in result.records] == ["Big"]
    assert result.records[0].doc == big.doc
    assert result.diagnostics == []
