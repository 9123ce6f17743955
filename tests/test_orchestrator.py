"""Tests for the build, render and send pipelines."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from optdoc.config import OptDocConfig
from optdoc.orchestrator import METADATA_FILENAME, Orchestrator
from optdoc.registry import CycleError
from optdoc.session import SessionError, SessionResult


def _config(tmp_path: Path, **overrides) -> OptDocConfig:
    config = OptDocConfig(root=tmp_path, address="127.0.0.1:0", output_dir=tmp_path / "out")
    return config.with_overrides(**overrides) if overrides else config


class FakeSession:
    def __init__(self, result: SessionResult, calls: list) -> None:
        self._result = result
        self._calls = calls

    def run(self) -> SessionResult:
        return self._result


def _session_factory(result: SessionResult, calls: list):
    def factory(server, command, **kwargs):
        calls.append({"address": server.address, "command": command, **kwargs})
        return FakeSession(result, calls)

    return factory


def test_render_records_writes_nothing(tmp_path: Path, scenario_records) -> None:
    orchestrator = Orchestrator()

    documents = orchestrator.render_records(scenario_records, _config(tmp_path))

    assert [document.root for document in documents] == ["alpha"]
    assert documents[0].path == tmp_path / "out" / "alpha.md"
    assert "| B.x | int | 0 | -- | -- |" in documents[0].text
    assert not (tmp_path / "out").exists()


def test_render_records_skips_when_format_is_none(tmp_path: Path, scenario_records) -> None:
    documents = Orchestrator().render_records(scenario_records, _config(tmp_path, render="none"))

    assert documents == []


def test_expand_roots_respects_filter(record_factory) -> None:
    records = [
        record_factory("Server", [("tls", ["Tls"])]),
        record_factory("Client", [("retries", ["u8"])]),
        record_factory("Tls", [("cert", ["PathBuf"])]),
    ]

    expanded = Orchestrator().expand_roots(records, roots=["Server", "Tls", "Missing"])

    assert [record.name for record in expanded] == ["Server"]
    assert [key for key, _ in expanded[0].fields] == ["Tls.cert"]


def test_metadata_round_trip(tmp_path: Path, scenario_records) -> None:
    orchestrator = Orchestrator()

    path = orchestrator.write_metadata(scenario_records, tmp_path / "out")

    assert path == tmp_path / "out" / METADATA_FILENAME
    assert orchestrator.read_metadata(path) == scenario_records


def test_read_metadata_errors(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        Orchestrator.read_metadata(tmp_path / "missing.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{", encoding="utf-8")
    with pytest.raises(ValueError):
        Orchestrator.read_metadata(broken)


def test_run_render_writes_documents(tmp_path: Path, scenario_records) -> None:
    orchestrator = Orchestrator()
    config = _config(tmp_path, render="yaml")
    metadata = orchestrator.write_metadata(scenario_records, config.output_dir)

    outcome = orchestrator.run_render(metadata, config)

    assert outcome.written == [tmp_path / "out" / "alpha.yaml"]
    assert "key: B.x" in (tmp_path / "out" / "alpha.yaml").read_text(encoding="utf-8")


def test_run_render_propagates_cycles(tmp_path: Path, record_factory) -> None:
    orchestrator = Orchestrator()
    config = _config(tmp_path)
    records = [
        record_factory("Root", [("b", ["B"])]),
        record_factory("B", [("c", ["C"])]),
        record_factory("C", [("b", ["B"])]),
    ]
    metadata = orchestrator.write_metadata(records, config.output_dir)

    with pytest.raises(CycleError):
        orchestrator.run_render(metadata, config)


def test_run_build_renders_collected_records(tmp_path: Path, scenario_records) -> None:
    calls: list = []
    result = SessionResult(records=list(scenario_records), returncode=0)
    orchestrator = Orchestrator(session_factory=_session_factory(result, calls))
    config = _config(tmp_path).with_overrides(command=["make", "docs"], timeout=9.0)

    outcome = orchestrator.run_build(config)

    assert calls[0]["command"] == ["make", "docs"]
    assert calls[0]["cwd"] == tmp_path
    assert calls[0]["timeout"] == 9.0
    assert not calls[0]["address"].endswith(":0")
    assert outcome.written == [tmp_path / "out" / "alpha.md"]
    assert outcome.metadata_path == tmp_path / "out" / METADATA_FILENAME
    saved = json.loads(outcome.metadata_path.read_text(encoding="utf-8"))
    assert [entry["name"] for entry in saved] == ["alpha", "B"]


def test_run_build_fails_on_nonzero_exit(tmp_path: Path, scenario_records) -> None:
    result = SessionResult(records=list(scenario_records), returncode=2)
    orchestrator = Orchestrator(session_factory=_session_factory(result, []))

    with pytest.raises(SessionError) as excinfo:
        orchestrator.run_build(_config(tmp_path))

    assert excinfo.value.stage == "build"
    assert not (tmp_path / "out").exists()


def test_run_build_keeps_records_after_timeout(tmp_path: Path, scenario_records) -> None:
    result = SessionResult(records=list(scenario_records), returncode=-15, timed_out=True)
    orchestrator = Orchestrator(session_factory=_session_factory(result, []))

    outcome = orchestrator.run_build(_config(tmp_path))

    assert outcome.timed_out is True
    assert outcome.written == [tmp_path / "out" / "alpha.md"]


def test_run_build_reports_bind_failure(tmp_path: Path) -> None:
    socket_path = tmp_path / "collector.sock"
    socket_path.write_text("", encoding="utf-8")
    orchestrator = Orchestrator(session_factory=_session_factory(SessionResult([], 0), []))

    with pytest.raises(SessionError) as excinfo:
        orchestrator.run_build(_config(tmp_path, address=f"unix:{socket_path}"))

    assert excinfo.value.stage == "bind"


def test_run_send_without_collector(scenario_records) -> None:
    assert Orchestrator().run_send(scenario_records, "127.0.0.1:1") == 0


def test_run_send_reaches_collector(scenario_records, collector, pump) -> None:
    sent = Orchestrator().run_send(scenario_records, collector.address)

    assert sent == 2
    assert pump(collector, 2) == scenario_records


def test_render_records_skips_roots_with_path_like_names(tmp_path: Path, record_factory) -> None:
    records = [
        record_factory("../../escape", [("x", ["int"])]),
        record_factory("Safe", [("y", ["int"])]),
    ]
    orchestrator = Orchestrator()
    config = _config(tmp_path)

    documents = orchestrator.render_records(records, config)
    orchestrator._write_documents(documents)

    assert [document.root for document in documents] == ["Safe"]
    assert sorted(path.name for path in tmp_path.rglob("*.md")) == ["Safe.md"]
