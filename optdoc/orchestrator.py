"""Pipeline orchestration for build, render and send flows."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .config import OptDocConfig
from .logging import get_logger
from .models import RecordDescriptor, records_from_payload, records_to_payload
from .registry import ExpandedRecord, build_registry, expand_record, find_roots
from .render import NO_RENDER, get_renderer
from .session import CollectSession, SessionError, SessionResult
from .transport import CollectorServer, ProducerClient, TransportError

METADATA_FILENAME = "metadata.json"


@dataclass
class RenderedDocument:
    """One rendered root, ready to be written."""

    root: str
    path: Path
    text: str


@dataclass
class BuildOutcome:
    """Result of a build-and-render run."""

    records: List[RecordDescriptor]
    documents: List[RenderedDocument] = field(default_factory=list)
    metadata_path: Optional[Path] = None
    returncode: Optional[int] = None
    timed_out: bool = False

    @property
    def written(self) -> List[Path]:
        return [document.path for document in self.documents]


class Orchestrator:
    """Coordinates collection, aggregation, expansion and rendering."""

    def __init__(self, session_factory: Callable[..., CollectSession] = CollectSession) -> None:
        self._session_factory = session_factory
        self.logger = get_logger("orchestrator")

    def run_build(self, config: OptDocConfig) -> BuildOutcome:
        """Run the configured build, collect its records and render the selected roots."""
        try:
            server = CollectorServer.bind(config.address, strict=config.strict_frames)
        except TransportError as exc:
            raise SessionError("bind", str(exc)) from exc

        with server:
            session = self._session_factory(
                server,
                config.build.command,
                cwd=config.build.cwd or config.root,
                poll_interval=config.build.poll_interval,
                timeout=config.build.timeout,
            )
            result: SessionResult = session.run()

        if not result.timed_out and result.returncode:
            raise SessionError(
                "build",
                f"Build command exited with status {result.returncode}",
            )
        if result.diagnostics:
            self.logger.warning(
                "%d frame(s) could not be used; see warnings above", len(result.diagnostics)
            )
        self.logger.info("Collected %d records", len(result.records))

        metadata_path = self.write_metadata(result.records, config.output_dir)
        documents = self.render_records(result.records, config)
        self._write_documents(documents)
        return BuildOutcome(
            records=result.records,
            documents=documents,
            metadata_path=metadata_path,
            returncode=result.returncode,
            timed_out=result.timed_out,
        )

    def run_render(self, metadata_path: Path, config: OptDocConfig) -> BuildOutcome:
        """Render from a metadata file saved by an earlier build."""
        records = self.read_metadata(metadata_path)
        documents = self.render_records(records, config)
        self._write_documents(documents)
        return BuildOutcome(records=records, documents=documents, metadata_path=metadata_path)

    def run_send(self, records: Sequence[RecordDescriptor], address: str | None = None) -> int:
        """Act as a producer: send ``records`` to a collector, returning how many were sent."""
        with ProducerClient.connect(address) as client:
            if not client.is_connected():
                self.logger.warning("No collector at %s; %d record(s) dropped", client.address, len(records))
                return 0
            return client.send_many(records)

    def render_records(
        self, records: Sequence[RecordDescriptor], config: OptDocConfig
    ) -> List[RenderedDocument]:
        """Build the registry, expand every selected root and render it (nothing is written)."""
        if config.render == NO_RENDER:
            return []
        renderer = get_renderer(config.render)
        documents: List[RenderedDocument] = []
        for expanded in self.expand_roots(records, roots=config.roots, delimiter=config.delimiter):
            try:
                filename = renderer.filename(expanded)
            except ValueError as exc:
                self.logger.warning("Skipping root: %s", exc)
                continue
            documents.append(
                RenderedDocument(
                    root=expanded.name,
                    path=config.output_dir / filename,
                    text=renderer.render(expanded),
                )
            )
        return documents

    def expand_roots(
        self,
        records: Sequence[RecordDescriptor],
        *,
        roots: Optional[Sequence[str]] = None,
        delimiter: str = ".",
    ) -> List[ExpandedRecord]:
        registry = build_registry(records)
        selected = find_roots(registry, roots)
        self.logger.debug(
            "Registry holds %d records; %d root(s) selected", len(registry), len(selected)
        )
        return [expand_record(root, registry, delimiter) for root in selected]

    # ------------------------------------------------------------------
    # Metadata persistence

    def write_metadata(self, records: Sequence[RecordDescriptor], output_dir: Path) -> Path:
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / METADATA_FILENAME
        path.write_text(
            json.dumps(records_to_payload(records), indent=2, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )
        self.logger.debug("Wrote %d records to %s", len(records), path)
        return path

    @staticmethod
    def read_metadata(path: Path) -> List[RecordDescriptor]:
        if not path.exists():
            raise FileNotFoundError(f"Metadata file not found: {path}")
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"{path.name} is not valid JSON: {exc}") from exc
        return records_from_payload(payload)

    def _write_documents(self, documents: Sequence[RenderedDocument]) -> None:
        for document in documents:
            document.path.parent.mkdir(parents=True, exist_ok=True)
            document.path.write_text(document.text, encoding="utf-8")
            self.logger.info("Rendered %s to %s", document.root, document.path)


__all__ = ["BuildOutcome", "METADATA_FILENAME", "Orchestrator", "RenderedDocument"]
