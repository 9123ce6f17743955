"""Driving loop that runs a build while collecting the records its producers send."""

from __future__ import annotations

import os
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence

from .logging import get_logger
from .models import RecordDescriptor
from .transport import URL_ENV_VAR, CollectorServer, FrameDiagnostic, ProtocolError


class SessionError(RuntimeError):
    """A fatal failure in one stage of a collection session."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(message)
        self.stage = stage


@dataclass
class SessionResult:
    """Everything collected while the build ran."""

    records: List[RecordDescriptor]
    returncode: Optional[int]
    timed_out: bool = False
    diagnostics: List[FrameDiagnostic] = field(default_factory=list)


class CollectSession:
    """Spawns the build and polls the collector until the build exits.

    The session owns the record accumulator; the collector is only ever
    touched from this loop.
    """

    def __init__(
        self,
        server: CollectorServer,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        poll_interval: float = 0.01,
        timeout: float | None = None,
        popen: Callable[..., subprocess.Popen] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not command:
            raise ValueError("Build command must not be empty")
        self.server = server
        self.command = list(command)
        self.cwd = cwd
        self.env = dict(env) if env is not None else None
        self.poll_interval = max(0.0, poll_interval)
        self.timeout = timeout
        self._popen = popen or subprocess.Popen
        self._clock = clock
        self.logger = get_logger("session")

    def run(self) -> SessionResult:
        process = self._spawn()
        records: List[RecordDescriptor] = []
        started = self._clock()
        timed_out = False
        try:
            while True:
                if process.poll() is not None:
                    # Records written just before exit may still sit in socket buffers.
                    records.extend(self._flush())
                    break
                records.extend(self._tick(self.poll_interval))
                if self.timeout is not None and self._clock() - started >= self.timeout:
                    timed_out = True
                    self.logger.warning(
                        "Build exceeded %.1fs timeout; stopping it and keeping %d collected records",
                        self.timeout,
                        len(records),
                    )
                    self._stop(process)
                    records.extend(self._flush())
                    break
        except BaseException:
            if process.poll() is None:
                self._stop(process)
            raise

        self.logger.debug(
            "Build exited with %s; collected %d records", process.returncode, len(records)
        )
        return SessionResult(
            records=records,
            returncode=process.returncode,
            timed_out=timed_out,
            diagnostics=list(self.server.diagnostics),
        )

    # ------------------------------------------------------------------
    # Helpers

    def _spawn(self) -> subprocess.Popen:
        env = dict(os.environ if self.env is None else self.env)
        env[URL_ENV_VAR] = self.server.address
        self.logger.info("Running build: %s", " ".join(self.command))
        try:
            return self._popen(
                self.command,
                cwd=str(self.cwd) if self.cwd is not None else None,
                env=env,
            )
        except OSError as exc:
            raise SessionError(
                "spawn", f"Unable to start build command '{self.command[0]}': {exc}"
            ) from exc

    def _tick(self, timeout: float) -> List[RecordDescriptor]:
        try:
            return self.server.poll(timeout)
        except ProtocolError as exc:
            raise SessionError("decode", f"{exc} (frame: {exc.preview!r})") from exc

    def _flush(self) -> List[RecordDescriptor]:
        # A tick may read a partial frame without decoding anything, so stop
        # only once a poll finds no connection readable.
        records: List[RecordDescriptor] = []
        while True:
            records.extend(self._tick(0.0))
            if not self.server.last_poll_active:
                return records

    def _stop(self, process: subprocess.Popen) -> None:
        process.terminate()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()


__all__ = ["CollectSession", "SessionError", "SessionResult"]
