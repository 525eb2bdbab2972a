"""
vox.extract.process - External process runner with streamed diagnostics.

Spawns a subprocess, drains its stderr on a background thread so the
child never blocks on a full pipe, forwards each line (FFmpeg terminates
status lines with ``\\r``) to a callback, and enforces cancellation and
a deadline.
"""

from __future__ import annotations

import subprocess
import threading
import time
from collections.abc import Callable
from typing import IO

from pydantic import BaseModel

from vox.logging import get_logger

log = get_logger("process")

READ_CHUNK = 4096
KILL_GRACE_SECONDS = 2.0


class ProcessResult(BaseModel):
    returncode: int
    stderr: str
    duration: float = 0.0
    timed_out: bool = False
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not (self.timed_out or self.cancelled)


class ProcessRunner:
    """Runs one external command at a time with streamed stderr."""

    def __init__(self, poll_interval: float = 0.1) -> None:
        self.poll_interval = poll_interval

    def run(
        self,
        args: list[str],
        on_line: Callable[[str], None] | None = None,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ProcessResult:
        """Run a command to completion, cancellation or timeout.

        Args:
            args: Command and arguments
            on_line: Called from the reader thread for every stderr line
            timeout: Seconds before the process is killed
            cancel_event: When set, the process is killed

        Returns:
            ProcessResult with exit code and the full captured stderr

        Raises:
            OSError: If the process cannot be spawned
        """
        log.debug("Running: %s", " ".join(args))
        started = time.monotonic()
        proc = subprocess.Popen(
            args,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            bufsize=0,
        )
        lines: list[str] = []
        reader = threading.Thread(
            target=self._drain,
            args=(proc.stderr, lines, on_line),
            name="vox-stderr-reader",
            daemon=True,
        )
        reader.start()

        timed_out = False
        cancelled = False
        while True:
            try:
                proc.wait(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                pass
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
            elif timeout is not None and time.monotonic() - started > timeout:
                timed_out = True
            if cancelled or timed_out:
                self._stop(proc)
                break

        reader.join(timeout=KILL_GRACE_SECONDS)
        return ProcessResult(
            returncode=proc.returncode if proc.returncode is not None else -1,
            stderr="\n".join(lines),
            duration=time.monotonic() - started,
            timed_out=timed_out,
            cancelled=cancelled,
        )

    def _drain(
        self,
        stream: IO[bytes],
        lines: list[str],
        on_line: Callable[[str], None] | None,
    ) -> None:
        pending = b""
        while True:
            chunk = stream.read(READ_CHUNK)
            if not chunk:
                break
            pending += chunk.replace(b"\r\n", b"\n").replace(b"\r", b"\n")
            *complete, pending = pending.split(b"\n")
            for raw in complete:
                self._emit(raw, lines, on_line)
        if pending:
            self._emit(pending, lines, on_line)
        stream.close()

    def _emit(
        self,
        raw: bytes,
        lines: list[str],
        on_line: Callable[[str], None] | None,
    ) -> None:
        line = raw.decode("utf-8", errors="replace").rstrip()
        if not line:
            return
        lines.append(line)
        if on_line is not None:
            try:
                on_line(line)
            except Exception:
                log.exception("stderr line handler failed")

    def _stop(self, proc: subprocess.Popen) -> None:
        proc.terminate()
        try:
            proc.wait(timeout=KILL_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            log.warning("Process %s ignored SIGTERM, killing", proc.pid)
            proc.kill()
            proc.wait()
