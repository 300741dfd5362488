"""Background processes started by `startProcess` steps.

A process outlives the invocation that started it and ends only through
`stopProcess` (or `stop_all`). Each one is a daemon thread that runs its body
once, or every `interval_ms` until stopped.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .errors import InterpreterError

if TYPE_CHECKING:
    from ..definitions.steps import Step
    from .context import ExecutionContext

_logger = logging.getLogger("mcp.agent_runtime.processes")


@dataclass
class Process:
    id: str
    context: ExecutionContext
    interval_ms: int | None = None
    cleanup: tuple[Step, ...] | None = None
    started_at: float = field(default_factory=time.time)
    runs: int = 0
    last_error: str | None = None
    stop_event: threading.Event = field(default_factory=threading.Event)
    thread: threading.Thread | None = None

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "intervalMs": self.interval_ms,
            "runs": self.runs,
            "alive": bool(self.thread and self.thread.is_alive()),
            "hasCleanup": bool(self.cleanup),
            "lastError": self.last_error,
            "startedAt": self.started_at,
        }


class ProcessTable:
    """Thread-safe registry of live processes, shared by all invocations."""

    def __init__(self, join_timeout: float = 2.0) -> None:
        self._lock = threading.Lock()
        self._procs: dict[str, Process] = {}
        self.join_timeout = join_timeout

    def start(
        self,
        process_id: str,
        context: ExecutionContext,
        body: Callable[[ExecutionContext], None],
        *,
        interval_ms: int | None = None,
    ) -> Process:
        with self._lock:
            if process_id in self._procs:
                raise InterpreterError(f'Process "{process_id}" is already running')
            proc = Process(id=process_id, context=context, interval_ms=interval_ms)
            self._procs[process_id] = proc
        proc.thread = threading.Thread(
            target=self._loop,
            args=(proc, body),
            name=f"agent-process-{process_id}",
            daemon=True,
        )
        proc.thread.start()
        _logger.info("Started process %s (interval_ms=%s)", process_id, interval_ms)
        return proc

    def _loop(self, proc: Process, body: Callable[[ExecutionContext], None]) -> None:
        while not proc.stop_event.is_set():
            try:
                body(proc.context)
            except Exception as exc:  # noqa: BLE001
                proc.last_error = str(exc)
                _logger.exception("Process %s body failed", proc.id)
            proc.runs += 1
            if not proc.interval_ms:
                return
            proc.stop_event.wait(proc.interval_ms / 1000.0)

    def set_cleanup(self, process_id: str, steps: tuple[Step, ...]) -> bool:
        with self._lock:
            proc = self._procs.get(process_id)
            if proc is None:
                return False
            proc.cleanup = steps
            return True

    def get(self, process_id: str) -> Process | None:
        with self._lock:
            return self._procs.get(process_id)

    def stop(self, process_id: str, run_cleanup: Callable[[Process], None]) -> bool:
        """Halt the body thread, then run cleanup on the quiescent context and drop the record."""
        with self._lock:
            proc = self._procs.pop(process_id, None)
        if proc is None:
            return False
        proc.stop_event.set()
        thread = proc.thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(self.join_timeout)
            if thread.is_alive():
                _logger.warning("Process %s body still running after %.1fs", process_id, self.join_timeout)
        try:
            if proc.cleanup:
                run_cleanup(proc)
        finally:
            _logger.info("Stopped process %s after %d run(s)", process_id, proc.runs)
        return True

    def stop_all(self, run_cleanup: Callable[[Process], None]) -> list[str]:
        with self._lock:
            ids = list(self._procs)
        stopped = []
        for pid in ids:
            try:
                if self.stop(pid, run_cleanup):
                    stopped.append(pid)
            except Exception:  # noqa: BLE001
                _logger.exception("Cleanup for process %s failed", pid)
                stopped.append(pid)
        return stopped

    def snapshot(self) -> list[dict[str, Any]]:
        with self._lock:
            return [p.describe() for p in self._procs.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._procs)
