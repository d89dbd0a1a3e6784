"""
CodeCollab - Process Supervisor

Owns the lifecycle of at most one child process per connection:
prepare, compile, spawn, stream, terminate. Every observable outcome is
published as an execution event on the connection's channel.
"""

import asyncio
import codecs
import os
import secrets
import shutil
import signal
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

import structlog

from codecollab.core.config import settings
from codecollab.core.errors import (
    CompileFailure, ExecutionError, SpawnFailure, WriteAfterExit
)
from codecollab.core.logging import log_execution_event
from codecollab.schemas.execution import (
    ExecutionEvent, MessageType, create_done_message, create_error_message,
    create_output_message
)
from codecollab.services.languages import LanguageSpec, RunArtifacts, resolve_language
from codecollab.services.preparer import PreparedSource, prepare_source

logger = structlog.get_logger(__name__)

# Time allowed for stream readers to hit EOF after a forced kill
READER_GRACE_SECONDS = 1.0


class SupervisorState(str, Enum):
    """Per-connection execution state."""
    IDLE = "idle"
    PREPARING = "preparing"
    COMPILING = "compiling"
    RUNNING = "running"
    TERMINATING = "terminating"


def exit_summary(exit_code: int) -> str:
    """Trailing output line describing how a process ended."""
    if exit_code < 0:
        try:
            name = signal.Signals(-exit_code).name
        except ValueError:
            name = str(-exit_code)
        return f"\n✖ Terminated by signal {name}\n"
    return f"\n✔ Finished with exit code {exit_code}\n"


class EventChannel:
    """
    FIFO channel carrying execution events from the supervisor to the endpoint.

    Stream chunks go through publish(), which waits while `limit` of them are
    still unconsumed; a stalled reader leaves the child blocked on its pipe.
    Control events (errors, exit summary, done) go through publish_nowait()
    and are never held back.
    """

    def __init__(self, limit: Optional[int] = None):
        self._queue: "asyncio.Queue[Optional[Tuple[ExecutionEvent, bool]]]" = asyncio.Queue()
        self._limit = limit or settings.EVENT_CHANNEL_LIMIT
        self._pending = 0
        self._has_room = asyncio.Event()
        self._has_room.set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def backlog(self) -> int:
        """Number of events waiting for the consumer."""
        return self._queue.qsize()

    async def publish(self, event: ExecutionEvent) -> None:
        """Queue a stream chunk, waiting for room when the consumer lags."""
        if self._closed:
            return
        if self._pending >= self._limit:
            self._has_room.clear()
            await self._has_room.wait()
            if self._closed:
                return
        self._pending += 1
        self._queue.put_nowait((event, True))

    def publish_nowait(self, event: ExecutionEvent) -> None:
        """Queue a control event regardless of the backlog."""
        if self._closed:
            return
        self._queue.put_nowait((event, False))

    def wake(self) -> None:
        """Let every waiting publish() through once, full or not."""
        self._has_room.set()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)
        self._has_room.set()

    async def get(self) -> Optional[ExecutionEvent]:
        """Next event, or None once the channel is closed and drained."""
        return self._take(await self._queue.get())

    def drain_nowait(self) -> List[ExecutionEvent]:
        """Everything currently queued, without waiting."""
        events = []
        while not self._queue.empty():
            event = self._take(self._queue.get_nowait())
            if event is not None:
                events.append(event)
        return events

    def _take(self, item) -> Optional[ExecutionEvent]:
        if item is None:
            return None
        event, bounded = item
        if bounded:
            self._pending -= 1
            if self._pending < self._limit:
                self._has_room.set()
        return event

    def __aiter__(self):
        return self

    async def __anext__(self) -> ExecutionEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

@dataclass
class RunHandle:
    """One run: its artifacts, OS process and how it ended."""
    language: str
    code: str
    artifacts: RunArtifacts
    process: asyncio.subprocess.Process
    started_at: float = field(default_factory=time.monotonic)
    killed: bool = False
    discard_output: bool = False
    readers: List[asyncio.Task] = field(default_factory=list)
    watcher: Optional[asyncio.Task] = None

    @property
    def pid(self) -> int:
        return self.process.pid


class ProcessSupervisor:
    """Runs submitted code for a single connection, one process at a time."""

    def __init__(
        self,
        connection_id: str,
        channel: Optional[EventChannel] = None,
        scratch_dir: Optional[str] = None,
    ):
        self.connection_id = connection_id
        self.events = channel or EventChannel()
        self.scratch_dir = scratch_dir or settings.SCRATCH_DIR
        self.state = SupervisorState.IDLE

        self._run: Optional[RunHandle] = None
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def active_run(self) -> Optional[RunHandle]:
        return self._run

    @property
    def is_running(self) -> bool:
        return self._run is not None and self._run.process.returncode is None

    async def run(self, code: str, language: str) -> bool:
        """
        Start a run, terminating the active one first.

        Args:
            code: Source text
            language: Language tag

        Returns:
            True when a process was spawned
        """
        async with self._lock:
            if self._run is not None:
                await self._terminate(self._run)

            if self._closed:
                return False

            self.state = SupervisorState.PREPARING
            artifacts = None
            try:
                spec = resolve_language(language)
                prepared = prepare_source(code, spec.language)
                artifacts = self._write_artifacts(spec, prepared)

                if spec.is_compiled:
                    self.state = SupervisorState.COMPILING
                    await self._compile(spec, artifacts)

                if self._closed:
                    # Transport went away while the toolchain was busy
                    self._cleanup(artifacts)
                    self.state = SupervisorState.IDLE
                    return False

                process = await self._spawn(spec, artifacts)
            except ExecutionError as e:
                self._report(e, language=language)
                if artifacts is not None:
                    self._cleanup(artifacts)
                self.state = SupervisorState.IDLE
                return False

            handle = RunHandle(
                language=spec.language.value,
                code=code,
                artifacts=artifacts,
                process=process,
            )
            self._run = handle
            self.state = SupervisorState.RUNNING
            handle.readers = [
                asyncio.create_task(self._pump(handle, process.stdout, MessageType.OUTPUT)),
                asyncio.create_task(self._pump(handle, process.stderr, MessageType.ERROR)),
            ]
            handle.watcher = asyncio.create_task(self._watch(handle))

            logger.info(
                "Run started",
                connection_id=self.connection_id,
                language=handle.language,
                pid=handle.pid,
            )
            return True

    async def send_input(self, data: str) -> bool:
        """Write one line to the active process's stdin."""
        handle = self._run
        if handle is None or handle.killed or handle.process.returncode is not None:
            self._report(WriteAfterExit("No active process to receive input."))
            return False

        try:
            handle.process.stdin.write(f"{data}\n".encode("utf-8"))
            await handle.process.stdin.drain()
        except OSError as e:
            self._report(WriteAfterExit(f"Failed to write to stdin: {e}"))
            return False
        return True

    async def kill(self) -> bool:
        """Force-terminate the active run. Reports an error when there is none."""
        async with self._lock:
            handle = self._run
            if handle is None:
                self._report(ExecutionError("No active process to kill."))
                return False

            await self._terminate(handle)
            return True

    async def shutdown(self) -> None:
        """Kill whatever is running and close the event channel."""
        self._closed = True
        async with self._lock:
            if self._run is not None:
                await self._terminate(self._run)
        self.events.close()

    def _write_artifacts(self, spec: LanguageSpec, prepared: PreparedSource) -> RunArtifacts:
        stamp = str(time.time_ns())
        run_dir = os.path.join(self.scratch_dir, f"run_{stamp}_{secrets.token_hex(4)}")
        artifacts = spec.layout(run_dir, stamp, prepared.entry_name)
        try:
            os.makedirs(run_dir, exist_ok=True)
            with open(artifacts.source_path, "w", encoding="utf-8") as f:
                f.write(prepared.text)
        except OSError as e:
            shutil.rmtree(run_dir, ignore_errors=True)
            raise ExecutionError(f"Failed to prepare run: {e}")
        return artifacts

    async def _compile(self, spec: LanguageSpec, artifacts: RunArtifacts) -> None:
        command = spec.compile_command(artifacts)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=artifacts.run_dir,
            )
            stdout, stderr = await process.communicate()
        except OSError as e:
            raise CompileFailure(str(e))

        if process.returncode != 0:
            diagnostics = (
                stderr.decode("utf-8", errors="replace")
                or stdout.decode("utf-8", errors="replace")
                or f"Command failed: {' '.join(command)}"
            )
            raise CompileFailure(diagnostics, exit_code=process.returncode)

    async def _spawn(self, spec: LanguageSpec, artifacts: RunArtifacts) -> asyncio.subprocess.Process:
        command = spec.run_command(artifacts)
        try:
            return await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=artifacts.run_dir,
                env={**os.environ, "PYTHONUNBUFFERED": "1"},
            )
        except OSError as e:
            raise SpawnFailure(str(e))

    async def _pump(self, handle: RunHandle, stream: asyncio.StreamReader, kind: MessageType) -> None:
        """Forward one output stream chunk by chunk until EOF. Output of a terminated run is discarded."""
        make_message: Callable[[str], ExecutionEvent] = (
            create_output_message if kind == MessageType.OUTPUT else create_error_message
        )
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

        while True:
            chunk = await stream.read(settings.STREAM_CHUNK_SIZE)
            if not chunk:
                break
            if handle.discard_output:
                continue
            text = decoder.decode(chunk)
            if text:
                await self.events.publish(make_message(text))

        tail = decoder.decode(b"", final=True)
        if tail and not handle.discard_output:
            await self.events.publish(make_message(tail))

    async def _watch(self, handle: RunHandle) -> None:
        """Wait for the run to end, then publish its summary and release it."""
        await asyncio.gather(*handle.readers, return_exceptions=True)
        exit_code = await handle.process.wait()

        if self._run is handle:
            self.state = SupervisorState.TERMINATING

        if not handle.killed:
            self.events.publish_nowait(create_output_message(exit_summary(exit_code)))
        self.events.publish_nowait(create_done_message())

        log_execution_event(
            logger,
            connection_id=self.connection_id,
            language=handle.language,
            exit_code=None if handle.killed else exit_code,
            killed=handle.killed,
            duration_ms=round((time.monotonic() - handle.started_at) * 1000, 2),
        )

        if self._run is handle:
            self._run = None
            self.state = SupervisorState.IDLE
        self._cleanup(handle.artifacts)

    async def _terminate(self, handle: RunHandle) -> None:
        """SIGKILL the process and wait until its done event is published."""
        self.state = SupervisorState.TERMINATING
        process = handle.process

        if process.returncode is None:
            handle.killed = True
            try:
                process.kill()
            except ProcessLookupError:
                pass

        # Blocked readers must get back to draining the pipes before EOF can arrive
        handle.discard_output = True
        self.events.wake()
        await process.wait()

        if handle.watcher is not None:
            finished, _ = await asyncio.wait({handle.watcher}, timeout=READER_GRACE_SECONDS)
            if not finished:
                # Orphaned grandchildren can hold the pipes open
                for reader in handle.readers:
                    reader.cancel()
            await handle.watcher

    def _report(self, error: ExecutionError, **context) -> None:
        logger.warning(
            "Execution error",
            connection_id=self.connection_id,
            error_type=type(error).__name__,
            error=error.message[:500],
            **context
        )
        self.events.publish_nowait(create_error_message(error.message))

    def _cleanup(self, artifacts: RunArtifacts) -> None:
        if not settings.CLEANUP_ARTIFACTS:
            return
        shutil.rmtree(artifacts.run_dir, ignore_errors=True)
