"""
Activity: Process supervision — runs the external agent and streams its output.

Each started process gets its own bounded channel (an asyncio.Queue). The
channel carries OutputChunk events in arrival order, then exactly one
terminal event: ProcessExited once both streams are drained and the process
has been reaped, or SpawnFailed if it never started. Consumers read it with
``async for event in handle.events()``.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Mapping, Sequence, Union

log = logging.getLogger(__name__)

CHUNK_SIZE = 4096
DEFAULT_QUEUE_SIZE = 256


@dataclass(frozen=True)
class OutputChunk:
    stream: str  # "stdout" | "stderr"
    text: str


@dataclass(frozen=True)
class ProcessExited:
    exit_code: int


@dataclass(frozen=True)
class SpawnFailed:
    message: str


ProcessEvent = Union[OutputChunk, ProcessExited, SpawnFailed]


class ProcessHandle:
    """A supervised agent process and its event channel."""

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self._queue: asyncio.Queue[ProcessEvent] = asyncio.Queue(maxsize=queue_size)
        self._process: asyncio.subprocess.Process | None = None
        self._pump: asyncio.Task | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def events(self) -> AsyncIterator[ProcessEvent]:
        """Yield output chunks, ending after the terminal event."""
        while True:
            event = await self._queue.get()
            yield event
            if isinstance(event, (ProcessExited, SpawnFailed)):
                return

    def kill(self) -> bool:
        """Kill the process if it is still running. Returns True if a signal was sent."""
        if not self.running:
            return False
        try:
            self._process.kill()
        except ProcessLookupError:
            return False
        log.info("Killed agent process %s", self.pid)
        return True

    async def aclose(self) -> None:
        """Kill the process, stop reading its output and reap it. Nothing more is delivered."""
        self.kill()
        if self._pump and not self._pump.done():
            self._pump.cancel()
            try:
                await self._pump
            except asyncio.CancelledError:
                pass
        if self._process is not None:
            await self._process.wait()

    def _spawn_failed(self, message: str) -> None:
        self._queue.put_nowait(SpawnFailed(message))

    def _attach(self, process: asyncio.subprocess.Process) -> None:
        self._process = process
        self._pump = asyncio.create_task(self._pump_streams(), name=f"agent-pump-{process.pid}")

    async def _pump_streams(self) -> None:
        process = self._process
        await asyncio.gather(
            self._read(process.stdout, "stdout"),
            self._read(process.stderr, "stderr"),
        )
        exit_code = await process.wait()
        log.info("Agent process %s exited with code %s", process.pid, exit_code)
        await self._queue.put(ProcessExited(exit_code))

    async def _read(self, stream: asyncio.StreamReader, name: str) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stream.read(CHUNK_SIZE)
            text = decoder.decode(data, final=not data)
            if text:
                log.debug("[%s %s] %s", name, self.pid, text.rstrip())
                await self._queue.put(OutputChunk(name, text))
            if not data:
                return


class ProcessSupervisor:
    """Starts agent processes; one process (and one handle) per task."""

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self.queue_size = queue_size

    async def start(
        self,
        command: str,
        args: Sequence[str],
        cwd: str | Path,
        env: Mapping[str, str],
    ) -> ProcessHandle:
        """Spawn ``command args`` in ``cwd`` with exactly ``env``; stdin is closed.

        Never raises for spawn problems: a handle whose channel holds a single
        SpawnFailed event is returned instead.
        """
        handle = ProcessHandle(self.queue_size)
        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                cwd=str(cwd),
                env=dict(env),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (OSError, ValueError) as e:
            log.error("Failed to start %s: %s", command, e)
            handle._spawn_failed(str(e))
            return handle

        log.info("Started agent process %s: %s (cwd=%s)", process.pid, command, cwd)
        handle._attach(process)
        return handle
