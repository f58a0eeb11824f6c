"""
Task Orchestrator — drives one change request from submission to a terminal state.

Lifecycle:
  received   → processing   load element memory, build prompt, persist, notify, spawn agent
  processing → processing   append each output chunk to the task log, persist
  processing → complete     exit code 0: parse commit info, persist, save memory, notify, ack
  processing → failed       nonzero exit or spawn failure: persist, save memory, notify, ack

Every accepted task reaches exactly one of complete/failed and its requester
gets exactly one acknowledgment, unless the server shuts down first: then the
task stays ``processing`` on disk and is reported as orphaned after restart.

Each task has a single consumer coroutine reading its process channel, which
makes it the only writer of that task's record.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Mapping, Sequence

from activities.agent import build_agent_args
from activities.output_parser import extract
from activities.prompt import build_prompt
from activities.supervisor import (
    OutputChunk,
    ProcessExited,
    ProcessHandle,
    ProcessSupervisor,
    SpawnFailed,
)
from features.beads import MemoryStore
from features.tasks import TaskStore
from models import messages
from models.errors import DuplicateTaskError
from models.schemas import ChangeRequest, Task, TaskStatus
from utils.broadcaster import Broadcaster

log = logging.getLogger(__name__)

Reply = Callable[[dict], Awaitable[object]]


def new_task_id() -> str:
    return f"task-{uuid.uuid4().hex[:8]}"


@dataclass
class _Run:
    handle: ProcessHandle
    consumer: asyncio.Task


class TaskOrchestrator:
    """Accepts change requests and supervises one agent process per task."""

    def __init__(
        self,
        store: TaskStore,
        memory: MemoryStore,
        broadcaster: Broadcaster,
        supervisor: ProcessSupervisor,
        *,
        agent_command: Sequence[str],
        agent_env: Mapping[str, str],
        default_model: str,
        agent_flags: Sequence[str] = (),
        timeout_sec: float = 0,
        broadcast_chunks: bool = False,
    ):
        if not agent_command:
            raise ValueError("agent_command must name an executable")
        self.store = store
        self.memory = memory
        self.broadcaster = broadcaster
        self.supervisor = supervisor
        self.agent_command = list(agent_command)
        self.agent_env = dict(agent_env)
        self.default_model = default_model
        self.agent_flags = list(agent_flags)
        self.timeout_sec = timeout_sec
        self.broadcast_chunks = broadcast_chunks
        self._runs: dict[str, _Run] = {}
        self._pending: set[str] = set()

    # ── Submission ────────────────────────────────────────────────────

    async def submit(self, request: ChangeRequest, reply: Reply | None = None) -> Task:
        """Accept a change request and start its agent. Returns immediately.

        ``reply`` receives the single terminal task_result message.
        Raises DuplicateTaskError if the caller's id belongs to a running task.
        """
        task_id = request.id or new_task_id()
        if task_id in self._runs or task_id in self._pending:
            raise DuplicateTaskError(task_id)
        # reserved until the consumer is registered in _runs
        self._pending.add(task_id)
        try:
            return await self._start(task_id, request, reply)
        finally:
            self._pending.discard(task_id)

    async def _start(self, task_id: str, request: ChangeRequest, reply: Reply | None) -> Task:
        bead = self.memory.load(request.project_path, request.element)
        context = self.memory.render_context(bead)
        if context:
            log.info("[TASK] %s: found %d previous change(s) to this element", task_id, len(bead.changes))

        model = request.model or self.default_model
        prompt = build_prompt(request.feedback, request.element, request.page_url, context)

        task = Task(
            id=task_id,
            feedback=request.feedback,
            element=request.element.summary(),
            project_path=request.project_path,
            model=model,
            page_url=request.page_url,
        )
        self.store.add(task)
        await self.broadcaster.notify(task)
        log.info(
            '[TASK] Accepted %s — "%s" on <%s> %s (project=%s, model=%s)',
            task_id, request.feedback, request.element.tag,
            request.element.selector or "", request.project_path, model,
        )
        log.debug("[TASK] %s prompt:\n%s", task_id, prompt)

        handle = await self.supervisor.start(
            self.agent_command[0],
            [*self.agent_command[1:], *build_agent_args(model, prompt, self.agent_flags)],
            cwd=request.project_path,
            env=self.agent_env,
        )
        consumer = asyncio.create_task(
            self._consume(task_id, request, handle, reply), name=f"task-consumer-{task_id}",
        )
        run = _Run(handle, consumer)
        self._runs[task_id] = run
        consumer.add_done_callback(lambda _: self._forget(task_id, run))
        return task

    def _forget(self, task_id: str, run: _Run) -> None:
        if self._runs.get(task_id) is run:
            del self._runs[task_id]

    # ── Output consumption ────────────────────────────────────────────

    async def _consume(
        self,
        task_id: str,
        request: ChangeRequest,
        handle: ProcessHandle,
        reply: Reply | None,
    ) -> None:
        loop = asyncio.get_running_loop()
        timed_out = False
        timer = None
        if self.timeout_sec > 0:
            def _expire() -> None:
                nonlocal timed_out
                if handle.kill():
                    timed_out = True
                    log.warning("[TASK] %s timed out after %ss", task_id, self.timeout_sec)

            timer = loop.call_later(self.timeout_sec, _expire)

        try:
            async for event in handle.events():
                if isinstance(event, OutputChunk):
                    # registry writes are blocking file I/O
                    task = await loop.run_in_executor(None, self.store.append_output, task_id, event.text)
                    if task is not None and self.broadcast_chunks:
                        await self.broadcaster.notify(task)
                elif isinstance(event, ProcessExited):
                    if timer:
                        timer.cancel()
                    await self._on_exit(task_id, request, event.exit_code, timed_out, reply)
                elif isinstance(event, SpawnFailed):
                    await self._finish(
                        task_id, request, succeeded=False, error=event.message,
                        note=f"\nError: {event.message}", reply=reply,
                    )
        except Exception as e:
            log.exception("[TASK] %s: unexpected error while supervising agent", task_id)
            await handle.aclose()
            await self._abort(task_id, f"Internal error: {e}", reply)
        finally:
            if timer:
                timer.cancel()

    async def _on_exit(
        self,
        task_id: str,
        request: ChangeRequest,
        exit_code: int,
        timed_out: bool,
        reply: Reply | None,
    ) -> None:
        log.info("[TASK] %s agent exited with code %s", task_id, exit_code)
        if exit_code == 0:
            await self._finish(task_id, request, succeeded=True, exit_code=exit_code, reply=reply)
        elif timed_out:
            error = f"Agent timed out after {self.timeout_sec:g}s"
            await self._finish(
                task_id, request, succeeded=False, exit_code=exit_code,
                error=error, note=f"\nError: {error}", reply=reply,
            )
        else:
            await self._finish(
                task_id, request, succeeded=False, exit_code=exit_code,
                error=f"Agent exited with code {exit_code}", reply=reply,
            )

    async def _finish(
        self,
        task_id: str,
        request: ChangeRequest,
        *,
        succeeded: bool,
        exit_code: int | None = None,
        error: str | None = None,
        note: str = "",
        reply: Reply | None = None,
    ) -> None:
        def conclude(task: Task) -> Task:
            if succeeded:
                info = extract(task.log)
                return task.finished(
                    TaskStatus.COMPLETE,
                    exit_code=exit_code,
                    commit_hash=info.commit_hash,
                    commit_url=info.commit_url,
                )
            return task.finished(TaskStatus.FAILED, exit_code=exit_code, log=task.log + note)

        task = self.store.update(task_id, conclude)
        try:
            self.memory.save(request.project_path, request.element, request.feedback, task_id, succeeded)
        except Exception:
            log.exception("[BEAD] Could not record %s in element memory", task_id)

        if task is None:
            log.warning("[TASK] %s finished after being evicted from the registry", task_id)
        else:
            if succeeded:
                log.info("[TASK] Complete: %s (commit=%s)", task_id, task.commit_hash or "none")
            else:
                log.error("[TASK] Failed: %s — %s", task_id, error)
            await self.broadcaster.notify(task)

        await self._acknowledge(reply, messages.task_result(task_id, succeeded, error))

    async def _abort(self, task_id: str, error: str, reply: Reply | None) -> None:
        """Fail a task whose normal completion path raised. Still acknowledges once."""
        current = self.store.get(task_id)
        if current is not None and current.status.terminal:
            succeeded = current.status is TaskStatus.COMPLETE
            await self._acknowledge(reply, messages.task_result(task_id, succeeded, None if succeeded else error))
            return

        task = None
        try:
            task = self.store.update(
                task_id,
                lambda t: t.finished(TaskStatus.FAILED, log=t.log + f"\nError: {error}"),
            )
        except Exception:
            log.exception("[TASK] %s: could not mark task as failed", task_id)
        if task is not None:
            log.error("[TASK] Failed: %s — %s", task_id, error)
            await self.broadcaster.notify(task)
        await self._acknowledge(reply, messages.task_result(task_id, False, error))

    async def _acknowledge(self, reply: Reply | None, message: dict) -> None:
        if reply is None:
            return
        try:
            await reply(message)
        except Exception as e:
            log.warning("[TASK] Could not acknowledge %s to requester: %s", message.get("taskId"), e)

    # ── Queries ───────────────────────────────────────────────────────

    def list_tasks(self) -> list[Task]:
        return self.store.list()

    def get_log(self, task_id: str) -> str | None:
        task = self.store.get(task_id)
        return task.log if task else None

    @property
    def running_count(self) -> int:
        return len(self._runs)

    async def wait(self, task_id: str) -> Task | None:
        """Wait until a running task reaches its terminal state."""
        run = self._runs.get(task_id)
        if run is not None:
            await asyncio.shield(run.consumer)
        return self.store.get(task_id)

    # ── Shutdown ──────────────────────────────────────────────────────

    async def shutdown(self) -> None:
        """Abandon all running tasks: stop consuming and kill their processes.

        Abandoned tasks keep status ``processing`` and get no acknowledgment.
        """
        runs = list(self._runs.items())
        for _, run in runs:
            run.consumer.cancel()
        for task_id, run in runs:
            try:
                await run.consumer
            except asyncio.CancelledError:
                pass
            await run.handle.aclose()
            log.warning("[TASK] %s abandoned at shutdown; left as processing", task_id)
        self._runs.clear()
