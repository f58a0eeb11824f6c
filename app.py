"""
FastAPI application — WebSocket + REST surface for the Visual Feedback server.

Endpoints:
  WS   /ws?token=...        — submit changes, list tasks, read logs; receives task_update broadcasts
  GET  /health              — Health check
  GET  /status              — Server and task counters
  GET  /tasks               — All resident tasks, most recent first
  GET  /tasks/{task_id}/log — Accumulated agent output for one task
"""

from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

import config
from activities.agent import build_agent_env
from activities.supervisor import ProcessSupervisor
from features.beads import MemoryStore
from features.tasks import TaskStore
from models import messages
from models.errors import MessageError
from models.messages import GetTaskLog, ListTasks, SubmitChange, parse_message
from utils.broadcaster import Broadcaster, send_if_open
from workflows.orchestrator import TaskOrchestrator

log = logging.getLogger(__name__)

SERVICE_NAME = "visual-feedback-server"


def build_orchestrator() -> TaskOrchestrator:
    """Wire the task engine from the current configuration."""
    store = TaskStore(config.TASKS_FILE, max_tasks=config.MAX_TASKS)
    store.load()
    return TaskOrchestrator(
        store=store,
        memory=MemoryStore(
            subdir=config.BEADS_SUBDIR,
            history_limit=config.BEAD_HISTORY_LIMIT,
            context_changes=config.BEAD_CONTEXT_CHANGES,
        ),
        broadcaster=Broadcaster(),
        supervisor=ProcessSupervisor(queue_size=config.OUTPUT_QUEUE_SIZE),
        agent_command=config.AGENT_COMMAND,
        agent_env=build_agent_env(config.AGENT_ENV_ALLOWLIST, config.AGENT_SEARCH_PATH),
        default_model=config.DEFAULT_MODEL,
        agent_flags=config.AGENT_FLAGS,
        timeout_sec=config.AGENT_TIMEOUT_SEC,
        broadcast_chunks=config.BROADCAST_OUTPUT_CHUNKS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    orchestrator = build_orchestrator()
    app.state.orchestrator = orchestrator
    log.info(
        "Task engine ready: %d task(s) loaded, agent=%s",
        len(orchestrator.store), " ".join(config.AGENT_COMMAND),
    )
    yield
    await orchestrator.shutdown()
    log.info("Task engine stopped")


def token_valid(token: str | None) -> bool:
    """An empty configured token accepts every connection."""
    if not config.ACCESS_TOKEN:
        return True
    return token is not None and secrets.compare_digest(token, config.ACCESS_TOKEN)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Visual Feedback Server",
        description="Forwards on-page change requests to a coding agent and tracks the results",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    # ── Health ────────────────────────────────────────────────────────

    @app.get("/health")
    def health():
        return {"status": "ok", "service": SERVICE_NAME}

    @app.get("/status")
    def status(request: Request):
        orchestrator: TaskOrchestrator = request.app.state.orchestrator
        return {
            "status": "running",
            "port": config.PORT,
            "tasks": len(orchestrator.store),
            "running": orchestrator.running_count,
            "observers": orchestrator.broadcaster.observer_count,
            "orphaned": len(orchestrator.store.orphaned),
        }

    # ── Tasks ─────────────────────────────────────────────────────────

    @app.get("/tasks")
    def list_tasks(request: Request):
        orchestrator: TaskOrchestrator = request.app.state.orchestrator
        return [t.to_dict() for t in orchestrator.list_tasks()]

    @app.get("/tasks/{task_id}/log")
    def get_task_log(task_id: str, request: Request):
        orchestrator: TaskOrchestrator = request.app.state.orchestrator
        text = orchestrator.get_log(task_id)
        if text is None:
            raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
        return {"log": text}

    # ── WebSocket ─────────────────────────────────────────────────────

    @app.websocket("/ws")
    async def feedback_socket(websocket: WebSocket, token: str | None = None):
        if not token_valid(token):
            log.warning("Connection rejected: invalid token")
            await websocket.close(code=1008, reason="Invalid token")
            return

        orchestrator: TaskOrchestrator = websocket.app.state.orchestrator
        await websocket.accept()
        orchestrator.broadcaster.attach(websocket)
        log.info("Client connected")
        try:
            await websocket.send_json(messages.ready())
            while True:
                raw = await websocket.receive_text()
                reply = await handle_message(raw, websocket, orchestrator)
                await send_if_open(websocket, reply)
        except WebSocketDisconnect:
            log.info("Client disconnected")
        finally:
            orchestrator.broadcaster.detach(websocket)

    return app


async def handle_message(raw: str, websocket: WebSocket, orchestrator: TaskOrchestrator) -> dict[str, Any]:
    """Dispatch one inbound frame and return the direct response."""
    try:
        msg = parse_message(raw)
    except MessageError as e:
        log.warning("Rejected message: %s", e)
        return messages.error(str(e))

    log.info("Received: %s", msg.type)
    if isinstance(msg, SubmitChange):
        async def reply(message: dict) -> None:
            await send_if_open(websocket, message)

        try:
            task = await orchestrator.submit(msg.to_request(), reply=reply)
        except MessageError as e:
            return messages.error(str(e), task_id=msg.payload.id)
        return messages.task_started(task.id)

    if isinstance(msg, ListTasks):
        return messages.task_list(orchestrator.list_tasks())

    if isinstance(msg, GetTaskLog):
        text = orchestrator.get_log(msg.task_id)
        if text is None:
            return messages.error(f"Task not found: {msg.task_id}", task_id=msg.task_id)
        return messages.task_log(msg.task_id, text)

    return messages.error(f"Unsupported message type: {msg.type}")


app = create_app()
