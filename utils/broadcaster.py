"""
Broadcaster — pushes task updates to every attached observer.

Delivery is at-most-once and unordered across observers: each notify sends
to a snapshot of the observer set, skips channels that are not open, and
never queues or retries. Observers that reconnect pull current state with
``list_tasks``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from starlette.websockets import WebSocketState

from models import messages
from models.schemas import Task

log = logging.getLogger(__name__)


def is_open(channel: Any) -> bool:
    """True if both sides of a WebSocket are in the connected state."""
    return (
        getattr(channel, "client_state", None) == WebSocketState.CONNECTED
        and getattr(channel, "application_state", None) == WebSocketState.CONNECTED
    )


async def send_if_open(channel: Any, message: dict, timeout: float | None = None) -> bool:
    """Send one JSON message if the channel is open. Returns True if sent."""
    if not is_open(channel):
        return False
    await asyncio.wait_for(channel.send_text(json.dumps(message)), timeout=timeout)
    return True


class Broadcaster:
    """Fan-out of task_update messages over a changing set of WebSockets."""

    SEND_TIMEOUT = 1.0  # seconds before a slow observer is dropped

    def __init__(self) -> None:
        self._observers: set[Any] = set()

    def attach(self, channel: Any) -> None:
        self._observers.add(channel)
        log.info("Observer attached (%d connected)", len(self._observers))

    def detach(self, channel: Any) -> None:
        if channel in self._observers:
            self._observers.discard(channel)
            log.info("Observer detached (%d connected)", len(self._observers))

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    async def notify(self, task: Task) -> int:
        """Send the task snapshot to all open observers. Returns how many received it."""
        message = messages.task_update(task)
        delivered = 0
        for channel in list(self._observers):
            try:
                if await send_if_open(channel, message, timeout=self.SEND_TIMEOUT):
                    delivered += 1
                else:
                    log.debug("Skipping observer that is not open")
            except Exception as e:
                log.warning("Dropping observer after failed send: %s", e)
                self.detach(channel)
        return delivered
