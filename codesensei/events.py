"""Advisory notifications emitted to the UI while agent tasks run."""

from __future__ import annotations

import logging
import time
from collections import deque
from threading import Lock
from typing import Any

from codesensei.schemas import AgentEvent

logger = logging.getLogger(__name__)

# Event names
AGENT_PROGRESS = "agent-progress"
REQUIREMENT_UPDATED = "requirement-updated"
AGENT_TASK_STARTED = "agent-task-started"
FILES_OPERATION_COMPLETED = "files-operation-completed"

DEFAULT_MAX_EVENTS = 500


class Notifier:
    """Receives UI notifications. The base implementation only logs them."""

    def emit(self, name: str, payload: dict[str, Any]) -> None:
        logger.info(f"Event {name}: {payload}")


class EventLog(Notifier):
    """Bounded in-memory log of emitted events, polled by the UI."""

    def __init__(self, max_size: int = DEFAULT_MAX_EVENTS):
        self._events: deque[AgentEvent] = deque(maxlen=max_size)
        self._lock = Lock()
        self._seq = 0

    def emit(self, name: str, payload: dict[str, Any]) -> None:
        """Record an event."""
        with self._lock:
            self._seq += 1
            self._events.append(
                AgentEvent(seq=self._seq, name=name, payload=payload, emitted_at=time.time())
            )
        logger.debug(f"Recorded event {name}")

    def since(self, after: int = 0) -> list[AgentEvent]:
        """Events with a sequence number greater than ``after``."""
        with self._lock:
            return [event for event in self._events if event.seq > after]

    def size(self) -> int:
        with self._lock:
            return len(self._events)


def notify(notifier: Notifier | None, name: str, payload: dict[str, Any]) -> None:
    """Emit an event; failures are logged and never affect the caller."""
    if notifier is None:
        return
    try:
        notifier.emit(name, payload)
    except Exception as e:
        logger.warning(f"Failed to emit {name} event: {e}", exc_info=True)


def progress(notifier: Notifier | None, stage: str, message: str, **extra: Any) -> None:
    """Emit an ``agent-progress`` event for a saga stage."""
    notify(notifier, AGENT_PROGRESS, {"stage": stage, "message": message, **extra})
