"""
SSE-based EventBus implementation.

Broadcasts approval events to every subscriber of the global event stream.
A front end that connects while a dialog is open or a prompt is waiting
first receives the latest render of each, so it can draw the current state.
"""

import asyncio
from typing import Any

from preflight.events import DIALOG_CLOSED, DIALOG_UPDATED, SELECT_REQUESTED, SELECT_RESOLVED, Event


class SSEEventBus:
    """
    EventBus implementation that broadcasts events to SSE subscribers.

    Each subscriber gets a queue that receives events. The global event
    endpoint consumes from these queues to stream events to clients.
    """

    def __init__(self) -> None:
        self.subscribers: list[asyncio.Queue[dict[str, Any]]] = []
        # Latest event per open dialog / waiting prompt, replayed on subscribe
        self._live: dict[str, dict[str, Any]] = {}

    async def publish(self, event: Event) -> None:
        """Publish an event to all subscribers."""
        data = event.model_dump()
        self._track(data)
        for queue in self.subscribers:
            await queue.put(data)

    def _track(self, data: dict[str, Any]) -> None:
        properties = data["properties"]
        if data["type"] == DIALOG_UPDATED:
            self._live[f"dialog:{properties['dialog']['dialog_id']}"] = data
        elif data["type"] == DIALOG_CLOSED:
            self._live.pop(f"dialog:{properties['dialogId']}", None)
        elif data["type"] == SELECT_REQUESTED:
            self._live[f"select:{properties['requestId']}"] = data
        elif data["type"] == SELECT_RESOLVED:
            self._live.pop(f"select:{properties['requestId']}", None)

    @property
    def live_events(self) -> list[dict[str, Any]]:
        """Renders of the dialogs and prompts still waiting for an answer."""
        return list(self._live.values())

    def subscribe(self) -> asyncio.Queue[dict[str, Any]]:
        """
        Create a new subscription queue.

        Returns:
            A queue holding the live events, then every later event
        """
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        for data in self._live.values():
            queue.put_nowait(data)
        self.subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[dict[str, Any]]) -> None:
        if queue in self.subscribers:
            self.subscribers.remove(queue)


# Global event bus instance
_event_bus: SSEEventBus | None = None


def get_event_bus() -> SSEEventBus:
    """Get the global event bus instance, creating it if necessary."""
    global _event_bus
    if _event_bus is None:
        _event_bus = SSEEventBus()
    return _event_bus
