"""
Approval events and the EventBus protocol.

The remote approval UI publishes dialog renders, select prompts and
notifications as events; the server streams them to front ends over SSE.
"""

from typing import Any, Protocol

from pydantic import BaseModel

DIALOG_UPDATED = "preflight.dialog.updated"
DIALOG_CLOSED = "preflight.dialog.closed"
SELECT_REQUESTED = "preflight.select.requested"
SELECT_RESOLVED = "preflight.select.resolved"
NOTIFY = "preflight.notify"


class Event(BaseModel):
    """An approval event: ``type`` is one of the names above."""

    type: str
    properties: dict[str, Any]

    @classmethod
    def dialog_updated(cls, dialog: dict[str, Any]) -> "Event":
        return cls(type=DIALOG_UPDATED, properties={"dialog": dialog})

    @classmethod
    def dialog_closed(cls, dialog_id: str) -> "Event":
        return cls(type=DIALOG_CLOSED, properties={"dialogId": dialog_id})

    @classmethod
    def select_requested(cls, request_id: str, title: str, options: list[str]) -> "Event":
        return cls(type=SELECT_REQUESTED, properties={"requestId": request_id, "title": title, "options": options})

    @classmethod
    def select_resolved(cls, request_id: str, selection: str | None) -> "Event":
        return cls(type=SELECT_RESOLVED, properties={"requestId": request_id, "selection": selection})

    @classmethod
    def notify(cls, message: str, level: str) -> "Event":
        return cls(type=NOTIFY, properties={"message": message, "level": level})


class EventBus(Protocol):
    """Anything the remote approval UI can publish to."""

    async def publish(self, event: Event) -> None:
        ...


class MemoryEventBus:
    """EventBus that keeps published events in a list (embedding and tests)."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    async def publish(self, event: Event) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [event.type for event in self.events]
