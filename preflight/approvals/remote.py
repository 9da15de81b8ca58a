"""ApprovalUI that talks to a remote front end over the event bus."""

import asyncio
import logging

from config.defaults import APPROVAL_TIMEOUT_SECONDS

from ..events import Event, EventBus
from ..exceptions import NotFoundError
from ..models import gen_id
from .ui import DialogEvent, DialogView, NotifyLevel

logger = logging.getLogger(__name__)


class EventBusApprovalUI:
    """
    Remote approval UI.

    Prompts and dialog renders are published as events. Answers come back
    through ``respond_to_selection`` and ``push_dialog_event`` (called by the
    HTTP routes). A wait that exceeds the timeout counts as a dismissal.
    """

    def __init__(self, event_bus: EventBus, timeout: float = APPROVAL_TIMEOUT_SECONDS):
        """
        Initialize the remote UI.

        Args:
            event_bus: Bus the front end subscribes to
            timeout: Seconds to wait for any single answer
        """
        self.event_bus = event_bus
        self.timeout = timeout
        # Response futures for pending select prompts
        self._selections: dict[str, asyncio.Future] = {}
        # Inbound user events per open dialog
        self._dialogs: dict[str, asyncio.Queue] = {}

    @property
    def has_ui(self) -> bool:
        return True

    async def notify(self, message: str, level: NotifyLevel = "info") -> None:
        await self.event_bus.publish(Event.notify(message, level))

    async def select(self, title: str, options: list[str]) -> str | None:
        request_id = gen_id("sel_")
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._selections[request_id] = future

        await self.event_bus.publish(Event.select_requested(request_id, title, options))

        selection: str | None = None
        try:
            selection = await asyncio.wait_for(future, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Selection request timed out: %s", request_id)
        finally:
            self._selections.pop(request_id, None)

        if selection is not None and selection not in options:
            logger.warning("Ignoring unknown selection for %s: %s", request_id, selection)
            selection = None
        await self.event_bus.publish(Event.select_resolved(request_id, selection))
        return selection

    def respond_to_selection(self, request_id: str, selection: str | None) -> None:
        """
        Answer a pending select prompt.

        Raises:
            NotFoundError: If no prompt with this id is waiting
        """
        future = self._selections.get(request_id)
        if future is None:
            raise NotFoundError("Selection", request_id)
        if not future.done():
            future.set_result(selection)
            logger.debug("Selection received: %s -> %s", request_id, selection)

    async def show_dialog(self, view: DialogView) -> None:
        self._dialogs.setdefault(view.dialog_id, asyncio.Queue())
        await self.event_bus.publish(Event.dialog_updated(view.model_dump()))

    async def next_dialog_event(self, dialog_id: str) -> DialogEvent | None:
        queue = self._dialogs.get(dialog_id)
        if queue is None:
            return None
        try:
            return await asyncio.wait_for(queue.get(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Approval dialog timed out: %s", dialog_id)
            return None

    def push_dialog_event(self, dialog_id: str, event: DialogEvent) -> None:
        """
        Deliver a user event to an open dialog.

        Raises:
            NotFoundError: If the dialog is not open
        """
        queue = self._dialogs.get(dialog_id)
        if queue is None:
            raise NotFoundError("Dialog", dialog_id)
        queue.put_nowait(event)

    async def close_dialog(self, dialog_id: str) -> None:
        if self._dialogs.pop(dialog_id, None) is None:
            return
        await self.event_bus.publish(Event.dialog_closed(dialog_id))

    @property
    def open_dialogs(self) -> list[str]:
        return list(self._dialogs)

    @property
    def pending_selections(self) -> list[str]:
        return list(self._selections)
