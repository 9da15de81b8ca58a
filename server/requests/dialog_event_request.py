"""DialogEventRequest model."""

from pydantic import RootModel

from preflight.approvals import DialogEvent


class DialogEventRequest(RootModel[DialogEvent]):
    """A user dialog event, discriminated by ``type``."""
