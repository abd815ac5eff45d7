"""Protocol-update events published by the backend for the active agent session.

The backend turns ACP ``session/update`` notifications and permission requests
into this small discriminated union; the router consumes it in arrival order.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from visor.errors import ProtocolError
from visor.models import PermissionChoice, PermissionRequest


class _Update(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    session_id: str


class ChatMessage(_Update):
    type: Literal["chat_message"] = "chat_message"
    content: str


class StatusUpdate(_Update):
    type: Literal["status_update"] = "status_update"
    content: str


class ErrorUpdate(_Update):
    type: Literal["error"] = "error"
    content: str


class ModeChanged(_Update):
    type: Literal["mode_changed"] = "mode_changed"
    mode_id: str = Field(min_length=1)


class PermissionOptionModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    option_id: str
    label: str


class PermissionRequested(_Update):
    type: Literal["permission_request"] = "permission_request"
    request_id: str = Field(min_length=1)
    message: str = ""
    options: list[PermissionOptionModel] = Field(default_factory=list)

    def to_request(self) -> PermissionRequest:
        return PermissionRequest(
            id=self.request_id,
            session_id=self.session_id,
            message=self.message,
            options=tuple(PermissionChoice(option_id=opt.option_id, label=opt.label) for opt in self.options),
        )


class TurnEnded(_Update):
    """The agent finished answering a prompt."""

    type: Literal["turn_ended"] = "turn_ended"
    stop_reason: str | None = None


ProtocolUpdate = Annotated[
    Union[ChatMessage, StatusUpdate, ErrorUpdate, ModeChanged, PermissionRequested, TurnEnded],
    Field(discriminator="type"),
]

_UPDATE_ADAPTER: TypeAdapter[Any] = TypeAdapter(ProtocolUpdate)
_UPDATE_TYPES = (ChatMessage, StatusUpdate, ErrorUpdate, ModeChanged, PermissionRequested, TurnEnded)


def parse_update(raw: Any) -> ProtocolUpdate:
    """Validate a raw mapping (or pass through a typed event).

    Raises ``ProtocolError`` for anything that is not a known, well-formed update.
    """
    if isinstance(raw, _UPDATE_TYPES):
        return raw
    try:
        return _UPDATE_ADAPTER.validate_python(raw)
    except PydanticValidationError as exc:
        kind = raw.get("type") if isinstance(raw, dict) else type(raw).__name__
        raise ProtocolError(f"malformed protocol update ({kind}): {exc.error_count()} error(s)") from exc
