"""
CodeCollab - Room Event Schemas

Envelope and payload structures for the room WebSocket. Payload field names
follow the camelCase convention used by the browser client.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RoomEvent(str, Enum):
    """Room event names, inbound and outbound."""
    # Presence
    JOIN = "join"
    LEAVE = "leave"
    JOINED = "joined"
    DISCONNECTED = "disconnected"

    # Shared editor state
    CODE_CHANGE = "code-change"
    CODE_UPDATE = "code-update"
    LANGUAGE_CHANGE = "language-change"
    LANGUAGE_UPDATE = "language-update"
    CURSOR_POSITION = "cursor-position"
    REMOTE_CURSOR = "remote-cursor"

    # Shared terminal
    RUN_TRIGGER = "run-trigger"
    RUN_UPDATE = "run-update"
    TERMINAL_INPUT = "terminal-input"
    TERMINAL_OUTPUT = "terminal-output"
    TERMINAL_FOCUS = "terminal-focus"
    TERMINAL_INPUT_FOCUS = "terminal-input-focus"
    TERMINAL_INPUT_BLUR = "terminal-input-blur"
    TERMINAL_KILL = "terminal-kill"
    TERMINAL_DONE = "terminal-done"

    # Transport
    ERROR = "error"


class RoomPayload(BaseModel):
    """Base for payloads; accepts camelCase or snake_case keys."""
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Envelope(BaseModel):
    """The unit of room transport: an event name and its payload."""
    event: str
    data: Optional[Any] = None


# Inbound payloads
class RoomScopedPayload(RoomPayload):
    """Any event addressed to a room."""
    room_id: str = Field(alias="roomId", min_length=1)


class JoinPayload(RoomScopedPayload):
    username: str = Field(min_length=1)


class LeavePayload(RoomScopedPayload):
    username: Optional[str] = None


class CodeChangePayload(RoomScopedPayload):
    code: str


class LanguageChangePayload(RoomScopedPayload):
    language: str


class TerminalInputPayload(RoomScopedPayload):
    input: str


class TerminalOutputPayload(RoomScopedPayload):
    message: str
    sender: Optional[str] = None


class TerminalFocusPayload(RoomScopedPayload):
    sender: Optional[str] = None


class CursorPositionPayload(RoomScopedPayload):
    username: Optional[str] = None
    line_number: int = Field(alias="lineNumber")
    column: int


# Outbound payloads
class ClientInfo(RoomPayload):
    """One roster entry."""
    socket_id: str = Field(alias="socketId")
    username: str


class JoinedPayload(RoomPayload):
    clients: List[ClientInfo]
    joined_username: str = Field(alias="joinedUsername")
    socket_id: str = Field(alias="socketId")


class DisconnectedPayload(RoomPayload):
    clients: List[ClientInfo]
    left_username: Optional[str] = Field(default=None, alias="leftUsername")
    socket_id: str = Field(alias="socketId")


class RemoteCursorPayload(RoomPayload):
    socket_id: str = Field(alias="socketId")
    username: Optional[str] = None
    line_number: int = Field(alias="lineNumber")
    column: int


def create_envelope(event: RoomEvent, data: Optional[Any] = None) -> Dict[str, Any]:
    """Build the wire form of a room event."""
    if isinstance(data, RoomPayload):
        data = data.to_wire()
    return {"event": event.value, "data": data if data is not None else {}}


def create_room_error(message: str) -> Dict[str, Any]:
    """Build an error envelope for the sending connection."""
    return create_envelope(RoomEvent.ERROR, {"message": message})
