"""
CodeCollab - Execution Message Schemas

Defines the JSON messages exchanged on the execution WebSocket.
"""

from enum import Enum
from typing import Any, Dict, Union

from pydantic import BaseModel, ValidationError

from codecollab.core.errors import ProtocolError


class MessageType(str, Enum):
    """Execution WebSocket message types."""
    # Inbound
    RUN = "run"
    INPUT = "input"
    KILL = "kill"

    # Outbound
    OUTPUT = "output"
    ERROR = "error"
    DONE = "done"


class Language(str, Enum):
    """Languages the runner can execute."""
    PYTHON = "python"
    JAVASCRIPT = "javascript"
    C = "c"
    CPP = "cpp"
    JAVA = "java"


class BaseMessage(BaseModel):
    """Base message structure."""
    type: MessageType

    def to_wire(self) -> Dict[str, Any]:
        """Dictionary ready to be sent as JSON."""
        return self.model_dump(mode="json")


# Inbound messages
class RunMessage(BaseMessage):
    """Start a run, replacing any active one."""
    type: MessageType = MessageType.RUN
    code: str
    language: str


class InputMessage(BaseMessage):
    """A line of stdin for the active run."""
    type: MessageType = MessageType.INPUT
    data: str


class KillMessage(BaseMessage):
    """Force-terminate the active run."""
    type: MessageType = MessageType.KILL


# Outbound messages
class OutputMessage(BaseMessage):
    """Chunk of stdout, or the exit summary."""
    type: MessageType = MessageType.OUTPUT
    data: str


class ErrorMessage(BaseMessage):
    """Chunk of stderr, toolchain diagnostics, or a reported failure."""
    type: MessageType = MessageType.ERROR
    data: str


class DoneMessage(BaseMessage):
    """No more output will arrive for the current run."""
    type: MessageType = MessageType.DONE


InboundMessage = Union[RunMessage, InputMessage, KillMessage]
ExecutionEvent = Union[OutputMessage, ErrorMessage, DoneMessage]


def describe_validation_error(error: ValidationError) -> str:
    """Short, client-facing description of a schema failure."""
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in error.errors()
    )


def validate_message(data: Any) -> InboundMessage:
    """
    Validate and create the appropriate inbound message object.

    Raises:
        ProtocolError: If the message is not a known, well-formed message
    """
    if not isinstance(data, dict):
        raise ProtocolError("Invalid message: Message must be a JSON object")

    message_type = data.get("type")
    if not message_type or not isinstance(message_type, str):
        raise ProtocolError("Invalid message: Message type is required")

    message_classes = {
        MessageType.RUN.value: RunMessage,
        MessageType.INPUT.value: InputMessage,
        MessageType.KILL.value: KillMessage,
    }

    message_class = message_classes.get(message_type)
    if not message_class:
        raise ProtocolError(f"Invalid message: Invalid message type: {message_type}")

    try:
        return message_class(**data)
    except ValidationError as e:
        raise ProtocolError(f"Invalid message: {describe_validation_error(e)}")


def create_output_message(data: str) -> OutputMessage:
    """Create an output message."""
    return OutputMessage(data=data)


def create_error_message(data: str) -> ErrorMessage:
    """Create an error message."""
    return ErrorMessage(data=data)


def create_done_message() -> DoneMessage:
    """Create a done message."""
    return DoneMessage()
