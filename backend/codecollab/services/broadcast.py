"""
CodeCollab - Room Broadcast Router

Relays room-scoped events from the originating participant to everyone else
in the room, and keeps every member's roster current on join/leave.
"""

import asyncio
import json
import uuid
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Type

from fastapi import WebSocket
from pydantic import ValidationError
import structlog

from codecollab.core.errors import ProtocolError
from codecollab.core.logging import log_room_event
from codecollab.schemas.room import (
    ClientInfo, CodeChangePayload, CursorPositionPayload, DisconnectedPayload,
    Envelope, JoinPayload, JoinedPayload, LanguageChangePayload, LeavePayload,
    RemoteCursorPayload, RoomEvent, RoomPayload, RoomScopedPayload,
    TerminalFocusPayload, TerminalInputPayload, TerminalOutputPayload,
    create_envelope, create_room_error
)
from codecollab.services.rooms import Participant, RoomRegistry

logger = structlog.get_logger(__name__)

Handler = Callable[[str, Any], Awaitable[None]]


def roster(members: Iterable[Participant]) -> list:
    """Wire form of a member list."""
    return [ClientInfo(socket_id=p.connection_id, username=p.username) for p in members]


class RoomBroadcastRouter:
    """Connection store and event fan-out for the room transport."""

    def __init__(self, registry: Optional[RoomRegistry] = None):
        self.registry = registry or RoomRegistry()
        self.connections: Dict[str, WebSocket] = {}
        self._handlers: Dict[str, Tuple[Type[RoomScopedPayload], Handler]] = {
            RoomEvent.JOIN.value: (JoinPayload, self._on_join),
            RoomEvent.LEAVE.value: (LeavePayload, self._on_leave),
            RoomEvent.CODE_CHANGE.value: (CodeChangePayload, self._on_code_change),
            RoomEvent.LANGUAGE_CHANGE.value: (LanguageChangePayload, self._on_language_change),
            RoomEvent.RUN_TRIGGER.value: (RoomScopedPayload, self._on_run_trigger),
            RoomEvent.TERMINAL_INPUT.value: (TerminalInputPayload, self._on_terminal_input),
            RoomEvent.TERMINAL_OUTPUT.value: (TerminalOutputPayload, self._on_terminal_output),
            RoomEvent.TERMINAL_FOCUS.value: (TerminalFocusPayload, self._on_terminal_focus),
            RoomEvent.TERMINAL_INPUT_FOCUS.value: (TerminalFocusPayload, self._on_terminal_input_focus),
            RoomEvent.TERMINAL_INPUT_BLUR.value: (RoomScopedPayload, self._relay_empty(RoomEvent.TERMINAL_INPUT_BLUR)),
            RoomEvent.TERMINAL_KILL.value: (RoomScopedPayload, self._relay_empty(RoomEvent.TERMINAL_KILL)),
            RoomEvent.TERMINAL_DONE.value: (RoomScopedPayload, self._relay_empty(RoomEvent.TERMINAL_DONE)),
            RoomEvent.CURSOR_POSITION.value: (CursorPositionPayload, self._on_cursor_position),
        }

    async def connect(self, websocket: WebSocket, connection_id: Optional[str] = None) -> str:
        """Register a room transport connection and return its id."""
        connection_id = connection_id or str(uuid.uuid4())
        self.connections[connection_id] = websocket
        logger.info("Room connection opened", connection_id=connection_id)
        return connection_id

    async def disconnect(self, connection_id: str) -> None:
        """Forget a connection and tell its room it is gone."""
        self.connections.pop(connection_id, None)

        room_id = self.registry.room_of(connection_id)
        if room_id is not None:
            await self.leave(connection_id, room_id, notify_actor=False)

        logger.info("Room connection closed", connection_id=connection_id, room_id=room_id)

    async def send(self, connection_id: str, envelope: Dict[str, Any]) -> None:
        """Deliver one envelope. Failures are dropped, never retried."""
        websocket = self.connections.get(connection_id)
        if websocket is None:
            return
        try:
            await websocket.send_json(envelope)
        except Exception as e:
            logger.debug("Dropping room event", connection_id=connection_id, error=str(e))

    async def broadcast(self, room_id: str, envelope: Dict[str, Any], sender_connection_id: str) -> None:
        """
        Deliver an envelope to every member of a room except the sender.

        Args:
            room_id: Target room
            envelope: Wire-ready event
            sender_connection_id: Originating connection, never delivered to
        """
        targets = [
            p.connection_id for p in self.registry.members(room_id)
            if p.connection_id != sender_connection_id
        ]
        await self._deliver(targets, envelope)

    async def emit_to_room(self, room_id: str, envelope: Dict[str, Any]) -> None:
        """Deliver an envelope to every member of a room."""
        await self._deliver([p.connection_id for p in self.registry.members(room_id)], envelope)

    async def join(self, connection_id: str, room_id: str, username: str) -> None:
        """Put a connection in a room and send the new roster to all members."""
        current = self.registry.room_of(connection_id)
        if current is not None and current != room_id:
            await self.leave(connection_id, current, notify_actor=False)

        async def announce(members: List[Participant]) -> None:
            payload = JoinedPayload(
                clients=roster(members),
                joined_username=username,
                socket_id=connection_id,
            )
            await self.emit_to_room(room_id, create_envelope(RoomEvent.JOINED, payload))

        members = await self.registry.join(
            room_id,
            Participant(connection_id=connection_id, username=username, room_id=room_id),
            notify=announce,
        )
        log_room_event(logger, "joined", room_id, connection_id, username, len(members))

    async def leave(
        self,
        connection_id: str,
        room_id: str,
        username: Optional[str] = None,
        notify_actor: bool = True,
    ) -> None:
        """Take a connection out of a room and send the new roster."""
        participant = self.registry.participant(connection_id)
        if username is None and participant is not None and participant.room_id == room_id:
            username = participant.username

        async def announce(members: List[Participant]) -> None:
            payload = DisconnectedPayload(
                clients=roster(members),
                left_username=username,
                socket_id=connection_id,
            )
            envelope = create_envelope(RoomEvent.DISCONNECTED, payload)
            await self.emit_to_room(room_id, envelope)
            if notify_actor:
                await self.send(connection_id, envelope)

        members = await self.registry.leave(room_id, connection_id, notify=announce)
        log_room_event(logger, "left", room_id, connection_id, username, len(members))

    def parse_frame(self, raw: str) -> Envelope:
        """
        Decode one inbound room frame.

        Raises:
            ProtocolError: If the frame is not a JSON event envelope
        """
        try:
            return Envelope.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError):
            raise ProtocolError("Invalid JSON")

    def parse_payload(self, event: str, data: Any) -> Tuple[RoomScopedPayload, Handler]:
        """
        Resolve the handler for an event and validate its payload.

        Raises:
            ProtocolError: If the event is unknown or its payload is malformed
        """
        entry = self._handlers.get(event)
        if entry is None:
            raise ProtocolError(f"Unknown event: {event}")

        payload_class, handler = entry
        try:
            payload = payload_class.model_validate(data if data is not None else {})
        except ValidationError as e:
            raise ProtocolError(f"Invalid payload for {event}: {e.error_count()} error(s)")
        return payload, handler

    async def handle_text(self, connection_id: str, raw: str) -> None:
        """Parse and dispatch one inbound frame from the room transport."""
        try:
            envelope = self.parse_frame(raw)
        except ProtocolError as e:
            logger.warning("Invalid room frame", connection_id=connection_id)
            await self.send(connection_id, create_room_error(e.message))
            return

        await self.handle_event(connection_id, envelope.event, envelope.data)

    async def handle_event(self, connection_id: str, event: str, data: Any) -> None:
        """
        Dispatch one room event.

        Args:
            connection_id: Originating connection
            event: Inbound event name
            data: Raw payload
        """
        try:
            payload, handler = self.parse_payload(event, data)
        except ProtocolError as e:
            logger.warning("Invalid room event", connection_id=connection_id, room_event=event, error=e.message)
            await self.send(connection_id, create_room_error(e.message))
            return

        await handler(connection_id, payload)

    async def _deliver(self, connection_ids: Iterable[str], envelope: Dict[str, Any]) -> None:
        await asyncio.gather(*(self.send(cid, envelope) for cid in connection_ids))

    async def _relay(
        self, sender: str, room_id: str, event: RoomEvent, payload: Optional[Any] = None
    ) -> None:
        if isinstance(payload, RoomPayload):
            payload = payload.to_wire()
        await self.broadcast(room_id, create_envelope(event, payload), sender)

    async def _on_join(self, sender: str, payload: JoinPayload) -> None:
        await self.join(sender, payload.room_id, payload.username)

    async def _on_leave(self, sender: str, payload: LeavePayload) -> None:
        await self.leave(sender, payload.room_id, payload.username)

    async def _on_code_change(self, sender: str, payload: CodeChangePayload) -> None:
        await self._relay(sender, payload.room_id, RoomEvent.CODE_UPDATE, {"code": payload.code})

    async def _on_language_change(self, sender: str, payload: LanguageChangePayload) -> None:
        await self._relay(
            sender, payload.room_id, RoomEvent.LANGUAGE_UPDATE, {"language": payload.language}
        )

    async def _on_run_trigger(self, sender: str, payload: RoomScopedPayload) -> None:
        await self._relay(sender, payload.room_id, RoomEvent.RUN_UPDATE, {"sender": sender})

    async def _on_terminal_input(self, sender: str, payload: TerminalInputPayload) -> None:
        await self._relay(sender, payload.room_id, RoomEvent.TERMINAL_INPUT, {"input": payload.input})

    async def _on_terminal_output(self, sender: str, payload: TerminalOutputPayload) -> None:
        await self._relay(
            sender,
            payload.room_id,
            RoomEvent.TERMINAL_OUTPUT,
            {"message": payload.message, "sender": payload.sender or sender},
        )

    async def _on_terminal_focus(self, sender: str, payload: TerminalFocusPayload) -> None:
        await self._relay(
            sender,
            payload.room_id,
            RoomEvent.TERMINAL_FOCUS,
            {"roomId": payload.room_id, "sender": payload.sender or sender},
        )

    async def _on_terminal_input_focus(self, sender: str, payload: TerminalFocusPayload) -> None:
        await self._relay(
            sender, payload.room_id, RoomEvent.TERMINAL_INPUT_FOCUS, {"sender": payload.sender or sender}
        )

    async def _on_cursor_position(self, sender: str, payload: CursorPositionPayload) -> None:
        cursor = RemoteCursorPayload(
            socket_id=sender,
            username=payload.username,
            line_number=payload.line_number,
            column=payload.column,
        )
        await self._relay(sender, payload.room_id, RoomEvent.REMOTE_CURSOR, cursor)

    def _relay_empty(self, event: RoomEvent) -> Handler:
        async def relay(sender: str, payload: RoomScopedPayload) -> None:
            await self._relay(sender, payload.room_id, event)
        return relay
