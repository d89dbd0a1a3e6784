"""
CodeCollab - Execution Session Endpoint

Translates the execution WebSocket protocol into Process Supervisor calls and
forwards the supervisor's events back to the client.
"""

import asyncio
import json
import uuid
from typing import Any, Dict, Optional

from fastapi import WebSocket
import structlog

from codecollab.core.errors import ProtocolError, TransportClosed
from codecollab.schemas.execution import (
    InboundMessage, MessageType, create_error_message, validate_message
)
from codecollab.services.supervisor import ProcessSupervisor

logger = structlog.get_logger(__name__)

# How long close() keeps forwarding already queued events before dropping them
CLOSE_FLUSH_SECONDS = 1.0


def parse_message(raw: str) -> InboundMessage:
    """
    Decode and validate one raw execution frame.

    Raises:
        ProtocolError: If the frame is not valid JSON or not a known message
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        raise ProtocolError("Invalid JSON")
    return validate_message(data)


class ExecutionSession:
    """Protocol handler for one execution connection."""

    def __init__(
        self,
        websocket: WebSocket,
        connection_id: str,
        user_id: Optional[str] = None,
        supervisor: Optional[ProcessSupervisor] = None,
    ):
        self.websocket = websocket
        self.connection_id = connection_id
        self.user_id = user_id
        self.supervisor = supervisor or ProcessSupervisor(connection_id)
        self._forwarder: Optional[asyncio.Task] = None

    def start(self) -> None:
        """Begin relaying supervisor events to the client."""
        if self._forwarder is None:
            self._forwarder = asyncio.create_task(self._forward())

    async def handle_text(self, raw: str) -> None:
        """
        Handle one raw inbound frame.

        Args:
            raw: Text frame as received from the client
        """
        try:
            message = parse_message(raw)
        except ProtocolError as e:
            logger.warning("Invalid message received", connection_id=self.connection_id, error=e.message)
            self.report_error(e.message)
            return

        await self.handle_message(message)

    async def handle_message(self, message: InboundMessage) -> None:
        """Route a validated message to the supervisor."""
        if message.type == MessageType.RUN:
            logger.info(
                "Run requested",
                connection_id=self.connection_id,
                language=message.language,
                code_length=len(message.code),
            )
            await self.supervisor.run(message.code, message.language)

        elif message.type == MessageType.INPUT:
            await self.supervisor.send_input(message.data)

        elif message.type == MessageType.KILL:
            logger.info("Kill requested", connection_id=self.connection_id)
            await self.supervisor.kill()

    async def close(self) -> None:
        """Terminate any owned process and stop forwarding."""
        await self.supervisor.shutdown()
        if self._forwarder is None:
            return

        finished, _ = await asyncio.wait({self._forwarder}, timeout=CLOSE_FLUSH_SECONDS)
        if not finished:
            dropped = self.supervisor.events.backlog
            self._forwarder.cancel()
            try:
                await self._forwarder
            except asyncio.CancelledError:
                pass
            logger.info("Dropped queued execution events", connection_id=self.connection_id, dropped=dropped)
        self._forwarder = None

    def report_error(self, text: str) -> None:
        """Send an error event to this connection."""
        self.supervisor.events.publish_nowait(create_error_message(text))

    async def _forward(self) -> None:
        try:
            async for event in self.supervisor.events:
                await self._send(event.to_wire())
        except TransportClosed as e:
            # close() kills the run
            logger.debug("Execution transport closed", connection_id=self.connection_id, error=e.message)

    async def _send(self, payload: Dict[str, Any]) -> None:
        try:
            await self.websocket.send_json(payload)
        except Exception as e:
            raise TransportClosed(str(e))


class ExecutionSessionManager:
    """Keyed store of live execution sessions, one per connection."""

    def __init__(self):
        self.sessions: Dict[str, ExecutionSession] = {}

    def open(self, websocket: WebSocket, user_id: Optional[str] = None) -> ExecutionSession:
        """Register a new connection and start its event forwarder."""
        connection_id = str(uuid.uuid4())
        session = ExecutionSession(websocket, connection_id, user_id)
        self.sessions[connection_id] = session
        session.start()

        logger.info(
            "Execution session opened",
            connection_id=connection_id,
            user_id=user_id,
            active_sessions=len(self.sessions),
        )
        return session

    def get(self, connection_id: str) -> Optional[ExecutionSession]:
        return self.sessions.get(connection_id)

    async def close(self, connection_id: str) -> None:
        """Tear down a connection, killing its process if one is running."""
        session = self.sessions.pop(connection_id, None)
        if session is None:
            return

        await session.close()
        logger.info(
            "Execution session closed",
            connection_id=connection_id,
            active_sessions=len(self.sessions),
        )

    async def close_all(self) -> None:
        for connection_id in list(self.sessions):
            await self.close(connection_id)
