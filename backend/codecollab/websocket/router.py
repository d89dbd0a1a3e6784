"""
CodeCollab - WebSocket Router

WebSocket endpoints for code execution and room collaboration.
"""

from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
import structlog

from codecollab.core.security import verify_token
from codecollab.services.broadcast import RoomBroadcastRouter
from codecollab.services.execution import ExecutionSessionManager

router = APIRouter()
logger = structlog.get_logger(__name__)

# Connection managers shared by every socket
execution_manager = ExecutionSessionManager()
room_router = RoomBroadcastRouter()


async def authorize_socket(websocket: WebSocket, token: Optional[str]) -> tuple[bool, Optional[str]]:
    """
    Resolve the optional token query parameter.

    Returns:
        (allowed, user_id). Anonymous sockets are allowed; a bad token is not.
    """
    if not token:
        return True, None

    user_id = verify_token(token)
    if user_id is None:
        logger.warning("Rejected WebSocket with invalid token", path=websocket.url.path)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return False, None
    return True, user_id


@router.websocket("/ws/execute")
async def websocket_execute(websocket: WebSocket, token: Optional[str] = Query(None)):
    """
    WebSocket endpoint for running code.

    Args:
        websocket: WebSocket connection
        token: Optional bearer token from query parameter
    """
    await websocket.accept()
    allowed, user_id = await authorize_socket(websocket, token)
    if not allowed:
        return

    session = execution_manager.open(websocket, user_id)
    connection_id = session.connection_id
    try:
        while True:
            data = await websocket.receive_text()
            try:
                await session.handle_text(data)
            except Exception as e:
                logger.error("Execution WebSocket error", error=str(e), connection_id=connection_id)
                session.report_error("Internal server error")
    except WebSocketDisconnect:
        logger.info("Execution WebSocket disconnected", connection_id=connection_id)
    finally:
        await execution_manager.close(connection_id)


@router.websocket("/ws/rooms")
async def websocket_rooms(websocket: WebSocket, token: Optional[str] = Query(None)):
    """
    WebSocket endpoint for room collaboration events.

    Args:
        websocket: WebSocket connection
        token: Optional bearer token from query parameter
    """
    await websocket.accept()
    allowed, user_id = await authorize_socket(websocket, token)
    if not allowed:
        return

    connection_id = await room_router.connect(websocket)
    logger.info("Room WebSocket connected", connection_id=connection_id, user_id=user_id)
    try:
        while True:
            data = await websocket.receive_text()
            try:
                await room_router.handle_text(connection_id, data)
            except Exception as e:
                logger.error("Room WebSocket error", error=str(e), connection_id=connection_id)
    except WebSocketDisconnect:
        logger.info("Room WebSocket disconnected", connection_id=connection_id)
    finally:
        await room_router.disconnect(connection_id)


# Export the router
websocket_router = router
