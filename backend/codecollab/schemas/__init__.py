"""
CodeCollab - Schemas Package

Pydantic schemas for WebSocket messages and request/response validation.
"""

from . import execution, room, tracking
