"""
CodeCollab - Room Registry

Maps room ids to the participants connected to them. Rooms exist implicitly
from the first join and are never deleted; an abandoned room is an empty
mapping.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional


@dataclass(frozen=True)
class Participant:
    """A named occupant of a room, bound to one connection."""
    connection_id: str
    username: str
    room_id: str


RosterCallback = Callable[[List[Participant]], Awaitable[None]]


class RoomRegistry:
    """Room membership, with mutations serialized per room."""

    def __init__(self):
        self._rooms: Dict[str, Dict[str, Participant]] = {}
        self._connection_rooms: Dict[str, str] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, room_id: str) -> asyncio.Lock:
        lock = self._locks.get(room_id)
        if lock is None:
            lock = self._locks[room_id] = asyncio.Lock()
        return lock

    async def join(
        self, room_id: str, participant: Participant, notify: Optional[RosterCallback] = None
    ) -> List[Participant]:
        """
        Add a participant to a room, replacing any prior entry for its connection.

        Args:
            room_id: Room identifier
            participant: Participant to add
            notify: Awaited with the new member list before the room is unlocked

        Returns:
            The room's full member list after the join
        """
        async with self._lock_for(room_id):
            members = self._rooms.setdefault(room_id, {})
            members[participant.connection_id] = participant
            self._connection_rooms[participant.connection_id] = room_id
            snapshot = list(members.values())
            if notify is not None:
                await notify(snapshot)
            return snapshot

    async def leave(
        self, room_id: str, connection_id: str, notify: Optional[RosterCallback] = None
    ) -> List[Participant]:
        """
        Remove a connection from a room. No-op when it is not a member.

        Rosters reach members in the order the mutations happened, since
        `notify` runs under the room lock.

        Returns:
            The room's member list after the removal
        """
        async with self._lock_for(room_id):
            members = self._rooms.get(room_id, {})
            members.pop(connection_id, None)
            if self._connection_rooms.get(connection_id) == room_id:
                del self._connection_rooms[connection_id]
            snapshot = list(members.values())
            if notify is not None:
                await notify(snapshot)
            return snapshot

    def members(self, room_id: str) -> List[Participant]:
        return list(self._rooms.get(room_id, {}).values())

    def room_of(self, connection_id: str) -> Optional[str]:
        """Room the connection currently belongs to, if any."""
        return self._connection_rooms.get(connection_id)

    def participant(self, connection_id: str) -> Optional[Participant]:
        room_id = self._connection_rooms.get(connection_id)
        if room_id is None:
            return None
        return self._rooms.get(room_id, {}).get(connection_id)
