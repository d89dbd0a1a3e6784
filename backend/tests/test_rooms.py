"""
Unit tests for the room registry.
"""

import asyncio

from codecollab.services.rooms import Participant, RoomRegistry


def participant(connection_id, username="user", room_id="r1"):
    return Participant(connection_id=connection_id, username=username, room_id=room_id)


class TestRoomRegistry:
    """Test room membership bookkeeping."""

    async def test_join_returns_full_roster(self):
        registry = RoomRegistry()
        await registry.join("r1", participant("a", "Alice"))
        members = await registry.join("r1", participant("b", "Bob"))

        assert [(p.connection_id, p.username) for p in members] == [("a", "Alice"), ("b", "Bob")]
        assert registry.room_of("b") == "r1"

    async def test_rejoin_replaces_entry(self):
        """Joining twice leaves one entry, with the latest username."""
        registry = RoomRegistry()
        await registry.join("r1", participant("a", "Alice"))
        members = await registry.join("r1", participant("a", "Alicia"))

        assert len(members) == 1
        assert registry.participant("a").username == "Alicia"

    async def test_leave(self):
        registry = RoomRegistry()
        await registry.join("r1", participant("a"))
        await registry.join("r1", participant("b"))

        members = await registry.leave("r1", "a")

        assert [p.connection_id for p in members] == ["b"]
        assert registry.room_of("a") is None
        assert registry.participant("a") is None

    async def test_leave_when_not_member(self):
        registry = RoomRegistry()
        await registry.join("r1", participant("a"))

        assert [p.connection_id for p in await registry.leave("r1", "zzz")] == ["a"]
        assert await registry.leave("nowhere", "a") == []
        assert registry.room_of("a") == "r1"

    async def test_empty_room_stays_addressable(self):
        registry = RoomRegistry()
        await registry.join("r1", participant("a"))
        await registry.leave("r1", "a")

        assert registry.members("r1") == []
        assert registry.members("never-created") == []

    async def test_concurrent_joins_all_recorded(self):
        registry = RoomRegistry()

        await asyncio.gather(*(
            registry.join("busy", participant(f"c{i}", f"user{i}", "busy")) for i in range(50)
        ))

        assert len(registry.members("busy")) == 50

    async def test_notify_runs_before_next_mutation(self):
        """Slow notifications still observe rosters in mutation order."""
        registry = RoomRegistry()
        seen = []

        async def record(members):
            await asyncio.sleep(0.01 * (5 - len(members)))
            seen.append(len(members))

        await asyncio.gather(*(
            registry.join("r1", participant(f"c{i}"), notify=record) for i in range(5)
        ))
        await registry.leave("r1", "c0", notify=record)

        assert seen == [1, 2, 3, 4, 5, 4]
