"""Keeps the room mapping in step with room renames and upgrades."""
from typing import Awaitable, Callable

from .logger import get_logger
from .store import MappingStore

logger = get_logger(__name__)


class RoomLifecycleHandler:
    """Applies ``m.room.name`` and ``m.room.tombstone`` events to the store.

    ``join_room`` joins a room by id and raises ``JoinRoomError`` on
    failure. Joining a room the bot is already in must succeed, so a
    tombstone can be processed again after a failed migration.
    """

    def __init__(
        self,
        store: MappingStore,
        join_room: Callable[[str], Awaitable[None]],
    ) -> None:
        self.store = store
        self.join_room = join_room

    def handle_rename(self, room_id: str, name: str) -> None:
        if not name:
            logger.debug(f"Ignoring empty name for room {room_id}")
            return
        self.store.set_name(room_id, name)
        logger.info(f"Room {room_id} renamed to {name}")

    async def handle_tombstone(self, room_id: str, replacement_room: str) -> None:
        logger.info(f"Room {room_id} was replaced by {replacement_room}, joining it")
        # The mapping only moves to a room we can actually receive events from
        await self.join_room(replacement_room)
        self.store.move_entry(room_id, replacement_room)
