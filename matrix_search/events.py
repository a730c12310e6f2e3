"""Events handed from the Matrix sync loop to the ingestion consumer."""
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class MessageReceived:
    room: Any  # nio MatrixRoom, read for sender membership
    source: dict

    @property
    def room_id(self) -> str:
        return self.room.room_id


@dataclass(frozen=True)
class RoomRenamed:
    room_id: str
    name: str


@dataclass(frozen=True)
class RoomReplaced:
    room_id: str
    replacement_room: str


RoomEvent = Union[MessageReceived, RoomRenamed, RoomReplaced]
