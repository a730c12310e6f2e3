"""Error types raised by the indexer and the query gateway."""


class MatrixSearchError(Exception):
    """Base class for all matrix-search errors."""


class LoginError(MatrixSearchError):
    """Raised when the bot cannot authenticate against the homeserver."""


class MappingError(MatrixSearchError):
    """Raised when the room mapping store cannot complete an operation."""


class SourceMissingError(MappingError):
    """Raised when a room to be migrated has no mapping entry."""

    def __init__(self, room_id: str) -> None:
        super().__init__(f"No mapping entry for room {room_id}")
        self.room_id = room_id


class JoinRoomError(MatrixSearchError):
    """Raised when joining a room fails."""

    def __init__(self, room_id: str, reason: str) -> None:
        super().__init__(f"Failed to join room {room_id}: {reason}")
        self.room_id = room_id
        self.reason = reason


class SearchError(MatrixSearchError):
    """Raised when the search engine rejects or fails a request."""
