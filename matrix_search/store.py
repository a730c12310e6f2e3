"""Durable room -> search index mapping backed by SQLite."""
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from pydantic import BaseModel
from sqlalchemy import create_engine, event, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .exceptions import MappingError, SourceMissingError
from .logger import get_logger
from .schema import Base, RoomMapping

logger = get_logger(__name__)


class RoomInfo(BaseModel):
    index_name: str
    room_name: str


def _on_connect(dbapi_connection, connection_record) -> None:
    # Let SQLAlchemy's begin event emit BEGIN instead of pysqlite
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def _on_begin(conn) -> None:
    conn.exec_driver_sql(conn.get_execution_options().get("sqlite_begin", "BEGIN"))


class MappingStore:
    """Maps room ids to their index name and display name.

    Each room is one row, so the index and the name are always read and
    written together. Writes take SQLite's reserved lock up front
    (``BEGIN IMMEDIATE``) and the database runs in WAL mode, which gives a
    single writer and snapshot readers that never wait on it.
    """

    def __init__(self, location: str) -> None:
        path = Path(location)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.location = str(path)
        # The web API reads from worker threads
        self.engine = create_engine(
            f"sqlite:///{path}", connect_args={"check_same_thread": False}
        )
        event.listen(self.engine, "connect", _on_connect)
        event.listen(self.engine, "begin", _on_begin)
        Base.metadata.create_all(self.engine)
        self._write_engine = self.engine.execution_options(
            sqlite_begin="BEGIN IMMEDIATE"
        )
        logger.info(f"Opened mapping store at {self.location}")

    @contextmanager
    def _transaction(self, write: bool = False) -> Iterator[Session]:
        """Run a block in one transaction; commit on success, roll back on error."""
        engine = self._write_engine if write else self.engine
        try:
            with Session(engine) as session, session.begin():
                yield session
        except SQLAlchemyError as e:
            raise MappingError(f"Mapping store transaction failed: {e}") from e

    def set_entry(
        self,
        room_id: str,
        index_name: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> None:
        """Update the index and/or the name of a room, leaving absent fields as they are"""
        if index_name is None and display_name is None:
            return
        if index_name is not None and not index_name:
            raise MappingError(f"Empty index name for room {room_id}")

        with self._transaction(write=True) as session:
            mapping = session.get(RoomMapping, room_id)
            if mapping is None:
                mapping = RoomMapping(room_id=room_id)
                session.add(mapping)
            if index_name is not None:
                mapping.index_name = index_name
            if display_name is not None:
                mapping.display_name = display_name
        logger.debug(f"Updated mapping for {room_id}: index={index_name} name={display_name}")

    def set_index(self, room_id: str, index_name: str) -> None:
        self.set_entry(room_id, index_name=index_name)

    def set_name(self, room_id: str, display_name: str) -> None:
        self.set_entry(room_id, display_name=display_name)

    def get_index(self, room_id: str) -> Optional[str]:
        with self._transaction() as session:
            mapping = session.get(RoomMapping, room_id)
            if mapping is None or not mapping.index_name:
                return None
            return mapping.index_name

    def get_name(self, room_id: str) -> Optional[str]:
        """Display name of a room, falling back to its id when it was never named"""
        with self._transaction() as session:
            mapping = session.get(RoomMapping, room_id)
            if mapping is None:
                return None
            return mapping.display_name or mapping.room_id

    def move_entry(self, old_room_id: str, new_room_id: str) -> None:
        """Copy the mapping of a replaced room to its successor.

        The old row is kept but no code path reads it again.
        """
        with self._transaction(write=True) as session:
            source = session.get(RoomMapping, old_room_id)
            if source is None or not source.index_name:
                raise SourceMissingError(old_room_id)
            index_name = source.index_name
            display_name = source.display_name or source.room_id

            target = session.get(RoomMapping, new_room_id)
            if target is None:
                target = RoomMapping(room_id=new_room_id)
                session.add(target)
            target.index_name = index_name
            target.display_name = display_name
        logger.info(f"Moved mapping {index_name} from {old_room_id} to {new_room_id}")

    def list_rooms(self) -> list[RoomInfo]:
        """All rooms bound to an index, read from one snapshot"""
        with self._transaction() as session:
            mappings = session.scalars(
                select(RoomMapping)
                .where(RoomMapping.index_name.is_not(None))
                .order_by(RoomMapping.room_id)
            ).all()
            return [
                RoomInfo(
                    index_name=mapping.index_name,
                    room_name=mapping.display_name or mapping.room_id,
                )
                for mapping in mappings
            ]

    def close(self) -> None:
        self.engine.dispose()
