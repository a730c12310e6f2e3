"""Database schema for the room mapping store."""
from sqlalchemy import Column, String
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class RoomMapping(Base):
    """Binds a Matrix room to its search index and display name."""
    __tablename__ = "room_mappings"

    room_id = Column(String(255), primary_key=True)
    index_name = Column(String(255), nullable=True)
    display_name = Column(String(255), nullable=True)
