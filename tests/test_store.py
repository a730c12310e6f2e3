"""Tests for the room mapping store."""

import pytest

from matrix_search.exceptions import MappingError, SourceMissingError
from matrix_search.schema import RoomMapping
from matrix_search.store import MappingStore, RoomInfo


def test_unknown_room(store: MappingStore):
    assert store.get_index("!nope:matrix.org") is None
    assert store.get_name("!nope:matrix.org") is None


def test_set_entry_writes_both_fields(store: MappingStore):
    store.set_entry("!a:matrix.org", index_name="general", display_name="General")

    assert store.get_index("!a:matrix.org") == "general"
    assert store.get_name("!a:matrix.org") == "General"


def test_partial_updates_keep_other_field(store: MappingStore):
    store.set_index("!a:matrix.org", "general")
    store.set_name("!a:matrix.org", "x")
    assert store.get_index("!a:matrix.org") == "general"
    assert store.get_name("!a:matrix.org") == "x"

    store.set_index("!a:matrix.org", "archive")
    assert store.get_index("!a:matrix.org") == "archive"
    assert store.get_name("!a:matrix.org") == "x"


def test_name_defaults_to_room_id(store: MappingStore):
    store.set_index("!a:matrix.org", "general")
    assert store.get_name("!a:matrix.org") == "!a:matrix.org"


def test_name_without_index_is_not_bound(store: MappingStore):
    store.set_name("!a:matrix.org", "Lobby")
    assert store.get_index("!a:matrix.org") is None
    assert store.get_name("!a:matrix.org") == "Lobby"


def test_empty_index_name_rejected(store: MappingStore):
    store.set_index("!a:matrix.org", "general")
    with pytest.raises(MappingError):
        store.set_entry("!a:matrix.org", index_name="", display_name="Renamed")

    assert store.get_index("!a:matrix.org") == "general"
    assert store.get_name("!a:matrix.org") == "!a:matrix.org"


def test_set_entry_without_fields_is_noop(store: MappingStore):
    store.set_entry("!a:matrix.org")
    assert store.list_rooms() == []


def test_rename_is_idempotent(store: MappingStore):
    store.set_entry("!a:matrix.org", index_name="general", display_name="General")
    store.set_name("!a:matrix.org", "Lobby")
    store.set_name("!a:matrix.org", "Lobby")
    assert store.get_name("!a:matrix.org") == "Lobby"
    assert store.list_rooms() == [RoomInfo(index_name="general", room_name="Lobby")]


def test_move_entry(store: MappingStore):
    store.set_entry("!old:matrix.org", index_name="general", display_name="General")

    store.move_entry("!old:matrix.org", "!new:matrix.org")

    assert store.get_index("!new:matrix.org") == "general"
    assert store.get_name("!new:matrix.org") == "General"


def test_move_entry_carries_default_name(store: MappingStore):
    store.set_index("!old:matrix.org", "general")
    before = store.get_name("!old:matrix.org")

    store.move_entry("!old:matrix.org", "!new:matrix.org")

    assert store.get_name("!new:matrix.org") == before


def test_move_entry_overwrites_existing_target(store: MappingStore):
    store.set_entry("!old:matrix.org", index_name="general", display_name="General")
    store.set_entry("!new:matrix.org", index_name="other", display_name="Other")

    store.move_entry("!old:matrix.org", "!new:matrix.org")

    assert store.get_index("!new:matrix.org") == "general"
    assert store.get_name("!new:matrix.org") == "General"


def test_move_entry_missing_source(store: MappingStore):
    store.set_entry("!new:matrix.org", index_name="other", display_name="Other")

    with pytest.raises(SourceMissingError) as exc_info:
        store.move_entry("!old:matrix.org", "!new:matrix.org")

    assert exc_info.value.room_id == "!old:matrix.org"
    assert isinstance(exc_info.value, MappingError)
    # Target is untouched
    assert store.get_index("!new:matrix.org") == "other"
    assert store.get_name("!new:matrix.org") == "Other"


def test_move_entry_source_with_name_only(store: MappingStore):
    store.set_name("!old:matrix.org", "General")
    with pytest.raises(SourceMissingError):
        store.move_entry("!old:matrix.org", "!new:matrix.org")
    assert store.get_name("!new:matrix.org") is None


def test_failed_transaction_rolls_back(store: MappingStore):
    store.set_entry("!a:matrix.org", index_name="general", display_name="General")

    with pytest.raises(RuntimeError):
        with store._transaction(write=True) as session:
            mapping = session.get(RoomMapping, "!a:matrix.org")
            mapping.index_name = "changed"
            mapping.display_name = "Changed"
            session.flush()
            raise RuntimeError("boom")

    assert store.get_index("!a:matrix.org") == "general"
    assert store.get_name("!a:matrix.org") == "General"


def test_list_rooms(store: MappingStore):
    store.set_entry("!b:matrix.org", index_name="random", display_name="Random")
    store.set_index("!a:matrix.org", "general")
    store.set_name("!c:matrix.org", "Not indexed")

    assert store.list_rooms() == [
        RoomInfo(index_name="general", room_name="!a:matrix.org"),
        RoomInfo(index_name="random", room_name="Random"),
    ]


def test_state_survives_reopen(temp_dir):
    location = str(temp_dir / "nested" / "mappings.db")
    first = MappingStore(location)
    first.set_entry("!a:matrix.org", index_name="general", display_name="General")
    first.close()

    second = MappingStore(location)
    try:
        assert second.get_index("!a:matrix.org") == "general"
        assert second.get_name("!a:matrix.org") == "General"
    finally:
        second.close()
