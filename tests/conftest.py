"""Common test fixtures for matrix-search tests."""

import re
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from matrix_search.config import Settings
from matrix_search.store import MappingStore


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test files."""
    return tmp_path


@pytest.fixture
def test_settings(temp_dir: Path, monkeypatch) -> Settings:
    """Create test settings with mock values."""
    for key, value in {
        "MATRIX_HOMESERVER": "https://test.matrix.org",
        "MATRIX_USER": "@bot:matrix.org",
        "MATRIX_PASSWORD": "test_password",
        "MATRIX_INDICES": "general=!test1:matrix.org,random=#random:matrix.org",
        "SEARCH_URL": "http://search.test:9200",
        "SEARCH_PAGE_SIZE": "2",
        "STATE_LOCATION": str(temp_dir / "state" / "mappings.db"),
        "LOGGING__LEVEL": "DEBUG",
    }.items():
        monkeypatch.setenv(key, value)

    settings = Settings()
    settings.session_file = str(temp_dir / "credentials.json")
    settings.logging.file_path = str(temp_dir / "test.log")
    return settings


@pytest.fixture
def store(temp_dir: Path) -> MappingStore:
    store = MappingStore(str(temp_dir / "mappings.db"))
    yield store
    store.close()


def make_member(display_name=None, avatar_url=None):
    return SimpleNamespace(display_name=display_name, avatar_url=avatar_url)


@pytest.fixture
def room():
    """A room with two known members."""
    room = MagicMock()
    room.room_id = "!test1:matrix.org"
    room.users = {
        "@alice:matrix.org": make_member("Alice", "mxc://matrix.org/alice-avatar"),
        "@bob:matrix.org": make_member(),
    }
    return room


def make_message(
    body="hello world",
    msgtype="m.text",
    sender="@alice:matrix.org",
    event_id="$event1",
    timestamp=1700000000000,
    **content,
):
    """Raw m.room.message event as delivered by the homeserver."""
    return {
        "type": "m.room.message",
        "event_id": event_id,
        "sender": sender,
        "origin_server_ts": timestamp,
        "content": {"msgtype": msgtype, "body": body, **content},
    }


def make_edit(original_event_id, new_body, event_id="$edit1", msgtype="m.text", **kwargs):
    """Raw edit event replacing ``original_event_id`` with ``new_body``."""
    source = make_message(body=f"* {new_body}", msgtype=msgtype, event_id=event_id, **kwargs)
    source["content"]["m.new_content"] = {"msgtype": msgtype, "body": new_body}
    source["content"]["m.relates_to"] = {
        "rel_type": "m.replace",
        "event_id": original_event_id,
    }
    return source


class FakeElasticsearch:
    """In-memory stand-in for the parts of AsyncElasticsearch we use."""

    def __init__(self):
        self.docs: dict[str, dict[str, dict]] = {}
        self.indices = SimpleNamespace(
            exists=AsyncMock(side_effect=lambda index: index in self.docs),
            create=AsyncMock(side_effect=self._create),
        )
        self.close = AsyncMock()

    async def _create(self, index, mappings=None):
        self.docs.setdefault(index, {})

    async def index(self, index, id, document):
        self.docs.setdefault(index, {})[id] = dict(document)

    async def search(self, index, query, sort, size, track_total_hits, highlight):
        must = query["bool"]["must"]
        text = must.get("match", {}).get("body", {}).get("query")
        docs = list(self.docs.get(index, {}).values())
        if text:
            docs = [d for d in docs if text.lower() in d["body"].lower()]
        for f in query["bool"]["filter"]:
            bound = f["range"]["timestamp"]["lt"]
            docs = [d for d in docs if d["timestamp"] < bound]
        docs.sort(key=lambda d: d["timestamp"], reverse=True)

        hits = []
        for doc in docs[:size]:
            hit = {"_id": doc["event_id"], "_source": doc}
            if text:
                pre = highlight["pre_tags"][0]
                post = highlight["post_tags"][0]
                hit["highlight"] = {
                    "body": [
                        re.sub(
                            re.escape(text),
                            lambda m: f"{pre}{m.group(0)}{post}",
                            doc["body"],
                            flags=re.IGNORECASE,
                        )
                    ]
                }
            hits.append(hit)
        return {"hits": {"total": {"value": len(docs), "relation": "eq"}, "hits": hits}}


@pytest.fixture
def fake_es() -> FakeElasticsearch:
    return FakeElasticsearch()
