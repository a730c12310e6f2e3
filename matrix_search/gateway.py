"""Read side: room listing and paginated message search."""
import html
from typing import Optional

from pydantic import BaseModel

from .exceptions import SearchError
from .logger import get_logger
from .search import SearchClient
from .store import MappingStore, RoomInfo

logger = get_logger(__name__)


class MessageSearchResult(BaseModel):
    event_id: str
    html_body: str
    external_url: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    timestamp: int
    room_id: str


class SearchResultPage(BaseModel):
    messages: list[MessageSearchResult]
    has_more: bool


def _to_result(hit: dict) -> MessageSearchResult:
    source = hit["_source"]
    fragments = (hit.get("highlight") or {}).get("body")
    if fragments:
        html_body = "".join(fragments)
    else:
        # match_all queries come back without highlights
        html_body = html.escape(source["body"])
    return MessageSearchResult(
        event_id=f"${source['event_id']}",
        html_body=html_body,
        external_url=source.get("external_url"),
        display_name=source.get("sender_display_name"),
        avatar_url=source.get("sender_avatar"),
        timestamp=source["timestamp"],
        room_id=source["room_id"],
    )


class QueryGateway:
    def __init__(self, store: MappingStore, search: SearchClient, page_size: int = 20) -> None:
        self.store = store
        self.search_client = search
        self.page_size = page_size

    def list_rooms(self) -> list[RoomInfo]:
        return self.store.list_rooms()

    async def search(
        self, index_name: str, query: str, cursor: Optional[int] = None
    ) -> SearchResultPage:
        """Search one index, newest messages first.

        ``cursor`` is the timestamp of the last message of the previous
        page; only older messages are returned.
        """
        try:
            response = await self.search_client.query(
                index_name, query, limit=self.page_size, before=cursor
            )
            hits = response["hits"]
            total = hits["total"]["value"]
            messages = [_to_result(hit) for hit in hits["hits"]]
        except Exception as e:
            raise SearchError(f"Search on {index_name} failed: {e}") from e

        return SearchResultPage(messages=messages, has_more=total > self.page_size)
