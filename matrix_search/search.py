"""Thin wrapper around the Elasticsearch async client."""
from typing import Any, Optional

from elasticsearch import AsyncElasticsearch

from .config import SearchConfig
from .document import SearchDocument
from .logger import get_logger

logger = get_logger(__name__)

HIGHLIGHT_PRE_TAG = '<span class="keyword">'
HIGHLIGHT_POST_TAG = "</span>"

# sender_id is the filterable attribute and timestamp the sortable one
INDEX_MAPPINGS = {
    "properties": {
        "event_id": {"type": "keyword"},
        "body": {"type": "text"},
        "external_url": {"type": "keyword", "index": False},
        "sender_id": {"type": "keyword"},
        "sender_display_name": {"type": "keyword", "index": False},
        "sender_avatar": {"type": "keyword", "index": False},
        "timestamp": {"type": "long"},
        "room_id": {"type": "keyword"},
        "ocr_body": {"type": "text"},
    }
}


def create_client(config: SearchConfig) -> AsyncElasticsearch:
    if config.api_key:
        return AsyncElasticsearch(hosts=[config.url], api_key=config.api_key)
    return AsyncElasticsearch(hosts=[config.url])


class SearchClient:
    def __init__(self, es: AsyncElasticsearch) -> None:
        self.es = es

    async def ensure_index(self, index_name: str) -> bool:
        """Create an index with the message mappings unless it already exists.

        Returns True if the index was created.
        """
        if await self.es.indices.exists(index=index_name):
            return False
        await self.es.indices.create(index=index_name, mappings=INDEX_MAPPINGS)
        logger.info(f"Created search index {index_name}")
        return True

    async def upsert(self, index_name: str, document: SearchDocument) -> None:
        """Insert or replace a document, keyed by its event id"""
        await self.es.index(
            index=index_name,
            id=document.event_id,
            document=document.model_dump(),
        )
        logger.debug(f"Indexed {document.event_id} into {index_name}")

    async def query(
        self,
        index_name: str,
        text: str,
        limit: int,
        before: Optional[int] = None,
    ) -> dict[str, Any]:
        """Run a newest-first full-text query on message bodies.

        ``before`` restricts hits to timestamps strictly below it.
        """
        if text.strip():
            must = {"match": {"body": {"query": text}}}
        else:
            must = {"match_all": {}}
        filters = []
        if before is not None:
            filters.append({"range": {"timestamp": {"lt": before}}})

        return await self.es.search(
            index=index_name,
            query={"bool": {"must": must, "filter": filters}},
            sort=[{"timestamp": {"order": "desc"}}],
            size=limit,
            track_total_hits=True,
            highlight={
                "pre_tags": [HIGHLIGHT_PRE_TAG],
                "post_tags": [HIGHLIGHT_POST_TAG],
                "encoder": "html",
                "fields": {"body": {"number_of_fragments": 0}},
            },
        )

    async def close(self) -> None:
        await self.es.close()
