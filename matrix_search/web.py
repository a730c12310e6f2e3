"""HTTP API over the indexed messages.

GET /groups                      list of indexed rooms
GET /search/{index_name}?query=  one page of matching messages, newest first
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request

from .config import Settings
from .exceptions import MatrixSearchError
from .gateway import QueryGateway, SearchResultPage
from .logger import get_logger, setup_logging
from .search import SearchClient, create_client
from .store import MappingStore, RoomInfo

logger = get_logger(__name__)


def get_gateway(request: Request) -> QueryGateway:
    return request.app.state.gateway


def create_app(gateway: QueryGateway) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await gateway.search_client.close()
        gateway.store.close()

    app = FastAPI(title="matrix-search", lifespan=lifespan)
    app.state.gateway = gateway

    @app.get("/groups", response_model=list[RoomInfo])
    def groups(gateway: QueryGateway = Depends(get_gateway)):
        """List all indexed rooms"""
        try:
            return gateway.list_rooms()
        except MatrixSearchError as e:
            logger.error(f"Listing rooms failed: {e}")
            raise HTTPException(status_code=500, detail="Something went wrong")

    @app.get("/search/{index_name}", response_model=SearchResultPage)
    async def group_search(
        index_name: str,
        query: str = Query(..., description="Text to search for"),
        offset: Optional[int] = Query(
            None, description="Only return messages older than this timestamp (ms)"
        ),
        gateway: QueryGateway = Depends(get_gateway),
    ):
        """Search the messages of one index"""
        try:
            return await gateway.search(index_name, query, cursor=offset)
        except MatrixSearchError as e:
            logger.error(f"Search failed: {e}")
            raise HTTPException(status_code=500, detail="Something went wrong")

    return app


def build_app(settings: Settings) -> FastAPI:
    store = MappingStore(settings.state.location)
    search = SearchClient(create_client(settings.search))
    return create_app(QueryGateway(store, search, page_size=settings.search.page_size))


def main() -> None:
    import uvicorn

    settings = Settings()
    setup_logging(settings, "web")
    app = build_app(settings)
    logger.info(f"Listening on {settings.web.host}:{settings.web.port}")
    uvicorn.run(app, host=settings.web.host, port=settings.web.port, log_config=None)


if __name__ == "__main__":
    main()
