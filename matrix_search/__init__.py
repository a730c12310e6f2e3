"""Matrix search - index Matrix room messages into a full-text search engine."""

from importlib import metadata

__version__ = "0.1.0"
__license__ = "MIT"

try:
    __version__ = metadata.version("matrix-search")
except metadata.PackageNotFoundError:
    # Package is not installed
    pass

from .config import Settings, MatrixConfig, SearchConfig, StateConfig, WebConfig, LogConfig
from .logger import setup_logging, get_logger
from .store import MappingStore, RoomInfo
from .document import DocumentBuilder, SearchDocument
from .ingest import EventDispatcher, IngestionCoordinator
from .lifecycle import RoomLifecycleHandler
from .gateway import QueryGateway, SearchResultPage

__all__ = [
    "Settings",
    "MatrixConfig",
    "SearchConfig",
    "StateConfig",
    "WebConfig",
    "LogConfig",
    "setup_logging",
    "get_logger",
    "MappingStore",
    "RoomInfo",
    "DocumentBuilder",
    "SearchDocument",
    "EventDispatcher",
    "IngestionCoordinator",
    "RoomLifecycleHandler",
    "QueryGateway",
    "SearchResultPage",
]
