import os
import re
from typing import Optional

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Index names the search engine accepts
INDEX_NAME_PATTERN = re.compile(r"[a-z0-9][a-z0-9._-]*")


def validate_index_name(index_name: str) -> str:
    if len(index_name.encode()) > 255 or not INDEX_NAME_PATTERN.fullmatch(index_name):
        raise ValueError(
            f"Invalid index name {index_name!r}: must be lowercase letters, digits, '.', '-' or '_'"
        )
    return index_name


class MatrixConfig(BaseModel):
    homeserver: str
    user: str
    password: Optional[str] = None  # Not needed once a session file exists
    device_name: str = "matrix-search"
    indices: dict[str, str] = {}  # index name -> room id or #alias

    @field_validator("indices")
    @classmethod
    def _check_index_names(cls, value: dict[str, str]) -> dict[str, str]:
        for index_name in value:
            validate_index_name(index_name)
        return value


class SearchConfig(BaseModel):
    url: str = "http://localhost:9200"
    api_key: Optional[str] = None
    page_size: int = 20


class StateConfig(BaseModel):
    location: str = "state/mappings.db"


class WebConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 3000


class LogConfig(BaseModel):
    file_path: str = "logs/matrix_search.log"
    max_size_mb: int = 10
    backup_count: int = 5
    level: str = "INFO"


def parse_indices(value: str) -> dict[str, str]:
    """Parse ``index=room,index2=#alias:server`` into a mapping."""
    indices = {}
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        index_name, sep, room = item.partition("=")
        if not sep or not index_name.strip() or not room.strip():
            raise ValueError(f"Invalid index binding: {item!r}")
        indices[validate_index_name(index_name.strip())] = room.strip()
    return indices


class Settings(BaseSettings):
    matrix: MatrixConfig
    search: SearchConfig = SearchConfig()
    state: StateConfig = StateConfig()
    web: WebConfig = WebConfig()
    session_file: str = "credentials.json"
    shutdown_timeout: float = 10.0
    logging: LogConfig = LogConfig()

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    def __init__(self, **kwargs):
        # Parse index bindings from environment
        indices = {}
        if "MATRIX_INDICES" in os.environ:
            indices = parse_indices(os.environ["MATRIX_INDICES"].strip())

        # Create configs from environment
        matrix_config = MatrixConfig(
            homeserver=os.environ.get("MATRIX_HOMESERVER", ""),
            user=os.environ.get("MATRIX_USER", ""),
            password=os.environ.get("MATRIX_PASSWORD") or None,
            device_name=os.environ.get("MATRIX_DEVICE_NAME", "matrix-search"),
            indices=indices,
        )

        search_config = SearchConfig(
            url=os.environ.get("SEARCH_URL", "http://localhost:9200"),
            api_key=os.environ.get("SEARCH_API_KEY") or None,
            page_size=int(os.environ.get("SEARCH_PAGE_SIZE", "20")),
        )

        state_config = StateConfig(
            location=os.environ.get("STATE_LOCATION", "state/mappings.db"),
        )

        web_config = WebConfig(
            host=os.environ.get("WEB_HOST", "127.0.0.1"),
            port=int(os.environ.get("WEB_PORT", "3000")),
        )

        # Explicit keyword arguments win over the environment
        kwargs.setdefault("matrix", matrix_config)
        kwargs.setdefault("search", search_config)
        kwargs.setdefault("state", state_config)
        kwargs.setdefault("web", web_config)
        super().__init__(**kwargs)
