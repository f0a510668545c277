from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
from pathlib import Path


class LoggingSettings(BaseSettings):
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_DIR: str = "logs"
    FILTER_LOG_FILE: str = "logs/filters.log"
    STATE_LOG_FILE: str = "logs/table_state.log"
    LOOKUP_LOG_FILE: str = "logs/lookup.log"
    API_LOG_FILE: str = "logs/tableview.log"
    ENABLE_FILE_LOGGING: bool = True
    ENABLE_CONSOLE_LOGGING: bool = True
    MAX_LOG_FILE_SIZE: int = 10 * 1024 * 1024  # 10MB
    MAX_LOG_FILE_COUNT: int = 5

    model_config = SettingsConfigDict(env_prefix="TABLEVIEW_LOG_")


class TableSettings(BaseSettings):
    # Pagination
    DEFAULT_PAGE_SIZE: int = 25
    MAX_PAGE_SIZE: int = 500
    PAGE_SIZE_OPTIONS: List[int] = [10, 25, 50, 100]

    # Rows revealed per "show more" step inside a group
    GROUP_PAGE_SIZE: int = 5

    # Sorting applied when no view (or a view without sorting) is active
    DEFAULT_SORT_FIELD: str = "createdOnTimestamp"
    DEFAULT_SORT_DIRECTION: str = "desc"

    model_config = SettingsConfigDict(env_prefix="TABLEVIEW_TABLE_")


class LookupSettings(BaseSettings):
    BASE_URL: str = ""
    TIMEOUT_SECONDS: float = 10.0

    # Autocomplete filters with at most this many options render as dropdowns
    DROPDOWN_THRESHOLD: int = 20
    # Entity batches up to this size are resolved one id at a time
    BATCH_RESOLVE_THRESHOLD: int = 5

    # Optional JSON files replacing the built-in registries
    FILTER_REGISTRY_PATH: Optional[str] = None
    ENTITY_REGISTRY_PATH: Optional[str] = None

    model_config = SettingsConfigDict(env_prefix="TABLEVIEW_LOOKUP_")


class Settings(BaseSettings):
    # Base settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Table View API"
    DEBUG: bool = False

    # CORS settings
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Sub-configurations
    logging: LoggingSettings = LoggingSettings()
    table: TableSettings = TableSettings()
    lookup: LookupSettings = LookupSettings()

    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._create_directories()

    def _create_directories(self):
        """Create the log directory when file logging is on"""
        if self.logging.ENABLE_FILE_LOGGING:
            Path(self.logging.LOG_DIR).mkdir(parents=True, exist_ok=True)

    @property
    def is_development(self) -> bool:
        """Check if running in development mode"""
        return self.DEBUG

    def resolve_lookup_url(self, endpoint: str) -> str:
        """Prefix relative lookup endpoints with the configured base URL"""
        if endpoint.startswith(("http://", "https://")) or not self.lookup.BASE_URL:
            return endpoint
        return self.lookup.BASE_URL.rstrip("/") + "/" + endpoint.lstrip("/")


# Initialize settings
settings = Settings()
