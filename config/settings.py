"""
Application Settings - Load from YAML configs + .env secrets

Design Philosophy:
- Backend tuning (fetch size, timeouts, collection names) → YAML file (public, versioned in git)
- Connection URL (contains credentials) → .env file (gitignored)

Uses Pydantic for validation and type safety
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.utils.config import load_yaml_safe


class Settings(BaseSettings):
    """
    Application settings

    Architecture:
    - Backend configs → config/providers/timeseries.yaml (public)
    - Secrets → .env (gitignored)

    Usage:
        from config.settings import get_settings

        settings = get_settings()
        print(settings.IOTDB_FETCH_SIZE)  # From timeseries.yaml
        print(settings.TIMESERIES_URL)  # From .env
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields in .env
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Load YAML configs from files (cached at class level)
        if not hasattr(Settings, "_yaml_loaded"):
            Settings._timeseries_config = load_yaml_safe("config/providers/timeseries.yaml")
            Settings._yaml_loaded = True

    # ============================================
    # ENVIRONMENT (.env only)
    # ============================================
    ENVIRONMENT: str = Field(default="local", description="Environment: local, dev, staging, prod")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # ============================================
    # BACKEND SELECTION (.env only - may hold credentials)
    # ============================================
    TIMESERIES_URL: str = Field(
        default="mongodb://127.0.0.1:27017/?appName=tsaccess",
        description="Connection URL; the scheme selects the backend: mongodb://, iotdb://",
    )

    # ============================================
    # CONNECTION (from YAML)
    # ============================================
    @property
    def CONNECT_TIMEOUT_SECONDS(self) -> float:
        """Bounded wait for the initial backend connection"""
        return self._timeseries_config.get("connection", {}).get("connect_timeout_seconds", 5.0)

    # ============================================
    # IOTDB (from YAML)
    # ============================================
    @property
    def IOTDB_FETCH_SIZE(self) -> int:
        """Default session fetch size (a fetchSize URL parameter overrides it)"""
        return self._timeseries_config.get("iotdb", {}).get("fetch_size", 1800)

    @property
    def IOTDB_ZONE_ID(self) -> str | None:
        """Session time zone; None uses the local zone"""
        return self._timeseries_config.get("iotdb", {}).get("zone_id")

    # ============================================
    # MONGODB (from YAML)
    # ============================================
    @property
    def MONGO_COLLECTION_POINT(self) -> str:
        """Catalog collection name"""
        return (
            self._timeseries_config.get("mongodb", {}).get("collections", {}).get("point", "point")
        )

    @property
    def MONGO_COLLECTION_SNAPSHOT(self) -> str:
        """Latest-value collection name"""
        return (
            self._timeseries_config.get("mongodb", {})
            .get("collections", {})
            .get("snapshot", "snapshot")
        )

    @property
    def MONGO_COLLECTION_ARCHIVE(self) -> str:
        """Per-tag-per-day bucket collection name"""
        return (
            self._timeseries_config.get("mongodb", {})
            .get("collections", {})
            .get("archive", "archive")
        )


# Singleton pattern
_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """
    Get application settings (singleton)

    Returns:
        Settings instance

    Example:
        >>> settings = get_settings()
        >>> print(settings.MONGO_COLLECTION_ARCHIVE)
        archive
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
