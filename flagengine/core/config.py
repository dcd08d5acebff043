"""Runtime settings for the flag engine service."""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    SERVICE_NAME: str = "flagengine"
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Flag store backend (memory|file)
    FLAG_STORE_BACKEND: str = "memory"
    FLAG_STORE_PATH: str = "data/feature_flags.json"
    # Registry polling interval; 0 disables the background refresher
    FLAG_REFRESH_INTERVAL_SECONDS: float = 30.0

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
    }


_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings()
    return _settings_cache


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings_cache
    _settings_cache = None
