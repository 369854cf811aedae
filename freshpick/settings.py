from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_DIR = Path(__file__).resolve().parent.parent
DEFAULT_SEED_PATH = PROJECT_DIR / "config" / "catalog_seed.json"


class Settings(BaseSettings):
    app_name: str = Field("freshpick", alias="APP_NAME")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    user_id_header: str = Field("X-User-Id", alias="USER_ID_HEADER")
    request_id_header: str = Field("X-Request-Id", alias="REQUEST_ID_HEADER")
    partner_api_key: str = Field("partner-dev-key", alias="PARTNER_API_KEY")
    cors_allow_origins: str = Field("*", alias="CORS_ALLOW_ORIGINS")
    catalog_seed_path: str = Field(str(DEFAULT_SEED_PATH), alias="CATALOG_SEED_PATH")
    database_url: str = Field("", alias="DATABASE_URL")
    db_echo: bool = Field(False, alias="DB_ECHO")

    recommendation_limit: int = Field(12, alias="RECOMMENDATION_LIMIT")
    trending_limit: int = Field(8, alias="TRENDING_LIMIT")
    cold_start_limit: int = Field(10, alias="COLD_START_LIMIT")
    max_per_category: int = Field(4, alias="MAX_PER_CATEGORY")
    jitter_max: float = Field(5.0, alias="JITTER_MAX")
    jitter_seed: Optional[int] = Field(None, alias="JITTER_SEED")
    trending_cache_ttl_seconds: int = Field(300, alias="TRENDING_CACHE_TTL_SECONDS")

    rate_limit_enabled: bool = Field(False, alias="RATE_LIMIT_ENABLED")
    rate_limit_default: str = Field("120/minute", alias="RATE_LIMIT_DEFAULT")
    otel_enabled: bool = Field(False, alias="OTEL_ENABLED")
    otel_service_name: str = Field("freshpick", alias="OTEL_SERVICE_NAME")
    otel_exporter_otlp_endpoint: str = Field("", alias="OTEL_EXPORTER_OTLP_ENDPOINT")

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    @property
    def allowed_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]


def resolve_env_file() -> Optional[Path]:
    explicit = os.getenv("FRESHPICK_ENV_FILE")
    if explicit:
        return Path(explicit)
    default = Path.cwd() / "config" / "api.env"
    if default.exists():
        return default
    return None


def load_settings() -> Settings:
    env_file = resolve_env_file()
    if env_file:
        return Settings(_env_file=str(env_file))
    return Settings()
