"""
Configuration settings for the ads.txt / sellers.json cache core.

Uses Pydantic Settings to load environment variables for the storage backend
selection, database connections, logging, cache freshness and backfill
tuning.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Execution context
    app_env: str = Field("development", alias="APP_ENV")
    db_provider: str = Field("sqlite", alias="DB_PROVIDER")

    # Embedded store
    sqlite_path: str = Field("db/adstxt_cache.sqlite", alias="SQLITE_PATH")

    # Server store
    database_url: Optional[str] = Field(None, alias="DATABASE_URL")
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("adstxt_manager", alias="DB_NAME")
    pg_min_pool_size: int = Field(1, alias="PG_MIN_POOL_SIZE")
    pg_max_pool_size: int = Field(10, alias="PG_MAX_POOL_SIZE")
    pg_connect_timeout: int = Field(10, alias="PG_CONNECT_TIMEOUT")
    db_statement_timeout_ms: int = Field(0, alias="DB_STATEMENT_TIMEOUT_MS")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Cache policy
    cache_max_age_hours: float = Field(24.0, alias="CACHE_MAX_AGE_HOURS")
    cleanup_retention_days: int = Field(90, alias="CLEANUP_RETENTION_DAYS")

    # Seller lookup backfill
    backfill_batch_size: int = Field(100, alias="BACKFILL_BATCH_SIZE")
    seller_upsert_chunk_size: int = Field(1_000, alias="SELLER_UPSERT_CHUNK_SIZE")
    skip_data_migration: bool = Field(False, alias="SKIP_DATA_MIGRATION")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
