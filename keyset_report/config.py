"""
Configuration settings for keyset-report.

Uses Pydantic Settings to load environment variables for database connections,
logging, and report defaults (batch size, per-fetch statement timeout).
"""
from __future__ import annotations

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("keyset_report", alias="DB_NAME")
    db_statement_timeout_ms: int = Field(30_000, ge=0, alias="DB_STATEMENT_TIMEOUT_MS")
    db_pool_min_size: int = Field(1, ge=0, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(10, gt=0, alias="DB_POOL_MAX_SIZE")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Report defaults
    report_batch_size: int = Field(1000, gt=0, alias="REPORT_BATCH_SIZE")
    benchmark_runs: int = Field(1, gt=0, alias="BENCHMARK_RUNS")

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
