"""
Configuration settings for Ledger Race.

Uses Pydantic Settings to load environment variables for database connections,
the connection pool, transaction isolation, logging, and scenario defaults.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

IsolationLevel = Literal["read_committed", "repeatable_read", "serializable"]
StrategyName = Literal["strict", "relaxed"]


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("postgres", alias="DB_NAME")

    # Pool and transactions
    db_pool_min_size: int = Field(1, alias="DB_POOL_MIN_SIZE", gt=0)
    db_pool_max_size: int = Field(128, alias="DB_POOL_MAX_SIZE", gt=0)
    db_isolation_level: IsolationLevel = Field("read_committed", alias="DB_ISOLATION_LEVEL")

    # Application
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Scenario defaults
    ledger_accounts: int = Field(100, alias="LEDGER_ACCOUNTS", gt=0)
    ledger_initial_balance: int = Field(1000, alias="LEDGER_INITIAL_BALANCE", ge=0)
    ledger_transfers: int = Field(10_000, alias="LEDGER_TRANSFERS", gt=0)
    ledger_transfer_amount: int = Field(3, alias="LEDGER_TRANSFER_AMOUNT", gt=0)
    ledger_strategy: StrategyName = Field("relaxed", alias="LEDGER_STRATEGY")

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


__all__ = ["IsolationLevel", "Settings", "StrategyName", "get_settings"]
