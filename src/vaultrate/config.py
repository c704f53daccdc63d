"""Configuration system using pydantic-settings with environment variable loading."""

from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChainSettings(BaseSettings):
    """JSON-RPC endpoint and vault contract settings."""

    model_config = SettingsConfigDict(env_prefix="CHAIN_")

    rpc_url: str = ""
    vault_address: str = "0xD9A442856C234a39a81a089C06451EBAa4306a72"
    timeout: float = 10.0  # seconds per RPC call
    decimals: int = 18


class ExplorerSettings(BaseSettings):
    """Etherscan-compatible block explorer settings."""

    model_config = SettingsConfigDict(env_prefix="EXPLORER_")

    enabled: bool = True
    base_url: str = "https://api.etherscan.io/api"
    api_key: SecretStr = SecretStr("")
    timeout: float = 10.0


class CacheSettings(BaseSettings):
    """Cache store backend and key layout."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    backend: Literal["redis", "sqlite"] = "redis"
    redis_url: str = "redis://localhost:6379/0"
    sqlite_path: str = "data/rates.db"
    latest_key: str = "latest_rate"
    history_key: str = "rate_history"
    timeout: float = 2.0  # single-key operations
    range_timeout: float = 5.0  # range reads and cleanup


class SamplerSettings(BaseSettings):
    """Live rate sampling loop."""

    model_config = SettingsConfigDict(env_prefix="SAMPLER_")

    interval: float = 15.0  # seconds between ticks
    retention_hours: int = 24
    record_completed_hours: bool = True  # point-in-time fetch when an hour closes


class BackfillSettings(BaseSettings):
    """Startup reconstruction of the hourly series from Transfer logs."""

    model_config = SettingsConfigDict(env_prefix="BACKFILL_")

    enabled: bool = True
    block_window: int = 1000  # logs older than latest - block_window are out of reach
    hours: int = 24
    abort_on_unresolved_block: bool = False


class ApiSettings(BaseSettings):
    """HTTP/SSE server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8080
    stream_interval: float = 15.0  # seconds between SSE pushes
    history_hours: int = 24


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    chain: ChainSettings = ChainSettings()
    explorer: ExplorerSettings = ExplorerSettings()
    cache: CacheSettings = CacheSettings()
    sampler: SamplerSettings = SamplerSettings()
    backfill: BackfillSettings = BackfillSettings()
    api: ApiSettings = ApiSettings()
