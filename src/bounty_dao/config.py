from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

WEI_PER_TOKEN = 10**18


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_env: str = "dev"
    log_level: str = "INFO"
    app_name: str = "bounty-dao"

    rpc_url: str = "http://127.0.0.1:8545"
    rpc_timeout_seconds: float = 10.0
    chain_id: int = 84532

    escrow_address: str = ""
    governor_address: str = ""
    token_address: str = ""
    start_block: int = 0
    log_chunk_size: int = 50_000

    time_poll_interval_seconds: float = 15.0
    block_time_estimate_seconds: int = 2
    required_bond_wei: int = 10_000 * WEI_PER_TOKEN
    creator_deposit_wei: int = 100 * WEI_PER_TOKEN


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return AppSettings()
