"""Core configuration for the retrace simulator."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RETRACE_",
        case_sensitive=False,
    )

    # ── App ──────────────────────────────────────────────────────────────
    app_name: str = "retrace"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # ── Node / RPC ───────────────────────────────────────────────────────
    chain: str = "ethereum"
    rpc_url: str = ""  # Overrides the chain's templated URL when set
    alchemy_api_key: str = ""
    infura_api_key: str = ""
    rpc_timeout_seconds: float = 30.0
    rpc_max_retries: int = 3

    # ── Replay identity ──────────────────────────────────────────────────
    signer_address: str = ""
    simulation_contract: str = ""  # Substitute address used instead of the signer

    # ── Simulation ───────────────────────────────────────────────────────
    rewind: bool = True
    profit_mode: Literal["sender_first", "native_token"] = "sender_first"
    max_skipped_ratio: float = Field(default=1.0, ge=0.0, le=1.0)


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()
