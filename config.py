"""
config.py

Centralized configuration management using pydantic-settings.
All modules must import settings from this file.
Direct os.getenv() calls are prohibited elsewhere.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings loaded from .env file."""

    # Local key-value store
    store_url: str = "sqlite+aiosqlite:///./flowfit.db"

    # Ledger (Flow EVM testnet by default)
    rpc_url: str = "https://testnet.evm.nodes.onflow.org"
    rpc_timeout_seconds: float | None = None
    challenge_contract_address: str = ""

    # Custodial key encryption
    # Required: must be set in .env. While empty, every commitment fails at
    # identity resolution with KeyCustodyError.
    keystore_passphrase: str = ""
    keystore_kdf: str = "scrypt"
    keystore_iterations: int | None = None

    # Local notifications
    notification_channel_id: str = "default"
    notification_channel_name: str = "Default Channel"
    reminder_timezone: str = "UTC"

    # Step goals
    default_step_goal: int = 10000
    committing_days_options: list[int] = [3, 5, 7]
    activity_lookback_days: int = 7

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


settings = Settings()
