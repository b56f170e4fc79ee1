import os
from typing import List, Optional
from pydantic_settings import BaseSettings
import logging


class Settings(BaseSettings):
    """Application settings with validation."""

    # App
    app_name: str = "CyberFarm"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"
    cors_origins: List[str] = [
        "http://localhost:5173",
        "https://web.telegram.org",
    ]

    # Database (document store). Unset means in-memory store.
    database_url: Optional[str] = None
    db_pool_min: int = 1
    db_pool_max: int = 10

    # Telegram WebApp auth
    telegram_bot_token: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
    init_data_max_age_seconds: int = 24 * 60 * 60
    bot_username: str = "cyberfarmer_bot"

    # Session tokens
    jwt_secret: str = os.getenv("JWT_SECRET", "change-me")
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 7 * 24 * 60

    # Collaborator endpoints (payments, payouts)
    admin_api_key: str = os.getenv("ADMIN_API_KEY", "")

    # Economy
    ton_withdraw_fee: float = 0.10  # 0.05 also appears in product copy
    paid_spin_reveal_ms: int = 2000

    # Engine cache
    max_cached_users: int = 10_000

    # Scheduler
    enable_scheduler: bool = True
    growth_tick_seconds: int = 1
    buff_sweep_seconds: int = 1
    daily_reset_check_seconds: int = 60

    class Config:
        env_file = ".env"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._validate_ton_withdraw_fee()

    def _validate_ton_withdraw_fee(self):
        """Validate and enforce ton_withdraw_fee."""
        if not (0 <= self.ton_withdraw_fee < 1):
            error_msg = (
                f"TON_WITHDRAW_FEE must be in [0, 1), got {self.ton_withdraw_fee}"
            )

            # Fail fast in dev/test
            if self.environment in ["development", "testing"]:
                raise ValueError(error_msg)

            # Log warning and fallback in production
            logger = logging.getLogger(__name__)
            logger.warning(f"{error_msg}. Falling back to default (0.10).")
            self.ton_withdraw_fee = 0.10


# Global settings instance
settings = Settings()
