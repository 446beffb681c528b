from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from nova_funded.services.tron.address import normalize_address


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_env: str = "dev"
    app_debug: bool = True
    app_name: str = "NOVA_FUNDED"
    app_version: str = "1.0.0"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    allowed_origins: str = (
        "https://novafundedtraders.com,"
        "http://localhost:5173,"
        "http://localhost:8080,"
        "http://localhost:3000"
    )

    # Database
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "postgres"
    db_password: str = "password"
    db_name: str = "nova_funded"
    database_url: Optional[str] = None  # Может быть задан напрямую (Supabase / Railway)

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_url: Optional[str] = None

    # JWT: токены выдаёт внешний auth-провайдер, мы только проверяем подпись
    jwt_secret: str = "change-me-jwt-secret-256-bit"
    jwt_algorithm: str = "HS256"
    jwt_audience: Optional[str] = "authenticated"

    # TRON / USDT TRC20
    tron_api_key: str = ""  # если задан, TronGrid, иначе публичный TronScan
    trongrid_base_url: str = "https://api.trongrid.io"
    tronscan_base_url: str = "https://apilist.tronscan.org"
    usdt_contract_address: str = "TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t"
    usdt_decimals: int = 6
    receiving_wallet_address: str = "TV386Let8mNrkzDV5aKLgxXjFWNE3qnQxM"
    settlement_currency: str = "USDT"
    explorer_timeout_seconds: float = 5.0

    # Telegram (только алерты для оператора)
    telegram_bot_token: str = ""
    super_admin_tg_id: int = 0

    # Rate limiting
    rate_limit_per_minute: int = 100
    rate_limit_verify_per_minute: int = 10

    # Reconciliation
    reconcile_interval_minutes: int = 10

    def _postgres_url(self, scheme: str) -> str:
        if not self.database_url:
            return (
                f"{scheme}://{self.db_user}:{self.db_password}"
                f"@{self.db_host}:{self.db_port}/{self.db_name}"
            )
        # Supabase и Railway отдают postgres:// без драйвера
        _, _, rest = self.database_url.partition("://")
        return f"{scheme}://{rest}"

    @property
    def database_url_async(self) -> str:
        return self._postgres_url("postgresql+asyncpg")

    @property
    def database_url_sync(self) -> str:
        """URL для Alembic offline-режима."""
        return self._postgres_url("postgresql")

    @property
    def redis_connection_url(self) -> str:
        if self.redis_url:
            return self.redis_url
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @property
    def token_unit(self) -> Decimal:
        """Количество минимальных единиц в одном токене (10^decimals)."""
        return Decimal(10) ** self.usdt_decimals

    @property
    def use_trongrid(self) -> bool:
        return bool(self.tron_api_key)

    @field_validator("receiving_wallet_address", "usdt_contract_address")
    @classmethod
    def validate_tron_address(cls, v: str) -> str:
        v = normalize_address(v)
        if len(v) != 34 or not v.startswith("T"):
            raise ValueError(f"Not a TRON address: {v}")
        return v

    @field_validator("usdt_decimals")
    @classmethod
    def validate_decimals(cls, v: int) -> int:
        if v < 0 or v > 36:
            raise ValueError("usdt_decimals must be between 0 and 36")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
