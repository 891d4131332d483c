from functools import lru_cache

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "homeledger"
    database_url: str = "sqlite+aiosqlite:///./data/expense.db"
    timezone: str = "Asia/Kolkata"
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    token_ttl_days: int = 30
    cookie_secure: bool = False
    max_users: int = 2
    auth_rate_limit_attempts: int = 10
    auth_rate_limit_window_seconds: float = 60.0

    # Reporting
    billing_cycle_day: int = 5
    atm_category_name: str = "ATM Withdrawal"
    strict_date_params: bool = False

    # Documents
    docs_dir: str = "./documents"
    max_document_bytes: int = 10 * 1024 * 1024

    auto_run_migrations: bool = True

    @field_validator("billing_cycle_day")
    @classmethod
    def validate_billing_cycle_day(cls, v: int) -> int:
        """Cycle day must exist in every month."""
        if not 1 <= v <= 28:
            raise ValueError("billing_cycle_day must be between 1 and 28")
        return v

    def get_sync_database_url(self) -> str:
        """Return a synchronous driver URL for Alembic/CLI usage."""

        if "+aiosqlite" in self.database_url:
            return self.database_url.replace("+aiosqlite", "")
        return self.database_url


class AppConfig(BaseModel):
    version: str = "1.3.0"
    description: str = "Household expense tracker API"


@lru_cache
def get_settings() -> Settings:
    return Settings()
