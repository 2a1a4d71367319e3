"""All settings, loaded from the environment (POSSYNC_*) or the .env file."""
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="POSSYNC_", env_file=".env", extra="ignore")

    # Transaction server
    server_url: str = "http://localhost:3000"
    http_timeout_seconds: float = 15

    # Local store
    database_path: str = "possync.db"

    # Sync behavior
    conflict_strategy: Literal["first_write_wins", "last_write_wins", "manual"] = "first_write_wins"
    existence_check_policy: Literal["fail_safe", "fail_open"] = "fail_safe"
    sync_max_retries: int = 3
    sync_retry_delay_seconds: float = 5.0
    timeline_window: int = 50
    refresh_reports_after_sync: bool = True

    # Connectivity
    probe_interval_seconds: float = 30
    periodic_sync_minutes: float = 5

    # Order capture
    default_tax_rate: float = 0.1
    order_number_prefix: str = "OFF"

    # Local API
    api_host: str = "127.0.0.1"
    api_port: int = 8765

    # Logging
    log_level: str = "INFO"
    log_json: bool = False
    log_file: str = ""

    # Server routes
    products_path: str = "/api/products"
    customers_path: str = "/api/customers"
    settings_path: str = "/api/settings"
    orders_path: str = "/api/orders"
    order_check_path: str = "/api/orders/check/{order_id}"
    health_path: str = "/api/health"
    refresh_reports_path: str = "/api/reports/refresh-cache"

    @property
    def database_url(self) -> str:
        if self.database_path in ("", ":memory:"):
            return "sqlite://"
        return f"sqlite:///{self.database_path}"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
