from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "SoilWatch"

    # Mode: "sim" for development; "http" talks to the real device + relay
    mode: str = Field(default="sim")

    # Sources
    default_base_url: str = "http://soilmonitor.local/"
    remote_base_url: str = "http://localhost:8888/.netlify/functions/"
    request_timeout_s: float = 5.0

    # Polling
    live_poll_ms: int = 500
    history_poll_seconds: int = 60

    # Windows
    live_window_ms: int = 5 * 60 * 1000
    history_window_seconds: int = 10 * 24 * 60 * 60

    # Alerts
    alert_cooldown_ms: int = 20_000
    alert_shared_secret: str = ""
    alert_topic: str = "soil-alerts"
    push_gateway_url: str = ""
    push_timeout_s: float = 5.0

    # Storage: "sqlite" persists across restarts; "memory" is single-instance only
    store: str = Field(default="sqlite")
    sqlite_path: str = Field(default="soilwatch.db")
    log_file: str = "soilwatch.log"


settings = Settings()
