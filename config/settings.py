"""Configuration management using pydantic-settings."""
from typing import List, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()


def _default_critical_actions() -> List[str]:
    """
    Actions that mutate records on the backend.

    These get one dedicated retry on timeout or network failure. New mutating
    actions must be added here explicitly, nothing is inferred from the name.
    """
    return [
        "addStageRecord",           # record creation
        "updateStageRecordField",   # record field update
        "deleteStageRecord",        # record deletion
    ]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Remote backend (validated on first call, not at import)
    backend_url: Optional[str] = None

    # Request executor
    healthy_timeout_seconds: float = 15.0
    degraded_timeout_seconds: float = 30.0
    max_retries: int = 2
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 8.0
    critical_timeout_retry_delay: float = 2.0
    critical_network_retry_delay: float = 1.5
    critical_actions: List[str] = _default_critical_actions()

    # Health monitor
    probe_action: str = "getVersion"
    probe_interval_seconds: float = 30.0
    heartbeat_interval_seconds: float = 60.0
    heartbeat_timeout_seconds: float = 3.0
    startup_grace_seconds: float = 15.0
    probe_timeout_grace_seconds: float = 10.0
    probe_timeout_seconds: float = 5.0
    warmup_fresh_seconds: float = 1.0
    warmup_reload_seconds: float = 3.0
    max_consecutive_failures: int = 3
    max_latency_ms: float = 10000.0
    latency_smoothing: float = 0.1
    status_startup_seconds: float = 10.0

    # Cache settings
    cache_ttl_seconds: float = 300.0
    offline_stale_seconds: float = 900.0

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
