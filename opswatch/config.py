from __future__ import annotations

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Deadlines
    cycle_deadline_ms: int = 30_000  # whole health-check cycle
    probe_deadline_ms: int = 10_000  # shared by the probes of one group
    command_timeout_ms: int = 8_000  # df / iptables / apt / docker
    realtime_timeout_ms: int = 5_000  # websocket open handshake race

    # System probes
    disk_path: str = "/"

    # Application logs
    access_log_path: str = "logs/access.log"
    error_log_path: str = "logs/error.log"
    log_tail_bytes: int = 1_000_000  # read at most ~1 MB per log
    request_window_seconds: int = 60
    active_users_key: str = "active_users"

    # Dependent services
    datastore_dsn: str = "postgresql://localhost:5432/postgres"
    cache_url: str = "redis://localhost:6379/0"
    api_health_url: str = "http://localhost:3000/health"
    realtime_url: str = "ws://localhost:3000/ws"

    # Security posture
    certificate_path: str = "ssl/cert.pem"

    # Thresholds (YAML); empty = built-in defaults
    thresholds_file: str = ""

    # Audit trail
    audit_log_path: str = "logs/health.log"

    # Notifications (Slack-compatible incoming webhook)
    alert_webhook_url: str = ""
    webhook_timeout_ms: int = 10_000

    # Scheduler
    check_interval_seconds: int = 60

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _realtime_within_probe_deadline(self) -> Settings:
        # The handshake race must finish before the group deadline cancels the probe
        if self.realtime_timeout_ms >= self.probe_deadline_ms:
            raise ValueError(
                f"realtime_timeout_ms ({self.realtime_timeout_ms}) must be below "
                f"probe_deadline_ms ({self.probe_deadline_ms})"
            )
        return self


settings = Settings()
