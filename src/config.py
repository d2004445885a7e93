from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Discord delivery (bot mode wins when both are configured)
    discord_bot_token: str = ""       # bot token for the gateway client
    discord_channel_id: str = ""      # channel the report is posted to
    discord_webhook_url: str = ""     # webhook-only delivery

    # Targets
    targets_file: str = "targets.yaml"

    # Health checks
    probe_timeout_seconds: float = 10.0
    check_interval_seconds: int = 3600  # 1 hour
    max_concurrency: int = 0  # 0 = one request per target, no cap

    # Logging
    log_level: str = "INFO"


settings = Settings()
