"""
Application settings loaded from environment variables.
"""

from pydantic_settings import BaseSettings
from typing import Dict


class Settings(BaseSettings):
    # ── Server ───────────────────────────────────────────────────────────
    port: int = 8000
    host: str = "0.0.0.0"
    debug: bool = False
    cors_origins: list = ["*"]

    # ── Shared store (rate windows + OAuth token cache) ──────────────────
    redis_url: str = ""                 # empty → in-process store (single instance only)
    store_key_prefix: str = "connector"

    # ── Dispatch defaults ────────────────────────────────────────────────
    default_timeout_ms: int = 30000
    user_agent: str = "DevSync-Connector/1.0"

    # ── OAuth ────────────────────────────────────────────────────────────
    oauth_default_expires_in: int = 3600
    oauth_refresh_token_ttl_seconds: int = 2592000   # 30 days
    token_encryption_key: str = ""                    # Fernet key for cached tokens

    # ── Credentials ──────────────────────────────────────────────────────
    # {"slack": {"token": "xoxb-…"}, "jira": {"username": "…", "password": "…"}}
    connector_credentials: Dict[str, Dict[str, str]] = {}

    # ── Built-in helpers ─────────────────────────────────────────────────
    twilio_account_sid: str = ""
    twilio_phone_number: str = ""
    sendgrid_default_from: str = "noreply@devsync.com"

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
    }


config = Settings()
