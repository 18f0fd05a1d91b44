"""
Application settings loaded from environment variables.
"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # ── Upstream automation service ─────────────────────────────────────
    getgather_url: str = "http://127.0.0.1:23456"
    getgather_app_key: str = ""          # bearer credential = "<key>_<session id>"
    mcp_path: str = "/mcp-books/"
    custom_app_name: str = "page-turner"
    mcp_client_name: str = "page-turner-server"
    mcp_client_version: str = "1.0.0"

    # ── Sign-in ──────────────────────────────────────────────────────────
    brand: str = "goodreads"
    app_host: str = ""                   # externally visible origin; derived per request when empty
    signin_timeout_seconds: int = 60
    poll_timeout_seconds: int = 6000     # the upstream blocks while the user signs in

    # ── Connectors ───────────────────────────────────────────────────────
    connect_timeout_seconds: int = 30
    connector_idle_ttl_seconds: int = 86400
    connector_sweep_interval_seconds: int = 300

    # ── Geolocation (MaxMind web service) ────────────────────────────────
    maxmind_account_id: str = ""
    maxmind_license_key: str = ""

    # ── Session cookie ───────────────────────────────────────────────────
    session_secret: str = "change-me-session-secret"
    session_cookie: str = "page_turner_session"
    session_max_age: int = 86400         # 24 hours

    # ── Reverse proxy ────────────────────────────────────────────────────
    proxy_paths: List[str] = [
        "/auth",
        "/link",
        "/dpage",
        "/assets",
        "/static",
        "/__assets",
        "/__static",
    ]

    # ── Server ───────────────────────────────────────────────────────────
    environment: str = "development"
    static_dir: str = "dist"
    port: int = 3001
    host: str = "0.0.0.0"
    debug: bool = False
    cors_origins: list = ["*"]

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
    }

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def mcp_url(self) -> str:
        return f"{self.getgather_url.rstrip('/')}{self.mcp_path}"


config = Settings()
