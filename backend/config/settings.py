"""Central configuration using Pydantic BaseSettings."""

from typing import Annotated, Literal, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

DEFAULT_CSRF_SECRET = "csrf-secret-key-change-in-production-min-32-chars"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "abuse-guard"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "production"] = "development"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: Annotated[list[str], NoDecode] = ["http://localhost:5173", "http://localhost:3000"]  # Override with CORS_ORIGINS env var

    # Ledger store
    store_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = 20
    store_key_prefix: str = "abuse-guard:"
    memory_store_max_size: int = 100_000

    # Login rate limiting (progressive)
    rate_limit_short_threshold: int = 3
    rate_limit_short_delay_seconds: int = 5
    rate_limit_long_threshold: int = 5
    rate_limit_long_delay_seconds: int = 30
    rate_limit_block_threshold: int = 10
    rate_limit_lockout_seconds: int = 15 * 60
    rate_limit_reset_window_seconds: int = 60 * 60
    rate_limit_cleanup_interval_seconds: int = 60 * 60
    rate_limit_delay_from_last_attempt: bool = False  # when False the tier delay does not decay between attempts
    ip_whitelist: Annotated[list[str], NoDecode] = []  # Comma-separated IPs or CIDR ranges that bypass login limiting

    # CSRF (double-submit cookie)
    csrf_secret: str = DEFAULT_CSRF_SECRET
    csrf_cookie_name: str = "csrf-token"
    csrf_header_name: str = "X-CSRF-Token"
    csrf_cookie_max_age: int = 60 * 60 * 24
    csrf_exempt_paths: Annotated[list[str], NoDecode] = ["/api/auth/login", "/api/auth/refresh"]
    csrf_optional_paths: Annotated[list[str], NoDecode] = []

    # URL reputation (Google Safe Browsing v4)
    safe_browsing_api_key: str = ""
    safe_browsing_url: str = "https://safebrowsing.googleapis.com/v4/threatMatches:find"
    safe_browsing_client_id: str = "abuse-guard"
    safe_browsing_timeout_seconds: float = 5.0
    safe_browsing_max_urls: int = 500
    url_max_length: int = 2048
    url_reputation_fail_mode: Literal["open", "closed"] = "open"
    url_reputation_error_alert_threshold: int = 5

    # CAPTCHA escalation (0 disables)
    captcha_provider: Literal["recaptcha", "hcaptcha", "turnstile"] = "turnstile"
    captcha_secret_key: str = ""
    captcha_required_after: int = 0
    captcha_timeout_seconds: float = 5.0

    # Notifications
    notification_webhook_url: str = ""
    notification_timeout_seconds: float = 10.0

    # Admin escape hatch
    admin_token: str = ""

    # Anti-phishing public config
    official_app_domain: str = ""

    # Monitoring
    prometheus_enabled: bool = False  # Disabled by default

    @field_validator("cors_origins", "ip_whitelist", "csrf_exempt_paths", "csrf_optional_paths", mode="before")
    @classmethod
    def parse_comma_list(cls, v: Union[str, list[str]]) -> list[str]:
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
