"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Client settings loaded from GOWISE_* environment variables."""

    # Backend
    backend_domain: str = ""  # e.g. "api.gowise.vn" or "https://api.gowise.vn/"
    backend_port: str = ""
    http_timeout_seconds: float = 15.0

    # Account Service paths ({user_id} is substituted)
    account_path: str = "/account/{user_id}"
    account_premium_path: str = "/account/{user_id}/premium"

    # Payment link
    payment_link_path: str = "/api/payos/payment-link"
    payment_plan_name: str = "Gói Premium Gowise"
    payment_description: str = "Gowise Premium"
    payment_description_max_length: int = 25  # PayOS description field limit

    # Return notification deep links
    app_scheme: str = "gowise"
    expo_go: bool = False  # True when running inside Expo Go
    expo_host_uri: str = ""
    return_url: str = ""  # Explicit override (e.g. the local receiver)
    cancel_url: str = ""

    # Local profile cache
    profile_cache_path: str = "~/.gowise/profile-cache.json"
    profile_cache_key: str = "gowise:user-data"

    # Purchase journal
    journal_database_url: str = "sqlite+aiosqlite:///gowise-purchases.db"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Return notification receiver
    access_token: str = ""  # Credential for the standalone receiver
    receiver_host: str = "127.0.0.1"
    receiver_port: int = 8765
    service_name: str = "gowise-premium"
    service_version: str = "0.1.0"

    model_config = SettingsConfigDict(
        env_prefix="GOWISE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        A malformed path template or a zero-length description budget would
        only surface after the user has already paid.
        """
        errors: list[str] = []

        for name in ("account_path", "account_premium_path"):
            template = getattr(self, name)
            if "{user_id}" not in template:
                errors.append(f"{name.upper()} must contain '{{user_id}}', got: {template}")
            if not template.startswith("/"):
                errors.append(f"{name.upper()} must start with '/', got: {template}")

        if self.payment_description_max_length <= 0:
            errors.append("PAYMENT_DESCRIPTION_MAX_LENGTH must be positive")

        if self.http_timeout_seconds <= 0:
            errors.append("HTTP_TIMEOUT_SECONDS must be positive")

        if self.log_format not in ("json", "console"):
            errors.append(f"LOG_FORMAT must be 'json' or 'console', got: {self.log_format}")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - CLIENT CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def backend_base_url(self) -> str:
        """Backend base URL with protocol and optional port, no trailing slash."""
        domain = self.backend_domain.rstrip("/") if self.backend_domain else ""
        if not domain:
            return "http://localhost:8080"

        if not domain.startswith(("http://", "https://")):
            domain = f"http://{domain}"

        return f"{domain}:{self.backend_port}" if self.backend_port else domain

    def _deep_link(self, status: str) -> str:
        if self.expo_go:
            experience_url = f"exp://{self.expo_host_uri}" if self.expo_host_uri else "exp://"
            return f"{experience_url}/--/premium?status={status}"
        scheme = self.app_scheme or "gowise"
        return f"{scheme}://premium?status={status}"

    @property
    def payment_return_url(self) -> str:
        """URL the hosted checkout redirects to after payment."""
        return self.return_url or self._deep_link("success")

    @property
    def payment_cancel_url(self) -> str:
        """URL the hosted checkout redirects to on cancellation."""
        return self.cancel_url or self._deep_link("cancel")


# Global settings instance - validates at import time
settings = Settings()
