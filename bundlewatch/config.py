"""Environment-driven settings."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from bundlewatch.errors import ConfigurationError
from bundlewatch.jobs.lock import LOCK_TTL_SECONDS

DEFAULT_REDIS_URL = "redis://redis:6379/0"
REQUIRED = {
    "shopify_store": "SHOPIFY_STORE",
    "shopify_token": "SHOPIFY_ADMIN_API_KEY",
    "klaviyo_api_key": "KLAVIYO_API_KEY",
    "alert_list_id": "KLAVIYO_BACK_IN_STOCK_ALERT_LIST_ID",
}


def _seconds_from_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number of seconds, got {raw!r}") from exc


@dataclass(slots=True)
class Settings:
    shopify_store: str = ""
    shopify_token: str = ""
    shopify_api_version: str = "2024-04"
    klaviyo_api_key: str = ""
    alert_list_id: str = ""
    public_store_domain: str = "armadillotough.com"
    cron_secret: str = ""
    redis_url: str = DEFAULT_REDIS_URL
    max_sweep_seconds: float = 300.0

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            shopify_store=os.environ.get("SHOPIFY_STORE", ""),
            shopify_token=os.environ.get("SHOPIFY_ADMIN_API_KEY", ""),
            shopify_api_version=os.environ.get("SHOPIFY_API_VERSION", "2024-04"),
            klaviyo_api_key=os.environ.get("KLAVIYO_API_KEY", ""),
            alert_list_id=os.environ.get("KLAVIYO_BACK_IN_STOCK_ALERT_LIST_ID", ""),
            public_store_domain=os.environ.get("PUBLIC_STORE_DOMAIN", "armadillotough.com"),
            cron_secret=os.environ.get("CRON_SECRET", ""),
            redis_url=os.environ.get("REDIS_URL", DEFAULT_REDIS_URL),
            max_sweep_seconds=_seconds_from_env("MAX_SWEEP_SECONDS", 300.0),
        )

    def require(self) -> None:
        """Raise ConfigurationError for missing variables or an unsafe sweep limit."""
        missing = [env for attr, env in REQUIRED.items() if not getattr(self, attr)]
        if missing:
            raise ConfigurationError(f"Missing env: {', '.join(missing)}")
        if self.max_sweep_seconds >= LOCK_TTL_SECONDS:
            raise ConfigurationError(
                f"MAX_SWEEP_SECONDS must be below the {LOCK_TTL_SECONDS}s run lock TTL, got {self.max_sweep_seconds:g}"
            )
