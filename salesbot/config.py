"""Environment-driven configuration with Pydantic validation.

All settings come from environment variables and are validated once at
startup by ``load_config()``. The FastAPI lifespan stores the result on
``app.state.config``; services receive the values they need explicitly.

Environment Variables:
    SALESBOT_WEBHOOK_TIMEOUT: Per-delivery timeout in seconds (default 30).
    SALESBOT_WEBHOOK_USER_AGENT: User-Agent header sent with deliveries.
    SALESBOT_HISTORY_WINDOW: Prior messages forwarded to the AI (default 10).
    SHOPIFY_SHOP_URL / SHOPIFY_URL: Store domain (e.g. 'mystore.myshopify.com').
    SHOPIFY_ACCESS_TOKEN / SHOPIFY_TOKEN: Admin API access token.
    ANTHROPIC_MODEL: Claude model used for chat replies.
    ALLOWED_ORIGINS: Comma-separated CORS allowlist (empty disables CORS).
"""

import logging
import os

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_USER_AGENT = "SalesBot-AI-Webhook/1.0"
DEFAULT_WEBHOOK_TIMEOUT = 30.0


class AppConfig(BaseModel):
    """Validated application settings."""

    webhook_timeout: float = Field(default=DEFAULT_WEBHOOK_TIMEOUT, gt=0)
    webhook_user_agent: str = DEFAULT_USER_AGENT
    history_window: int = Field(default=10, ge=1)
    shopify_shop_url: str = ""
    shopify_access_token: str = ""
    anthropic_model: str = DEFAULT_MODEL
    allowed_origins: list[str] = Field(default_factory=list)

    @field_validator("shopify_shop_url")
    @classmethod
    def _normalize_shop_url(cls, v: str) -> str:
        """Strip scheme and trailing slashes from the store domain."""
        return v.replace("https://", "").replace("http://", "").rstrip("/")

    @property
    def shopify_configured(self) -> bool:
        """True when both store domain and access token are present."""
        return bool(self.shopify_shop_url and self.shopify_access_token)


def _first_env(*names: str) -> str:
    for name in names:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return ""


def _parse_allowed_origins(raw: str) -> list[str]:
    if not raw:
        return []
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def parse_allowed_origins() -> list[str]:
    """Parse the comma-separated CORS allowlist from ALLOWED_ORIGINS.

    Reads only that variable, so it is safe to call at import time.
    """
    return _parse_allowed_origins(_first_env("ALLOWED_ORIGINS"))


def load_config() -> AppConfig:
    """Build the application config from the current environment.

    Returns:
        Validated AppConfig.

    Raises:
        ValueError: If a numeric variable is malformed or out of range.
    """
    values: dict = {
        "webhook_user_agent": _first_env("SALESBOT_WEBHOOK_USER_AGENT") or DEFAULT_USER_AGENT,
        "shopify_shop_url": _first_env("SHOPIFY_SHOP_URL", "SHOPIFY_URL"),
        "shopify_access_token": _first_env("SHOPIFY_ACCESS_TOKEN", "SHOPIFY_TOKEN"),
        "anthropic_model": _first_env("ANTHROPIC_MODEL") or DEFAULT_MODEL,
        "allowed_origins": parse_allowed_origins(),
    }

    timeout = _first_env("SALESBOT_WEBHOOK_TIMEOUT")
    if timeout:
        try:
            values["webhook_timeout"] = float(timeout)
        except ValueError:
            raise ValueError(
                f"SALESBOT_WEBHOOK_TIMEOUT must be a number of seconds, got {timeout!r}"
            ) from None

    window = _first_env("SALESBOT_HISTORY_WINDOW")
    if window:
        try:
            values["history_window"] = int(window)
        except ValueError:
            raise ValueError(
                f"SALESBOT_HISTORY_WINDOW must be an integer, got {window!r}"
            ) from None

    # pydantic's ValidationError subclasses ValueError
    config = AppConfig(**values)
    if not config.shopify_configured:
        logger.info("Shopify credentials not set; product sync is disabled.")
    return config
