"""Typed settings loader for the order-status sync engine."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AnyUrl, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .engine.status import ADMIN_FILTERS
from .exceptions import ConfigError


class Settings(BaseSettings):
    """Application settings loaded from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_env: Literal["dev", "staging", "prod"] = Field(default="dev", alias="APP_ENV")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
    )
    order_api_base_url: AnyUrl = Field(alias="ORDER_API_BASE_URL")
    order_api_bearer_token: str | None = Field(
        default=None, alias="ORDER_API_BEARER_TOKEN", repr=False
    )
    order_api_timeout_seconds: float = Field(default=30.0, alias="ORDER_API_TIMEOUT_SECONDS")
    order_api_max_retries: int = Field(default=1, alias="ORDER_API_MAX_RETRIES")
    order_api_retry_delay_seconds: float = Field(
        default=0.5,
        alias="ORDER_API_RETRY_DELAY_SECONDS",
    )
    order_api_customer_orders_endpoint: str = Field(
        default="/orders/my-orders",
        alias="ORDER_API_CUSTOMER_ORDERS_ENDPOINT",
    )
    order_api_admin_orders_endpoint: str = Field(
        default="/admin/orders",
        alias="ORDER_API_ADMIN_ORDERS_ENDPOINT",
    )
    order_api_admin_status_endpoint_template: str = Field(
        default="/admin/orders/{order_id}/status",
        alias="ORDER_API_ADMIN_STATUS_ENDPOINT_TEMPLATE",
    )
    order_api_admin_list_limit: int = Field(default=200, alias="ORDER_API_ADMIN_LIST_LIMIT")

    sync_role: Literal["customer", "admin"] = Field(default="customer", alias="SYNC_ROLE")
    sync_restaurant_id: str | None = Field(default=None, alias="SYNC_RESTAURANT_ID")
    sync_customer_poll_interval_seconds: float = Field(
        default=12.0,
        alias="SYNC_CUSTOMER_POLL_INTERVAL_SECONDS",
    )
    sync_admin_poll_interval_seconds: float = Field(
        default=10.0,
        alias="SYNC_ADMIN_POLL_INTERVAL_SECONDS",
    )
    sync_countdown_tick_seconds: float = Field(default=1.0, alias="SYNC_COUNTDOWN_TICK_SECONDS")
    sync_pending_mutation_ttl_seconds: float = Field(
        default=60.0,
        alias="SYNC_PENDING_MUTATION_TTL_SECONDS",
    )
    sync_default_admin_filter: str = Field(default="recu", alias="SYNC_DEFAULT_ADMIN_FILTER")
    sync_default_preparation_minutes: int = Field(
        default=30,
        alias="SYNC_DEFAULT_PREPARATION_MINUTES",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("sync_restaurant_id", "order_api_bearer_token", mode="before")
    @classmethod
    def empty_string_to_none(cls, value: Any) -> Any:
        """Treat empty env-string values as unset."""
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @model_validator(mode="after")
    def validate_ranges(self) -> Settings:
        """Validate endpoint shapes, intervals and cross-field rules."""
        for name, endpoint in (
            ("ORDER_API_CUSTOMER_ORDERS_ENDPOINT", self.order_api_customer_orders_endpoint),
            ("ORDER_API_ADMIN_ORDERS_ENDPOINT", self.order_api_admin_orders_endpoint),
            (
                "ORDER_API_ADMIN_STATUS_ENDPOINT_TEMPLATE",
                self.order_api_admin_status_endpoint_template,
            ),
        ):
            if not endpoint.startswith("/"):
                raise ValueError(f"{name} must start with '/'.")
        if "{order_id}" not in self.order_api_admin_status_endpoint_template:
            raise ValueError(
                "ORDER_API_ADMIN_STATUS_ENDPOINT_TEMPLATE must include '{order_id}'."
            )
        if self.order_api_timeout_seconds <= 0:
            raise ValueError("ORDER_API_TIMEOUT_SECONDS must be > 0.")
        if self.order_api_max_retries < 0:
            raise ValueError("ORDER_API_MAX_RETRIES must be >= 0.")
        if self.order_api_retry_delay_seconds < 0:
            raise ValueError("ORDER_API_RETRY_DELAY_SECONDS must be >= 0.")
        if self.order_api_admin_list_limit <= 0:
            raise ValueError("ORDER_API_ADMIN_LIST_LIMIT must be > 0.")
        if self.sync_customer_poll_interval_seconds <= 0:
            raise ValueError("SYNC_CUSTOMER_POLL_INTERVAL_SECONDS must be > 0.")
        if self.sync_admin_poll_interval_seconds <= 0:
            raise ValueError("SYNC_ADMIN_POLL_INTERVAL_SECONDS must be > 0.")
        if self.sync_countdown_tick_seconds <= 0:
            raise ValueError("SYNC_COUNTDOWN_TICK_SECONDS must be > 0.")
        if self.sync_pending_mutation_ttl_seconds <= 0:
            raise ValueError("SYNC_PENDING_MUTATION_TTL_SECONDS must be > 0.")
        if self.sync_default_preparation_minutes <= 0:
            raise ValueError("SYNC_DEFAULT_PREPARATION_MINUTES must be > 0.")
        if self.sync_default_admin_filter not in ADMIN_FILTERS:
            raise ValueError(
                "SYNC_DEFAULT_ADMIN_FILTER must be one of: "
                + ", ".join(sorted(ADMIN_FILTERS))
                + "."
            )
        if self.sync_role == "admin" and not self.order_api_bearer_token:
            raise ValueError("ORDER_API_BEARER_TOKEN is required when SYNC_ROLE='admin'.")
        return self

    @property
    def poll_interval_seconds(self) -> float:
        """Polling cadence for the configured role."""
        if self.sync_role == "admin":
            return self.sync_admin_poll_interval_seconds
        return self.sync_customer_poll_interval_seconds

    def safe_summary(self) -> dict[str, Any]:
        """Return config summary safe for logging (no credentials)."""
        return {
            "app_env": self.app_env,
            "log_level": self.log_level,
            "base_url": str(self.order_api_base_url),
            "has_bearer_token": self.order_api_bearer_token is not None,
            "timeout_seconds": self.order_api_timeout_seconds,
            "max_retries": self.order_api_max_retries,
            "role": self.sync_role,
            "restaurant_id": self.sync_restaurant_id,
            "poll_interval_seconds": self.poll_interval_seconds,
            "countdown_tick_seconds": self.sync_countdown_tick_seconds,
            "pending_mutation_ttl_seconds": self.sync_pending_mutation_ttl_seconds,
            "default_admin_filter": self.sync_default_admin_filter,
        }


def load_settings() -> Settings:
    """Load and validate settings, raising ConfigError on failure."""
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed reading environment/.env: {exc}") from exc
