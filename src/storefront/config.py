"""
Runtime configuration.

Settings are read from the environment once at startup and then passed
explicitly to the gateway client, webhook verifier, pipeline and API.

Example:
    >>> settings = Settings.from_env()
    >>> storefront = Storefront.from_settings(settings)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from storefront.exceptions import ConfigurationError

DEFAULT_PAYSTACK_BASE_URL = "https://api.paystack.co"
IN_MEMORY_DATABASE = ":memory:"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True)
class Settings:
    """
    Storefront configuration.

    Attributes:
        paystack_secret_key: Secret API key for the payment gateway
        paystack_webhook_secret: Key webhook signatures are computed with
        paystack_base_url: Gateway API root
        paystack_callback_url: Where the gateway sends the buyer after paying
        admin_token: Bearer token for admin-only endpoints
        database: SQLite path, or ":memory:" for the in-memory event store
        gateway_timeout: Seconds allowed for one gateway call
        transaction_timeout: Seconds allowed for one atomic commit
        lock_timeout: Seconds to wait for a per-cart lock
        notification_attempts: Total send attempts per notification
        notification_retry_delay: Initial backoff between notification attempts
        conflict_retries: Re-runs of a reconciliation that lost a write race
        default_coupon_discount: Discount percentage for coupons issued without one
        currency: ISO currency code used for display and gateway sessions
        log_level: Root log level for ``python -m storefront``
        enable_tracing: Emit OpenTelemetry spans
    """

    paystack_secret_key: str
    admin_token: str
    paystack_webhook_secret: str = ""
    paystack_base_url: str = DEFAULT_PAYSTACK_BASE_URL
    paystack_callback_url: str | None = None
    database: str = IN_MEMORY_DATABASE
    gateway_timeout: float = 10.0
    transaction_timeout: float = 10.0
    lock_timeout: float = 30.0
    notification_attempts: int = 3
    notification_retry_delay: float = 0.5
    conflict_retries: int = 3
    default_coupon_discount: Decimal = Decimal("1")
    currency: str = "NGN"
    log_level: str = "INFO"
    enable_tracing: bool = False

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.paystack_secret_key:
            raise ConfigurationError("PAYSTACK_SECRET_KEY", "must be set")
        if not self.admin_token:
            raise ConfigurationError("STOREFRONT_ADMIN_TOKEN", "must be set")
        if not self.paystack_webhook_secret:
            # Paystack signs webhooks with the account's secret key
            object.__setattr__(self, "paystack_webhook_secret", self.paystack_secret_key)

        for name in ("gateway_timeout", "transaction_timeout", "lock_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(name, f"must be positive, got {getattr(self, name)}")
        if self.notification_retry_delay <= 0:
            raise ConfigurationError(
                "notification_retry_delay",
                f"must be positive, got {self.notification_retry_delay}",
            )
        if self.notification_attempts < 1:
            raise ConfigurationError(
                "notification_attempts", f"must be >= 1, got {self.notification_attempts}"
            )
        if self.conflict_retries < 0:
            raise ConfigurationError(
                "conflict_retries", f"must be >= 0, got {self.conflict_retries}"
            )
        if not Decimal(0) <= self.default_coupon_discount <= Decimal(100):
            raise ConfigurationError(
                "default_coupon_discount",
                f"must be between 0 and 100, got {self.default_coupon_discount}",
            )
        if self.log_level.upper() not in logging.getLevelNamesMapping():
            raise ConfigurationError("log_level", f"unknown level {self.log_level!r}")

    @property
    def uses_in_memory_store(self) -> bool:
        return self.database == IN_MEMORY_DATABASE

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Raises:
            ConfigurationError: If a required variable is missing or a value is invalid
        """
        env = os.environ if environ is None else environ

        def required(name: str) -> str:
            value = env.get(name, "").strip()
            if not value:
                raise ConfigurationError(name, "must be set")
            return value

        return cls(
            paystack_secret_key=required("PAYSTACK_SECRET_KEY"),
            admin_token=required("STOREFRONT_ADMIN_TOKEN"),
            paystack_webhook_secret=env.get("PAYSTACK_WEBHOOK_SECRET", "").strip(),
            paystack_base_url=env.get("PAYSTACK_BASE_URL", DEFAULT_PAYSTACK_BASE_URL).rstrip("/"),
            paystack_callback_url=env.get("PAYSTACK_CALLBACK_URL") or None,
            database=env.get("STOREFRONT_DATABASE", IN_MEMORY_DATABASE),
            gateway_timeout=_parse_float(env, "STOREFRONT_GATEWAY_TIMEOUT", 10.0),
            transaction_timeout=_parse_float(env, "STOREFRONT_TRANSACTION_TIMEOUT", 10.0),
            lock_timeout=_parse_float(env, "STOREFRONT_LOCK_TIMEOUT", 30.0),
            notification_attempts=_parse_int(env, "STOREFRONT_NOTIFICATION_ATTEMPTS", 3),
            conflict_retries=_parse_int(env, "STOREFRONT_CONFLICT_RETRIES", 3),
            default_coupon_discount=_parse_decimal(
                env, "STOREFRONT_DEFAULT_COUPON_DISCOUNT", Decimal("1")
            ),
            currency=env.get("STOREFRONT_CURRENCY", "NGN").upper(),
            log_level=env.get("STOREFRONT_LOG_LEVEL", "INFO").upper(),
            enable_tracing=_parse_bool(env, "STOREFRONT_ENABLE_TRACING", False),
        )


def _parse_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(name, f"expected a number, got {raw!r}") from None


def _parse_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(name, f"expected an integer, got {raw!r}") from None


def _parse_decimal(env: Mapping[str, str], name: str, default: Decimal) -> Decimal:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ConfigurationError(name, f"expected a decimal, got {raw!r}") from None


def _parse_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(name, f"expected a boolean, got {raw!r}")


__all__ = [
    "DEFAULT_PAYSTACK_BASE_URL",
    "IN_MEMORY_DATABASE",
    "Settings",
]
