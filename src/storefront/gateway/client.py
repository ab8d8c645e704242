"""
Payment gateway client (Paystack REST API over httpx).

Every call is bounded by ``Settings.gateway_timeout``. Transport
failures, non-2xx responses and ``{"status": false}`` bodies all surface
as GatewayError so callers handle one exception family.

Example:
    >>> async with PaystackClient(settings) as gateway:
    ...     session = await gateway.initialize_transaction(
    ...         email="ada@example.com", amount_minor=2000, metadata=metadata
    ...     )
    ...     verification = await gateway.verify_transaction(session.reference)
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, Protocol, Self, runtime_checkable
from urllib.parse import quote

import httpx
import pydantic
from opentelemetry.trace import SpanKind

from storefront.config import Settings
from storefront.exceptions import GatewayError, GatewayTimeoutError, RefundFailedError
from storefront.gateway.models import (
    PaymentMetadata,
    PaymentSession,
    RefundReceipt,
    TransactionVerification,
)
from storefront.observability import Tracer, create_tracer
from storefront.observability.attributes import (
    ATTR_HTTP_METHOD,
    ATTR_HTTP_STATUS_CODE,
    ATTR_HTTP_URL,
    ATTR_PAYMENT_REFERENCE,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class PaymentGateway(Protocol):
    """What checkout, reconciliation and order management need from a gateway."""

    async def initialize_transaction(
        self,
        email: str,
        amount_minor: int,
        metadata: PaymentMetadata,
        reference: str | None = None,
    ) -> PaymentSession: ...

    async def verify_transaction(self, reference: str) -> TransactionVerification: ...

    async def refund(self, reference: str, amount_minor: int | None = None) -> RefundReceipt: ...


class PaystackClient:
    """
    Paystack API client.

    Args:
        settings: Supplies the secret key, base URL, callback URL, currency and timeout
        http_client: Client to send requests with; one is created (and owned) if omitted
        tracer: Optional custom Tracer instance
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
        *,
        tracer: Tracer | None = None,
    ) -> None:
        self._settings = settings
        self._timeout = settings.gateway_timeout
        self._tracer = tracer or create_tracer(__name__, settings.enable_tracing)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=settings.paystack_base_url,
            timeout=httpx.Timeout(settings.gateway_timeout),
        )
        self._headers = {
            "Authorization": f"Bearer {settings.paystack_secret_key}",
            "Content-Type": "application/json",
        }

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def initialize_transaction(
        self,
        email: str,
        amount_minor: int,
        metadata: PaymentMetadata,
        reference: str | None = None,
    ) -> PaymentSession:
        """
        Open a payment session (``POST /transaction/initialize``).

        Args:
            email: Buyer email the gateway sends receipts to
            amount_minor: Amount in minor units
            metadata: Checkout context echoed back in webhooks
            reference: Transaction reference to use instead of a gateway-generated one
        """
        if amount_minor <= 0:
            raise GatewayError("initialize", f"amount must be positive, got {amount_minor}")
        payload: dict[str, Any] = {
            "email": email,
            "amount": amount_minor,
            "currency": self._settings.currency,
            "metadata": metadata.to_gateway(),
        }
        if reference:
            payload["reference"] = reference
        if self._settings.paystack_callback_url:
            payload["callback_url"] = self._settings.paystack_callback_url

        data = await self._request("initialize", "POST", "/transaction/initialize", json=payload)
        session = self._parse(PaymentSession, data, "initialize")
        logger.info(
            "Initialized payment session %s for cart %s",
            session.reference,
            metadata.cart_id,
            extra={"reference": session.reference, "cart_id": metadata.cart_id},
        )
        return session

    async def verify_transaction(self, reference: str) -> TransactionVerification:
        """Fetch the authoritative transaction record (``GET /transaction/verify/:ref``)."""
        data = await self._request(
            "verify",
            "GET",
            f"/transaction/verify/{quote(reference, safe='')}",
            reference=reference,
        )
        return self._parse(TransactionVerification, data, "verify")

    async def refund(self, reference: str, amount_minor: int | None = None) -> RefundReceipt:
        """
        Refund a transaction in full, or ``amount_minor`` of it (``POST /refund``).

        Raises:
            RefundFailedError: If the gateway refuses or cannot be reached
        """
        payload: dict[str, Any] = {"transaction": reference}
        if amount_minor is not None:
            payload["amount"] = amount_minor
        try:
            data = await self._request(
                "refund", "POST", "/refund", json=payload, reference=reference
            )
            fields = {
                key: data[key]
                for key in ("id", "status", "amount", "currency")
                if data.get(key) is not None
            }
            receipt = self._parse(RefundReceipt, {"reference": reference, **fields}, "refund")
        except RefundFailedError:
            raise
        except GatewayError as e:
            raise RefundFailedError(reference, str(e), e.status_code) from e

        logger.info(
            "Refund of %s accepted by gateway (status %s)",
            reference,
            receipt.status,
            extra={"reference": reference, "amount_minor": amount_minor},
        )
        return receipt

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        reference: str | None = None,
    ) -> dict[str, Any]:
        attributes: dict[str, Any] = {
            ATTR_HTTP_METHOD: method,
            ATTR_HTTP_URL: f"{self._settings.paystack_base_url}{path}",
        }
        if reference:
            attributes[ATTR_PAYMENT_REFERENCE] = reference

        with self._tracer.span(
            f"storefront.gateway.{operation}", attributes, kind=SpanKind.CLIENT
        ) as span:
            try:
                response = await self._client.request(
                    method, path, json=json, headers=self._headers, timeout=self._timeout
                )
            except httpx.TimeoutException as e:
                logger.error(
                    "Gateway %s timed out after %ss",
                    operation,
                    self._timeout,
                    extra={"operation": operation, "reference": reference},
                )
                raise GatewayTimeoutError(operation, self._timeout) from e
            except httpx.HTTPError as e:
                logger.error(
                    "Gateway %s transport error: %s",
                    operation,
                    e,
                    extra={"operation": operation, "reference": reference},
                )
                raise GatewayError(operation, f"transport error: {e}") from e

            if span:
                span.set_attribute(ATTR_HTTP_STATUS_CODE, response.status_code)

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            message = body.get("message") if isinstance(body, dict) else None
            logger.error(
                "Gateway %s failed with HTTP %d: %s",
                operation,
                response.status_code,
                message or response.text[:200],
                extra={"operation": operation, "reference": reference},
            )
            raise GatewayError(
                operation,
                message or f"HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if not isinstance(body, dict):
            raise GatewayError(operation, "response is not a JSON object", response.status_code)
        if body.get("status") is False:
            raise GatewayError(
                operation,
                str(body.get("message") or "request declined"),
                status_code=response.status_code,
            )

        data = body.get("data")
        if not isinstance(data, dict):
            raise GatewayError(operation, "response has no data object", response.status_code)
        return data

    @staticmethod
    def _parse(model: type[Any], data: dict[str, Any], operation: str) -> Any:
        try:
            return model.model_validate(data)
        except pydantic.ValidationError as e:
            raise GatewayError(operation, f"unexpected response shape: {e}") from e


__all__ = [
    "PaymentGateway",
    "PaystackClient",
]
