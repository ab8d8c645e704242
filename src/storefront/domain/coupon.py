"""Coupon aggregate (the coupon ledger)."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel

from storefront.aggregates.base import DeclarativeAggregate
from storefront.domain.values import normalize_coupon_code, to_money
from storefront.events import DomainEvent, register_event
from storefront.exceptions import InvalidStateTransitionError, ValidationError
from storefront.handlers import handles

COUPON_AGGREGATE_TYPE = "Coupon"


@register_event
class CouponIssued(DomainEvent):
    aggregate_type: str = COUPON_AGGREGATE_TYPE

    code: str
    discount_percentage: Decimal
    expiration_date: datetime | None = None


@register_event
class CouponRedeemed(DomainEvent):
    """A paid cart used the coupon; ``amount`` is the discount it granted."""

    aggregate_type: str = COUPON_AGGREGATE_TYPE

    amount: Decimal
    cart_id: str
    reference: str
    balance: Decimal
    usage_count: int


class CouponState(BaseModel):
    coupon_id: UUID
    code: str = ""
    discount_percentage: Decimal = Decimal("0")
    expiration_date: datetime | None = None
    balance: Decimal = Decimal("0.00")
    usage_count: int = 0
    issued: bool = False


class CouponAggregate(DeclarativeAggregate[CouponState]):
    """
    A discount code and its running totals.

    ``balance`` accumulates the discount granted by every redemption and
    only ever grows; ``usage_count`` counts paid carts that used the code.
    """

    aggregate_type = COUPON_AGGREGATE_TYPE

    def _get_initial_state(self) -> CouponState:
        return CouponState(coupon_id=self.aggregate_id)

    @handles(CouponIssued)
    def _on_issued(self, event: CouponIssued) -> None:
        self._state = CouponState(
            coupon_id=self.aggregate_id,
            code=event.code,
            discount_percentage=event.discount_percentage,
            expiration_date=event.expiration_date,
            issued=True,
        )

    @handles(CouponRedeemed)
    def _on_redeemed(self, event: CouponRedeemed) -> None:
        self._state = self.require_state().model_copy(
            update={"balance": event.balance, "usage_count": event.usage_count}
        )

    def issue(
        self,
        code: str,
        discount_percentage: Decimal,
        expiration_date: datetime | None = None,
    ) -> None:
        if self.version > 0:
            raise InvalidStateTransitionError("Coupon", code, "already issued", "issue")
        normalized = normalize_coupon_code(code)
        if not normalized:
            raise ValidationError("Coupon code is required")
        percentage = Decimal(discount_percentage)
        if not Decimal(0) < percentage <= Decimal(100):
            raise ValidationError(
                f"Discount percentage must be in (0, 100], got {discount_percentage}"
            )
        if expiration_date is not None and expiration_date.tzinfo is None:
            expiration_date = expiration_date.replace(tzinfo=UTC)

        self._raise_event(
            CouponIssued(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                code=normalized,
                discount_percentage=percentage,
                expiration_date=expiration_date,
            )
        )

    def redeem(self, amount: Decimal, *, cart_id: str, reference: str) -> None:
        """Record a paid cart's use of the coupon."""
        state = self._ensure_issued()
        amount = to_money(amount)
        if amount < 0:
            raise ValidationError(f"Redeemed amount must not be negative, got {amount}")

        self._raise_event(
            CouponRedeemed(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                amount=amount,
                cart_id=cart_id,
                reference=reference,
                balance=to_money(state.balance + amount),
                usage_count=state.usage_count + 1,
            )
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        state = self._ensure_issued()
        if state.expiration_date is None:
            return False
        return (now or datetime.now(UTC)) >= state.expiration_date

    def _ensure_issued(self) -> CouponState:
        state = self._state
        if state is None or not state.issued:
            raise InvalidStateTransitionError(
                "Coupon", str(self.aggregate_id), "not issued", "use"
            )
        return state


__all__ = [
    "COUPON_AGGREGATE_TYPE",
    "CouponAggregate",
    "CouponIssued",
    "CouponRedeemed",
    "CouponState",
]
