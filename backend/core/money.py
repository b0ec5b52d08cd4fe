from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .errors import InvalidAmount

# Kuwaiti dinar is subdivided into 1000 fils.
MONEY_PLACES = Decimal("0.001")
ZERO = Decimal("0.000")


def to_money(value: Any) -> Decimal:
    """
    Coerce ``value`` into a 3-decimal fixed-point ``Decimal``.

    Floats go through ``str`` so that ``0.1`` becomes ``Decimal("0.100")`` rather
    than its binary expansion. Anything that is not a finite number raises
    ``InvalidAmount``.
    """
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, bool):
        raise InvalidAmount("Amount must be numeric.", value=str(value))
    elif isinstance(value, (int, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidAmount("Amount must be numeric.", value=str(value))
    elif isinstance(value, float):
        amount = Decimal(str(value))
    else:
        raise InvalidAmount("Amount must be numeric.", value=repr(value))
    if not amount.is_finite():
        raise InvalidAmount("Amount must be finite.", value=str(value))
    return amount.quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def money_str(value: Decimal) -> str:
    return f"{to_money(value):.3f}"


def percent_of(amount: Decimal, rate: Decimal) -> Decimal:
    return to_money(to_money(amount) * Decimal(rate))


def require_non_negative(name: str, value: Decimal) -> Decimal:
    value = to_money(value)
    if value < ZERO:
        raise InvalidAmount(f"{name} cannot be negative.", field=name, value=money_str(value))
    return value


def require_positive(name: str, value: Decimal) -> Decimal:
    value = to_money(value)
    if value <= ZERO:
        raise InvalidAmount(f"{name} must be greater than zero.", field=name, value=money_str(value))
    return value


@dataclass(frozen=True)
class BookingAmounts:
    """
    The money side of a booking.

    Always satisfies ``total == subtotal - discount`` and
    ``paid + remaining == total`` with every figure non-negative. Operations
    return a new instance; the caller persists it.
    """

    subtotal: Decimal
    discount: Decimal
    total: Decimal
    paid: Decimal
    remaining: Decimal
    refunded: Decimal = ZERO

    @classmethod
    def quote(cls, unit_price, passenger_count: int, discount=ZERO) -> "BookingAmounts":
        unit_price = require_non_negative("unit_price", unit_price)
        discount = require_non_negative("discount", discount)
        subtotal = to_money(unit_price * passenger_count)
        if discount > subtotal:
            raise InvalidAmount(
                "Discount cannot exceed the subtotal.",
                subtotal=money_str(subtotal),
                discount=money_str(discount),
            )
        total = subtotal - discount
        return cls(subtotal=subtotal, discount=discount, total=total, paid=ZERO, remaining=total)

    def validate(self) -> "BookingAmounts":
        for name in ("subtotal", "discount", "total", "paid", "remaining", "refunded"):
            require_non_negative(name, getattr(self, name))
        if self.total != self.subtotal - self.discount:
            raise InvalidAmount(
                "Total does not equal subtotal minus discount.",
                subtotal=money_str(self.subtotal),
                discount=money_str(self.discount),
                total=money_str(self.total),
            )
        if self.paid + self.remaining != self.total:
            raise InvalidAmount(
                "Paid and remaining do not reconcile with the total.",
                paid=money_str(self.paid),
                remaining=money_str(self.remaining),
                total=money_str(self.total),
            )
        return self

    @property
    def collected(self) -> Decimal:
        """Money received so far, including what was later handed back."""
        return self.paid + self.refunded

    # Refunds lower total and paid together, so measuring against what was
    # collected keeps the payment stage from moving backwards.
    @property
    def is_fully_paid(self) -> bool:
        return self.remaining == ZERO and self.total + self.refunded > ZERO

    @property
    def is_partially_paid(self) -> bool:
        return self.remaining > ZERO and self.collected > ZERO

    def apply_payment(self, amount) -> "BookingAmounts":
        amount = require_positive("amount", amount)
        if amount > self.remaining:
            raise InvalidAmount(
                "Payment exceeds the remaining balance.",
                amount=money_str(amount),
                remaining=money_str(self.remaining),
            )
        return replace(self, paid=self.paid + amount, remaining=self.remaining - amount).validate()

    def apply_refund(self, amount) -> "BookingAmounts":
        """
        Return ``amount`` to the traveler.

        The refund lowers the billed value and the collected money by the same
        figure, so ``remaining`` is unchanged. The billed value is taken off the
        subtotal; the discount stays as granted.
        """
        amount = require_non_negative("amount", amount)
        if amount > self.paid:
            raise InvalidAmount(
                "Refund exceeds the amount paid.",
                amount=money_str(amount),
                paid=money_str(self.paid),
            )
        return replace(
            self,
            subtotal=self.subtotal - amount,
            total=self.total - amount,
            paid=self.paid - amount,
            refunded=self.refunded + amount,
        ).validate()
