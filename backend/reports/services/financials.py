"""
Campaign financial figures, always recomputed from the bookings themselves.

``load_snapshot`` does the single read; ``summarize`` is a pure fold over that
snapshot, so the same snapshot always gives the same summary and nothing is
written anywhere.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional

from django.conf import settings

from bookings.models import Booking
from core.money import ZERO, money_str, percent_of, to_money

logger = logging.getLogger(__name__)

# Checked every this many bookings when a cancellation hook is given.
CANCEL_CHECK_INTERVAL = 500


class AggregationCancelled(Exception):
    """The caller abandoned the computation; no partial figures are returned."""


@dataclass(frozen=True)
class BookingFigures:
    booking_id: int
    status: str
    total: Decimal
    paid: Decimal
    remaining: Decimal
    refunded: Decimal


@dataclass(frozen=True)
class FinancialSummary:
    gmv: Decimal
    platform_fee: Decimal
    net_payout: Decimal
    pending_balance: Decimal
    refund_total: Decimal
    booking_count: int
    fee_rate: Decimal
    booking_ids: tuple[int, ...] = ()
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def as_dict(self) -> dict:
        return {
            "gmv": money_str(self.gmv),
            "platform_fee": money_str(self.platform_fee),
            "net_payout": money_str(self.net_payout),
            "pending_balance": money_str(self.pending_balance),
            "refund_total": money_str(self.refund_total),
            "booking_count": self.booking_count,
            "fee_rate": str(self.fee_rate),
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
        }


def fee_rate() -> Decimal:
    return Decimal(str(settings.LEDGER_PLATFORM_FEE_RATE))


def load_snapshot(campaign, start: datetime | None = None, end: datetime | None = None) -> list[BookingFigures]:
    """Read every booking of ``campaign`` created in ``[start, end)`` in one query."""
    queryset = Booking.objects.filter(campaign=campaign)
    if start is not None:
        queryset = queryset.filter(created_at__gte=start)
    if end is not None:
        queryset = queryset.filter(created_at__lt=end)
    rows = queryset.order_by("id").values_list("id", "status", "total", "paid", "remaining", "refunded_amount")
    return [
        BookingFigures(
            booking_id=pk,
            status=status,
            total=to_money(total),
            paid=to_money(paid),
            remaining=to_money(remaining),
            refunded=to_money(refunded),
        )
        for pk, status, total, paid, remaining, refunded in rows
    ]


def summarize(
    figures: Iterable[BookingFigures],
    rate: Decimal,
    should_cancel: Callable[[], bool] | None = None,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
) -> FinancialSummary:
    """
    Fold booking figures into a ``FinancialSummary``.

    * GMV: ``paid`` of every booking that is not cancelled. Refunded bookings
      count with what they kept after the refund.
    * Platform fee: GMV times ``rate``; net payout is GMV minus the fee.
    * Pending balance: ``remaining`` of bookings that are still open.
    * Refund total: everything returned to travelers.

    ``should_cancel`` is polled while folding; when it returns true the fold
    stops with ``AggregationCancelled``.
    """
    gmv = pending = refunds = ZERO
    count = 0
    booking_ids = []
    for index, row in enumerate(figures):
        if should_cancel is not None and index % CANCEL_CHECK_INTERVAL == 0 and should_cancel():
            raise AggregationCancelled(f"Aggregation cancelled after {index} bookings.")
        count += 1
        refunds += row.refunded
        if row.status == Booking.CANCELLED:
            continue
        gmv += row.paid
        booking_ids.append(row.booking_id)
        if row.status != Booking.REFUNDED:
            pending += row.remaining
    if should_cancel is not None and should_cancel():
        raise AggregationCancelled(f"Aggregation cancelled after {count} bookings.")

    rate = Decimal(str(rate))
    platform_fee = percent_of(gmv, rate)
    return FinancialSummary(
        gmv=to_money(gmv),
        platform_fee=platform_fee,
        net_payout=to_money(gmv - platform_fee),
        pending_balance=to_money(pending),
        refund_total=to_money(refunds),
        booking_count=count,
        fee_rate=rate,
        booking_ids=tuple(booking_ids),
        start=start,
        end=end,
    )


def campaign_summary(campaign, start=None, end=None, should_cancel=None) -> FinancialSummary:
    figures = load_snapshot(campaign, start, end)
    summary = summarize(figures, fee_rate(), should_cancel, start=start, end=end)
    logger.info(
        "Financial summary for campaign %s: %s bookings, GMV %s",
        campaign.pk,
        summary.booking_count,
        money_str(summary.gmv),
    )
    return summary
