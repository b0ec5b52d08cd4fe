from __future__ import annotations

import logging

from django.utils import timezone

from audit.models import AuditAction
from audit.services import recorder
from campaigns.models import Campaign
from core import idempotency
from core.db import ledger_transaction
from core.errors import ConcurrentModification, IllegalTransition, PayoutPeriodConflict
from core.events import TransitionEvent, publish
from core.money import money_str
from core.outcomes import LedgerOutcome
from payments.models import Payout
from reports.services.financials import campaign_summary

logger = logging.getLogger(__name__)

ENTITY = "payout"


def _publish(payout: Payout, action: str, old_status, actor) -> None:
    publish(
        TransitionEvent(
            entity_type=ENTITY,
            entity_id=payout.pk,
            action=action,
            old_status=old_status,
            new_status=payout.status,
            actor_id=getattr(actor, "pk", None),
        )
    )


def create_payout(
    campaign: Campaign,
    period_start,
    period_end,
    *,
    bank_name: str = "",
    iban: str = "",
    account_holder: str = "",
    actor=None,
    request=None,
    idempotency_key: str | None = None,
) -> LedgerOutcome:
    """
    Settle ``campaign`` for ``[period_start, period_end)``.

    Figures come from the financial summary of the same window. A campaign
    cannot have two live payouts covering overlapping periods; failed payouts
    do not count.
    """
    if period_end <= period_start:
        raise PayoutPeriodConflict(
            "Payout period must end after it starts.",
            period_start=period_start.isoformat(),
            period_end=period_end.isoformat(),
        )
    key = idempotency.scoped_key(idempotency_key, AuditAction.PAYOUT_CREATE, campaign.pk)
    with ledger_transaction():
        record = idempotency.lookup(key, AuditAction.PAYOUT_CREATE)
        if record is not None:
            return LedgerOutcome(Payout.objects.get(pk=record.entity_id), replayed=True)

        # Serializes payout creation per campaign.
        Campaign.objects.select_for_update().get(pk=campaign.pk)
        overlapping = (
            Payout.objects.filter(campaign=campaign, period_start__lt=period_end, period_end__gt=period_start)
            .exclude(status=Payout.FAILED)
            .values_list("id", flat=True)
        )
        if overlapping:
            raise PayoutPeriodConflict(
                "Another payout already covers part of this period.",
                campaign_id=campaign.pk,
                payout_ids=list(overlapping),
            )

        summary = campaign_summary(campaign, period_start, period_end)
        payout = Payout.objects.create(
            campaign=campaign,
            amount=summary.gmv,
            platform_fee=summary.platform_fee,
            net_amount=summary.net_payout,
            fee_rate=summary.fee_rate,
            period_start=period_start,
            period_end=period_end,
            booking_ids=list(summary.booking_ids),
            bank_name=bank_name,
            iban=iban,
            account_holder=account_holder,
        )
        outcome = LedgerOutcome(payout)
        outcome.warn(
            recorder.record(
                actor,
                AuditAction.PAYOUT_CREATE,
                ENTITY,
                payout.pk,
                [
                    {"field": "amount", "old": None, "new": money_str(payout.amount)},
                    {"field": "platform_fee", "old": None, "new": money_str(payout.platform_fee)},
                    {"field": "net_amount", "old": None, "new": money_str(payout.net_amount)},
                ],
                request=request,
            )
        )
        idempotency.remember(key, AuditAction.PAYOUT_CREATE, ENTITY, payout.pk)
        _publish(payout, AuditAction.PAYOUT_CREATE, None, actor)
    logger.info("Payout %s created for campaign %s: net %s", payout.pk, campaign.pk, money_str(payout.net_amount))
    return outcome


def mark_payout_processed(payout: Payout, status: str = Payout.COMPLETED, *, actor=None, request=None) -> LedgerOutcome:
    old_status = payout.status
    if status not in Payout.TRANSITIONS.get(old_status, set()):
        raise IllegalTransition(
            f"A {old_status} payout cannot become {status}.",
            payout_id=payout.pk,
            current=old_status,
            target=status,
        )
    with ledger_transaction():
        now = timezone.now()
        updated = Payout.objects.filter(pk=payout.pk, status=old_status).update(
            status=status,
            processed_by=actor,
            processed_at=now,
        )
        if not updated:
            raise ConcurrentModification("Payout was changed by another request.", payout_id=payout.pk)
        payout.status, payout.processed_by, payout.processed_at = status, actor, now

        outcome = LedgerOutcome(payout)
        outcome.warn(
            recorder.record(
                actor,
                AuditAction.PAYOUT_PROCESS,
                ENTITY,
                payout.pk,
                [{"field": "status", "old": old_status, "new": status}],
                request=request,
            )
        )
        _publish(payout, AuditAction.PAYOUT_PROCESS, old_status, actor)
    logger.info("Payout %s: %s -> %s", payout.pk, old_status, status)
    return outcome
