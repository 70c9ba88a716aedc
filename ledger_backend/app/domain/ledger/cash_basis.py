"""
Cash-Basis Projector ("Cash Pulse").

Folds an owner's entries into cash inflow/outflow totals, a per-channel
breakdown, the pending-settlement buckets and the settlement history.
Pure: no I/O, no mutation of the entries it is given.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, List, Optional

from ledger_backend.app.domain.ledger.classification import (
    CashTreatment, PendingKind, cash_treatment, pending_kind, belongs_to_settlement_history
)
from ledger_backend.app.domain.ledger.periods import DateRange, ALL_TIME
from ledger_backend.app.models.ledger_enums import PaymentMethod
from ledger_backend.app.schemas.ledger import EntryResponse
from ledger_backend.app.schemas.reports import (
    CashPulseReport, ChannelBreakdown, CategoryBreakdown, PartyOutstanding,
    PendingBucket, PendingAdvances
)

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def _percentage(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return ZERO
    return (part / whole * HUNDRED).quantize(CENT)


def rank_by_category(entries: list) -> List[CategoryBreakdown]:
    """Group entries by category, largest amount first."""
    amounts = defaultdict(lambda: ZERO)
    counts = defaultdict(int)
    for entry in entries:
        amounts[entry.category.value] += Decimal(entry.amount)
        counts[entry.category.value] += 1

    total = sum(amounts.values(), ZERO)
    ranked = sorted(amounts.items(), key=lambda item: (-item[1], item[0]))
    return [
        CategoryBreakdown(
            category=category,
            amount=amount,
            count=counts[category],
            percentage=_percentage(amount, total),
        )
        for category, amount in ranked
    ]


def _bucket(entries: list) -> PendingBucket:
    by_party_total = defaultdict(lambda: ZERO)
    by_party_count = defaultdict(int)
    for entry in entries:
        by_party_total[entry.party_id] += Decimal(entry.remaining_amount)
        by_party_count[entry.party_id] += 1

    # unassigned (None) sorts last
    party_keys = sorted(by_party_total, key=lambda key: (key is None, key or 0))

    return PendingBucket(
        count=len(entries),
        total=sum((Decimal(e.remaining_amount) for e in entries), ZERO),
        original_total=sum((Decimal(e.amount) for e in entries), ZERO),
        entries=[EntryResponse.model_validate(e) for e in entries],
        by_party=[
            PartyOutstanding(party_id=key, count=by_party_count[key], total=by_party_total[key])
            for key in party_keys
        ],
    )


def _history_sort_key(entry):
    # settled_at is always set on settled entries; entry_date breaks ties
    return (entry.settled_at or entry.entry_date, entry.entry_date.isoformat())


class CashBasisProjector:
    """Builds the Cash Pulse report from a set of entries."""

    @staticmethod
    def project(entries: Iterable, date_range: Optional[DateRange] = None) -> CashPulseReport:
        """
        Build the cash-basis report.

        Inflow/outflow use entries whose entry_date falls in the range.
        Pending buckets describe what is open right now, so they ignore the
        range. Settlement history is filtered on settled_at.

        Args:
            entries: All entries of one owner
            date_range: Optional reporting window

        Returns:
            CashPulseReport
        """
        date_range = date_range or ALL_TIME
        entries = list(entries)

        inflow = ZERO
        outflow = ZERO
        channel_in = {PaymentMethod.CASH: ZERO, PaymentMethod.BANK: ZERO}
        channel_out = {PaymentMethod.CASH: ZERO, PaymentMethod.BANK: ZERO}
        inflow_entries = []
        outflow_entries = []
        inconsistent = []
        pending = defaultdict(list)
        history = []

        for entry in entries:
            kind = pending_kind(entry)
            if kind is not None:
                pending[kind].append(entry)

            if belongs_to_settlement_history(entry) and date_range.contains(entry.settled_at or entry.entry_date):
                history.append(entry)

            if not date_range.contains(entry.entry_date):
                continue

            treatment = cash_treatment(entry)
            amount = Decimal(entry.amount)
            if treatment == CashTreatment.INFLOW:
                inflow += amount
                channel_in[entry.payment_method] += amount
                inflow_entries.append(entry)
            elif treatment == CashTreatment.OUTFLOW:
                outflow += amount
                channel_out[entry.payment_method] += amount
                outflow_entries.append(entry)
            elif treatment == CashTreatment.INCONSISTENT:
                inconsistent.append(entry.id)

        history.sort(key=_history_sort_key, reverse=True)

        received = _bucket(pending[PendingKind.ADVANCE_RECEIVED])
        paid = _bucket(pending[PendingKind.ADVANCE_PAID])

        return CashPulseReport(
            start_date=date_range.start,
            end_date=date_range.end,
            inflow=inflow,
            outflow=outflow,
            net=inflow - outflow,
            per_channel_breakdown=[
                ChannelBreakdown(
                    method=method.value,
                    inflow=channel_in[method],
                    outflow=channel_out[method],
                    net=channel_in[method] - channel_out[method],
                )
                for method in (PaymentMethod.CASH, PaymentMethod.BANK)
            ],
            inflow_by_category=rank_by_category(inflow_entries),
            outflow_by_category=rank_by_category(outflow_entries),
            pending_collections=_bucket(pending[PendingKind.COLLECTION]),
            pending_bills=_bucket(pending[PendingKind.BILL]),
            pending_advances=PendingAdvances(
                count=received.count + paid.count,
                total=received.total + paid.total,
                received=received,
                paid=paid,
            ),
            settlement_history=[EntryResponse.model_validate(e) for e in history],
            inconsistent_entry_ids=inconsistent,
        )
