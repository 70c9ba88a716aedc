"""
Cash Pulse projector tests.
"""

from datetime import date, timedelta
from decimal import Decimal

from ledger_backend.app.domain.ledger.cash_basis import CashBasisProjector
from ledger_backend.app.domain.ledger.periods import DateRange
from ledger_backend.app.models.ledger_enums import EntryType, Category, PaymentMethod


def _sample_ledger(entry_factory):
    return {
        "cash_sale": entry_factory(EntryType.CASH_IN, Category.SALES, "500.00", PaymentMethod.CASH),
        "derived_in": entry_factory(EntryType.CASH_IN, Category.SALES, "400.00", PaymentMethod.BANK, source_entry_id=99),
        "rent": entry_factory(EntryType.CASH_OUT, Category.OPEX, "100.00", PaymentMethod.BANK),
        "no_method": entry_factory(EntryType.CASH_IN, Category.SALES, "75.00", None),
        "advance_in": entry_factory(EntryType.ADVANCE, Category.SALES, "300.00", PaymentMethod.CASH),
        "advance_out": entry_factory(EntryType.ADVANCE, Category.COGS, "200.00", PaymentMethod.BANK),
        "advance_other": entry_factory(EntryType.ADVANCE, Category.SALES, "50.00", PaymentMethod.OTHER),
        "credit_sale": entry_factory(EntryType.CREDIT, Category.SALES, "1000.00", None, remaining_amount="600.00"),
        "credit_bill": entry_factory(EntryType.CREDIT, Category.COGS, "400.00", None),
    }


def test_inflow_outflow_and_channels(entry_factory):
    ledger = _sample_ledger(entry_factory)
    report = CashBasisProjector.project(ledger.values())

    assert report.inflow == Decimal("1200.00")
    assert report.outflow == Decimal("300.00")
    assert report.net == Decimal("900.00")

    channels = {c.method: c for c in report.per_channel_breakdown}
    assert channels["Cash"].inflow == Decimal("800.00")
    assert channels["Cash"].outflow == Decimal("0.00")
    assert channels["Bank"].inflow == Decimal("400.00")
    assert channels["Bank"].outflow == Decimal("300.00")
    assert channels["Bank"].net == Decimal("100.00")


def test_cash_entries_without_channel_reported_not_counted(entry_factory):
    ledger = _sample_ledger(entry_factory)
    report = CashBasisProjector.project(ledger.values())

    assert report.inconsistent_entry_ids == [ledger["no_method"].id]


def test_pending_buckets_use_remaining_amount(entry_factory):
    ledger = _sample_ledger(entry_factory)
    report = CashBasisProjector.project(ledger.values())

    assert report.pending_collections.count == 1
    assert report.pending_collections.total == Decimal("600.00")
    assert report.pending_collections.original_total == Decimal("1000.00")

    assert report.pending_bills.count == 1
    assert report.pending_bills.total == Decimal("400.00")

    advances = report.pending_advances
    assert advances.received.count == 2
    assert advances.received.total == Decimal("350.00")
    assert advances.paid.count == 1
    assert advances.count == 3
    assert advances.total == Decimal("550.00")


def test_pending_grouped_by_party(entry_factory):
    entries = [
        entry_factory(EntryType.CREDIT, Category.SALES, "100.00", party_id=7),
        entry_factory(EntryType.CREDIT, Category.SALES, "250.00", party_id=7),
        entry_factory(EntryType.CREDIT, Category.SALES, "40.00"),
    ]
    report = CashBasisProjector.project(entries)

    by_party = report.pending_collections.by_party
    assert [(p.party_id, p.count, p.total) for p in by_party] == [
        (7, 2, Decimal("350.00")),
        (None, 1, Decimal("40.00")),
    ]


def test_settlement_history_sorted_newest_first(entry_factory):
    today = date.today()
    older = entry_factory(
        EntryType.CREDIT, Category.SALES, remaining_amount="0.00", settled=True,
        settled_at=today - timedelta(days=5), entry_date=today - timedelta(days=10)
    )
    newer = entry_factory(
        EntryType.ADVANCE, Category.COGS, remaining_amount="0.00", settled=True,
        settled_at=today - timedelta(days=1), entry_date=today - timedelta(days=20)
    )
    tie_late = entry_factory(
        EntryType.CREDIT, Category.OPEX, remaining_amount="0.00", settled=True,
        settled_at=today - timedelta(days=5), entry_date=today - timedelta(days=6)
    )
    report = CashBasisProjector.project([older, newer, tie_late])

    assert [e.id for e in report.settlement_history] == [newer.id, tie_late.id, older.id]


def test_date_range_bounds_flows_not_pending(entry_factory):
    today = date.today()
    old_sale = entry_factory(EntryType.CASH_IN, Category.SALES, "500.00", entry_date=today - timedelta(days=40))
    recent_sale = entry_factory(EntryType.CASH_IN, Category.SALES, "200.00", entry_date=today - timedelta(days=2))
    old_credit = entry_factory(EntryType.CREDIT, Category.SALES, "900.00", entry_date=today - timedelta(days=40))

    window = DateRange(today - timedelta(days=7), today)
    report = CashBasisProjector.project([old_sale, recent_sale, old_credit], window)

    assert report.inflow == Decimal("200.00")
    assert report.pending_collections.total == Decimal("900.00")
    assert report.start_date == window.start


def test_category_breakdown_ranked(entry_factory):
    entries = [
        entry_factory(EntryType.CASH_OUT, Category.OPEX, "100.00"),
        entry_factory(EntryType.CASH_OUT, Category.COGS, "300.00"),
        entry_factory(EntryType.CASH_OUT, Category.OPEX, "100.00"),
    ]
    report = CashBasisProjector.project(entries)

    assert [(c.category, c.amount, c.count, c.percentage) for c in report.outflow_by_category] == [
        ("COGS", Decimal("300.00"), 1, Decimal("60.00")),
        ("Opex", Decimal("200.00"), 2, Decimal("40.00")),
    ]
    assert report.inflow_by_category == []


def test_projector_does_not_mutate_entries(entry_factory):
    entry = entry_factory(EntryType.CREDIT, Category.SALES, "1000.00", remaining_amount="600.00")
    before = dict(vars(entry))
    CashBasisProjector.project([entry])
    assert vars(entry) == before


def test_empty_ledger(entry_factory):
    report = CashBasisProjector.project([])
    assert report.net == Decimal("0")
    assert report.pending_collections.count == 0
    assert report.settlement_history == []
