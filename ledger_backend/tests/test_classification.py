"""
Classification rule tests.

Credit counts for accrual immediately and for cash never; Advance the
other way round until it is settled.
"""

import pytest
from datetime import date

from ledger_backend.app.domain.ledger.classification import (
    CashTreatment, AccrualTreatment, PendingKind,
    cash_treatment, accrual_treatment, pending_kind, belongs_to_settlement_history
)
from ledger_backend.app.models.ledger_enums import EntryType, Category, PaymentMethod


def test_cash_in_with_cash_channel_is_inflow(entry_factory):
    entry = entry_factory(EntryType.CASH_IN, Category.SALES, payment_method=PaymentMethod.BANK)
    assert cash_treatment(entry) == CashTreatment.INFLOW
    assert accrual_treatment(entry) == AccrualTreatment.REVENUE


def test_cash_out_without_channel_is_inconsistent(entry_factory):
    missing = entry_factory(EntryType.CASH_OUT, Category.OPEX, payment_method=None)
    other = entry_factory(EntryType.CASH_OUT, Category.OPEX, payment_method=PaymentMethod.OTHER)
    assert cash_treatment(missing) == CashTreatment.INCONSISTENT
    assert cash_treatment(other) == CashTreatment.INCONSISTENT


def test_credit_never_moves_cash(entry_factory):
    entry = entry_factory(EntryType.CREDIT, Category.SALES, payment_method=PaymentMethod.CASH)
    assert cash_treatment(entry) == CashTreatment.EXCLUDED
    assert accrual_treatment(entry) == AccrualTreatment.REVENUE
    assert pending_kind(entry) == PendingKind.COLLECTION


@pytest.mark.parametrize("category,treatment", [
    (Category.COGS, AccrualTreatment.COGS),
    (Category.OPEX, AccrualTreatment.OPEX),
])
def test_credit_expense_recognised_and_pending_as_bill(entry_factory, category, treatment):
    entry = entry_factory(EntryType.CREDIT, category)
    assert accrual_treatment(entry) == treatment
    assert pending_kind(entry) == PendingKind.BILL


def test_advance_is_cash_now_accrual_on_settlement(entry_factory):
    unsettled = entry_factory(EntryType.ADVANCE, Category.SALES)
    assert cash_treatment(unsettled) == CashTreatment.INFLOW
    assert accrual_treatment(unsettled) == AccrualTreatment.EXCLUDED
    assert pending_kind(unsettled) == PendingKind.ADVANCE_RECEIVED

    settled = entry_factory(
        EntryType.ADVANCE, Category.SALES,
        remaining_amount="0.00", settled=True, settled_at=date.today()
    )
    assert cash_treatment(settled) == CashTreatment.INFLOW
    assert accrual_treatment(settled) == AccrualTreatment.REVENUE
    assert pending_kind(settled) is None


def test_advance_paid_is_outflow(entry_factory):
    entry = entry_factory(EntryType.ADVANCE, Category.COGS, payment_method=PaymentMethod.BANK)
    assert cash_treatment(entry) == CashTreatment.OUTFLOW
    assert pending_kind(entry) == PendingKind.ADVANCE_PAID


def test_advance_outside_cash_channel_excluded_from_cash(entry_factory):
    entry = entry_factory(EntryType.ADVANCE, Category.SALES, payment_method=PaymentMethod.OTHER)
    assert cash_treatment(entry) == CashTreatment.EXCLUDED
    # still outstanding
    assert pending_kind(entry) == PendingKind.ADVANCE_RECEIVED


def test_settlement_derived_entry_is_cash_only(entry_factory):
    derived = entry_factory(EntryType.CASH_IN, Category.SALES, source_entry_id=42)
    assert cash_treatment(derived) == CashTreatment.INFLOW
    assert accrual_treatment(derived) == AccrualTreatment.EXCLUDED


def test_assets_never_revenue_or_expense(entry_factory):
    for entry_type in EntryType:
        entry = entry_factory(entry_type, Category.ASSETS)
        assert accrual_treatment(entry) == AccrualTreatment.EXCLUDED


def test_credit_assets_has_no_pending_bucket(entry_factory):
    entry = entry_factory(EntryType.CREDIT, Category.ASSETS)
    assert pending_kind(entry) is None


def test_partially_settled_credit_still_pending(entry_factory):
    entry = entry_factory(EntryType.CREDIT, Category.SALES, amount="1000.00", remaining_amount="600.00")
    assert pending_kind(entry) == PendingKind.COLLECTION
    assert not belongs_to_settlement_history(entry)


def test_settlement_history_only_settled_credit_and_advance(entry_factory):
    settled_credit = entry_factory(
        EntryType.CREDIT, Category.SALES, remaining_amount="0.00", settled=True, settled_at=date.today()
    )
    cash_in = entry_factory(EntryType.CASH_IN, Category.SALES)
    assert belongs_to_settlement_history(settled_credit)
    assert not belongs_to_settlement_history(cash_in)
