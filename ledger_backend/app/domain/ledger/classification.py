"""
Classification rules for the two ledger views.

Pure predicates over a single entry. The cash-basis rules answer "did money
move?", the accrual-basis rules answer "was revenue earned / expense
incurred?". The two sets are deliberately asymmetric:

    Credit   -> accrual immediately, cash never (cash arrives later as a
                settlement-derived CashIn/CashOut)
    Advance  -> cash immediately, accrual only once settled
    CashIn/Out -> both, except settlement-derived ones, which are cash only

Both projectors go through these functions; nothing else decides inclusion.
"""

import enum
from decimal import Decimal
from typing import Optional

from ledger_backend.app.models.ledger_enums import (
    EntryType, Category, CASH_CHANNELS, EXPENSE_CATEGORIES, SETTLEABLE_TYPES
)


class CashTreatment(str, enum.Enum):
    INFLOW = "INFLOW"
    OUTFLOW = "OUTFLOW"
    EXCLUDED = "EXCLUDED"
    # CashIn/CashOut recorded without a Cash/Bank method
    INCONSISTENT = "INCONSISTENT"


class AccrualTreatment(str, enum.Enum):
    REVENUE = "REVENUE"
    COGS = "COGS"
    OPEX = "OPEX"
    EXCLUDED = "EXCLUDED"


class PendingKind(str, enum.Enum):
    COLLECTION = "COLLECTION"  # Credit sale awaiting payment from a customer
    BILL = "BILL"  # Credit purchase/expense awaiting payment to a vendor
    ADVANCE_RECEIVED = "ADVANCE_RECEIVED"  # Customer paid before delivery
    ADVANCE_PAID = "ADVANCE_PAID"  # Vendor paid before delivery


def is_settlement_derived(entry) -> bool:
    return entry.source_entry_id is not None


def moved_through_cash_channel(entry) -> bool:
    return entry.payment_method in CASH_CHANNELS


def is_outstanding(entry) -> bool:
    """Settleable entry with a balance still open."""
    return (
        entry.entry_type in SETTLEABLE_TYPES
        and not entry.settled
        and Decimal(entry.remaining_amount) > 0
    )


def cash_treatment(entry) -> CashTreatment:
    """How an entry affects cash totals."""
    if entry.entry_type in (EntryType.CASH_IN, EntryType.CASH_OUT):
        if not moved_through_cash_channel(entry):
            return CashTreatment.INCONSISTENT
        if entry.entry_type == EntryType.CASH_IN:
            return CashTreatment.INFLOW
        return CashTreatment.OUTFLOW

    if entry.entry_type == EntryType.ADVANCE:
        if not moved_through_cash_channel(entry):
            return CashTreatment.EXCLUDED
        if entry.category == Category.SALES:
            return CashTreatment.INFLOW
        return CashTreatment.OUTFLOW

    # Credit: no money has moved yet
    return CashTreatment.EXCLUDED


def _recognised(entry, cash_type: EntryType) -> bool:
    if entry.entry_type == EntryType.CREDIT:
        return True
    if entry.entry_type == cash_type:
        return not is_settlement_derived(entry)
    if entry.entry_type == EntryType.ADVANCE:
        return bool(entry.settled)
    return False


def accrual_treatment(entry) -> AccrualTreatment:
    """How an entry affects revenue/expense figures."""
    if entry.category == Category.SALES:
        if _recognised(entry, EntryType.CASH_IN):
            return AccrualTreatment.REVENUE
        return AccrualTreatment.EXCLUDED

    if entry.category in EXPENSE_CATEGORIES:
        if not _recognised(entry, EntryType.CASH_OUT):
            return AccrualTreatment.EXCLUDED
        if entry.category == Category.COGS:
            return AccrualTreatment.COGS
        return AccrualTreatment.OPEX

    # Assets are neither revenue nor expense
    return AccrualTreatment.EXCLUDED


def pending_kind(entry) -> Optional[PendingKind]:
    """Pending bucket an entry belongs to, or None when nothing is open."""
    if not is_outstanding(entry):
        return None

    if entry.entry_type == EntryType.CREDIT:
        if entry.category == Category.SALES:
            return PendingKind.COLLECTION
        if entry.category in EXPENSE_CATEGORIES:
            return PendingKind.BILL
        return None

    if entry.category == Category.SALES:
        return PendingKind.ADVANCE_RECEIVED
    return PendingKind.ADVANCE_PAID


def belongs_to_settlement_history(entry) -> bool:
    return entry.entry_type in SETTLEABLE_TYPES and bool(entry.settled)
