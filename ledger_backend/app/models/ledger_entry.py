"""
Ledger Entry database model.

The single record type behind both the cash-basis and accrual-basis views.
"""

from sqlalchemy import (
    Column, Integer, Numeric, ForeignKey, DateTime, Date, Enum, Text, Boolean,
    CheckConstraint, Index
)
from sqlalchemy.sql import func
from ledger_backend.app.db.session import Base
from ledger_backend.app.models.ledger_enums import EntryType, Category, PaymentMethod


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class LedgerEntry(Base):
    """
    Ledger Entry model.

    `entry_type` and `category` are fixed at creation. Only Credit and
    Advance entries carry a meaningful `remaining_amount`; it starts equal
    to `amount` and only the settlement service changes it.

    A CashIn/CashOut entry created by settling a Credit entry points back
    at its source through `source_entry_id`.
    """
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Scope
    owner_id = Column(Integer, nullable=False, index=True)

    # Classification
    entry_type = Column(Enum(EntryType, values_callable=_enum_values, name="entry_type"), nullable=False)
    category = Column(Enum(Category, values_callable=_enum_values, name="entry_category"), nullable=False)
    payment_method = Column(Enum(PaymentMethod, values_callable=_enum_values, name="payment_method"), nullable=True)

    # Financials
    amount = Column(Numeric(12, 2), nullable=False)
    remaining_amount = Column(Numeric(12, 2), nullable=False)

    entry_date = Column(Date, nullable=False, index=True)

    # Settlement state
    settled = Column(Boolean, default=False, nullable=False)
    settled_at = Column(Date, nullable=True)

    notes = Column(Text, nullable=True)

    # Linkage
    party_id = Column(Integer, ForeignKey('parties.id', ondelete="SET NULL"), nullable=True, index=True)
    source_entry_id = Column(Integer, ForeignKey('ledger_entries.id'), nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
        CheckConstraint(
            "remaining_amount >= 0 AND remaining_amount <= amount",
            name="ck_ledger_entries_remaining_bounds"
        ),
        CheckConstraint(
            "(settled AND remaining_amount = 0) OR (NOT settled AND remaining_amount > 0)",
            name="ck_ledger_entries_settled_iff_zero"
        ),
        Index('ix_ledger_entries_owner_date', 'owner_id', 'entry_date'),
    )

    def __repr__(self):
        return (
            f"<LedgerEntry(id={self.id}, type='{self.entry_type.value}', "
            f"category='{self.category.value}', amount={self.amount}, remaining={self.remaining_amount})>"
        )
