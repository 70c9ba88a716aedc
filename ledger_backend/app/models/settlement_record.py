"""
Settlement Record database model.

One row per applied settlement increment.
"""

from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, Date, Enum, String, UniqueConstraint
from sqlalchemy.sql import func
from ledger_backend.app.db.session import Base
from ledger_backend.app.models.ledger_enums import PaymentMethod


class SettlementRecord(Base):
    """
    Settlement Record model.

    Written in the same transaction as the entry update it describes.
    `derived_entry_id` is null for Advance settlements (no cash entry).
    `idempotency_key` lets a caller retry a settle request safely; records
    survive reversal (stamped with `reversed_at`) so a retried key is still
    recognised afterwards.
    """
    __tablename__ = "settlement_records"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    owner_id = Column(Integer, nullable=False, index=True)
    entry_id = Column(Integer, ForeignKey('ledger_entries.id'), nullable=False, index=True)
    derived_entry_id = Column(Integer, ForeignKey('ledger_entries.id', ondelete="SET NULL"), nullable=True)

    amount = Column(Numeric(12, 2), nullable=False)
    settlement_date = Column(Date, nullable=False)
    payment_method = Column(Enum(PaymentMethod, values_callable=lambda e: [m.value for m in e], name="settlement_payment_method"), nullable=True)

    # Resulting balance on the source entry after this increment
    remaining_after = Column(Numeric(12, 2), nullable=False)

    idempotency_key = Column(String(128), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    reversed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint('owner_id', 'idempotency_key', name='uq_settlement_records_owner_key'),
    )

    def __repr__(self):
        return f"<SettlementRecord(id={self.id}, entry_id={self.entry_id}, amount={self.amount})>"
