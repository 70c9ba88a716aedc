"""
Party database model.

Customers and vendors an owner trades with.
"""

from sqlalchemy import Column, Integer, Numeric, DateTime, Enum, String, UniqueConstraint
from sqlalchemy.sql import func
from ledger_backend.app.db.session import Base
from ledger_backend.app.models.ledger_enums import PartyType


class Party(Base):
    """Counterpart master record. Names are unique per owner."""
    __tablename__ = "parties"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, nullable=False, index=True)

    name = Column(String(100), nullable=False)
    mobile = Column(String(20), nullable=True)
    party_type = Column(Enum(PartyType, values_callable=lambda e: [m.value for m in e], name="party_type"), nullable=False)
    opening_balance = Column(Numeric(12, 2), default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('owner_id', 'name', name='uq_parties_owner_name'),
    )

    def __repr__(self):
        return f"<Party(id={self.id}, name='{self.name}', type='{self.party_type.value}')>"
