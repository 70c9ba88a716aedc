"""
Ledger Schemas.

Request and response shapes for entries and settlements. Amounts are
carried as Decimal; range and precision checks happen in the domain layer
so direct callers and HTTP callers get the same ValidationError.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from ledger_backend.app.models.ledger_enums import EntryType, Category, PaymentMethod


class EntryCreate(BaseModel):
    """Schema for recording a new ledger entry."""
    entry_type: EntryType
    category: Category
    payment_method: Optional[PaymentMethod] = None
    amount: Decimal
    entry_date: date
    notes: Optional[str] = Field(None, max_length=1000)
    party_id: Optional[int] = None


class EntryUpdate(BaseModel):
    """
    Schema for editing an entry. Only the fields sent are changed.

    Type and category are fixed at creation.
    """
    payment_method: Optional[PaymentMethod] = None
    amount: Optional[Decimal] = None
    entry_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=1000)
    party_id: Optional[int] = None


class EntryResponse(BaseModel):
    """Schema for displaying a ledger entry."""
    id: int
    owner_id: int
    entry_type: EntryType
    category: Category
    payment_method: Optional[PaymentMethod]
    amount: Decimal
    remaining_amount: Decimal
    entry_date: date
    settled: bool
    settled_at: Optional[date]
    notes: Optional[str]
    party_id: Optional[int]
    source_entry_id: Optional[int]

    class Config:
        from_attributes = True


class SettleRequest(BaseModel):
    """Schema for settling (part of) a Credit or Advance entry."""
    amount: Decimal
    settlement_date: date
    payment_method: Optional[PaymentMethod] = None


class SettlementResponse(BaseModel):
    """Result of a settle call."""
    entry: EntryResponse
    derived_entry: Optional[EntryResponse]
    settlement_record_id: int
    settled_amount: Decimal
    replayed: bool


class ReversalResponse(BaseModel):
    """Result of a settlement reversal."""
    entry: EntryResponse
    removed_entry_ids: list[int]


class SettlementRecordResponse(BaseModel):
    """Schema for displaying one applied settlement increment."""
    id: int
    entry_id: int
    derived_entry_id: Optional[int]
    amount: Decimal
    settlement_date: date
    payment_method: Optional[PaymentMethod]
    remaining_after: Decimal
    idempotency_key: Optional[str]
    reversed_at: Optional[datetime]

    class Config:
        from_attributes = True


class AuditLogResponse(BaseModel):
    """One audit trail row."""
    id: int
    action: str
    entry_id: Optional[int]
    meta_data: Optional[dict]
    correlation_id: Optional[str]
    timestamp: datetime

    class Config:
        from_attributes = True
