"""
Party Schemas.
"""

from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional

from ledger_backend.app.models.ledger_enums import PartyType


class PartyCreate(BaseModel):
    """Schema for creating a customer or vendor."""
    name: str = Field(..., min_length=1, max_length=100)
    mobile: Optional[str] = Field(None, max_length=20)
    party_type: PartyType
    opening_balance: Decimal = Decimal("0.00")


class PartyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    mobile: Optional[str] = Field(None, max_length=20)
    party_type: Optional[PartyType] = None
    opening_balance: Optional[Decimal] = None


class PartyResponse(BaseModel):
    """Schema for displaying a party."""
    id: int
    name: str
    mobile: Optional[str]
    party_type: PartyType
    opening_balance: Decimal

    class Config:
        from_attributes = True


class PartyBalanceResponse(BaseModel):
    """Outstanding position with one party."""
    party_id: int
    opening_balance: Decimal
    receivable: Decimal  # open Credit sales
    payable: Decimal  # open Credit COGS/Opex
    advances_received: Decimal
    advances_paid: Decimal
    balance: Decimal
