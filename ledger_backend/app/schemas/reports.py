"""
Report Schemas for the Cash Pulse and Profit Lens views.
"""

from pydantic import BaseModel, Field
from datetime import date
from decimal import Decimal
from typing import List, Optional

from ledger_backend.app.schemas.ledger import EntryResponse


class ChannelBreakdown(BaseModel):
    """Cash movement through one payment channel."""
    method: str
    inflow: Decimal
    outflow: Decimal
    net: Decimal


class CategoryBreakdown(BaseModel):
    """Amount per category, with share of the group total (0-100)."""
    category: str
    amount: Decimal
    count: int
    percentage: Decimal


class PartyOutstanding(BaseModel):
    """Open balance with one counterpart. party_id is None for unassigned entries."""
    party_id: Optional[int]
    count: int
    total: Decimal


class PendingBucket(BaseModel):
    """Outstanding Credit/Advance entries of one kind."""
    count: int = 0
    total: Decimal = Decimal("0.00")  # sum of remaining_amount
    original_total: Decimal = Decimal("0.00")  # sum of amount
    entries: List[EntryResponse] = Field(default_factory=list)
    by_party: List[PartyOutstanding] = Field(default_factory=list)


class PendingAdvances(BaseModel):
    """Unsettled advances, split by direction."""
    count: int
    total: Decimal
    received: PendingBucket
    paid: PendingBucket


class CashPulseReport(BaseModel):
    """Cash-basis view."""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    inflow: Decimal
    outflow: Decimal
    net: Decimal
    per_channel_breakdown: List[ChannelBreakdown]
    inflow_by_category: List[CategoryBreakdown]
    outflow_by_category: List[CategoryBreakdown]
    pending_collections: PendingBucket
    pending_bills: PendingBucket
    pending_advances: PendingAdvances
    settlement_history: List[EntryResponse]
    inconsistent_entry_ids: List[int]


class ExpenseShare(BaseModel):
    """One expense category's share of COGS + Opex (0-100)."""
    category: str
    amount: Decimal
    percentage: Decimal


class ProfitTrendPoint(BaseModel):
    """Accrual figures for one calendar month."""
    month: str  # YYYY-MM
    revenue: Decimal
    expenses: Decimal
    profit: Decimal
    margin: Decimal


class ProfitLensReport(BaseModel):
    """Accrual-basis view. Margins are fractions (0.25 == 25%)."""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    revenue: Decimal
    cogs: Decimal
    operating_expenses: Decimal
    gross_profit: Decimal
    net_profit: Decimal
    gross_margin: Decimal
    net_margin: Decimal
    expense_breakdown: List[ExpenseShare]
    trend: List[ProfitTrendPoint] = Field(default_factory=list)
