"""
Analytics API Endpoints.

Read-only Cash Pulse (cash basis) and Profit Lens (accrual basis) views.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ledger_backend.app.core.dependencies import get_current_owner, get_report_service
from ledger_backend.app.domain.ledger.periods import DateRange
from ledger_backend.app.schemas.reports import CashPulseReport, ProfitLensReport
from ledger_backend.app.services.reports import ReportService

router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.get("/cash-pulse", response_model=CashPulseReport)
async def get_cash_pulse(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    owner_id: int = Depends(get_current_owner),
    reports: ReportService = Depends(get_report_service)
):
    """Money in, money out and what is still pending."""
    return await reports.cash_pulse(owner_id, DateRange(start_date, end_date))


@router.get("/profit-lens", response_model=ProfitLensReport)
async def get_profit_lens(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    trend_months: int = Query(0, ge=0, le=24),
    owner_id: int = Depends(get_current_owner),
    reports: ReportService = Depends(get_report_service)
):
    """Revenue, expenses, profit and margins as earned/incurred."""
    return await reports.profit_lens(owner_id, DateRange(start_date, end_date), trend_months=trend_months)
