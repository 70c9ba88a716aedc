"""
Reports Service.

Loads an owner's entries and runs the cash-basis and accrual-basis
projectors over them, caching results per ledger version.
Focused on READ-ONLY operations.
"""

import logging
from datetime import date
from typing import Optional

from ledger_backend.app.domain.ledger.accrual_basis import AccrualBasisProjector
from ledger_backend.app.domain.ledger.cash_basis import CashBasisProjector
from ledger_backend.app.domain.ledger.periods import DateRange
from ledger_backend.app.domain.settlement.ledger_store import LedgerStore
from ledger_backend.app.schemas.reports import CashPulseReport, ProfitLensReport
from ledger_backend.app.services.cache import ReportCache

logger = logging.getLogger("ledger.reports")


def _params(*parts) -> str:
    return "|".join("" if part is None else str(part) for part in parts)


class ReportService:

    def __init__(self, store: LedgerStore, cache: Optional[ReportCache] = None):
        self.store = store
        self.cache = cache

    async def cash_pulse(self, owner_id: int, date_range: DateRange) -> CashPulseReport:
        async def compute() -> CashPulseReport:
            # pending and history are not bounded by entry_date, so load everything
            entries = await self.store.list_entries(owner_id)
            report = CashBasisProjector.project(entries, date_range)
            if report.inconsistent_entry_ids:
                logger.warning(
                    "Cash entries without a Cash/Bank payment method excluded from totals",
                    extra={"owner_id": owner_id, "entry_ids": report.inconsistent_entry_ids}
                )
            return report

        if self.cache is None:
            return await compute()
        return await self.cache.get_or_compute(
            owner_id, "cash_pulse", _params(date_range.start, date_range.end), CashPulseReport, compute
        )

    async def profit_lens(
        self,
        owner_id: int,
        date_range: DateRange,
        trend_months: int = 0,
        reference_date: Optional[date] = None
    ) -> ProfitLensReport:
        async def compute() -> ProfitLensReport:
            entries = await self.store.list_entries(owner_id)
            return AccrualBasisProjector.project(
                entries, date_range, trend_months=trend_months, reference_date=reference_date
            )

        if self.cache is None:
            return await compute()
        # no explicit reference means "today", which changes daily
        reference = reference_date or date_range.end or date.today()
        return await self.cache.get_or_compute(
            owner_id,
            "profit_lens",
            _params(date_range.start, date_range.end, trend_months, reference),
            ProfitLensReport,
            compute
        )
