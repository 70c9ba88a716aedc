"""
Accrual-Basis Projector ("Profit Lens").

Revenue and expenses are recognised by entry_date according to the
accrual rules in classification.py. Margins are fractions of revenue.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from ledger_backend.app.domain.ledger.classification import AccrualTreatment, accrual_treatment
from ledger_backend.app.domain.ledger.periods import DateRange, ALL_TIME, trailing_months
from ledger_backend.app.schemas.reports import ProfitLensReport, ExpenseShare, ProfitTrendPoint

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")
MARGIN_PLACES = Decimal("0.0001")


def margin(amount: Decimal, revenue: Decimal) -> Decimal:
    """amount / revenue, or 0 when there is no revenue."""
    if revenue <= 0:
        return Decimal("0")
    return (amount / revenue).quantize(MARGIN_PLACES)


class _Totals:
    def __init__(self):
        self.revenue = ZERO
        self.cogs = ZERO
        self.opex = ZERO
        self.expense_by_category = defaultdict(lambda: ZERO)

    def add(self, entry):
        treatment = accrual_treatment(entry)
        amount = Decimal(entry.amount)
        if treatment == AccrualTreatment.REVENUE:
            self.revenue += amount
        elif treatment == AccrualTreatment.COGS:
            self.cogs += amount
            self.expense_by_category[entry.category.value] += amount
        elif treatment == AccrualTreatment.OPEX:
            self.opex += amount
            self.expense_by_category[entry.category.value] += amount

    @property
    def expenses(self) -> Decimal:
        return self.cogs + self.opex


def _fold(entries: list, date_range: DateRange) -> _Totals:
    totals = _Totals()
    for entry in entries:
        if date_range.contains(entry.entry_date):
            totals.add(entry)
    return totals


def _expense_breakdown(totals: _Totals) -> List[ExpenseShare]:
    expenses = totals.expenses
    ranked = sorted(totals.expense_by_category.items(), key=lambda item: (-item[1], item[0]))
    return [
        ExpenseShare(
            category=category,
            amount=amount,
            percentage=(amount / expenses * HUNDRED).quantize(CENT) if expenses > 0 else ZERO,
        )
        for category, amount in ranked
    ]


class AccrualBasisProjector:
    """Builds the Profit Lens report from a set of entries."""

    @staticmethod
    def project(
        entries: Iterable,
        date_range: Optional[DateRange] = None,
        trend_months: int = 0,
        reference_date: Optional[date] = None
    ) -> ProfitLensReport:
        """
        Build the accrual-basis report.

        Args:
            entries: All entries of one owner
            date_range: Optional reporting window on entry_date
            trend_months: Number of calendar months in the trend (0 disables it)
            reference_date: Last month of the trend (defaults to range end, then today)

        Returns:
            ProfitLensReport
        """
        date_range = date_range or ALL_TIME
        entries = list(entries)
        totals = _fold(entries, date_range)

        gross_profit = totals.revenue - totals.cogs
        net_profit = gross_profit - totals.opex

        trend = []
        if trend_months > 0:
            reference = reference_date or date_range.end or date.today()
            trend = AccrualBasisProjector.monthly_trend(entries, reference, trend_months)

        return ProfitLensReport(
            start_date=date_range.start,
            end_date=date_range.end,
            revenue=totals.revenue,
            cogs=totals.cogs,
            operating_expenses=totals.opex,
            gross_profit=gross_profit,
            net_profit=net_profit,
            gross_margin=margin(gross_profit, totals.revenue),
            net_margin=margin(net_profit, totals.revenue),
            expense_breakdown=_expense_breakdown(totals),
            trend=trend,
        )

    @staticmethod
    def monthly_trend(entries: Iterable, reference: date, months: int) -> List[ProfitTrendPoint]:
        """Revenue, expenses and profit per month, oldest month first."""
        entries = list(entries)
        points = []
        for month in trailing_months(reference, months):
            totals = _fold(entries, month)
            profit = totals.revenue - totals.expenses
            points.append(ProfitTrendPoint(
                month=month.start.strftime("%Y-%m"),
                revenue=totals.revenue,
                expenses=totals.expenses,
                profit=profit,
                margin=margin(profit, totals.revenue),
            ))
        return points
