"""
Ledger enumerations.
"""

import enum


class EntryType(str, enum.Enum):
    """Kind of financial event an entry records."""
    CASH_IN = "CashIn"  # Money received
    CASH_OUT = "CashOut"  # Money paid
    CREDIT = "Credit"  # Sale/purchase on credit, not yet paid
    ADVANCE = "Advance"  # Paid/received before it is earned/incurred


class Category(str, enum.Enum):
    """Business category of an entry."""
    SALES = "Sales"
    COGS = "COGS"
    OPEX = "Opex"
    ASSETS = "Assets"


class PaymentMethod(str, enum.Enum):
    """Payment channel. A null column means no method was recorded."""
    CASH = "Cash"
    BANK = "Bank"
    OTHER = "Other"


class PartyType(str, enum.Enum):
    """Counterpart role."""
    CUSTOMER = "Customer"
    VENDOR = "Vendor"
    BOTH = "Both"


SETTLEABLE_TYPES = frozenset({EntryType.CREDIT, EntryType.ADVANCE})
CASH_CHANNELS = frozenset({PaymentMethod.CASH, PaymentMethod.BANK})
EXPENSE_CATEGORIES = frozenset({Category.COGS, Category.OPEX})
