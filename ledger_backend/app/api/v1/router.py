"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from ledger_backend.app.api.v1.endpoints import entries, settlements, analytics, parties

router = APIRouter()

# Entries, settle and reverse-settlement
router.include_router(entries.router)

# Settlement history
router.include_router(settlements.router)

# Cash Pulse / Profit Lens
router.include_router(analytics.router)

# Customers and vendors
router.include_router(parties.router)
