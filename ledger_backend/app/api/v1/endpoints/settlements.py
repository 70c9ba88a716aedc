"""
Settlement History API Endpoints.

Read-only list of applied settlement increments.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ledger_backend.app.core.dependencies import get_current_owner, get_ledger_store
from ledger_backend.app.domain.settlement.ledger_store import LedgerStore
from ledger_backend.app.schemas.ledger import SettlementRecordResponse

router = APIRouter(prefix="/settlements", tags=["Settlements"])


@router.get("", response_model=List[SettlementRecordResponse])
async def list_settlements(
    entry_id: Optional[int] = Query(None),
    include_reversed: bool = Query(False),
    limit: int = Query(100, ge=1, le=500),
    owner_id: int = Depends(get_current_owner),
    store: LedgerStore = Depends(get_ledger_store)
):
    """List settlement records, newest first. Reversed ones are hidden by default."""
    return await store.list_settlement_records(
        owner_id, entry_id=entry_id, include_reversed=include_reversed, limit=limit
    )
