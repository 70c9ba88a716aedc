"""
Ledger Entry API Endpoints.

Recording entries and settling / reversing Credit and Advance entries.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_backend.app.core.dependencies import (
    get_current_owner, get_correlation_id, get_entry_service, get_settlement_service, get_ledger_store
)
from ledger_backend.app.db.session import get_db
from ledger_backend.app.domain.ledger.periods import DateRange
from ledger_backend.app.domain.settlement.ledger_store import LedgerStore
from ledger_backend.app.domain.settlement.settlement_service import SettlementService
from ledger_backend.app.schemas.ledger import (
    AuditLogResponse, EntryCreate, EntryUpdate, EntryResponse, SettleRequest, SettlementResponse, ReversalResponse
)
from ledger_backend.app.services.audit import get_audit_trail
from ledger_backend.app.services.entry_service import EntryService

router = APIRouter(prefix="/entries", tags=["Ledger Entries"])


@router.post("", response_model=EntryResponse, status_code=status.HTTP_201_CREATED)
async def create_entry(
    data: EntryCreate,
    owner_id: int = Depends(get_current_owner),
    service: EntryService = Depends(get_entry_service),
    correlation_id: Optional[str] = Depends(get_correlation_id)
):
    """Record a new ledger entry."""
    return await service.create_entry(owner_id, data, correlation_id=correlation_id)


@router.get("", response_model=List[EntryResponse])
async def list_entries(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    owner_id: int = Depends(get_current_owner),
    store: LedgerStore = Depends(get_ledger_store)
):
    """List the owner's entries, optionally bounded by entry date."""
    return await store.list_entries(owner_id, DateRange(start_date, end_date))


@router.get("/{entry_id}", response_model=EntryResponse)
async def get_entry(
    entry_id: int,
    owner_id: int = Depends(get_current_owner),
    service: EntryService = Depends(get_entry_service)
):
    return await service.get_entry(owner_id, entry_id)


@router.patch("/{entry_id}", response_model=EntryResponse)
async def update_entry(
    entry_id: int,
    data: EntryUpdate,
    owner_id: int = Depends(get_current_owner),
    service: EntryService = Depends(get_entry_service),
    correlation_id: Optional[str] = Depends(get_correlation_id)
):
    """Edit an entry. Amount and date are locked while a settlement is applied."""
    return await service.update_entry(owner_id, entry_id, data, correlation_id=correlation_id)


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_entry(
    entry_id: int,
    owner_id: int = Depends(get_current_owner),
    service: EntryService = Depends(get_entry_service),
    correlation_id: Optional[str] = Depends(get_correlation_id)
):
    """Delete an entry no settlement depends on."""
    await service.delete_entry(owner_id, entry_id, correlation_id=correlation_id)


@router.post("/{entry_id}/settle", response_model=SettlementResponse)
async def settle_entry(
    entry_id: int,
    data: SettleRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    owner_id: int = Depends(get_current_owner),
    service: SettlementService = Depends(get_settlement_service),
    correlation_id: Optional[str] = Depends(get_correlation_id)
):
    """
    Settle all or part of a Credit or Advance entry.

    Retries carrying the same Idempotency-Key return the original outcome
    with `replayed = true`.
    """
    outcome = await service.settle(
        owner_id,
        entry_id,
        amount=data.amount,
        settlement_date=data.settlement_date,
        payment_method=data.payment_method,
        idempotency_key=idempotency_key,
        correlation_id=correlation_id
    )
    return SettlementResponse(
        entry=EntryResponse.model_validate(outcome.entry),
        derived_entry=EntryResponse.model_validate(outcome.derived_entry) if outcome.derived_entry else None,
        settlement_record_id=outcome.record.id,
        settled_amount=outcome.record.amount,
        replayed=outcome.replayed,
    )


@router.post("/{entry_id}/reverse-settlement", response_model=ReversalResponse)
async def reverse_settlement(
    entry_id: int,
    owner_id: int = Depends(get_current_owner),
    service: SettlementService = Depends(get_settlement_service),
    correlation_id: Optional[str] = Depends(get_correlation_id)
):
    """Undo a completed settlement and restore the full balance."""
    outcome = await service.reverse_settlement(owner_id, entry_id, correlation_id=correlation_id)
    return ReversalResponse(
        entry=EntryResponse.model_validate(outcome.entry),
        removed_entry_ids=outcome.removed_entry_ids,
    )


@router.get("/{entry_id}/audit", response_model=List[AuditLogResponse])
async def entry_audit_trail(
    entry_id: int,
    limit: int = Query(100, ge=1, le=500),
    owner_id: int = Depends(get_current_owner),
    service: EntryService = Depends(get_entry_service),
    db: AsyncSession = Depends(get_db)
):
    """Audit rows recorded against an entry, most recent first."""
    await service.get_entry(owner_id, entry_id)
    return await get_audit_trail(db, owner_id, entry_id=entry_id, limit=limit)
