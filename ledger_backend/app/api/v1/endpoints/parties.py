"""
Party API Endpoints.

Customers and vendors, and the outstanding balance with each.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, status

from ledger_backend.app.core.dependencies import get_current_owner, get_correlation_id, get_party_service
from ledger_backend.app.schemas.party import PartyCreate, PartyUpdate, PartyResponse, PartyBalanceResponse
from ledger_backend.app.services.party_service import PartyService

router = APIRouter(prefix="/parties", tags=["Parties"])


@router.post("", response_model=PartyResponse, status_code=status.HTTP_201_CREATED)
async def create_party(
    data: PartyCreate,
    owner_id: int = Depends(get_current_owner),
    service: PartyService = Depends(get_party_service),
    correlation_id: Optional[str] = Depends(get_correlation_id)
):
    """Create a customer or vendor."""
    return await service.create_party(owner_id, data, correlation_id=correlation_id)


@router.get("", response_model=List[PartyResponse])
async def list_parties(
    owner_id: int = Depends(get_current_owner),
    service: PartyService = Depends(get_party_service)
):
    return await service.list_parties(owner_id)


@router.get("/{party_id}", response_model=PartyResponse)
async def get_party(
    party_id: int,
    owner_id: int = Depends(get_current_owner),
    service: PartyService = Depends(get_party_service)
):
    return await service.get_party(owner_id, party_id)


@router.patch("/{party_id}", response_model=PartyResponse)
async def update_party(
    party_id: int,
    data: PartyUpdate,
    owner_id: int = Depends(get_current_owner),
    service: PartyService = Depends(get_party_service),
    correlation_id: Optional[str] = Depends(get_correlation_id)
):
    """Rename a party or change its details."""
    return await service.update_party(owner_id, party_id, data, correlation_id=correlation_id)


@router.delete("/{party_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_party(
    party_id: int,
    owner_id: int = Depends(get_current_owner),
    service: PartyService = Depends(get_party_service),
    correlation_id: Optional[str] = Depends(get_correlation_id)
):
    """Delete a party; its entries are kept without a party."""
    await service.delete_party(owner_id, party_id, correlation_id=correlation_id)


@router.get("/{party_id}/balance", response_model=PartyBalanceResponse)
async def get_party_balance(
    party_id: int,
    owner_id: int = Depends(get_current_owner),
    service: PartyService = Depends(get_party_service)
):
    """Outstanding position with one party."""
    return await service.get_balance(owner_id, party_id)
