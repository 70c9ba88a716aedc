"""
Request dependencies for FastAPI.

Resolves the calling owner from the bearer token and provides the ledger
store, report cache and services to endpoints.
"""

from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ledger_backend.app.core.jwt import decode_access_token
from ledger_backend.app.core.redis_client import get_redis
from ledger_backend.app.db.session import AsyncSessionLocal
from ledger_backend.app.domain.settlement.ledger_store import LedgerStore
from ledger_backend.app.domain.settlement.settlement_service import SettlementService
from ledger_backend.app.services.cache import ReportCache
from ledger_backend.app.services.entry_service import EntryService
from ledger_backend.app.services.party_service import PartyService
from ledger_backend.app.services.reports import ReportService

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_owner(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> int:
    """
    FastAPI dependency returning the authenticated owner's id.

    The token's `user_id` claim is the owner scope for every ledger
    read and write made during the request.

    Raises:
        HTTPException: 401 if the token is invalid or carries no owner
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    owner_id = payload.get("user_id")
    if owner_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return int(owner_id)
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_ledger_store() -> LedgerStore:
    """Ledger store bound to the application session factory."""
    return LedgerStore(AsyncSessionLocal)


async def get_report_cache(redis=Depends(get_redis)) -> ReportCache:
    return ReportCache(redis)


def get_correlation_id(request: Request) -> Optional[str]:
    """Correlation id assigned by ObservabilityMiddleware, if it ran."""
    return getattr(request.state, "correlation_id", None)


async def get_settlement_service(
    store: LedgerStore = Depends(get_ledger_store),
    cache: ReportCache = Depends(get_report_cache),
) -> SettlementService:
    return SettlementService(store, cache)


async def get_entry_service(
    store: LedgerStore = Depends(get_ledger_store),
    cache: ReportCache = Depends(get_report_cache),
) -> EntryService:
    return EntryService(store, cache)


async def get_party_service(
    store: LedgerStore = Depends(get_ledger_store),
    cache: ReportCache = Depends(get_report_cache),
) -> PartyService:
    return PartyService(store, cache)


async def get_report_service(
    store: LedgerStore = Depends(get_ledger_store),
    cache: ReportCache = Depends(get_report_cache),
) -> ReportService:
    return ReportService(store, cache)
