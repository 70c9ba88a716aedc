"""
Audit logging service for ledger mutations.

Audit rows are added to the caller's session and committed together with
the change they describe, never on their own.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from ledger_backend.app.models.audit_log import AuditLog


class AuditAction:
    """Standardized audit action constants."""
    ENTRY_CREATED = "ENTRY_CREATED"
    ENTRY_UPDATED = "ENTRY_UPDATED"
    ENTRY_DELETED = "ENTRY_DELETED"
    SETTLEMENT_APPLIED = "SETTLEMENT_APPLIED"
    SETTLEMENT_REVERSED = "SETTLEMENT_REVERSED"
    PARTY_CREATED = "PARTY_CREATED"
    PARTY_UPDATED = "PARTY_UPDATED"
    PARTY_DELETED = "PARTY_DELETED"


async def log_event(
    db: AsyncSession,
    action: str,
    owner_id: int,
    entry_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
    correlation_id: Optional[str] = None
) -> AuditLog:
    """
    Record a ledger event in the audit log.

    Args:
        db: Session of the open transaction
        action: Action being performed (use AuditAction constants)
        owner_id: Owner performing the action
        entry_id: Ledger entry touched, if any
        metadata: Additional context as JSON
        correlation_id: Request correlation id

    Returns:
        The pending AuditLog instance
    """
    audit_log = AuditLog(
        owner_id=owner_id,
        action=action,
        entry_id=entry_id,
        meta_data=metadata,
        correlation_id=correlation_id
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    owner_id: int,
    entry_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve an owner's audit trail, most recent first.
    """
    query = select(AuditLog).where(AuditLog.owner_id == owner_id).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if entry_id:
        query = query.where(AuditLog.entry_id == entry_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
