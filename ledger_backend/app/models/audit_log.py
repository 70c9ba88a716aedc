"""
Audit Log Database Model.

Append-only record of ledger mutations.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from ledger_backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - ENTRY_CREATED
    - SETTLEMENT_APPLIED / SETTLEMENT_REVERSED
    - PARTY_CREATED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Owner that performed the action
    owner_id = Column(Integer, index=True, nullable=False)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Entry the action touched (if any)
    entry_id = Column(Integer, index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    correlation_id = Column(String(64), nullable=True)

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', owner={self.owner_id}, entry={self.entry_id})>"
