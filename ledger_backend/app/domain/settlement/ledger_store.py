"""
Ledger Store.

The only component that touches ledger tables. Writes go through
`run_transaction`, which hands the callback a LedgerTransaction bound to
one session and commits everything it did atomically, or nothing.

Row locking:
- PostgreSQL: SELECT ... FOR UPDATE, bounded by a per-transaction lock_timeout
- SQLite: the engine issues BEGIN IMMEDIATE (see db.session), which
  serializes writers for the whole database
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from sqlalchemy import select, update, delete, desc, func, text
from sqlalchemy.exc import SQLAlchemyError, DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ledger_backend.app.core.config import settings
from ledger_backend.app.core.exceptions import ConcurrencyConflictError, InvalidStateError, StoreError
from ledger_backend.app.domain.ledger.periods import DateRange
from ledger_backend.app.models.ledger_entry import LedgerEntry
from ledger_backend.app.models.party import Party
from ledger_backend.app.models.settlement_record import SettlementRecord
from ledger_backend.app.services.audit import log_event

logger = logging.getLogger("ledger.store")

T = TypeVar("T")

LOCK_NOT_AVAILABLE = "55P03"


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "pgcode", None) or getattr(candidate, "sqlstate", None)
        if code:
            return code
    return None


def is_lock_timeout(exc: DBAPIError) -> bool:
    """Lock wait gave up: PostgreSQL lock_timeout or SQLite busy timeout."""
    if _sqlstate(exc) == LOCK_NOT_AVAILABLE:
        return True
    return "database is locked" in str(exc.orig).lower()


def is_idempotency_key_clash(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return "uq_settlement_records_owner_key" in message or "settlement_records.idempotency_key" in message


def is_party_name_clash(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return "uq_parties_owner_name" in message or "parties.owner_id, parties.name" in message


class LedgerTransaction:
    """
    Operations valid only inside an open store transaction.

    Nothing here commits; run_transaction does.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @property
    def dialect(self) -> str:
        return self.session.get_bind().dialect.name

    async def apply_lock_timeout(self, timeout_ms: int) -> None:
        if self.dialect == "postgresql" and timeout_ms:
            # SET does not take bind parameters
            await self.session.execute(text(f"SET LOCAL lock_timeout = {int(timeout_ms)}"))

    async def lock_and_read(self, entry_id: int, owner_id: int) -> Optional[LedgerEntry]:
        """
        Read an entry and lock its row until the transaction ends.

        Filters on owner as well as id, so another owner's entry reads as
        missing.
        """
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.id == entry_id, LedgerEntry.owner_id == owner_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add_entry(self, entry: LedgerEntry) -> LedgerEntry:
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def insert_derived_entry(self, entry: LedgerEntry) -> int:
        """Insert a settlement-derived CashIn/CashOut entry and return its id."""
        if entry.source_entry_id is None:
            raise ValueError("derived entry must reference its source entry")
        await self.add_entry(entry)
        return entry.id

    async def update_entry(self, entry_id: int, patch: Dict[str, Any]) -> LedgerEntry:
        entry = await self.session.get(LedgerEntry, entry_id)
        if entry is None:
            raise StoreError(details={"entry_id": entry_id})
        for field, value in patch.items():
            setattr(entry, field, value)
        await self.session.flush()
        return entry

    async def delete_entry(self, entry_id: int) -> None:
        # records keep their history, only the link to the removed entry goes
        await self.session.execute(
            update(SettlementRecord)
            .where(SettlementRecord.derived_entry_id == entry_id)
            .values(derived_entry_id=None)
        )
        await self.session.execute(delete(LedgerEntry).where(LedgerEntry.id == entry_id))

    async def derived_entries(self, source_entry_id: int, owner_id: int) -> List[LedgerEntry]:
        result = await self.session.execute(
            select(LedgerEntry).where(
                LedgerEntry.source_entry_id == source_entry_id,
                LedgerEntry.owner_id == owner_id
            ).order_by(LedgerEntry.id)
        )
        return list(result.scalars().all())

    async def find_settlement_by_key(self, owner_id: int, idempotency_key: str) -> Optional[SettlementRecord]:
        result = await self.session.execute(
            select(SettlementRecord).where(
                SettlementRecord.owner_id == owner_id,
                SettlementRecord.idempotency_key == idempotency_key
            )
        )
        return result.scalar_one_or_none()

    async def insert_settlement_record(self, record: SettlementRecord) -> int:
        self.session.add(record)
        await self.session.flush()
        return record.id

    async def mark_settlements_reversed(self, owner_id: int, entry_id: int) -> int:
        result = await self.session.execute(
            update(SettlementRecord)
            .where(
                SettlementRecord.owner_id == owner_id,
                SettlementRecord.entry_id == entry_id,
                SettlementRecord.reversed_at.is_(None)
            )
            .values(reversed_at=datetime.now(timezone.utc))
        )
        return result.rowcount

    async def count_open_settlements(self, owner_id: int, entry_id: int) -> int:
        result = await self.session.execute(
            select(func.count(SettlementRecord.id)).where(
                SettlementRecord.owner_id == owner_id,
                SettlementRecord.entry_id == entry_id,
                SettlementRecord.reversed_at.is_(None)
            )
        )
        return result.scalar_one()

    async def purge_settlement_records(self, owner_id: int, entry_id: int) -> int:
        """Drop an entry's settlement history; only valid right before the entry itself goes."""
        result = await self.session.execute(
            delete(SettlementRecord).where(
                SettlementRecord.owner_id == owner_id,
                SettlementRecord.entry_id == entry_id
            )
        )
        return result.rowcount

    async def get_entry(self, entry_id: int, owner_id: int) -> Optional[LedgerEntry]:
        result = await self.session.execute(
            select(LedgerEntry).where(LedgerEntry.id == entry_id, LedgerEntry.owner_id == owner_id)
        )
        return result.scalar_one_or_none()

    async def get_party(self, party_id: int, owner_id: int) -> Optional[Party]:
        result = await self.session.execute(
            select(Party).where(Party.id == party_id, Party.owner_id == owner_id)
        )
        return result.scalar_one_or_none()

    async def find_party_by_name(self, owner_id: int, name: str) -> Optional[Party]:
        result = await self.session.execute(
            select(Party).where(Party.owner_id == owner_id, Party.name == name)
        )
        return result.scalar_one_or_none()

    async def add_party(self, party: Party) -> Party:
        self.session.add(party)
        await self.session.flush()
        return party

    async def update_party(self, party: Party, patch: Dict[str, Any]) -> Party:
        for field, value in patch.items():
            setattr(party, field, value)
        await self.session.flush()
        return party

    async def delete_party(self, party_id: int) -> None:
        # entries stay, unlinked from the party
        await self.session.execute(
            update(LedgerEntry).where(LedgerEntry.party_id == party_id).values(party_id=None)
        )
        await self.session.execute(delete(Party).where(Party.id == party_id))

    async def audit(
        self,
        action: str,
        owner_id: int,
        entry_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None
    ) -> None:
        await log_event(
            self.session,
            action=action,
            owner_id=owner_id,
            entry_id=entry_id,
            metadata=metadata,
            correlation_id=correlation_id
        )


class LedgerStore:
    """Transactional access to entries, settlement records and parties."""

    def __init__(self, session_factory: async_sessionmaker, lock_timeout_ms: Optional[int] = None):
        self._session_factory = session_factory
        self.lock_timeout_ms = settings.settlement_lock_timeout_ms if lock_timeout_ms is None else lock_timeout_ms

    async def run_transaction(self, fn: Callable[[LedgerTransaction], Awaitable[T]]) -> T:
        """
        Run `fn` inside one database transaction.

        Commits when `fn` returns; rolls back when it raises. Domain errors
        raised by `fn` propagate unchanged. Database failures surface as
        StoreError, lock wait timeouts as ConcurrencyConflictError and a
        clashing party name as InvalidStateError.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    txn = LedgerTransaction(session)
                    await txn.apply_lock_timeout(self.lock_timeout_ms)
                    return await fn(txn)
        except IntegrityError as exc:
            if is_idempotency_key_clash(exc):
                logger.warning("Idempotency key already used by a concurrent settlement")
                raise ConcurrencyConflictError(
                    "A settlement with this idempotency key is already being applied",
                    details={"retryable": True}
                )
            if is_party_name_clash(exc):
                logger.warning("Party name already taken by a concurrent write")
                raise InvalidStateError("A party with this name already exists")
            logger.error("Ledger transaction rejected by the database", exc_info=True)
            raise StoreError()
        except DBAPIError as exc:
            if is_lock_timeout(exc):
                logger.warning("Timed out waiting for a ledger row lock")
                raise ConcurrencyConflictError(
                    "The entry is being modified by another request",
                    details={"retryable": True}
                )
            logger.error("Ledger transaction failed", exc_info=True)
            raise StoreError()
        except SQLAlchemyError:
            logger.error("Ledger transaction failed", exc_info=True)
            raise StoreError()

    async def _read(self, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        try:
            async with self._session_factory() as session:
                return await fn(session)
        except SQLAlchemyError:
            logger.error("Ledger read failed", exc_info=True)
            raise StoreError()

    async def get_entry(self, entry_id: int, owner_id: int) -> Optional[LedgerEntry]:
        """Unlocked read of one owner's entry."""
        async def query(session):
            result = await session.execute(
                select(LedgerEntry).where(LedgerEntry.id == entry_id, LedgerEntry.owner_id == owner_id)
            )
            return result.scalar_one_or_none()

        return await self._read(query)

    async def list_entries(self, owner_id: int, date_range: Optional[DateRange] = None) -> List[LedgerEntry]:
        """
        All entries of an owner, oldest first.

        The range filters on entry_date. Plain read, no lock.
        """
        async def query(session):
            stmt = select(LedgerEntry).where(LedgerEntry.owner_id == owner_id)
            if date_range is not None and date_range.start:
                stmt = stmt.where(LedgerEntry.entry_date >= date_range.start)
            if date_range is not None and date_range.end:
                stmt = stmt.where(LedgerEntry.entry_date <= date_range.end)
            stmt = stmt.order_by(LedgerEntry.entry_date, LedgerEntry.id)
            result = await session.execute(stmt)
            return list(result.scalars().all())

        return await self._read(query)

    async def count_entries(self, owner_id: int) -> int:
        return len(await self.list_entries(owner_id))

    async def find_settlement_by_key(self, owner_id: int, idempotency_key: str) -> Optional[SettlementRecord]:
        async def query(session):
            return await LedgerTransaction(session).find_settlement_by_key(owner_id, idempotency_key)

        return await self._read(query)

    async def list_settlement_records(
        self,
        owner_id: int,
        entry_id: Optional[int] = None,
        include_reversed: bool = False,
        limit: int = 100
    ) -> List[SettlementRecord]:
        """Settlement records of an owner, newest first."""
        async def query(session):
            stmt = select(SettlementRecord).where(SettlementRecord.owner_id == owner_id)
            if entry_id:
                stmt = stmt.where(SettlementRecord.entry_id == entry_id)
            if not include_reversed:
                stmt = stmt.where(SettlementRecord.reversed_at.is_(None))
            stmt = stmt.order_by(desc(SettlementRecord.settlement_date), desc(SettlementRecord.id)).limit(limit)
            result = await session.execute(stmt)
            return list(result.scalars().all())

        return await self._read(query)

    async def get_party(self, party_id: int, owner_id: int) -> Optional[Party]:
        async def query(session):
            return await LedgerTransaction(session).get_party(party_id, owner_id)

        return await self._read(query)

    async def list_parties(self, owner_id: int) -> List[Party]:
        async def query(session):
            result = await session.execute(
                select(Party).where(Party.owner_id == owner_id).order_by(Party.name)
            )
            return list(result.scalars().all())

        return await self._read(query)

    async def list_party_entries(self, owner_id: int, party_id: int) -> List[LedgerEntry]:
        async def query(session):
            result = await session.execute(
                select(LedgerEntry).where(
                    LedgerEntry.owner_id == owner_id,
                    LedgerEntry.party_id == party_id
                ).order_by(LedgerEntry.entry_date, LedgerEntry.id)
            )
            return list(result.scalars().all())

        return await self._read(query)
