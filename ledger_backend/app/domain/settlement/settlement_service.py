"""
Settlement Service (Domain Logic).

Applies and reverses settlements of Credit and Advance entries.

Settle flow:
1. Validate input (before any store access)
2. Idempotency check: a known key replays the recorded outcome
3. Unlocked pre-check of type, state and remaining balance
4. Transaction with the entry row locked:
   re-read balance, insert derived CashIn/CashOut (Credit only),
   decrement remaining, write settlement record and audit row
5. Bump the owner's report cache version

The service keeps no state between calls; concurrent calls on one entry
are serialized by the store's row lock.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_FLOOR
from typing import List, Optional, Union

from ledger_backend.app.core.exceptions import (
    ValidationError, NotFoundError, InvalidStateError, ConcurrencyConflictError, StoreError
)
from ledger_backend.app.domain.ledger.validation import CENT, validate_amount, validate_ledger_date
from ledger_backend.app.domain.settlement.ledger_store import LedgerStore, LedgerTransaction
from ledger_backend.app.models.ledger_entry import LedgerEntry
from ledger_backend.app.models.ledger_enums import (
    EntryType, Category, PaymentMethod, SETTLEABLE_TYPES, CASH_CHANNELS
)
from ledger_backend.app.models.settlement_record import SettlementRecord
from ledger_backend.app.services.audit import AuditAction

logger = logging.getLogger("ledger.settlement")

MAX_IDEMPOTENCY_KEY_LENGTH = 128


@dataclass
class SettlementOutcome:
    """Result of a settle call."""
    entry: LedgerEntry
    record: SettlementRecord
    derived_entry: Optional[LedgerEntry] = None
    replayed: bool = False


@dataclass
class ReversalOutcome:
    """Result of a reversal."""
    entry: LedgerEntry
    removed_entry_ids: List[int] = field(default_factory=list)


def parse_payment_method(value: Union[PaymentMethod, str, None]) -> Optional[PaymentMethod]:
    """Accept an enum member or its value; settlements only move through Cash or Bank."""
    if value is None:
        return None
    if not isinstance(value, PaymentMethod):
        try:
            value = PaymentMethod(value)
        except ValueError:
            raise ValidationError("Invalid payment method", details={"field": "payment_method"})
    if value not in CASH_CHANNELS:
        raise ValidationError(
            "Settlement payment method must be Cash or Bank",
            details={"field": "payment_method", "value": value.value}
        )
    return value


def derived_payment_method(source: LedgerEntry, supplied: Optional[PaymentMethod]) -> PaymentMethod:
    """Supplied method, else the source's method if it is a cash channel, else Cash."""
    if supplied is not None:
        return supplied
    if source.payment_method in CASH_CHANNELS:
        return source.payment_method
    return PaymentMethod.CASH


def build_derived_entry(
    source: LedgerEntry,
    amount: Decimal,
    settlement_date: date,
    payment_method: PaymentMethod
) -> LedgerEntry:
    """CashIn for a Sales credit, CashOut for any other category."""
    entry_type = EntryType.CASH_IN if source.category == Category.SALES else EntryType.CASH_OUT
    return LedgerEntry(
        owner_id=source.owner_id,
        entry_type=entry_type,
        category=source.category,
        payment_method=payment_method,
        amount=amount,
        remaining_amount=amount,
        entry_date=settlement_date,
        settled=False,
        settled_at=None,
        notes=f"Settlement of entry #{source.id}",
        party_id=source.party_id,
        source_entry_id=source.id,
    )


def remaining_after(remaining: Decimal, amount: Decimal) -> Decimal:
    left = (Decimal(remaining) - amount).quantize(CENT, rounding=ROUND_FLOOR)
    return left if left > 0 else Decimal("0.00")


class SettlementService:
    """Settle and reverse Credit/Advance entries for one owner at a time."""

    def __init__(self, store: LedgerStore, cache=None):
        self.store = store
        self.cache = cache

    async def settle(
        self,
        owner_id: int,
        entry_id: int,
        amount: Union[Decimal, str, int, float],
        settlement_date: Union[date, str],
        payment_method: Union[PaymentMethod, str, None] = None,
        idempotency_key: Optional[str] = None,
        correlation_id: Optional[str] = None
    ) -> SettlementOutcome:
        """
        Settle all or part of an outstanding Credit/Advance entry.

        Args:
            owner_id: Owner the entry must belong to
            entry_id: Entry to settle
            amount: Amount to settle, at most the remaining balance
            settlement_date: When the money moved
            payment_method: Cash or Bank; defaults from the source entry
            idempotency_key: Optional key making retries safe
            correlation_id: Request correlation id for the audit trail

        Returns:
            SettlementOutcome

        Raises:
            ValidationError: Malformed input
            NotFoundError: Entry missing or owned by someone else
            InvalidStateError: Wrong type, already settled, or amount too large
            ConcurrencyConflictError: A concurrent write changed the balance
            StoreError: Database failure; nothing was written
        """
        amount = validate_amount(amount)
        settlement_date = validate_ledger_date(settlement_date, field="settlement_date")
        payment_method = parse_payment_method(payment_method)
        idempotency_key = self._check_idempotency_key(idempotency_key)

        if idempotency_key:
            record = await self.store.find_settlement_by_key(owner_id, idempotency_key)
            if record is not None:
                return await self._replay(self.store, record, owner_id, entry_id, amount)

        entry = await self.store.get_entry(entry_id, owner_id)
        if entry is None:
            raise NotFoundError("Entry", entry_id)
        self._check_settleable(entry, amount, settlement_date)

        async def apply(txn: LedgerTransaction) -> SettlementOutcome:
            if idempotency_key:
                existing = await txn.find_settlement_by_key(owner_id, idempotency_key)
                if existing is not None:
                    return await self._replay(txn, existing, owner_id, entry_id, amount)

            locked = await txn.lock_and_read(entry_id, owner_id)
            if locked is None:
                raise NotFoundError("Entry", entry_id)

            remaining = Decimal(locked.remaining_amount)
            if locked.settled or amount > remaining:
                raise ConcurrencyConflictError(
                    "Entry balance changed while the settlement was being applied",
                    details={"entry_id": entry_id, "remaining_amount": str(remaining), "amount": str(amount)}
                )

            derived = None
            if locked.entry_type == EntryType.CREDIT:
                method = derived_payment_method(locked, payment_method)
                derived = build_derived_entry(locked, amount, settlement_date, method)
                await txn.insert_derived_entry(derived)
            else:
                method = payment_method or locked.payment_method

            left = remaining_after(remaining, amount)
            patch = {"remaining_amount": left}
            if left <= 0:
                patch.update(settled=True, settled_at=settlement_date)
            updated = await txn.update_entry(locked.id, patch)

            record = SettlementRecord(
                owner_id=owner_id,
                entry_id=locked.id,
                derived_entry_id=derived.id if derived else None,
                amount=amount,
                settlement_date=settlement_date,
                payment_method=method,
                remaining_after=left,
                idempotency_key=idempotency_key,
                reversed_at=None,
            )
            await txn.insert_settlement_record(record)

            await txn.audit(
                AuditAction.SETTLEMENT_APPLIED,
                owner_id=owner_id,
                entry_id=locked.id,
                metadata={
                    "amount": str(amount),
                    "remaining_after": str(left),
                    "settlement_date": settlement_date.isoformat(),
                    "derived_entry_id": record.derived_entry_id,
                    "settlement_record_id": record.id,
                    "idempotency_key": idempotency_key,
                },
                correlation_id=correlation_id
            )

            return SettlementOutcome(entry=updated, record=record, derived_entry=derived)

        try:
            outcome = await self.store.run_transaction(apply)
        except ConcurrencyConflictError:
            logger.warning(
                "Settlement conflict",
                extra={"owner_id": owner_id, "entry_id": entry_id, "amount": str(amount)}
            )
            raise
        except StoreError:
            logger.error(
                "Settlement failed",
                extra={
                    "owner_id": owner_id,
                    "entry_id": entry_id,
                    "amount": str(amount),
                    "settlement_date": settlement_date.isoformat(),
                    "idempotency_key": idempotency_key,
                    "correlation_id": correlation_id,
                }
            )
            raise

        if outcome.replayed:
            return outcome

        await self._ledger_changed(owner_id)
        logger.info(
            "Settlement applied",
            extra={
                "owner_id": owner_id,
                "entry_id": entry_id,
                "amount": str(amount),
                "remaining_amount": str(outcome.entry.remaining_amount),
                "settled": outcome.entry.settled,
                "derived_entry_id": outcome.derived_entry.id if outcome.derived_entry else None,
                "correlation_id": correlation_id,
            }
        )
        return outcome

    async def reverse_settlement(
        self,
        owner_id: int,
        entry_id: int,
        correlation_id: Optional[str] = None
    ) -> ReversalOutcome:
        """
        Undo the settlement of a fully settled Credit/Advance entry.

        Removes every derived entry, restores remaining_amount to the full
        amount and clears the settled flag. Settlement records are kept and
        stamped as reversed.
        """
        async def apply(txn: LedgerTransaction) -> ReversalOutcome:
            entry = await txn.lock_and_read(entry_id, owner_id)
            if entry is None:
                raise NotFoundError("Entry", entry_id)

            if entry.entry_type not in SETTLEABLE_TYPES:
                raise InvalidStateError(
                    "Only Credit and Advance entries can have their settlement reversed",
                    details={"entry_id": entry_id, "entry_type": entry.entry_type.value}
                )
            if not entry.settled:
                raise InvalidStateError(
                    "Entry is not settled",
                    details={"entry_id": entry_id}
                )

            removed = []
            if entry.entry_type == EntryType.CREDIT:
                for derived in await txn.derived_entries(entry.id, owner_id):
                    await txn.delete_entry(derived.id)
                    removed.append(derived.id)

            updated = await txn.update_entry(entry.id, {
                "remaining_amount": Decimal(entry.amount),
                "settled": False,
                "settled_at": None,
            })
            reversed_records = await txn.mark_settlements_reversed(owner_id, entry.id)

            await txn.audit(
                AuditAction.SETTLEMENT_REVERSED,
                owner_id=owner_id,
                entry_id=entry.id,
                metadata={"removed_entry_ids": removed, "reversed_records": reversed_records},
                correlation_id=correlation_id
            )
            return ReversalOutcome(entry=updated, removed_entry_ids=removed)

        try:
            outcome = await self.store.run_transaction(apply)
        except StoreError:
            logger.error(
                "Settlement reversal failed",
                extra={"owner_id": owner_id, "entry_id": entry_id, "correlation_id": correlation_id}
            )
            raise

        await self._ledger_changed(owner_id)
        logger.info(
            "Settlement reversed",
            extra={
                "owner_id": owner_id,
                "entry_id": entry_id,
                "removed_entry_ids": outcome.removed_entry_ids,
                "correlation_id": correlation_id,
            }
        )
        return outcome

    @staticmethod
    def _check_idempotency_key(key: Optional[str]) -> Optional[str]:
        if key is None:
            return None
        key = key.strip()
        if not key or len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
            raise ValidationError(
                f"Idempotency key must be 1-{MAX_IDEMPOTENCY_KEY_LENGTH} characters",
                details={"field": "idempotency_key"}
            )
        return key

    @staticmethod
    def _check_settleable(entry: LedgerEntry, amount: Decimal, settlement_date: date) -> None:
        if entry.entry_type not in SETTLEABLE_TYPES:
            raise InvalidStateError(
                "Only Credit and Advance entries can be settled",
                details={"entry_id": entry.id, "entry_type": entry.entry_type.value}
            )

        remaining = Decimal(entry.remaining_amount)
        if entry.settled or remaining <= 0:
            raise InvalidStateError("Entry is already settled", details={"entry_id": entry.id})

        if amount > remaining:
            raise InvalidStateError(
                f"Settlement amount {amount} exceeds remaining balance {remaining}",
                details={"entry_id": entry.id, "remaining_amount": str(remaining), "amount": str(amount)}
            )

        if settlement_date < entry.entry_date:
            raise ValidationError(
                "Settlement date cannot be before the entry date",
                details={"field": "settlement_date", "entry_date": entry.entry_date.isoformat()}
            )

    @staticmethod
    async def _replay(reader, record: SettlementRecord, owner_id: int, entry_id: int, amount: Decimal) -> SettlementOutcome:
        """Outcome of an earlier call with the same idempotency key."""
        if record.entry_id != entry_id or Decimal(record.amount) != amount:
            raise InvalidStateError(
                "Idempotency key was already used for a different settlement",
                details={"idempotency_key": record.idempotency_key, "entry_id": record.entry_id}
            )

        entry = await reader.get_entry(record.entry_id, owner_id)
        if entry is None:
            raise NotFoundError("Entry", entry_id)
        derived = None
        if record.derived_entry_id is not None:
            derived = await reader.get_entry(record.derived_entry_id, owner_id)

        logger.info(
            "Settlement replayed",
            extra={"owner_id": owner_id, "entry_id": entry_id, "settlement_record_id": record.id}
        )
        return SettlementOutcome(entry=entry, record=record, derived_entry=derived, replayed=True)

    async def _ledger_changed(self, owner_id: int) -> None:
        if self.cache is not None:
            await self.cache.bump_version(owner_id)
