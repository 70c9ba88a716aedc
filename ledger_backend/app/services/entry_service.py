"""
Entry service.

Records, edits and deletes ledger entries. Settlement state is never set
from input: every entry starts unsettled with its full amount remaining.
"""

import logging
from typing import Optional

from ledger_backend.app.core.exceptions import NotFoundError, InvalidStateError, ValidationError
from ledger_backend.app.domain.ledger.validation import validate_amount, validate_ledger_date
from ledger_backend.app.domain.settlement.ledger_store import LedgerStore, LedgerTransaction
from ledger_backend.app.models.ledger_entry import LedgerEntry
from ledger_backend.app.models.ledger_enums import SETTLEABLE_TYPES
from ledger_backend.app.schemas.ledger import EntryCreate, EntryUpdate
from ledger_backend.app.services.audit import AuditAction

logger = logging.getLogger("ledger.entries")


class EntryService:

    def __init__(self, store: LedgerStore, cache=None):
        self.store = store
        self.cache = cache

    async def create_entry(
        self,
        owner_id: int,
        data: EntryCreate,
        correlation_id: Optional[str] = None
    ) -> LedgerEntry:
        """
        Validate and record a new entry.

        Raises:
            ValidationError: Bad amount or date
            NotFoundError: party_id does not belong to the owner
        """
        amount = validate_amount(data.amount)
        entry_date = validate_ledger_date(data.entry_date)

        async def apply(txn: LedgerTransaction) -> LedgerEntry:
            if data.party_id is not None:
                party = await txn.get_party(data.party_id, owner_id)
                if party is None:
                    raise NotFoundError("Party", data.party_id)

            entry = LedgerEntry(
                owner_id=owner_id,
                entry_type=data.entry_type,
                category=data.category,
                payment_method=data.payment_method,
                amount=amount,
                remaining_amount=amount,
                entry_date=entry_date,
                settled=False,
                settled_at=None,
                notes=data.notes,
                party_id=data.party_id,
                source_entry_id=None,
            )
            await txn.add_entry(entry)

            await txn.audit(
                AuditAction.ENTRY_CREATED,
                owner_id=owner_id,
                entry_id=entry.id,
                metadata={
                    "entry_type": entry.entry_type.value,
                    "category": entry.category.value,
                    "amount": str(amount),
                },
                correlation_id=correlation_id
            )
            return entry

        entry = await self.store.run_transaction(apply)

        if self.cache is not None:
            await self.cache.bump_version(owner_id)

        logger.info(
            "Entry created",
            extra={"owner_id": owner_id, "entry_id": entry.id, "entry_type": entry.entry_type.value}
        )
        return entry

    async def get_entry(self, owner_id: int, entry_id: int) -> LedgerEntry:
        entry = await self.store.get_entry(entry_id, owner_id)
        if entry is None:
            raise NotFoundError("Entry", entry_id)
        return entry

    async def update_entry(
        self,
        owner_id: int,
        entry_id: int,
        data: EntryUpdate,
        correlation_id: Optional[str] = None
    ) -> LedgerEntry:
        """
        Apply the fields set on `data` to an entry.

        Amount and date are frozen once a settlement has touched the entry;
        the settlement has to be reversed first. Settlement-derived entries
        belong to their source entry and are never edited directly.

        Raises:
            ValidationError: Bad amount or date
            NotFoundError: Entry or party does not belong to the owner
            InvalidStateError: Entry is settlement-derived or has settlements applied
        """
        changes = data.model_dump(exclude_unset=True)
        if "amount" in changes:
            if changes["amount"] is None:
                raise ValidationError("amount cannot be empty", details={"field": "amount"})
            changes["amount"] = validate_amount(changes["amount"])
        if "entry_date" in changes:
            if changes["entry_date"] is None:
                raise ValidationError("entry_date cannot be empty", details={"field": "entry_date"})
            changes["entry_date"] = validate_ledger_date(changes["entry_date"])

        async def apply(txn: LedgerTransaction) -> LedgerEntry:
            entry = await txn.lock_and_read(entry_id, owner_id)
            if entry is None:
                raise NotFoundError("Entry", entry_id)
            if entry.source_entry_id is not None:
                raise InvalidStateError(
                    "Settlement entries change only through their source entry",
                    details={"entry_id": entry_id, "source_entry_id": entry.source_entry_id}
                )

            if ("amount" in changes or "entry_date" in changes) and await self._has_settlements(txn, entry):
                raise InvalidStateError(
                    "Reverse the settlement before changing amount or date",
                    details={"entry_id": entry_id}
                )

            if changes.get("party_id") is not None:
                if await txn.get_party(changes["party_id"], owner_id) is None:
                    raise NotFoundError("Party", changes["party_id"])

            patch = dict(changes)
            if "amount" in patch:
                patch["remaining_amount"] = patch["amount"]
            if not patch:
                return entry

            updated = await txn.update_entry(entry.id, patch)
            await txn.audit(
                AuditAction.ENTRY_UPDATED,
                owner_id=owner_id,
                entry_id=entry.id,
                metadata={"fields": sorted(changes)},
                correlation_id=correlation_id
            )
            return updated

        entry = await self.store.run_transaction(apply)

        if changes and self.cache is not None:
            await self.cache.bump_version(owner_id)

        logger.info(
            "Entry updated",
            extra={"owner_id": owner_id, "entry_id": entry_id, "fields": sorted(changes)}
        )
        return entry

    async def delete_entry(
        self,
        owner_id: int,
        entry_id: int,
        correlation_id: Optional[str] = None
    ) -> None:
        """
        Delete an entry that no settlement depends on.

        Derived entries go away by reversing their source's settlement, and
        an entry with settlements applied has to be reversed first. Its
        reversed settlement history is dropped with it.
        """
        async def apply(txn: LedgerTransaction) -> None:
            entry = await txn.lock_and_read(entry_id, owner_id)
            if entry is None:
                raise NotFoundError("Entry", entry_id)
            if entry.source_entry_id is not None:
                raise InvalidStateError(
                    "Settlement entries are removed by reversing the settlement of their source entry",
                    details={"entry_id": entry_id, "source_entry_id": entry.source_entry_id}
                )
            if await self._has_settlements(txn, entry):
                raise InvalidStateError(
                    "Reverse the settlement before deleting the entry",
                    details={"entry_id": entry_id}
                )

            metadata = {
                "entry_type": entry.entry_type.value,
                "category": entry.category.value,
                "amount": str(entry.amount),
            }
            await txn.purge_settlement_records(owner_id, entry_id)
            await txn.delete_entry(entry_id)
            await txn.audit(
                AuditAction.ENTRY_DELETED,
                owner_id=owner_id,
                entry_id=entry_id,
                metadata=metadata,
                correlation_id=correlation_id
            )

        await self.store.run_transaction(apply)

        if self.cache is not None:
            await self.cache.bump_version(owner_id)

        logger.info("Entry deleted", extra={"owner_id": owner_id, "entry_id": entry_id})

    @staticmethod
    async def _has_settlements(txn: LedgerTransaction, entry: LedgerEntry) -> bool:
        if entry.entry_type not in SETTLEABLE_TYPES:
            return False
        if entry.settled or entry.remaining_amount != entry.amount:
            return True
        if await txn.derived_entries(entry.id, entry.owner_id):
            return True
        return await txn.count_open_settlements(entry.owner_id, entry.id) > 0
