"""
Party service: customers and vendors, and what is outstanding with each.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from ledger_backend.app.core.exceptions import NotFoundError, InvalidStateError, ValidationError
from ledger_backend.app.domain.ledger.classification import PendingKind, pending_kind
from ledger_backend.app.domain.settlement.ledger_store import LedgerStore, LedgerTransaction
from ledger_backend.app.models.party import Party
from ledger_backend.app.schemas.party import PartyCreate, PartyUpdate, PartyBalanceResponse
from ledger_backend.app.services.audit import AuditAction

logger = logging.getLogger("ledger.parties")

ZERO = Decimal("0.00")


class PartyService:

    def __init__(self, store: LedgerStore, cache=None):
        self.store = store
        self.cache = cache

    async def create_party(
        self,
        owner_id: int,
        data: PartyCreate,
        correlation_id: Optional[str] = None
    ) -> Party:
        name = data.name.strip()
        if not name:
            raise ValidationError("Party name is required", details={"field": "name"})

        async def apply(txn: LedgerTransaction) -> Party:
            if await txn.find_party_by_name(owner_id, name) is not None:
                raise InvalidStateError("A party with this name already exists", details={"name": name})

            party = Party(
                owner_id=owner_id,
                name=name,
                mobile=data.mobile,
                party_type=data.party_type,
                opening_balance=data.opening_balance,
            )
            await txn.add_party(party)
            await txn.audit(
                AuditAction.PARTY_CREATED,
                owner_id=owner_id,
                metadata={"party_id": party.id, "name": name},
                correlation_id=correlation_id
            )
            return party

        party = await self.store.run_transaction(apply)
        logger.info("Party created", extra={"owner_id": owner_id, "party_id": party.id})
        return party

    async def list_parties(self, owner_id: int) -> List[Party]:
        return await self.store.list_parties(owner_id)

    async def get_party(self, owner_id: int, party_id: int) -> Party:
        party = await self.store.get_party(party_id, owner_id)
        if party is None:
            raise NotFoundError("Party", party_id)
        return party

    async def update_party(
        self,
        owner_id: int,
        party_id: int,
        data: PartyUpdate,
        correlation_id: Optional[str] = None
    ) -> Party:
        changes = data.model_dump(exclude_unset=True)
        if "name" in changes:
            changes["name"] = (changes["name"] or "").strip()
            if not changes["name"]:
                raise ValidationError("Party name cannot be empty", details={"field": "name"})
        for field in ("party_type", "opening_balance"):
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be empty", details={"field": field})
        if "mobile" in changes:
            changes["mobile"] = (changes["mobile"] or "").strip() or None

        async def apply(txn: LedgerTransaction) -> Party:
            party = await txn.get_party(party_id, owner_id)
            if party is None:
                raise NotFoundError("Party", party_id)

            name = changes.get("name")
            if name is not None and name != party.name:
                if await txn.find_party_by_name(owner_id, name) is not None:
                    raise InvalidStateError("A party with this name already exists", details={"name": name})

            if not changes:
                return party
            await txn.update_party(party, changes)
            await txn.audit(
                AuditAction.PARTY_UPDATED,
                owner_id=owner_id,
                metadata={"party_id": party_id, "fields": sorted(changes)},
                correlation_id=correlation_id
            )
            return party

        party = await self.store.run_transaction(apply)
        if changes:
            await self._ledger_changed(owner_id)
        logger.info("Party updated", extra={"owner_id": owner_id, "party_id": party_id})
        return party

    async def delete_party(self, owner_id: int, party_id: int, correlation_id: Optional[str] = None) -> None:
        """
        Delete a party. Its entries stay in the ledger without a party.
        """
        async def apply(txn: LedgerTransaction) -> None:
            party = await txn.get_party(party_id, owner_id)
            if party is None:
                raise NotFoundError("Party", party_id)
            name = party.name
            await txn.delete_party(party_id)
            await txn.audit(
                AuditAction.PARTY_DELETED,
                owner_id=owner_id,
                metadata={"party_id": party_id, "name": name},
                correlation_id=correlation_id
            )

        await self.store.run_transaction(apply)
        await self._ledger_changed(owner_id)
        logger.info("Party deleted", extra={"owner_id": owner_id, "party_id": party_id})

    async def get_balance(self, owner_id: int, party_id: int) -> PartyBalanceResponse:
        """
        Net position with a party.

        Positive means the party owes the owner:
        opening + receivable - payable - advances received + advances paid
        """
        party = await self.store.get_party(party_id, owner_id)
        if party is None:
            raise NotFoundError("Party", party_id)

        totals = {kind: ZERO for kind in PendingKind}
        for entry in await self.store.list_party_entries(owner_id, party_id):
            kind = pending_kind(entry)
            if kind is not None:
                totals[kind] += Decimal(entry.remaining_amount)

        opening = Decimal(party.opening_balance or 0)
        balance = (
            opening
            + totals[PendingKind.COLLECTION]
            - totals[PendingKind.BILL]
            - totals[PendingKind.ADVANCE_RECEIVED]
            + totals[PendingKind.ADVANCE_PAID]
        )

        return PartyBalanceResponse(
            party_id=party.id,
            opening_balance=opening,
            receivable=totals[PendingKind.COLLECTION],
            payable=totals[PendingKind.BILL],
            advances_received=totals[PendingKind.ADVANCE_RECEIVED],
            advances_paid=totals[PendingKind.ADVANCE_PAID],
            balance=balance,
        )

    async def _ledger_changed(self, owner_id: int) -> None:
        # reports break pending totals down by party
        if self.cache is not None:
            await self.cache.bump_version(owner_id)
