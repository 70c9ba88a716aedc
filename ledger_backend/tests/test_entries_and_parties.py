"""
Entry editing / deletion and party maintenance.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from ledger_backend.app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from ledger_backend.app.domain.ledger.periods import ALL_TIME
from ledger_backend.app.domain.settlement.ledger_store import LedgerTransaction
from ledger_backend.app.models.ledger_enums import EntryType, Category, PaymentMethod, PartyType
from ledger_backend.app.schemas.ledger import EntryUpdate
from ledger_backend.app.schemas.party import PartyCreate, PartyUpdate
from ledger_backend.app.services.audit import get_audit_trail, AuditAction

OWNER_ID = 1
OTHER_OWNER_ID = 2
TODAY = date.today()
YESTERDAY = TODAY - timedelta(days=1)


# Entries

@pytest.mark.asyncio
async def test_update_open_entry(make_entry, entry_service, report_service):
    entry = await make_entry(amount=Decimal("1000.00"))

    updated = await entry_service.update_entry(
        OWNER_ID, entry.id, EntryUpdate(amount=Decimal("1200.00"), notes="Invoice 9", entry_date=YESTERDAY)
    )

    assert updated.amount == Decimal("1200.00")
    assert updated.remaining_amount == Decimal("1200.00")
    assert updated.entry_date == YESTERDAY
    assert updated.notes == "Invoice 9"
    assert updated.entry_type == EntryType.CREDIT

    cash = await report_service.cash_pulse(OWNER_ID, ALL_TIME)
    assert cash.pending_collections.total == Decimal("1200.00")


@pytest.mark.asyncio
async def test_update_only_touches_fields_sent(make_entry, entry_service):
    entry = await make_entry(payment_method=PaymentMethod.BANK, notes="keep me")

    updated = await entry_service.update_entry(OWNER_ID, entry.id, EntryUpdate(notes=None))

    assert updated.notes is None
    assert updated.payment_method == PaymentMethod.BANK
    assert updated.amount == entry.amount


@pytest.mark.asyncio
async def test_update_validates_input(make_entry, entry_service):
    entry = await make_entry()

    with pytest.raises(ValidationError):
        await entry_service.update_entry(OWNER_ID, entry.id, EntryUpdate(amount=Decimal("-1")))

    with pytest.raises(ValidationError):
        await entry_service.update_entry(OWNER_ID, entry.id, EntryUpdate(entry_date=TODAY + timedelta(days=1)))

    with pytest.raises(ValidationError):
        await entry_service.update_entry(OWNER_ID, entry.id, EntryUpdate(amount=None))


@pytest.mark.asyncio
async def test_amount_frozen_while_settlement_applied(make_entry, entry_service, settlement_service):
    entry = await make_entry(amount=Decimal("1000.00"))
    outcome = await settlement_service.settle(OWNER_ID, entry.id, Decimal("400.00"), YESTERDAY)

    with pytest.raises(InvalidStateError):
        await entry_service.update_entry(OWNER_ID, entry.id, EntryUpdate(amount=Decimal("900.00")))

    # notes stay editable
    updated = await entry_service.update_entry(OWNER_ID, entry.id, EntryUpdate(notes="part paid"))
    assert updated.notes == "part paid"
    assert updated.remaining_amount == Decimal("600.00")

    with pytest.raises(InvalidStateError):
        await entry_service.update_entry(OWNER_ID, outcome.derived_entry.id, EntryUpdate(notes="edited"))


@pytest.mark.asyncio
async def test_update_rejects_foreign_entry_and_party(make_entry, entry_service, party_service):
    entry = await make_entry()
    theirs = await party_service.create_party(
        OTHER_OWNER_ID, PartyCreate(name="Rival Co", party_type=PartyType.VENDOR)
    )

    with pytest.raises(NotFoundError):
        await entry_service.update_entry(OTHER_OWNER_ID, entry.id, EntryUpdate(notes="x"))

    with pytest.raises(NotFoundError):
        await entry_service.update_entry(OWNER_ID, entry.id, EntryUpdate(party_id=theirs.id))


@pytest.mark.asyncio
async def test_delete_entry(make_entry, entry_service, store, cache, db_session):
    entry = await make_entry()
    version_before = await cache.current_version(OWNER_ID)

    await entry_service.delete_entry(OWNER_ID, entry.id, correlation_id="req-del")

    assert await store.get_entry(entry.id, OWNER_ID) is None
    assert await cache.current_version(OWNER_ID) == version_before + 1
    trail = await get_audit_trail(db_session, OWNER_ID, entry_id=entry.id, action=AuditAction.ENTRY_DELETED)
    assert len(trail) == 1
    assert trail[0].correlation_id == "req-del"


@pytest.mark.asyncio
async def test_delete_refused_while_settlement_depends_on_entry(make_entry, entry_service, settlement_service, store):
    entry = await make_entry(amount=Decimal("500.00"))
    outcome = await settlement_service.settle(OWNER_ID, entry.id, Decimal("200.00"), YESTERDAY)

    with pytest.raises(InvalidStateError):
        await entry_service.delete_entry(OWNER_ID, entry.id)

    with pytest.raises(InvalidStateError):
        await entry_service.delete_entry(OWNER_ID, outcome.derived_entry.id)

    assert len(await store.list_entries(OWNER_ID)) == 2
    assert len(await store.list_settlement_records(OWNER_ID)) == 1


@pytest.mark.asyncio
async def test_partially_settled_advance_cannot_be_deleted(make_entry, entry_service, settlement_service):
    entry = await make_entry(
        entry_type=EntryType.ADVANCE, category=Category.OPEX,
        payment_method=PaymentMethod.CASH, amount=Decimal("300.00")
    )
    await settlement_service.settle(OWNER_ID, entry.id, Decimal("100.00"), YESTERDAY)

    with pytest.raises(InvalidStateError):
        await entry_service.delete_entry(OWNER_ID, entry.id)


@pytest.mark.asyncio
async def test_delete_after_reversal_drops_history(make_entry, entry_service, settlement_service, store):
    entry = await make_entry(amount=Decimal("250.00"))
    await settlement_service.settle(OWNER_ID, entry.id, Decimal("250.00"), YESTERDAY, idempotency_key="k-1")
    await settlement_service.reverse_settlement(OWNER_ID, entry.id)

    await entry_service.delete_entry(OWNER_ID, entry.id)

    assert await store.list_entries(OWNER_ID) == []
    assert await store.list_settlement_records(OWNER_ID, include_reversed=True) == []


@pytest.mark.asyncio
async def test_delete_other_owners_entry_is_not_found(make_entry, entry_service, store):
    entry = await make_entry()

    with pytest.raises(NotFoundError):
        await entry_service.delete_entry(OTHER_OWNER_ID, entry.id)

    assert await store.get_entry(entry.id, OWNER_ID) is not None


# Parties

@pytest.mark.asyncio
async def test_get_and_update_party(party_service, cache):
    party = await party_service.create_party(
        OWNER_ID, PartyCreate(name="Acme", party_type=PartyType.CUSTOMER, mobile="98450 00000")
    )
    version_before = await cache.current_version(OWNER_ID)

    updated = await party_service.update_party(
        OWNER_ID, party.id, PartyUpdate(name="  Acme Traders ", opening_balance=Decimal("75.00"))
    )

    assert updated.name == "Acme Traders"
    assert updated.opening_balance == Decimal("75.00")
    assert updated.mobile == "98450 00000"
    assert await cache.current_version(OWNER_ID) == version_before + 1

    fetched = await party_service.get_party(OWNER_ID, party.id)
    assert fetched.name == "Acme Traders"

    with pytest.raises(NotFoundError):
        await party_service.get_party(OTHER_OWNER_ID, party.id)


@pytest.mark.asyncio
async def test_update_party_rejects_taken_or_empty_name(party_service):
    await party_service.create_party(OWNER_ID, PartyCreate(name="Acme", party_type=PartyType.CUSTOMER))
    other = await party_service.create_party(OWNER_ID, PartyCreate(name="Bolt", party_type=PartyType.VENDOR))

    with pytest.raises(InvalidStateError):
        await party_service.update_party(OWNER_ID, other.id, PartyUpdate(name="Acme"))

    with pytest.raises(ValidationError):
        await party_service.update_party(OWNER_ID, other.id, PartyUpdate(name="   "))

    # renaming to its own name is a no-op, not a clash
    same = await party_service.update_party(OWNER_ID, other.id, PartyUpdate(name="Bolt"))
    assert same.name == "Bolt"


@pytest.mark.asyncio
async def test_delete_party_keeps_entries(party_service, make_entry, store, report_service):
    party = await party_service.create_party(OWNER_ID, PartyCreate(name="Acme", party_type=PartyType.CUSTOMER))
    entry = await make_entry(party_id=party.id)

    await party_service.delete_party(OWNER_ID, party.id)

    assert await store.get_party(party.id, OWNER_ID) is None
    reloaded = await store.get_entry(entry.id, OWNER_ID)
    assert reloaded.party_id is None

    cash = await report_service.cash_pulse(OWNER_ID, ALL_TIME)
    assert cash.pending_collections.total == Decimal("1000.00")

    with pytest.raises(NotFoundError):
        await party_service.delete_party(OWNER_ID, party.id)


@pytest.mark.asyncio
async def test_delete_other_owners_party_is_not_found(party_service, store):
    party = await party_service.create_party(OWNER_ID, PartyCreate(name="Acme", party_type=PartyType.CUSTOMER))

    with pytest.raises(NotFoundError):
        await party_service.delete_party(OTHER_OWNER_ID, party.id)

    assert await store.get_party(party.id, OWNER_ID) is not None


@pytest.mark.asyncio
async def test_duplicate_name_raced_past_check_is_invalid_state(party_service, store, mocker):
    """The unique constraint still answers with a 409 when the name check ran before a rival insert."""
    await party_service.create_party(OWNER_ID, PartyCreate(name="Acme", party_type=PartyType.CUSTOMER))
    mocker.patch.object(LedgerTransaction, "find_party_by_name", return_value=None)

    with pytest.raises(InvalidStateError) as exc_info:
        await party_service.create_party(OWNER_ID, PartyCreate(name="Acme", party_type=PartyType.VENDOR))

    assert exc_info.value.status_code == 409
    assert len(await store.list_parties(OWNER_ID)) == 1
