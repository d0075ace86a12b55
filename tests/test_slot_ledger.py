"""Tests for the slot claim ledger."""

import asyncio
from datetime import date
from uuid import uuid4

import pytest
from conftest import DOCTOR_ID, HOSPITAL_ID, upcoming
from sqlalchemy import func, select

from carebook.models.slot_claims import slot_claims
from carebook.services.slot_ledger import ClaimOutcome, SlotKey, SlotLedger


@pytest.fixture
def ledger() -> SlotLedger:
    """Ledger under test."""
    return SlotLedger()


@pytest.fixture
def day() -> date:
    """A future Monday."""
    return upcoming(0)


def test_slot_key_build_normalizes_time():
    """Equivalent spellings of a time map to the same key."""
    key = SlotKey.build("doc-1", date(2026, 10, 19), "9:00 AM")

    assert key == SlotKey.build("doc-1", date(2026, 10, 19), "09-00")
    assert key.time == "09:00"
    assert key.id == "doc-1_2026-10-19_09-00"


def test_slot_key_build_rejects_bad_time():
    """A time that cannot be normalized is refused."""
    with pytest.raises(ValueError):
        SlotKey.build("doc-1", date(2026, 10, 19), "after lunch")


@pytest.mark.asyncio
async def test_second_claim_conflicts_with_first_holder(session_factory, ledger, day):
    """Once claimed, a slot reports its holder to later claimants."""
    key = SlotKey(DOCTOR_ID, day, "09:00")
    first, second = uuid4(), uuid4()

    async with session_factory() as session:
        result = await ledger.try_claim(session, key, first, HOSPITAL_ID)
        await session.commit()
    assert result.ok

    async with session_factory() as session:
        result = await ledger.try_claim(session, key, second, HOSPITAL_ID)
        await session.commit()

    assert result.outcome == ClaimOutcome.CONFLICT
    assert result.holder == first


@pytest.mark.asyncio
async def test_concurrent_claims_have_exactly_one_winner(session_factory, ledger, day):
    """Racing claims on one slot yield a single CLAIMED."""
    key = SlotKey(DOCTOR_ID, day, "10:30")

    async def attempt():
        async with session_factory() as session:
            result = await ledger.try_claim(session, key, uuid4(), HOSPITAL_ID)
            await session.commit()
            return result

    results = await asyncio.gather(*(attempt() for _ in range(8)))

    winners = [result for result in results if result.ok]
    assert len(winners) == 1
    assert all(result.outcome == ClaimOutcome.CONFLICT for result in results if not result.ok)

    async with session_factory() as session:
        count = await session.scalar(select(func.count()).select_from(slot_claims))
    assert count == 1


@pytest.mark.asyncio
async def test_conflict_leaves_transaction_usable(session_factory, ledger, day):
    """A lost claim only rolls back its savepoint."""
    taken = SlotKey(DOCTOR_ID, day, "11:00")
    free = SlotKey(DOCTOR_ID, day, "11:15")

    async with session_factory() as session:
        await ledger.try_claim(session, taken, uuid4())
        await session.commit()

    async with session_factory() as session:
        appointment_id = uuid4()
        assert not (await ledger.try_claim(session, taken, appointment_id)).ok
        assert (await ledger.try_claim(session, free, appointment_id)).ok
        await session.commit()

        assert await ledger.holder_of(session, free) == appointment_id


@pytest.mark.asyncio
async def test_move_claim_frees_old_slot(session_factory, ledger, day):
    """Moving releases the old key and takes the new one."""
    old = SlotKey(DOCTOR_ID, day, "09:00")
    new = SlotKey(DOCTOR_ID, day, "09:45")
    appointment_id = uuid4()

    async with session_factory() as session:
        await ledger.try_claim(session, old, appointment_id)
        result = await ledger.move_claim(session, old, new, appointment_id)
        await session.commit()

        assert result.ok
        assert await ledger.get_claim(session, old) is None
        assert await ledger.holder_of(session, new) == appointment_id


@pytest.mark.asyncio
async def test_move_to_taken_slot_keeps_original_claim(session_factory, ledger, day):
    """A failed move changes nothing."""
    mine = SlotKey(DOCTOR_ID, day, "14:00")
    theirs = SlotKey(DOCTOR_ID, day, "14:15")
    me, them = uuid4(), uuid4()

    async with session_factory() as session:
        await ledger.try_claim(session, mine, me)
        await ledger.try_claim(session, theirs, them)
        await session.commit()

        result = await ledger.move_claim(session, mine, theirs, me)
        await session.commit()

        assert result.outcome == ClaimOutcome.CONFLICT
        assert result.holder == them
        assert await ledger.holder_of(session, mine) == me
        assert await ledger.holder_of(session, theirs) == them


@pytest.mark.asyncio
async def test_move_to_same_slot_is_a_no_op(session_factory, ledger, day):
    """Re-saving the current slot succeeds for the holder only."""
    key = SlotKey(DOCTOR_ID, day, "15:00")
    holder, stranger = uuid4(), uuid4()

    async with session_factory() as session:
        await ledger.try_claim(session, key, holder)
        await session.commit()

        assert (await ledger.move_claim(session, key, key, holder)).ok
        assert not (await ledger.move_claim(session, key, key, stranger)).ok
        await session.commit()


@pytest.mark.asyncio
async def test_release_only_by_owner(session_factory, ledger, day):
    """Another appointment cannot release a claim it does not own."""
    key = SlotKey(DOCTOR_ID, day, "16:00")
    owner = uuid4()

    async with session_factory() as session:
        await ledger.try_claim(session, key, owner)
        await session.commit()

        assert await ledger.release(session, key, uuid4()) is False
        assert await ledger.holder_of(session, key) == owner

        assert await ledger.release(session, key, owner) is True
        await session.commit()

        assert await ledger.get_claim(session, key) is None
        assert await ledger.release(session, key, owner) is False
