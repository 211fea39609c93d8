"""
Tests for stealing, vault robbery and the big heist event.
"""

import asyncio

import pytest

from utils.ledger import Ledger
from utils.results import Failure
from utils.theft import (BOOTS, GLOVES, MASTER_KEY, STEAL_COOLDOWN_MS, HeistEvent, HeistState, Theft,
                         pick_fine_percent)
from utils.vault import VAULT_ID


async def give_item(session_maker, user_id, item, count=1):
    async with session_maker() as sess:
        async with sess.begin():
            await Ledger.add_item(sess, user_id, item, count)


async def item_count(session_maker, user_id, item):
    async with session_maker() as sess:
        async with sess.begin():
            return await Ledger.item_count(sess, user_id, item)


class TestSteal:

    @pytest.mark.asyncio
    async def test_successful_steal(self, session, fund, fetch, stub_rng):
        await fund('thief')
        await fund('victim', wallet=10_000)

        result = await Theft.steal(session, 'thief', 't', 'victim', 'v', 5000, rng=stub_rng(0.0))

        assert result.ok
        assert result.value.stolen == 5000
        thief, victim = await fetch('thief'), await fetch('victim')
        assert thief.wallet == 5000
        assert victim.wallet == 5000
        assert thief.last_steal > 0

    @pytest.mark.asyncio
    async def test_take_is_capped_at_seventy_percent(self, session, fund, stub_rng):
        await fund('thief')
        await fund('victim', wallet=10_000)
        result = await Theft.steal(session, 'thief', 't', 'victim', 'v', 9000, rng=stub_rng(0.0))
        assert result.value.stolen == 7000

    @pytest.mark.asyncio
    async def test_failed_steal_pays_fine(self, session, fund, fetch, stub_rng):
        await fund('thief', wallet=10_000)
        await fund('victim', wallet=10_000)

        result = await Theft.steal(session, 'thief', 't', 'victim', 'v', 1000, rng=stub_rng(0.99, 0.1))

        outcome = result.value
        assert not outcome.success
        assert outcome.fine == 55
        assert outcome.victim_compensation == 1
        assert outcome.vault_share == 54
        assert (await fetch('thief')).wallet == 9945
        assert (await fetch('victim')).wallet == 10_001
        assert (await fetch(VAULT_ID)).wallet == 54

    @pytest.mark.asyncio
    async def test_boots_halve_the_fine(self, session, session_maker, fund, stub_rng):
        await fund('thief', wallet=10_000)
        await fund('victim', wallet=10_000)
        await give_item(session_maker, 'thief', BOOTS)

        result = await Theft.steal(session, 'thief', 't', 'victim', 'v', 1000, rng=stub_rng(0.99, 0.1))
        assert result.value.fine == 27

    @pytest.mark.asyncio
    async def test_gloves_raise_success_chance(self, session, session_maker, fund, stub_rng):
        await fund('thief')
        await fund('victim', wallet=10_000)
        await fund('other')
        await give_item(session_maker, 'thief', GLOVES)

        with_gloves = await Theft.steal(session, 'thief', 't', 'victim', 'v', 100, rng=stub_rng(0.32))
        without = await Theft.steal(session, 'other', 'o', 'victim', 'v', 100, rng=stub_rng(0.32, 0.0))
        assert with_gloves.value.success
        assert not without.value.success

    @pytest.mark.asyncio
    async def test_rejections(self, session, fund):
        await fund('thief')
        await fund('broke')
        assert (await Theft.steal(session, 'thief', 't', 'thief', 't', 10)).reason is Failure.INVALID_TARGET
        assert (await Theft.steal(session, 'thief', 't', VAULT_ID, 'v', 10)).reason is Failure.INVALID_TARGET
        assert (await Theft.steal(session, 'thief', 't', 'broke', 'b', 10)).reason is Failure.INSUFFICIENT_FUNDS
        assert (await Theft.steal(session, 'thief', 't', 'broke', 'b', 0)).reason is Failure.INVALID_AMOUNT

    @pytest.mark.asyncio
    async def test_cooldown(self, session, fund, stub_rng):
        await fund('thief')
        await fund('victim', wallet=10_000)
        await Theft.steal(session, 'thief', 't', 'victim', 'v', 100, rng=stub_rng(0.0))

        again = await Theft.steal(session, 'thief', 't', 'victim', 'v', 100, rng=stub_rng(0.0))
        assert again.reason is Failure.COOLDOWN_ACTIVE
        assert 'retry_at' in again.detail

    @pytest.mark.asyncio
    async def test_concurrent_attempts_apply_once(self, session_maker, fund, fetch, stub_rng):
        await fund('thief')
        await fund('victim', wallet=10_000)

        async def attempt():
            async with session_maker() as sess:
                return await Theft.steal(sess, 'thief', 't', 'victim', 'v', 1000, rng=stub_rng(0.0))

        results = await asyncio.gather(attempt(), attempt())

        assert sorted(r.ok for r in results) == [False, True]
        assert [r.reason for r in results if not r.ok] == [Failure.COOLDOWN_ACTIVE]
        assert (await fetch('victim')).wallet == 9000
        assert (await fetch('thief')).wallet == 1000

    @pytest.mark.asyncio
    async def test_cooldown_expires(self, session, fund, stub_rng):
        from utils.ledger import now_ms
        await fund('thief', last_steal=now_ms() - STEAL_COOLDOWN_MS - 1)
        await fund('victim', wallet=10_000)
        result = await Theft.steal(session, 'thief', 't', 'victim', 'v', 100, rng=stub_rng(0.0))
        assert result.ok

    def test_fine_brackets(self, stub_rng):
        assert pick_fine_percent(stub_rng(0.0)) == 0.055
        assert pick_fine_percent(stub_rng(0.6)) == 0.10
        assert pick_fine_percent(stub_rng(0.85)) == 0.15
        assert pick_fine_percent(stub_rng(0.99)) == 0.20


class TestVaultRob:

    @pytest.mark.asyncio
    async def test_vault_too_small(self, session, fund):
        await fund(VAULT_ID, wallet=9_999)
        result = await Theft.rob_vault(session, '1', 'alice')
        assert result.reason is Failure.VAULT_EMPTY

    @pytest.mark.asyncio
    async def test_success_takes_percentage(self, session, fund, fetch, stub_rng):
        await fund(VAULT_ID, wallet=100_000)
        result = await Theft.rob_vault(session, '1', 'alice', rng=stub_rng(0.0, 0.0))

        assert result.value.success
        assert result.value.gained == 10_000
        assert not result.value.key_used
        assert (await fetch('1')).wallet == 10_000
        assert (await fetch(VAULT_ID)).wallet == 90_000

    @pytest.mark.asyncio
    async def test_master_key_doubles_and_is_consumed(self, session, session_maker, fund, stub_rng):
        await fund(VAULT_ID, wallet=100_000)
        await fund('1')
        await give_item(session_maker, '1', MASTER_KEY, 2)

        result = await Theft.rob_vault(session, '1', 'alice', rng=stub_rng(0.0, 0.0))

        assert result.value.gained == 20_000
        assert result.value.key_used
        assert await item_count(session_maker, '1', MASTER_KEY) == 1

    @pytest.mark.asyncio
    async def test_failure_fine_goes_to_vault(self, session, fund, fetch, stub_rng):
        await fund(VAULT_ID, wallet=100_000)
        await fund('1', wallet=1000)

        result = await Theft.rob_vault(session, '1', 'alice', rng=stub_rng(0.5))

        assert not result.value.success
        assert result.value.fine == 150
        assert (await fetch('1')).wallet == 850
        assert (await fetch(VAULT_ID)).wallet == 100_150

    @pytest.mark.asyncio
    async def test_cooldown(self, session, fund, stub_rng):
        await fund(VAULT_ID, wallet=100_000)
        await Theft.rob_vault(session, '1', 'alice', rng=stub_rng(0.5))
        again = await Theft.rob_vault(session, '1', 'alice', rng=stub_rng(0.0, 0.0))
        assert again.reason is Failure.COOLDOWN_ACTIVE

    @pytest.mark.asyncio
    async def test_big_heist_odds(self, session, fund, stub_rng):
        await fund(VAULT_ID, wallet=100_000)
        await fund('2')
        normal = await Theft.rob_vault(session, '1', 'alice', rng=stub_rng(0.05))
        boosted = await Theft.rob_vault(session, '2', 'bob', big_heist=True, rng=stub_rng(0.05, 0.0))
        assert not normal.value.success
        assert boosted.value.success
        assert boosted.value.gained == 20_000


class TestHeistEvent:

    @pytest.mark.asyncio
    async def test_lifecycle(self, stub_rng):
        now = [1000.0]
        event = HeistEvent(cooldown=100, chance=0.5, duration=60, clock=lambda: now[0])

        assert not event.maybe_trigger(stub_rng(0.9))
        assert event.maybe_trigger(stub_rng(0.1))
        assert event.active
        assert not event.maybe_trigger(stub_rng(0.0))

        event.expire()
        assert event.state is HeistState.EXPIRED
        now[0] += 50
        assert not event.maybe_trigger(stub_rng(0.0))
        now[0] += 51
        assert event.maybe_trigger(stub_rng(0.0))
        event.expire()

    @pytest.mark.asyncio
    async def test_abort_rearms(self):
        event = HeistEvent()
        event.activate()
        event.abort()
        assert event.state is HeistState.ARMED
        assert not event.active

    @pytest.mark.asyncio
    async def test_claim_once_per_announcement(self, session_maker, fund, fetch, stub_rng):
        await fund(VAULT_ID, wallet=100_000)
        event = HeistEvent()
        event.activate()
        try:
            async with session_maker() as sess:
                first = await Theft.claim_big_heist(sess, event, 777, '1', 'alice', rng=stub_rng(0.0))
            async with session_maker() as sess:
                second = await Theft.claim_big_heist(sess, event, 777, '2', 'bob', rng=stub_rng(0.0))
        finally:
            event.expire()

        assert first.value.gained == 20_000
        assert second.reason is Failure.RACE_LOST
        assert (await fetch('1')).wallet == 20_000
        assert (await fetch(VAULT_ID)).wallet == 80_000

    @pytest.mark.asyncio
    async def test_claim_after_expiry(self, session, fund):
        await fund(VAULT_ID, wallet=100_000)
        event = HeistEvent()
        result = await Theft.claim_big_heist(session, event, 1, '1', 'alice')
        assert result.reason is Failure.EXPIRED
