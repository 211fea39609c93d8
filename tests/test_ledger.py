"""
Tests for the account store and the guarded-update primitive.
"""

import asyncio

import pytest
from sqlalchemy import func, select

from models import INITIAL_BANK_LIMIT, Account
from utils.ledger import BalanceField, Ledger
from utils.results import Failure, GuardFailed


class TestEnsure:

    @pytest.mark.asyncio
    async def test_creates_with_defaults(self, session):
        async with session.begin():
            account = await Ledger.ensure(session, '1', 'alice')

        assert account.username == 'alice'
        assert account.wallet == 0
        assert account.bank == 0
        assert account.bank_limit == INITIAL_BANK_LIMIT
        assert account.xp_multiplier == 1.0
        assert account.coin_multiplier == 1.0

    @pytest.mark.asyncio
    async def test_updates_name_keeps_balances(self, session, fund):
        await fund('1', wallet=500)
        async with session.begin():
            account = await Ledger.ensure(session, '1', 'renamed')
        assert account.username == 'renamed'
        assert account.wallet == 500

        async with session.begin():
            account = await Ledger.ensure(session, '1', '')
        assert account.username == 'renamed'

    @pytest.mark.asyncio
    async def test_concurrent_ensure_creates_one_row(self, session_maker):
        async def ensure(name):
            async with session_maker() as sess:
                async with sess.begin():
                    await Ledger.ensure(sess, '42', name)

        await asyncio.gather(*(ensure(f"name{i}") for i in range(8)))

        async with session_maker() as sess:
            count = (await sess.execute(select(func.count()).select_from(Account))).scalar_one()
        assert count == 1


class TestGuardedUpdates:

    @pytest.mark.asyncio
    async def test_debit_applies_when_covered(self, session, fund):
        await fund('1', wallet=100)
        async with session.begin():
            account = await Ledger.debit(session, '1', BalanceField.WALLET, 100)
        assert account.wallet == 0

    @pytest.mark.asyncio
    async def test_debit_not_applied_when_short(self, session, fund, fetch):
        await fund('1', wallet=99)
        async with session.begin():
            account = await Ledger.debit(session, '1', BalanceField.WALLET, 100)
        assert account is None
        assert (await fetch('1')).wallet == 99

    @pytest.mark.asyncio
    async def test_bank_credit_respects_limit(self, session, fund, fetch):
        await fund('1', bank=INITIAL_BANK_LIMIT - 10)
        async with session.begin():
            assert await Ledger.credit(session, '1', BalanceField.BANK, 11) is None
            account = await Ledger.credit(session, '1', BalanceField.BANK, 10)
        assert account.bank == INITIAL_BANK_LIMIT

    @pytest.mark.asyncio
    async def test_extra_guards_and_values(self, session, fund):
        await fund('1', wallet=1000)
        async with session.begin():
            blocked = await Ledger.debit(session, '1', BalanceField.WALLET, 10, Account.level >= 5, level=9)
            applied = await Ledger.debit(session, '1', BalanceField.WALLET, 10, Account.level == 1, level=2)
        assert blocked is None
        assert applied.wallet == 990
        assert applied.level == 2

    @pytest.mark.asyncio
    async def test_missing_row_is_not_applied(self, session):
        async with session.begin():
            assert await Ledger.apply_if(session, 'ghost', wallet=5) is None

    @pytest.mark.asyncio
    async def test_lock_pair_returns_argument_order(self, session, fund):
        await fund('9', wallet=9)
        await fund('1', wallet=1)
        async with session.begin():
            first, second = await Ledger.lock_pair(session, '9', '1')
        assert (first.user_id, second.user_id) == ('9', '1')

    @pytest.mark.asyncio
    async def test_lock_pair_missing_account(self, session, fund):
        await fund('1')
        with pytest.raises(GuardFailed) as exc:
            async with session.begin():
                await Ledger.lock_pair(session, '1', '2')
        assert exc.value.reason is Failure.NOT_FOUND

    @pytest.mark.asyncio
    async def test_failed_unit_rolls_back_everything(self, session, fund, fetch):
        await fund('1', wallet=100)
        with pytest.raises(GuardFailed):
            async with session.begin():
                await Ledger.debit(session, '1', BalanceField.WALLET, 60)
                raise GuardFailed(Failure.RACE_LOST)
        assert (await fetch('1')).wallet == 100

    def test_balance_field_allow_list(self):
        assert BalanceField.parse('Wallet') is BalanceField.WALLET
        assert BalanceField.parse('money') is BalanceField.WALLET
        assert BalanceField.parse(' bank ') is BalanceField.BANK
        with pytest.raises(ValueError):
            BalanceField.parse('bank_limit')


class TestInventory:

    @pytest.mark.asyncio
    async def test_add_item_respects_cap(self, session, fund):
        await fund('1')
        async with session.begin():
            assert await Ledger.add_item(session, '1', 'gloves', 1, max_count=1) == 1
            assert await Ledger.add_item(session, '1', 'gloves', 1, max_count=1) is None
            assert await Ledger.item_count(session, '1', 'gloves') == 1

    @pytest.mark.asyncio
    async def test_stack_items_accumulate_and_consume(self, session, fund):
        await fund('1')
        async with session.begin():
            await Ledger.add_item(session, '1', 'master_key', 3)
            await Ledger.add_item(session, '1', 'master_key', 2)
            assert await Ledger.consume_item(session, '1', 'master_key', 4)
            assert not await Ledger.consume_item(session, '1', 'master_key', 2)
            assert await Ledger.items(session, '1') == {'master_key': 1}
