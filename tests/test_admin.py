"""
Tests for admin account edits.
"""

import pytest

from models import INITIAL_BANK_LIMIT
from utils.admin_tools import AdminTools, Cooldown, StatField
from utils.ledger import BalanceField, now_ms
from utils.results import Failure


class TestBalances:

    @pytest.mark.asyncio
    async def test_set_and_add_wallet(self, session, fetch):
        assert (await AdminTools.edit_balance(session, '1', 'wallet', 5000)).value.wallet == 5000
        assert (await AdminTools.edit_balance(session, '1', BalanceField.WALLET, -1000, add=True)).value.wallet == 4000
        assert (await fetch('1')).wallet == 4000

    @pytest.mark.asyncio
    async def test_add_cannot_go_negative(self, session, fund, fetch):
        await fund('1', wallet=50)
        result = await AdminTools.edit_balance(session, '1', 'wallet', -100, add=True)
        assert result.reason is Failure.INSUFFICIENT_FUNDS
        assert result.detail['balance'] == 50
        assert (await fetch('1')).wallet == 50

    @pytest.mark.asyncio
    async def test_bank_respects_limit(self, session, fund):
        await fund('1')
        result = await AdminTools.edit_balance(session, '1', 'bank', INITIAL_BANK_LIMIT + 1)
        assert result.reason is Failure.CAPACITY_EXCEEDED
        assert result.detail['space'] == INITIAL_BANK_LIMIT

        ok = await AdminTools.edit_balance(session, '1', 'bank', INITIAL_BANK_LIMIT)
        assert ok.value.bank == INITIAL_BANK_LIMIT

    @pytest.mark.asyncio
    async def test_rejects_other_columns_and_negative_set(self, session):
        assert (await AdminTools.edit_balance(session, '1', 'bank_limit', 5)).reason is Failure.INVALID_TARGET
        assert (await AdminTools.edit_balance(session, '1', 'wallet', -5)).reason is Failure.INVALID_AMOUNT


class TestStats:

    @pytest.mark.asyncio
    async def test_set_level(self, session):
        result = await AdminTools.edit_stat(session, '1', StatField.LEVEL, 10)
        assert result.value.level == 10

    @pytest.mark.asyncio
    async def test_floors(self, session, fund):
        await fund('1')
        assert (await AdminTools.edit_stat(session, '1', 'level', 0)).reason is Failure.INVALID_AMOUNT
        assert (await AdminTools.edit_stat(session, '1', 'xp', -5, add=True)).reason is Failure.INVALID_AMOUNT
        assert (await AdminTools.edit_stat(session, '1', 'wallet', 5)).reason is Failure.INVALID_TARGET
        assert (await AdminTools.edit_stat(session, '1', 'job_level', 2, add=True)).value.job_level == 3


class TestCooldownsAndMultipliers:

    @pytest.mark.asyncio
    async def test_reset_cooldown(self, session, fund):
        await fund('1', last_daily=now_ms())
        result = await AdminTools.reset_cooldown(session, '1', 'daily')
        assert result.value.last_daily == 0
        assert (await AdminTools.reset_cooldown(session, '1', Cooldown.STEAL)).ok
        assert (await AdminTools.reset_cooldown(session, '1', 'bogus')).reason is Failure.INVALID_TARGET

    @pytest.mark.asyncio
    async def test_multipliers_are_clamped(self, session):
        assert (await AdminTools.set_multipliers(session, '1', xp=50)).value.xp_multiplier == 10.0
        assert (await AdminTools.set_multipliers(session, '1', coin=0.05)).value.coin_multiplier == 0.1
        assert (await AdminTools.set_multipliers(session, '1', coin=1.234)).value.coin_multiplier == 1.23
        assert (await AdminTools.set_multipliers(session, '1')).reason is Failure.INVALID_AMOUNT
        assert (await AdminTools.set_multipliers(session, '1', xp=-1)).reason is Failure.INVALID_AMOUNT

        reset = (await AdminTools.reset_multipliers(session, '1')).value
        assert (reset.xp_multiplier, reset.coin_multiplier) == (1.0, 1.0)
