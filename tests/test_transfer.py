"""
Tests for taxed transfers between users.
"""

import asyncio

import pytest

from models import INITIAL_BANK_LIMIT
from utils.economy_utils import EconomyUtils, fit_gross_to_space, gross_from_net, transfer_tax
from utils.ledger import BalanceField
from utils.results import Failure
from utils.vault import VAULT_ID


class TestTaxMath:

    def test_tax_is_truncated(self):
        assert transfer_tax(1000) == 1
        assert transfer_tax(757) == 0
        assert transfer_tax(1_000_000) == 1320

    def test_gross_from_net_covers_net(self):
        for net in (1, 999, 10_000, 123_456, 2_000_000):
            gross = gross_from_net(net)
            assert net <= gross - transfer_tax(gross) <= net + 1

    def test_fit_gross_to_space(self):
        gross, tax, net = fit_gross_to_space(10_000)
        assert (gross, tax, net) == (10_013, 13, 10_000)


class TestTransfer:

    @pytest.mark.asyncio
    async def test_wallet_to_wallet_with_tax(self, session, fund, fetch):
        await fund('1', wallet=5000)
        await fund('2')

        result = await EconomyUtils.transfer(session, '1', 'alice', '2', 'bob', 1000)

        assert result.ok
        receipt = result.value
        assert (receipt.gross, receipt.tax, receipt.net) == (1000, 1, 999)
        assert receipt.tax_recorded
        assert (await fetch('1')).wallet == 4000
        assert (await fetch('2')).wallet == 999
        assert (await fetch(VAULT_ID)).wallet == 1

    @pytest.mark.asyncio
    async def test_creates_missing_recipient(self, session, fund, fetch):
        await fund('1', wallet=100)
        result = await EconomyUtils.transfer(session, '1', 'alice', '3', 'carol', 'all')
        assert result.ok
        assert (await fetch('3')).wallet == 100

    @pytest.mark.asyncio
    async def test_bank_destination_is_fitted_to_space(self, session, fund, fetch):
        await fund('1', wallet=50_000)
        await fund('2', bank=190_000)

        result = await EconomyUtils.transfer(session, '1', 'alice', '2', 'bob', 50_000,
                                             destination=BalanceField.BANK)

        assert result.ok
        receipt = result.value
        assert receipt.adjusted
        assert receipt.net == 10_000
        assert receipt.gross == 10_013
        assert (await fetch('2')).bank == INITIAL_BANK_LIMIT
        assert (await fetch('1')).wallet == 50_000 - 10_013

    @pytest.mark.asyncio
    async def test_full_bank_destination(self, session, fund, fetch):
        await fund('1', wallet=5000)
        await fund('2', bank=INITIAL_BANK_LIMIT)
        result = await EconomyUtils.transfer(session, '1', 'alice', '2', 'bob', 1000,
                                             destination=BalanceField.BANK)
        assert result.reason is Failure.CAPACITY_EXCEEDED
        assert (await fetch('1')).wallet == 5000

    @pytest.mark.asyncio
    async def test_from_bank(self, session, fund, fetch):
        await fund('1', bank=2000)
        await fund('2')
        result = await EconomyUtils.transfer(session, '1', 'alice', '2', 'bob', 'half',
                                             source=BalanceField.BANK)
        assert result.ok
        assert (await fetch('1')).bank == 1000
        assert (await fetch('2')).wallet == 999

    @pytest.mark.asyncio
    async def test_rejections(self, session, fund, fetch):
        await fund('1', wallet=100)
        assert (await EconomyUtils.transfer(session, '1', 'a', '1', 'a', 10)).reason is Failure.INVALID_TARGET
        assert (await EconomyUtils.transfer(session, '1', 'a', VAULT_ID, 'v', 10)).reason is Failure.INVALID_TARGET
        assert (await EconomyUtils.transfer(session, '1', 'a', '2', 'b', 101)).reason is Failure.INSUFFICIENT_FUNDS
        assert (await EconomyUtils.transfer(session, '1', 'a', '2', 'b', 'lots')).reason is Failure.INVALID_AMOUNT
        assert (await fetch('1')).wallet == 100

    @pytest.mark.asyncio
    async def test_opposite_transfers_run_concurrently(self, session_maker, fund, fetch):
        await fund('1', wallet=10_000)
        await fund('2', wallet=10_000)

        async def send(sender, recipient):
            async with session_maker() as sess:
                return await EconomyUtils.transfer(sess, sender, sender, recipient, recipient, 2000)

        results = await asyncio.gather(*(send('1', '2') if i % 2 else send('2', '1') for i in range(6)))

        assert all(r.ok for r in results)
        total_tax = sum(r.value.tax for r in results)
        first, second = await fetch('1'), await fetch('2')
        assert first.wallet >= 0 and second.wallet >= 0
        assert first.wallet + second.wallet == 20_000 - total_tax
        assert (await fetch(VAULT_ID)).wallet == total_tax
