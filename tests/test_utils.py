"""
Tests for the small shared helpers: amount parsing, failure text, cooldowns,
process-local locks and configuration.
"""

import asyncio

import pytest

from utils.config import Config
from utils.cooldowns import CooldownManager
from utils.helpers import MAX_AMOUNT, describe_failure, format_coins, parse_amount
from utils.locks import ActiveSet, KeyedLock
from utils.results import Failure, GuardFailed, Result


class TestParseAmount:

    @pytest.mark.parametrize('raw, base, expected', [
        ('all', 500, 500),
        ('half', 501, 250),
        ('25%', 1000, 250),
        ('100%', 1000, 1000),
        ('10k', 0, 10_000),
        ('2.5m', 0, 2_500_000),
        ('1,000', 0, 1000),
        (' 42 ', 0, 42),
        (7, 0, 7),
    ])
    def test_valid(self, raw, base, expected):
        assert parse_amount(raw, base) == expected

    @pytest.mark.parametrize('raw', ['abc', '-5', '150%', '', None, '1.5', '²',
                                     '99999999999999999999', '9' * 400 + 'k', 2 ** 63])
    def test_invalid(self, raw):
        assert parse_amount(raw, 1000) is None

    def test_largest_amount(self):
        assert parse_amount(str(MAX_AMOUNT), 0) == MAX_AMOUNT

    def test_format_coins(self):
        assert format_coins(1234567) == "1,234,567 coins"
        assert format_coins(-5) == "0 coins"


class TestResults:

    def test_guard_failed_round_trip(self):
        result = GuardFailed(Failure.INSUFFICIENT_FUNDS, balance=10).to_result()
        assert not result
        assert result.reason is Failure.INSUFFICIENT_FUNDS
        assert result.detail == {'balance': 10}

    def test_describe_failure_adds_detail(self):
        text = describe_failure(Result.failure(Failure.COOLDOWN_ACTIVE, retry_at=1_700_000_000_000))
        assert "cooldown" in text
        assert "<t:1700000000:R>" in text

        text = describe_failure(Result.failure(Failure.INSUFFICIENT_FUNDS, balance=1500))
        assert "1,500 coins" in text


class TestCooldownManager:

    def test_try_acquire(self):
        now = [100.0]
        manager = CooldownManager(clock=lambda: now[0])

        assert manager.try_acquire('message_xp', '1', 20)
        assert not manager.try_acquire('message_xp', '1', 20)
        assert manager.try_acquire('message_xp', '2', 20)
        assert manager.get_remaining_time('message_xp', '1', 20) == 20

        now[0] += 20
        assert manager.try_acquire('message_xp', '1', 20)

    def test_clear(self):
        manager = CooldownManager()
        manager.set_cooldown('message_xp', 1)
        assert manager.is_on_cooldown('message_xp', '1', 60)
        manager.clear_cooldown('message_xp', '1')
        assert not manager.is_on_cooldown('message_xp', '1', 60)


class TestLocks:

    def test_active_set(self):
        active = ActiveSet()
        assert active.claim('1')
        assert not active.claim('1')
        assert '1' in active
        active.release('1')
        assert active.claim('1')
        active.clear()
        assert len(active) == 0

    @pytest.mark.asyncio
    async def test_keyed_lock_serializes_same_key(self):
        locks = KeyedLock()
        order = []

        async def worker(key, name):
            async with locks.hold(key):
                order.append(f'{name}-in')
                await asyncio.sleep(0.01)
                order.append(f'{name}-out')

        await asyncio.gather(worker('a', 'first'), worker('a', 'second'))

        assert order == ['first-in', 'first-out', 'second-in', 'second-out']
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_keyed_lock_other_keys_run_together(self):
        locks = KeyedLock()
        inside = []

        async def worker(key):
            async with locks.hold(key):
                inside.append(key)
                await asyncio.sleep(0.01)
                return len(inside)

        counts = await asyncio.gather(worker('a'), worker('b'))
        assert max(counts) == 2


class TestConfig:

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv('ADMIN_IDS', '11, 22')
        monkeypatch.setenv('OWNER_ID', '33')
        monkeypatch.setenv('GUILD_ID', '')
        monkeypatch.setenv('XP_COOLDOWN_SECONDS', '5')
        config = Config()

        assert config.admin_ids == [11, 22]
        assert config.guild_id is None
        assert config.xp_cooldown_seconds == 5.0
        assert config.is_admin(22)
        assert config.is_admin(33)
        assert config.is_admin(44, guild_owner_id=44)
        assert not config.is_admin(44, guild_owner_id=55)
