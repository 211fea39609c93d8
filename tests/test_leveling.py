"""
Tests for the XP curve and message XP grants.
"""

import pytest

from utils.leveling import apply_xp, grant_message_xp, message_xp, xp_to_next


class TestCurve:

    def test_first_level(self):
        assert xp_to_next(1) == 110
        assert xp_to_next(0) == xp_to_next(1)

    def test_strictly_increasing(self):
        needs = [xp_to_next(level) for level in range(1, 301)]
        assert all(b > a for a, b in zip(needs, needs[1:]))

    def test_apply_xp_rolls_over(self):
        assert apply_xp(1, 100, 5) == (1, 105, 0)
        assert apply_xp(1, 0, xp_to_next(1)) == (2, 0, 1)
        gained = xp_to_next(1) + xp_to_next(2) + 7
        assert apply_xp(1, 0, gained) == (3, 7, 2)

    def test_apply_xp_ignores_negative_gain(self):
        assert apply_xp(4, 10, -50) == (4, 10, 0)

    def test_message_xp_within_bounds(self, stub_rng):
        for level in (1, 25, 80, 200):
            need = xp_to_next(level)
            floor = max(5, need // 1200)
            ceiling = max(floor, need // 72)
            for seed in range(20):
                gain = message_xp(level, 1.0, stub_rng(seed=seed))
                assert floor <= gain <= ceiling

    def test_zero_multiplier_still_pays_floor(self, stub_rng):
        assert message_xp(50, 0.0, stub_rng()) == max(5, xp_to_next(50) // 1200)


class TestGrant:

    @pytest.mark.asyncio
    async def test_grant_message_xp(self, session, fetch):
        account, gained, levels = await grant_message_xp(session, '1', 'alice')
        assert gained >= 5
        assert levels == 0
        assert account.xp == gained
        assert (await fetch('1')).xp == gained

    @pytest.mark.asyncio
    async def test_grant_levels_up(self, session, fund):
        await fund('1', xp=xp_to_next(1) - 1)
        account, gained, levels = await grant_message_xp(session, '1', 'alice')
        assert levels == 1
        assert account.level == 2
        assert account.xp == gained - 1
