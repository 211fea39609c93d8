"""
XP curve and XP grants.
"""

import functools
import math
import random
from typing import Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from models import Account
from utils.ledger import Ledger

BASE_XP = 110
XP_ALPHA = 1.60
XP_BETA = 0.007
BOOST_L100 = 1.05
BOOST_L150 = 1.12
MIN_GROWTH_PER_LEVEL = 1.03
MAX_GROWTH_PER_LEVEL = 1.12
LATE_SOFT_START = 120
LATE_SOFT_A = 0.25
LATE_SOFT_B = 0.015

# Message XP tuning
MESSAGES_PER_LEVEL = 360
FASTEST_MESSAGES_PER_LEVEL = 72
JITTER_PCT = 0.20
MIN_FLOOR_ABS = 5
LUCKY_SMALL = (0.05, 0.03)
LUCKY_BIG = (0.01, 0.07)


def _base_curve(level: int) -> int:
    level = max(1, int(level))
    mult = 1.0
    if level >= 100:
        mult *= BOOST_L100
    if level >= 150:
        mult *= BOOST_L150
    if level >= LATE_SOFT_START:
        mult *= 1 + LATE_SOFT_A * (1 - math.exp(-LATE_SOFT_B * (level - LATE_SOFT_START)))
    raw = BASE_XP * level ** XP_ALPHA * (1 + XP_BETA * level) * mult
    return max(1, math.floor(raw))


@functools.lru_cache(maxsize=None)
def xp_to_next(level: int) -> int:
    """XP needed to go from ``level`` to ``level + 1``.

    Growth from one step to the next is clamped to 3-12% so the curve has no spikes.
    """
    level = max(1, int(level))
    if level == 1:
        return _base_curve(1)
    prev = _base_curve(level - 1)
    lowest = math.ceil(prev * MIN_GROWTH_PER_LEVEL)
    highest = math.floor(prev * MAX_GROWTH_PER_LEVEL)
    clamped = min(max(_base_curve(level), lowest), highest)
    return max(prev + 1, clamped)


def apply_xp(level: int, xp: int, gained: int) -> Tuple[int, int, int]:
    """Add XP and roll over into levels. Returns (level, xp, levels_gained)."""
    xp = max(0, xp) + max(0, gained)
    level = max(1, level)
    levels_gained = 0
    while xp >= xp_to_next(level):
        xp -= xp_to_next(level)
        level += 1
        levels_gained += 1
    return level, xp, levels_gained


def message_xp(level: int, xp_multiplier: float, rng: random.Random = random) -> int:
    """XP for a single chat message, scaled to how much the current level needs."""
    need = xp_to_next(level)
    target = max(1, need // MESSAGES_PER_LEVEL)
    spread = target * JITTER_PCT
    gain = round((rng.uniform(target - spread, target + spread) + rng.uniform(target - spread, target + spread)) / 2)
    for chance, bonus in (LUCKY_SMALL, LUCKY_BIG):
        if rng.random() < chance:
            gain += round(target * bonus)
    gain = round(gain * max(0.0, xp_multiplier))
    floor = max(MIN_FLOOR_ABS, need // 1200)
    ceiling = max(floor, need // FASTEST_MESSAGES_PER_LEVEL)
    return min(max(gain, floor), ceiling)


async def grant_xp(session: AsyncSession, user_id: str, gained: int) -> Tuple[Account, int]:
    """Add XP to an account, levelling up as needed. Returns (account, levels_gained).

    Must run inside a transaction; the row is locked while the new level is computed.
    """
    account = await Ledger.lock(session, user_id)
    level, xp, levels_gained = apply_xp(account.level, account.xp, gained)
    updated = await Ledger.apply_if(
        session, user_id,
        Account.level == account.level, Account.xp == account.xp,
        level=level, xp=xp,
    )
    return updated, levels_gained


async def grant_message_xp(session: AsyncSession, user_id: str, username: str,
                           rng: random.Random = random) -> Tuple[Account, int, int]:
    """XP for one chat message. Returns (account, xp_gained, levels_gained)."""
    async with session.begin():
        account = await Ledger.ensure(session, user_id, username)
        gained = message_xp(account.level, account.xp_multiplier, rng)
        account, levels_gained = await grant_xp(session, user_id, gained)
    return account, gained, levels_gained
