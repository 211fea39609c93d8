"""
Pure outcome functions for the instant wager games.

Nothing here touches storage. Each game draws fresh randomness from the
``rng`` it is given and reports a gross multiplier on the stake.
"""

import math
import random
from dataclasses import dataclass
from fractions import Fraction
from typing import Callable, Dict, List, Tuple

GAMBLE_WIN_CHANCE = 0.5

SLOT_SYMBOLS = ('🍆', '💖', '🍒', '🍋', '🍉', '🍇', '⭐', '🔔', '7️⃣')
SLOT_REELS = 4
REPEAT_BIAS = 0.10
JACKPOT_REROLL_P = 0.50
SLOT_PAYOUTS = {
    'four_kind': 12.0,
    'three_kind': 4.0,
    'two_pairs': 2.5,
    'one_pair': 1.0,
    'none': 0.0,
}

WHEEL_SEGMENTS: List[Tuple[str, float]] = [
    ('x2.0', 2.0),
    ('x1.5', 1.5),
    ('x1.2', 1.2),
    ('x0.5', 0.5),
    ('Lose', 0.0),
]
WHEEL_JACKPOT = ('Jackpot!', 5.0)
WHEEL_JACKPOT_CHANCE = 0.03


@dataclass(frozen=True)
class Spin:
    """Outcome of one play: a label and the gross multiplier on the bet."""

    label: str
    multiplier: float
    symbols: Tuple[str, ...] = ()


def gamble(rng: random.Random = random) -> Spin:
    """Double or nothing."""
    if rng.random() < GAMBLE_WIN_CHANCE:
        return Spin('win', 2.0)
    return Spin('lose', 0.0)


def _roll_reels(rng) -> List[str]:
    reels: List[str] = []
    for i in range(SLOT_REELS):
        if i > 0 and rng.random() < REPEAT_BIAS:
            reels.append(reels[rng.randrange(i)])
        else:
            reels.append(rng.choice(SLOT_SYMBOLS))
    return reels


def classify_reels(reels) -> str:
    counts = sorted((list(reels).count(s) for s in set(reels)), reverse=True)
    if counts[0] == 4:
        return 'four_kind'
    if counts[0] == 3:
        return 'three_kind'
    if counts[0] == 2:
        return 'two_pairs' if counts.count(2) == 2 else 'one_pair'
    return 'none'


def spin_slot(rng: random.Random = random) -> Spin:
    """Four reels; four-of-a-kind is re-rolled half of the time."""
    while True:
        reels = _roll_reels(rng)
        hand = classify_reels(reels)
        if hand == 'four_kind' and rng.random() < JACKPOT_REROLL_P:
            continue
        return Spin(hand, SLOT_PAYOUTS[hand], tuple(reels))


def spin_wheel(rng: random.Random = random) -> Spin:
    if rng.random() < WHEEL_JACKPOT_CHANCE:
        return Spin(*WHEEL_JACKPOT)
    label, multiplier = rng.choice(WHEEL_SEGMENTS)
    return Spin(label, multiplier)


GAMES: Dict[str, Callable[..., Spin]] = {
    'gamble': gamble,
    'slot': spin_slot,
    'spinwheel': spin_wheel,
}


def gross_return(bet: int, multiplier: float) -> int:
    """floor(bet * multiplier) without float drift."""
    return math.floor(bet * Fraction(str(multiplier)))


def scaled_payout(bet: int, gross: int, coin_multiplier: float) -> int:
    """Apply the coin multiplier to the profit portion only.

    Losses and break-even returns are paid as-is, so a multiplier never makes
    a loss bigger or a refund larger.
    """
    if gross <= bet:
        return gross
    return bet + math.floor((gross - bet) * Fraction(str(coin_multiplier)))
