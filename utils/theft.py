"""
Theft: stealing from other users, robbing the vault, and the big heist event.
"""

import asyncio
import enum
import logging
import math
import random
import time
from dataclasses import dataclass
from typing import Hashable, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from models import Account
from utils.ledger import BalanceField, Ledger, now_ms
from utils.locks import ActiveSet
from utils.results import Failure, GuardFailed, Result
from utils.vault import VAULT_ID, Vault

logger = logging.getLogger(__name__)

STEAL_COOLDOWN_MS = 7 * 60 * 1000
STEAL_BASE_SUCCESS = 0.30
GLOVES_BONUS = 0.05
MAX_SUCCESS = 0.95
MAX_STEAL_PCT = 0.70
# (probability, fine as a fraction of the attempted amount)
FINE_BRACKETS: Tuple[Tuple[float, float], ...] = (
    (0.50, 0.055),
    (0.30, 0.10),
    (0.15, 0.15),
    (0.05, 0.20),
)
VICTIM_COMPENSATION = 0.02

VAULTROB_COOLDOWN_MS = 60 * 60 * 1000
MIN_VAULT_TO_ROB = 10_000
VAULTROB_ODDS = {False: (0.03, 0.10, 0.15), True: (0.09, 0.20, 0.30)}  # big heist -> (chance, min pct, max pct)
VAULTROB_FINE_PCT = 0.15

HEIST_COOLDOWN_S = 2 * 60 * 60
HEIST_CHANCE_PER_MESSAGE = 0.015
HEIST_DURATION_S = 5 * 60
HEIST_CLAIM_PCT = (0.20, 0.30)

GLOVES = 'gloves'
BOOTS = 'boots'
MASTER_KEY = 'master_key'


def pick_fine_percent(rng: random.Random = random) -> float:
    roll = rng.random()
    acc = 0.0
    for chance, percent in FINE_BRACKETS:
        acc += chance
        if roll < acc:
            return percent
    return FINE_BRACKETS[-1][1]


@dataclass
class StealOutcome:
    success: bool
    attempted: int
    stolen: int = 0
    fine: int = 0
    victim_compensation: int = 0
    vault_share: int = 0
    thief_wallet: int = 0
    victim_wallet: int = 0


@dataclass
class VaultRobOutcome:
    success: bool
    vault_before: int
    gained: int = 0
    fine: int = 0
    key_used: bool = False
    big_heist: bool = False
    wallet: int = 0


class HeistState(enum.Enum):
    ARMED = 'armed'
    ACTIVE = 'active'
    EXPIRED = 'expired'


class HeistEvent:
    """The shared big-heist window.

    ``armed`` until a chat message triggers it, then ``active`` for a few
    minutes, then ``expired`` until the spawn cooldown has passed. Each
    announcement (message id) may be claimed once. State is per process.
    """

    def __init__(self, cooldown: float = HEIST_COOLDOWN_S, chance: float = HEIST_CHANCE_PER_MESSAGE,
                 duration: float = HEIST_DURATION_S, clock=time.monotonic):
        self.cooldown = cooldown
        self.chance = chance
        self.duration = duration
        self._clock = clock
        self.state = HeistState.ARMED
        self.last_spawn: Optional[float] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self.claims = ActiveSet()

    @property
    def active(self) -> bool:
        return self.state is HeistState.ACTIVE

    def maybe_trigger(self, rng: random.Random = random) -> bool:
        """Roll for a new heist window. True if one just opened."""
        if self.active:
            return False
        if self.last_spawn is not None and self._clock() - self.last_spawn < self.cooldown:
            return False
        if rng.random() >= self.chance:
            return False
        self.activate()
        return True

    def activate(self) -> None:
        self.state = HeistState.ACTIVE
        self.last_spawn = self._clock()
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().call_later(self.duration, self.expire)
        logger.info("Big vault heist window opened")

    def expire(self) -> None:
        self._cancel_timer()
        if self.active:
            self.state = HeistState.EXPIRED
            logger.info("Big vault heist window closed")

    def abort(self) -> None:
        """Close the window without it counting as spent (announcement could not be sent)."""
        self._cancel_timer()
        self.state = HeistState.ARMED

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class Theft:
    """Steal and vault-robbery operations."""

    @staticmethod
    async def steal(session: AsyncSession, thief_id: str, thief_name: str, victim_id: str,
                    victim_name: str, requested: int, rng: random.Random = random) -> Result[StealOutcome]:
        """Try to take coins from another user's wallet.

        Thief and victim rows are locked together (sorted order). On failure the
        thief pays a fine, 2% of which goes to the victim and the rest to the vault.
        """
        thief_id, victim_id = str(thief_id), str(victim_id)
        if thief_id == victim_id or victim_id == VAULT_ID:
            return Result.failure(Failure.INVALID_TARGET)
        if requested is None or requested <= 0:
            return Result.failure(Failure.INVALID_AMOUNT)

        now = now_ms()
        try:
            async with session.begin():
                await Ledger.ensure(session, thief_id, thief_name)
                await Ledger.ensure(session, victim_id, victim_name)
                thief, victim = await Ledger.lock_pair(session, thief_id, victim_id)

                if thief.last_steal and now - thief.last_steal < STEAL_COOLDOWN_MS:
                    raise GuardFailed(Failure.COOLDOWN_ACTIVE, retry_at=thief.last_steal + STEAL_COOLDOWN_MS)

                victim_wallet = victim.wallet
                thief_wallet = thief.wallet
                amount = min(requested, math.floor(victim_wallet * MAX_STEAL_PCT))
                if amount <= 0:
                    raise GuardFailed(Failure.INSUFFICIENT_FUNDS, balance=victim_wallet, target=victim_id)

                has_gloves = await Ledger.item_count(session, thief_id, GLOVES) > 0
                has_boots = await Ledger.item_count(session, thief_id, BOOTS) > 0
                chance = min(MAX_SUCCESS, STEAL_BASE_SUCCESS + (GLOVES_BONUS if has_gloves else 0))
                off_cooldown = Account.last_steal <= now - STEAL_COOLDOWN_MS

                if rng.random() < chance:
                    robbed = await Ledger.debit(session, victim_id, BalanceField.WALLET, amount)
                    if robbed is None:
                        raise GuardFailed(Failure.RACE_LOST)
                    paid = await Ledger.credit(session, thief_id, BalanceField.WALLET, amount,
                                               off_cooldown, last_steal=now)
                    if paid is None:
                        raise GuardFailed(Failure.COOLDOWN_ACTIVE, retry_at=now + STEAL_COOLDOWN_MS)
                    Ledger.record(session, thief_id, 'steal', amount, counterparty_id=victim_id)
                    Ledger.record(session, victim_id, 'stolen', -amount, counterparty_id=thief_id)
                    outcome = StealOutcome(True, amount, stolen=amount,
                                           thief_wallet=paid.wallet, victim_wallet=robbed.wallet)
                else:
                    fine = math.floor(amount * pick_fine_percent(rng))
                    if has_boots:
                        fine //= 2
                    fine = min(fine, thief_wallet)
                    compensation = math.floor(fine * VICTIM_COMPENSATION)
                    fined = await Ledger.debit(session, thief_id, BalanceField.WALLET, fine,
                                               off_cooldown, last_steal=now)
                    if fined is None:
                        raise GuardFailed(Failure.COOLDOWN_ACTIVE, retry_at=now + STEAL_COOLDOWN_MS)
                    victim_after = victim_wallet
                    if compensation > 0:
                        victim_after = (await Ledger.credit(session, victim_id, BalanceField.WALLET,
                                                           compensation)).wallet
                    Ledger.record(session, thief_id, 'steal_fine', -fine, counterparty_id=victim_id)
                    outcome = StealOutcome(False, amount, fine=fine, victim_compensation=compensation,
                                           vault_share=fine - compensation,
                                           thief_wallet=fined.wallet, victim_wallet=victim_after)
        except GuardFailed as e:
            return e.to_result()

        if outcome.vault_share > 0:
            await Vault.deposit_safely(session, outcome.vault_share, 'steal_fine')
        return Result.success(outcome)

    @staticmethod
    async def rob_vault(session: AsyncSession, user_id: str, username: str, big_heist: bool = False,
                        rng: random.Random = random) -> Result[VaultRobOutcome]:
        """Long-odds attempt on the vault. The take comes from ``Vault.withdraw_up_to``."""
        user_id = str(user_id)
        now = now_ms()
        chance, min_pct, max_pct = VAULTROB_ODDS[bool(big_heist)]
        off_cooldown = Account.last_vaultrob <= now - VAULTROB_COOLDOWN_MS
        try:
            async with session.begin():
                account = await Ledger.ensure(session, user_id, username)
                if account.last_vaultrob and now - account.last_vaultrob < VAULTROB_COOLDOWN_MS:
                    raise GuardFailed(Failure.COOLDOWN_ACTIVE,
                                      retry_at=account.last_vaultrob + VAULTROB_COOLDOWN_MS)
                wallet = account.wallet
                vault_before = await Vault.balance(session)
                if vault_before < MIN_VAULT_TO_ROB:
                    raise GuardFailed(Failure.VAULT_EMPTY, vault=vault_before, minimum=MIN_VAULT_TO_ROB)

                has_key = await Ledger.item_count(session, user_id, MASTER_KEY) > 0
                has_boots = await Ledger.item_count(session, user_id, BOOTS) > 0

                if rng.random() < chance:
                    pct = min_pct + rng.random() * (max_pct - min_pct)
                    base = max(1, math.floor(vault_before * pct))
                    desired = max(1, math.floor(vault_before * pct * (2 if has_key else 1)))
                    gained = await Vault.withdraw_up_to(session, desired)
                    key_used = has_key and gained > base
                    if key_used and not await Ledger.consume_item(session, user_id, MASTER_KEY):
                        raise GuardFailed(Failure.RACE_LOST)
                    paid = await Ledger.credit(session, user_id, BalanceField.WALLET, gained,
                                               off_cooldown, last_vaultrob=now)
                    if paid is None:
                        raise GuardFailed(Failure.COOLDOWN_ACTIVE, retry_at=now + VAULTROB_COOLDOWN_MS)
                    Ledger.record(session, user_id, 'vaultrob', gained, counterparty_id=VAULT_ID)
                    Ledger.record(session, VAULT_ID, 'vaultrob', -gained, counterparty_id=user_id)
                    outcome = VaultRobOutcome(True, vault_before, gained=gained, key_used=key_used,
                                              big_heist=big_heist, wallet=paid.wallet)
                else:
                    fine = math.floor(wallet * VAULTROB_FINE_PCT)
                    if has_boots:
                        fine //= 2
                    fine = min(fine, wallet)
                    fined = await Ledger.debit(session, user_id, BalanceField.WALLET, fine,
                                               off_cooldown, last_vaultrob=now)
                    if fined is None:
                        raise GuardFailed(Failure.COOLDOWN_ACTIVE, retry_at=now + VAULTROB_COOLDOWN_MS)
                    Ledger.record(session, user_id, 'vaultrob_fine', -fine, counterparty_id=VAULT_ID)
                    outcome = VaultRobOutcome(False, vault_before, fine=fine, big_heist=big_heist,
                                              wallet=fined.wallet)
        except GuardFailed as e:
            return e.to_result()

        if outcome.fine > 0:
            await Vault.deposit_safely(session, outcome.fine, 'vaultrob_fine')
        return Result.success(outcome)

    @staticmethod
    async def claim_big_heist(session: AsyncSession, event: HeistEvent, claim_key: Hashable,
                              user_id: str, username: str,
                              rng: random.Random = random) -> Result[VaultRobOutcome]:
        """First click on a heist announcement takes 20-30% of the vault."""
        if not event.active:
            return Result.failure(Failure.EXPIRED)
        if not event.claims.claim(claim_key):
            return Result.failure(Failure.RACE_LOST)

        user_id = str(user_id)
        try:
            async with session.begin():
                await Ledger.ensure(session, user_id, username)
                await Vault.balance(session)
                vault = await Ledger.lock(session, VAULT_ID)
                vault_before = vault.wallet
                if not event.active:
                    raise GuardFailed(Failure.EXPIRED)
                if vault_before < MIN_VAULT_TO_ROB:
                    raise GuardFailed(Failure.VAULT_EMPTY, vault=vault_before, minimum=MIN_VAULT_TO_ROB)

                low, high = HEIST_CLAIM_PCT
                pct = low + rng.random() * (high - low)
                gained = await Vault.withdraw_up_to(session, max(1, math.floor(vault_before * pct)))
                paid = await Ledger.credit(session, user_id, BalanceField.WALLET, gained)
                Ledger.record(session, user_id, 'big_heist', gained, counterparty_id=VAULT_ID)
                Ledger.record(session, VAULT_ID, 'big_heist', -gained, counterparty_id=user_id)
        except GuardFailed as e:
            return e.to_result()
        except Exception:
            event.claims.release(claim_key)
            raise

        return Result.success(VaultRobOutcome(True, vault_before, gained=gained, big_heist=True,
                                              wallet=paid.wallet))
