"""
Economy operations built on the ledger's guarded updates: wagers, bank moves,
taxed transfers, daily and work rewards.

Each operation opens its own unit of work on the session it is given and
returns a ``Result``. Expected failures are never raised to the caller.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Account
from utils.games import GAMES, gross_return, scaled_payout
from utils.helpers import parse_amount
from utils.ledger import BalanceField, Ledger, now_ms
from utils.leveling import grant_xp
from utils.results import Failure, GuardFailed, Result
from utils.vault import VAULT_ID, Vault

logger = logging.getLogger(__name__)

# Transfer tax, fixed point: tax = gross * TAX_NUM // TAX_DEN
TAX_NUM = 132
TAX_DEN = 100_000

DAY_MS = 24 * 60 * 60 * 1000
DAILY_LUCKY_CHANCE = 0.02
DAILY_LUCKY_BONUS = 0.25

WORK_WIN_COINS = (150, 300)
WORK_LOSE_COINS = (20, 60)
WORK_WIN_XP = (40, 75)
WORK_LOSE_XP = (5, 20)
WORK_JOB_BONUS = 0.12

LEADERBOARD_SIZE = 10


def transfer_tax(gross: int) -> int:
    return gross * TAX_NUM // TAX_DEN


def gross_from_net(net: int) -> int:
    """Gross needed for ``net`` after tax: ceiling division on the complementary ratio.

    The after-tax amount of the result is ``net`` or ``net + 1``.
    """
    return -(-net * TAX_DEN // (TAX_DEN - TAX_NUM))


def fit_gross_to_space(space: int) -> Tuple[int, int, int]:
    """Largest (gross, tax, net) whose net still fits in ``space``."""
    gross = gross_from_net(space)
    net = gross - transfer_tax(gross)
    while gross > 0 and net > space:
        gross -= 1
        net = gross - transfer_tax(gross)
    return gross, transfer_tax(gross), net


@dataclass
class WagerOutcome:
    game: str
    bet: int
    label: str
    multiplier: float
    payout: int
    wallet: int
    symbols: Tuple[str, ...] = ()

    @property
    def net(self) -> int:
        return self.payout - self.bet


@dataclass
class BankMove:
    amount: int
    requested: int
    wallet: int
    bank: int
    bank_limit: int

    @property
    def clamped(self) -> bool:
        return self.amount < self.requested


@dataclass
class TransferReceipt:
    gross: int
    tax: int
    net: int
    source: BalanceField
    destination: BalanceField
    sender_balance: int
    recipient_balance: int
    adjusted: bool = False
    tax_recorded: bool = True


@dataclass
class Reward:
    coins: int
    xp: int
    wallet: int
    level: int
    levels_gained: int = 0
    bonus: bool = False
    extra: dict = field(default_factory=dict)


class EconomyUtils:
    """Utility class for economy-related operations."""

    @staticmethod
    async def get_account(session: AsyncSession, user_id: str, username: str = '') -> Account:
        """Ensure the account exists and return a fresh copy of it."""
        async with session.begin():
            return await Ledger.ensure(session, user_id, username)

    @staticmethod
    async def leaderboard(session: AsyncSession, limit: int = LEADERBOARD_SIZE) -> List[Account]:
        """Top accounts by level, then XP. The vault is not a player and is left out."""
        async with session.begin():
            result = await session.execute(
                select(Account)
                .where(Account.user_id != VAULT_ID)
                .order_by(Account.level.desc(), Account.xp.desc(), Account.user_id)
                .limit(limit)
            )
            return list(result.scalars())

    @staticmethod
    async def wager(
        session: AsyncSession,
        user_id: str,
        username: str,
        bet: Union[str, int],
        game: str,
        rng: random.Random = random,
    ) -> Result[WagerOutcome]:
        """Play one instant game (gamble, slot, spinwheel).

        The stake is taken with a guarded debit, the outcome is drawn, and the
        payout is credited in the same transaction.
        """
        play = GAMES[game]
        try:
            async with session.begin():
                account = await Ledger.ensure(session, user_id, username)
                amount = parse_amount(bet, account.wallet)
                if amount == 0 and account.wallet <= 0:
                    raise GuardFailed(Failure.INSUFFICIENT_FUNDS, balance=0)
                if amount is None or amount <= 0:
                    raise GuardFailed(Failure.INVALID_AMOUNT)

                debited = await Ledger.debit(session, user_id, BalanceField.WALLET, amount)
                if debited is None:
                    current = await Ledger.get(session, user_id)
                    raise GuardFailed(Failure.INSUFFICIENT_FUNDS, balance=current.wallet)
                coin_multiplier = debited.coin_multiplier

                spin = play(rng)
                payout = scaled_payout(amount, gross_return(amount, spin.multiplier), coin_multiplier)
                wallet = debited.wallet
                if payout > 0:
                    credited = await Ledger.credit(session, user_id, BalanceField.WALLET, payout)
                    wallet = credited.wallet
                Ledger.record(session, user_id, f'wager:{game}', payout - amount,
                              description=f'{spin.label} on {amount}')
        except GuardFailed as e:
            return e.to_result()

        return Result.success(WagerOutcome(
            game=game, bet=amount, label=spin.label, multiplier=spin.multiplier,
            payout=payout, wallet=wallet, symbols=spin.symbols,
        ))

    @staticmethod
    async def deposit(session: AsyncSession, user_id: str, username: str,
                      raw_amount: Union[str, int]) -> Result[BankMove]:
        """Move coins from wallet to bank, clamped to the free bank space."""
        try:
            async with session.begin():
                account = await Ledger.ensure(session, user_id, username)
                requested = parse_amount(raw_amount, account.wallet)
                if requested is None or requested <= 0:
                    raise GuardFailed(Failure.INVALID_AMOUNT)
                if requested > account.wallet:
                    raise GuardFailed(Failure.INSUFFICIENT_FUNDS, balance=account.wallet)
                space = account.bank_limit - account.bank
                if space <= 0:
                    raise GuardFailed(Failure.CAPACITY_EXCEEDED, space=0)
                amount = min(requested, space)

                updated = await Ledger.apply_if(
                    session, user_id,
                    Account.wallet >= amount,
                    Account.bank + amount <= Account.bank_limit,
                    wallet=Account.wallet - amount,
                    bank=Account.bank + amount,
                )
                if updated is None:
                    current = await Ledger.get(session, user_id)
                    if current.wallet < amount:
                        raise GuardFailed(Failure.INSUFFICIENT_FUNDS, balance=current.wallet)
                    raise GuardFailed(Failure.CAPACITY_EXCEEDED, space=current.bank_limit - current.bank)
                Ledger.record(session, user_id, 'deposit', amount, BalanceField.BANK)
        except GuardFailed as e:
            return e.to_result()

        return Result.success(BankMove(amount, requested, updated.wallet, updated.bank, updated.bank_limit))

    @staticmethod
    async def withdraw(session: AsyncSession, user_id: str, username: str,
                       raw_amount: Union[str, int]) -> Result[BankMove]:
        """Move coins from bank to wallet."""
        try:
            async with session.begin():
                account = await Ledger.ensure(session, user_id, username)
                amount = parse_amount(raw_amount, account.bank)
                if amount is None or amount <= 0:
                    raise GuardFailed(Failure.INVALID_AMOUNT)

                updated = await Ledger.apply_if(
                    session, user_id,
                    Account.bank >= amount,
                    wallet=Account.wallet + amount,
                    bank=Account.bank - amount,
                )
                if updated is None:
                    current = await Ledger.get(session, user_id)
                    raise GuardFailed(Failure.INSUFFICIENT_FUNDS, balance=current.bank)
                Ledger.record(session, user_id, 'withdraw', amount, BalanceField.WALLET)
        except GuardFailed as e:
            return e.to_result()

        return Result.success(BankMove(amount, amount, updated.wallet, updated.bank, updated.bank_limit))

    @staticmethod
    async def transfer(
        session: AsyncSession,
        sender_id: str,
        sender_name: str,
        recipient_id: str,
        recipient_name: str,
        raw_amount: Union[str, int],
        source: BalanceField = BalanceField.WALLET,
        destination: BalanceField = BalanceField.WALLET,
    ) -> Result[TransferReceipt]:
        """Send coins to another user, minus the transfer tax.

        When the destination is a bank the gross amount is reduced so that the
        after-tax amount fills the remaining space exactly. Tax goes into the
        vault after the transfer has committed.
        """
        sender_id, recipient_id = str(sender_id), str(recipient_id)
        if sender_id == recipient_id or recipient_id == VAULT_ID:
            return Result.failure(Failure.INVALID_TARGET)

        try:
            async with session.begin():
                await Ledger.ensure(session, sender_id, sender_name)
                await Ledger.ensure(session, recipient_id, recipient_name)
                sender, recipient = await Ledger.lock_pair(session, sender_id, recipient_id)

                available = getattr(sender, source.value)
                gross = parse_amount(raw_amount, available)
                if gross is None or gross <= 0:
                    raise GuardFailed(Failure.INVALID_AMOUNT)
                if gross > available:
                    raise GuardFailed(Failure.INSUFFICIENT_FUNDS, balance=available)

                tax = transfer_tax(gross)
                net = gross - tax
                adjusted = False
                if destination is BalanceField.BANK:
                    space = recipient.bank_limit - recipient.bank
                    if space <= 0:
                        raise GuardFailed(Failure.CAPACITY_EXCEEDED, space=0)
                    if net > space:
                        gross, tax, net = fit_gross_to_space(space)
                        adjusted = True
                if net <= 0:
                    raise GuardFailed(Failure.INVALID_AMOUNT)

                debited = await Ledger.debit(session, sender_id, source, gross)
                if debited is None:
                    current = await Ledger.get(session, sender_id)
                    raise GuardFailed(Failure.INSUFFICIENT_FUNDS, balance=getattr(current, source.value))
                credited = await Ledger.credit(session, recipient_id, destination, net)
                if credited is None:
                    current = await Ledger.get(session, recipient_id)
                    raise GuardFailed(Failure.CAPACITY_EXCEEDED, space=current.bank_limit - current.bank)

                Ledger.record(session, sender_id, 'send', -gross, source, counterparty_id=recipient_id)
                Ledger.record(session, recipient_id, 'receive', net, destination, counterparty_id=sender_id)
                sender_balance = getattr(debited, source.value)
                recipient_balance = getattr(credited, destination.value)
        except GuardFailed as e:
            return e.to_result()

        tax_recorded = await Vault.deposit_safely(session, tax, 'transfer_tax')
        return Result.success(TransferReceipt(
            gross=gross, tax=tax, net=net, source=source, destination=destination,
            sender_balance=sender_balance, recipient_balance=recipient_balance,
            adjusted=adjusted, tax_recorded=tax_recorded,
        ))

    @staticmethod
    async def daily(session: AsyncSession, user_id: str, username: str,
                    rng: random.Random = random) -> Result[Reward]:
        """Claim the daily reward (once per 24h, checked at write time)."""
        now = now_ms()
        try:
            async with session.begin():
                account = await Ledger.ensure(session, user_id, username)
                if now - account.last_daily < DAY_MS:
                    raise GuardFailed(Failure.COOLDOWN_ACTIVE, retry_at=account.last_daily + DAY_MS)

                lvl = account.level - 1
                coins = rng.randint(300 + lvl * 20, 500 + lvl * 30)
                xp = rng.randint(120 + lvl * 10, 250 + lvl * 15)
                coins = int(coins * account.coin_multiplier)
                xp = int(xp * account.xp_multiplier)
                bonus = rng.random() < DAILY_LUCKY_CHANCE
                if bonus:
                    coins += int(coins * DAILY_LUCKY_BONUS)

                claimed = await Ledger.apply_if(
                    session, user_id,
                    Account.last_daily <= now - DAY_MS,
                    wallet=Account.wallet + coins,
                    last_daily=now,
                )
                if claimed is None:
                    current = await Ledger.get(session, user_id)
                    raise GuardFailed(Failure.COOLDOWN_ACTIVE, retry_at=current.last_daily + DAY_MS)
                leveled, levels_gained = await grant_xp(session, user_id, xp)
                Ledger.record(session, user_id, 'daily', coins)
        except GuardFailed as e:
            return e.to_result()

        return Result.success(Reward(coins, xp, leveled.wallet, leveled.level, levels_gained, bonus))

    @staticmethod
    async def work(session: AsyncSession, user_id: str, username: str, correct: bool,
                   rng: random.Random = random) -> Result[Reward]:
        """Pay out a finished work shift. A wrong answer still pays a small amount."""
        async with session.begin():
            account = await Ledger.ensure(session, user_id, username)
            job_mult = 1 + max(1, account.job_level) * WORK_JOB_BONUS
            coin_range = WORK_WIN_COINS if correct else WORK_LOSE_COINS
            xp_range = WORK_WIN_XP if correct else WORK_LOSE_XP
            coins = int(rng.randint(*coin_range) * job_mult * account.coin_multiplier)
            xp = int(rng.randint(*xp_range) * job_mult * account.xp_multiplier)

            await Ledger.credit(session, user_id, BalanceField.WALLET, coins)
            leveled, levels_gained = await grant_xp(session, user_id, xp)
            Ledger.record(session, user_id, 'work', coins)

        return Result.success(Reward(coins, xp, leveled.wallet, leveled.level, levels_gained,
                                     extra={'correct': correct}))
