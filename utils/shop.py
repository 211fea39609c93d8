"""
Shop: bank capacity upgrades, job upgrades and inventory items.

Every purchase is a guarded update whose guard pins the state the price was
computed from, so the price cannot change between quoting and charging.
"""

import math
from dataclasses import dataclass
from fractions import Fraction
from typing import Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from models import INITIAL_BANK_LIMIT, Account
from utils.ledger import BalanceField, Ledger
from utils.results import Failure, GuardFailed, Result
from utils.theft import BOOTS, GLOVES, MASTER_KEY

BANK_STEP = 50_000
BANK_BASE_PRICE = 75_000
BANK_GROWTH = Fraction(115, 100)
BANK_HARD_CAP = 2_000_000

JOB_PRICE_PER_LEVEL = 500
MAX_STACK_PER_PURCHASE = 100


@dataclass(frozen=True)
class ShopItem:
    key: str
    name: str
    price: int
    max_count: Optional[int]  # None = stack item
    description: str

    @property
    def is_flag(self) -> bool:
        return self.max_count is not None


CATALOG: Dict[str, ShopItem] = {
    GLOVES: ShopItem(GLOVES, "Thief Gloves", 35_000, 1, "+5% steal success chance."),
    BOOTS: ShopItem(BOOTS, "Silent Boots", 30_000, 1, "Halves steal and vault robbery fines."),
    MASTER_KEY: ShopItem(MASTER_KEY, "Master Key", 25_000, None,
                         "Doubles a successful vault robbery. Consumed when it helps."),
}


def bank_tier(bank_limit: int) -> int:
    return max(0, (bank_limit - INITIAL_BANK_LIMIT) // BANK_STEP)


def bank_upgrade_price(bank_limit: int) -> int:
    """75,000 * 1.15^tier, rounded up."""
    return math.ceil(BANK_BASE_PRICE * BANK_GROWTH ** bank_tier(bank_limit))


def job_upgrade_price(job_level: int) -> int:
    return JOB_PRICE_PER_LEVEL * max(1, job_level)


@dataclass
class Purchase:
    item: str
    price: int
    quantity: int
    wallet: int
    bank_limit: Optional[int] = None
    job_level: Optional[int] = None
    count: Optional[int] = None


class Shop:
    """Purchase operations."""

    @staticmethod
    async def buy_bank_upgrade(session: AsyncSession, user_id: str, username: str) -> Result[Purchase]:
        """Raise the bank limit by one step at the current tier's price."""
        try:
            async with session.begin():
                account = await Ledger.ensure(session, user_id, username)
                limit = account.bank_limit
                if limit >= BANK_HARD_CAP:
                    raise GuardFailed(Failure.CAP_REACHED, limit=BANK_HARD_CAP)
                price = bank_upgrade_price(limit)
                new_limit = min(limit + BANK_STEP, BANK_HARD_CAP)

                updated = await Ledger.debit(
                    session, user_id, BalanceField.WALLET, price,
                    Account.bank_limit == limit,
                    bank_limit=new_limit,
                )
                if updated is None:
                    current = await Ledger.get(session, user_id)
                    if current.bank_limit != limit:
                        raise GuardFailed(Failure.RACE_LOST)
                    raise GuardFailed(Failure.INSUFFICIENT_FUNDS, balance=current.wallet, price=price)
                Ledger.record(session, user_id, 'shop:bank_upgrade', -price)
        except GuardFailed as e:
            return e.to_result()

        return Result.success(Purchase('bank_upgrade', price, 1, updated.wallet, bank_limit=updated.bank_limit))

    @staticmethod
    async def buy_job_upgrade(session: AsyncSession, user_id: str, username: str) -> Result[Purchase]:
        """Raise the job level by one, priced at 500 x current level."""
        try:
            async with session.begin():
                account = await Ledger.ensure(session, user_id, username)
                level = account.job_level
                price = job_upgrade_price(level)
                updated = await Ledger.debit(
                    session, user_id, BalanceField.WALLET, price,
                    Account.job_level == level,
                    job_level=Account.job_level + 1,
                )
                if updated is None:
                    current = await Ledger.get(session, user_id)
                    if current.job_level != level:
                        raise GuardFailed(Failure.RACE_LOST)
                    raise GuardFailed(Failure.INSUFFICIENT_FUNDS, balance=current.wallet, price=price)
                Ledger.record(session, user_id, 'shop:job_upgrade', -price)
        except GuardFailed as e:
            return e.to_result()

        return Result.success(Purchase('job_upgrade', price, 1, updated.wallet, job_level=updated.job_level))

    @staticmethod
    async def buy_item(session: AsyncSession, user_id: str, username: str, item_key: str,
                       quantity: int = 1) -> Result[Purchase]:
        """Buy a catalog item. Flag items are capped, stack items are not."""
        item = CATALOG.get(item_key)
        if item is None:
            return Result.failure(Failure.NOT_FOUND, item=item_key)
        if quantity <= 0 or quantity > MAX_STACK_PER_PURCHASE or (item.is_flag and quantity > item.max_count):
            return Result.failure(Failure.INVALID_AMOUNT)

        price = item.price * quantity
        try:
            async with session.begin():
                await Ledger.ensure(session, user_id, username)
                if item.is_flag and await Ledger.item_count(session, user_id, item.key) + quantity > item.max_count:
                    raise GuardFailed(Failure.CAP_REACHED, limit=item.max_count)

                updated = await Ledger.debit(session, user_id, BalanceField.WALLET, price)
                if updated is None:
                    current = await Ledger.get(session, user_id)
                    raise GuardFailed(Failure.INSUFFICIENT_FUNDS, balance=current.wallet, price=price)
                count = await Ledger.add_item(session, user_id, item.key, quantity, item.max_count)
                if count is None:
                    # the debit above is rolled back with the rest of the unit
                    raise GuardFailed(Failure.CAP_REACHED, limit=item.max_count)
                wallet = updated.wallet
                Ledger.record(session, user_id, f'shop:{item.key}', -price)
        except GuardFailed as e:
            return e.to_result()

        return Result.success(Purchase(item.key, price, quantity, wallet, count=count))

    @staticmethod
    async def inventory(session: AsyncSession, user_id: str, username: str = '') -> Tuple[Account, Dict[str, int]]:
        """The account together with its non-empty inventory."""
        async with session.begin():
            account = await Ledger.ensure(session, user_id, username)
            items = await Ledger.items(session, user_id)
        return account, items
