"""
Account store and guarded-update primitives.

Every balance change in the bot goes through ``Ledger.apply_if``: a single
``UPDATE ... WHERE <guard> RETURNING`` statement, so the guard is evaluated by
the database against the row as it is at write time. ``None`` means the guard
did not hold and nothing was written.

All methods expect to run inside an open ``session.begin()`` block.
"""

import enum
import time
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from models import Account, InventoryItem, Transaction
from utils.results import Failure, GuardFailed


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class BalanceField(str, enum.Enum):
    """The balance columns a user-facing command may target."""

    WALLET = 'wallet'
    BANK = 'bank'

    @classmethod
    def parse(cls, name: str) -> 'BalanceField':
        """Map user input onto an allowed field. Raises ValueError otherwise."""
        key = (name or '').strip().lower()
        if key == 'money':
            key = 'wallet'
        return cls(key)

    @property
    def column(self):
        return getattr(Account, self.value)


def _insert_for(session: AsyncSession):
    """Dialect-specific insert construct (both support ON CONFLICT)."""
    if session.get_bind().dialect.name == 'postgresql':
        return postgresql.insert
    return sqlite.insert


class Ledger:
    """Account store plus the atomic guarded-update primitive."""

    @staticmethod
    async def ensure(session: AsyncSession, user_id: str, username: str = '') -> Account:
        """Insert the account if missing, otherwise refresh its display name.

        Safe under concurrency: a single INSERT ... ON CONFLICT DO UPDATE.
        An empty ``username`` keeps whatever name is stored.
        """
        insert = _insert_for(session)
        stmt = insert(Account).values(user_id=str(user_id), username=username or '')
        stmt = stmt.on_conflict_do_update(
            index_elements=[Account.user_id],
            set_={'username': func.coalesce(func.nullif(stmt.excluded.username, ''), Account.username)},
        ).returning(Account).execution_options(populate_existing=True)
        result = await session.execute(stmt)
        return result.scalar_one()

    @staticmethod
    async def get(session: AsyncSession, user_id: str) -> Optional[Account]:
        """Fresh read of an account, or None."""
        return await session.get(Account, str(user_id), populate_existing=True)

    @staticmethod
    async def lock(session: AsyncSession, user_id: str) -> Optional[Account]:
        """Read an account with a row lock held until the transaction ends."""
        stmt = (
            select(Account)
            .where(Account.user_id == str(user_id))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def lock_pair(session: AsyncSession, first_id: str, second_id: str) -> Tuple[Account, Account]:
        """Lock two accounts in a fixed (sorted) order and return them in argument order.

        Two operations touching the same pair in opposite roles always acquire
        the locks in the same order, so they cannot deadlock each other.
        """
        first_id, second_id = str(first_id), str(second_id)
        locked: Dict[str, Account] = {}
        for user_id in sorted((first_id, second_id)):
            account = await Ledger.lock(session, user_id)
            if account is None:
                raise GuardFailed(Failure.NOT_FOUND, user_id=user_id)
            locked[user_id] = account
        return locked[first_id], locked[second_id]

    @staticmethod
    async def apply_if(session: AsyncSession, user_id: str, *guards: Any, **values: Any) -> Optional[Account]:
        """Apply ``values`` to the account only if every guard holds.

        Guards are SQL expressions over ``Account`` columns, values may be
        expressions too (``wallet=Account.wallet - 10``). Returns the updated
        row, or None when the guard failed (or the row doesn't exist).
        """
        stmt = (
            update(Account)
            .where(Account.user_id == str(user_id), *guards)
            .values(**values)
            .returning(Account)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def debit(session: AsyncSession, user_id: str, field: BalanceField, amount: int,
                    *guards: Any, **values: Any) -> Optional[Account]:
        """Subtract ``amount`` from a balance if it covers it."""
        column = field.column
        return await Ledger.apply_if(
            session, user_id, column >= amount, *guards,
            **{field.value: column - amount}, **values
        )

    @staticmethod
    async def credit(session: AsyncSession, user_id: str, field: BalanceField, amount: int,
                     *guards: Any, **values: Any) -> Optional[Account]:
        """Add ``amount`` to a balance. Bank credits must fit under ``bank_limit``."""
        column = field.column
        if field is BalanceField.BANK:
            guards = (Account.bank + amount <= Account.bank_limit,) + guards
        return await Ledger.apply_if(session, user_id, *guards, **{field.value: column + amount}, **values)

    @staticmethod
    def record(session: AsyncSession, user_id: str, type_: str, amount: int,
               field: BalanceField = BalanceField.WALLET, description: str = '',
               counterparty_id: Optional[str] = None) -> None:
        """Add an audit row to the current transaction."""
        session.add(Transaction(
            user_id=str(user_id),
            type=type_,
            amount=amount,
            field=field.value,
            description=description or None,
            counterparty_id=counterparty_id,
        ))

    # -- inventory -------------------------------------------------------

    @staticmethod
    async def item_count(session: AsyncSession, user_id: str, item_key: str) -> int:
        stmt = select(InventoryItem.count).where(
            InventoryItem.user_id == str(user_id), InventoryItem.item_key == item_key
        )
        count = (await session.execute(stmt)).scalar_one_or_none()
        return count or 0

    @staticmethod
    async def items(session: AsyncSession, user_id: str) -> Dict[str, int]:
        stmt = select(InventoryItem.item_key, InventoryItem.count).where(
            InventoryItem.user_id == str(user_id), InventoryItem.count > 0
        )
        return {key: count for key, count in (await session.execute(stmt)).all()}

    @staticmethod
    async def add_item(session: AsyncSession, user_id: str, item_key: str, quantity: int = 1,
                       max_count: Optional[int] = None) -> Optional[int]:
        """Grant items. With ``max_count`` the grant only applies if it stays within the cap.

        Returns the new count, or None if the cap blocked it.
        """
        if max_count is not None and quantity > max_count:
            return None
        insert = _insert_for(session)
        stmt = insert(InventoryItem).values(user_id=str(user_id), item_key=item_key, count=quantity)
        cap_guard = None
        if max_count is not None:
            cap_guard = InventoryItem.count + quantity <= max_count
        stmt = stmt.on_conflict_do_update(
            index_elements=[InventoryItem.user_id, InventoryItem.item_key],
            set_={'count': InventoryItem.count + quantity},
            where=cap_guard,
        ).returning(InventoryItem.count)
        return (await session.execute(stmt)).scalar_one_or_none()

    @staticmethod
    async def consume_item(session: AsyncSession, user_id: str, item_key: str, quantity: int = 1) -> bool:
        """Use up items if the user holds enough of them."""
        stmt = (
            update(InventoryItem)
            .where(
                InventoryItem.user_id == str(user_id),
                InventoryItem.item_key == item_key,
                InventoryItem.count >= quantity,
            )
            .values(count=InventoryItem.count - quantity)
            .returning(InventoryItem.count)
            .execution_options(synchronize_session=False)
        )
        return (await session.execute(stmt)).scalar_one_or_none() is not None
