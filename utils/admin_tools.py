"""
Privileged account edits.

Admins go through the same guarded updates as everyone else: a set or add
that would leave a balance negative or a bank over its limit is refused.
"""

import enum
from typing import Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from models import Account
from utils.ledger import BalanceField, Ledger
from utils.results import Failure, GuardFailed, Result

MULTIPLIER_MIN = 0.1
MULTIPLIER_MAX = 10.0


class StatField(str, enum.Enum):
    """Progression columns an admin may edit, with their lower bound."""

    XP = 'xp'
    LEVEL = 'level'
    JOB_LEVEL = 'job_level'

    @property
    def minimum(self) -> int:
        return 0 if self is StatField.XP else 1

    @property
    def column(self):
        return getattr(Account, self.value)


class Cooldown(str, enum.Enum):
    DAILY = 'last_daily'
    STEAL = 'last_steal'
    VAULTROB = 'last_vaultrob'


def clamp_multiplier(value: float) -> float:
    return round(min(MULTIPLIER_MAX, max(MULTIPLIER_MIN, value)), 2)


class AdminTools:
    """Admin-only mutations on a target account."""

    @staticmethod
    async def edit_balance(session: AsyncSession, user_id: str, field: Union[str, BalanceField],
                           amount: int, add: bool = False) -> Result[Account]:
        """Set (or with ``add`` adjust by) a wallet or bank balance."""
        try:
            field = field if isinstance(field, BalanceField) else BalanceField.parse(field)
        except ValueError:
            return Result.failure(Failure.INVALID_TARGET)
        if not add and amount < 0:
            return Result.failure(Failure.INVALID_AMOUNT)

        column = field.column
        new_value = column + amount if add else amount
        guards = [new_value >= 0] if add else []
        if field is BalanceField.BANK:
            guards.append(new_value <= Account.bank_limit)
        try:
            async with session.begin():
                await Ledger.ensure(session, user_id)
                updated = await Ledger.apply_if(session, user_id, *guards, **{field.value: new_value})
                if updated is None:
                    current = await Ledger.get(session, user_id)
                    if field is BalanceField.BANK and (current.bank + amount if add else amount) > current.bank_limit:
                        raise GuardFailed(Failure.CAPACITY_EXCEEDED, space=current.bank_limit - current.bank)
                    raise GuardFailed(Failure.INSUFFICIENT_FUNDS, balance=getattr(current, field.value))
                Ledger.record(session, user_id, 'admin_add' if add else 'admin_set', amount, field)
        except GuardFailed as e:
            return e.to_result()
        return Result.success(updated)

    @staticmethod
    async def edit_stat(session: AsyncSession, user_id: str, stat: Union[str, StatField],
                        amount: int, add: bool = False) -> Result[Account]:
        """Set or adjust xp, level or job level, never below its floor."""
        try:
            stat = stat if isinstance(stat, StatField) else StatField(stat)
        except ValueError:
            return Result.failure(Failure.INVALID_TARGET)
        new_value = stat.column + amount if add else amount
        if not add and amount < stat.minimum:
            return Result.failure(Failure.INVALID_AMOUNT)
        try:
            async with session.begin():
                await Ledger.ensure(session, user_id)
                guards = [new_value >= stat.minimum] if add else []
                updated = await Ledger.apply_if(session, user_id, *guards, **{stat.value: new_value})
                if updated is None:
                    raise GuardFailed(Failure.INVALID_AMOUNT)
        except GuardFailed as e:
            return e.to_result()
        return Result.success(updated)

    @staticmethod
    async def reset_cooldown(session: AsyncSession, user_id: str, cooldown: Union[str, Cooldown]) -> Result[Account]:
        try:
            cooldown = cooldown if isinstance(cooldown, Cooldown) else Cooldown[cooldown.upper()]
        except KeyError:
            return Result.failure(Failure.INVALID_TARGET)
        async with session.begin():
            await Ledger.ensure(session, user_id)
            updated = await Ledger.apply_if(session, user_id, **{cooldown.value: 0})
        return Result.success(updated)

    @staticmethod
    async def set_multipliers(session: AsyncSession, user_id: str, xp: Optional[float] = None,
                              coin: Optional[float] = None) -> Result[Account]:
        """Set either multiplier, clamped to 0.1-10 and rounded to two decimals."""
        values = {}
        for name, value in (('xp_multiplier', xp), ('coin_multiplier', coin)):
            if value is None:
                continue
            if value <= 0:
                return Result.failure(Failure.INVALID_AMOUNT)
            values[name] = clamp_multiplier(value)
        if not values:
            return Result.failure(Failure.INVALID_AMOUNT)
        async with session.begin():
            await Ledger.ensure(session, user_id)
            updated = await Ledger.apply_if(session, user_id, **values)
        return Result.success(updated)

    @staticmethod
    async def reset_multipliers(session: AsyncSession, user_id: str) -> Result[Account]:
        async with session.begin():
            await Ledger.ensure(session, user_id)
            updated = await Ledger.apply_if(session, user_id, xp_multiplier=1.0, coin_multiplier=1.0)
        return Result.success(updated)
