"""
The house vault: a reserved account that collects taxes and fines and pays out
robberies. It lives in the accounts table like any user and is written only
through the same guarded primitives.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from utils.ledger import BalanceField, Ledger

logger = logging.getLogger(__name__)

VAULT_ID = 'BOT_BANK'
VAULT_NAME = 'Bot Vault'


class Vault:
    """Operations on the singleton vault account. The balance is kept in its wallet."""

    @staticmethod
    async def balance(session: AsyncSession) -> int:
        account = await Ledger.ensure(session, VAULT_ID, VAULT_NAME)
        return account.wallet

    @staticmethod
    async def deposit(session: AsyncSession, amount: int) -> int:
        """Add coins to the vault and return the new balance."""
        await Ledger.ensure(session, VAULT_ID, VAULT_NAME)
        if amount <= 0:
            return await Vault.balance(session)
        account = await Ledger.credit(session, VAULT_ID, BalanceField.WALLET, amount)
        return account.wallet

    @staticmethod
    async def withdraw_up_to(session: AsyncSession, amount: int) -> int:
        """Take ``min(amount, balance)`` out of the vault. Returns what was taken."""
        await Ledger.ensure(session, VAULT_ID, VAULT_NAME)
        if amount <= 0:
            return 0
        vault = await Ledger.lock(session, VAULT_ID)
        take = min(amount, vault.wallet)
        if take <= 0:
            return 0
        if await Ledger.debit(session, VAULT_ID, BalanceField.WALLET, take) is None:
            return 0
        return take

    @staticmethod
    async def deposit_safely(session: AsyncSession, amount: int, reason: str) -> bool:
        """Deposit in a transaction of its own, after the main operation committed.

        A failure here is logged and swallowed; it never undoes the operation
        the deposit was collected from.
        """
        if amount <= 0:
            return True
        try:
            async with session.begin():
                await Vault.deposit(session, amount)
                Ledger.record(session, VAULT_ID, reason, amount)
        except SQLAlchemyError as e:
            logger.error(f"Failed to deposit {amount} ({reason}) into the vault: {e}")
            return False
        return True
