"""
Database models for the vault economy bot.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from .account import INITIAL_BANK_LIMIT, Account
from .base import Base
from .inventory import InventoryItem
from .lottery import LotteryRound, LotteryTicket, LotteryWin
from .transaction import Transaction


# Type aliases for convenience
Session = AsyncSession

__all__ = [
    'Base', 'Account', 'InventoryItem', 'LotteryRound', 'LotteryTicket', 'LotteryWin',
    'Transaction', 'Session', 'INITIAL_BANK_LIMIT',
]
