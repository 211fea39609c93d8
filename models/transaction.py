"""
Transaction model: audit trail of money movements.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Transaction(Base):
    """One recorded balance change."""

    __tablename__ = 'transactions'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(32), index=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)  # e.g. 'send', 'steal', 'wager', 'shop'
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)  # signed
    field: Mapped[str] = mapped_column(String(10), nullable=False, default='wallet')
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    counterparty_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, user_id='{self.user_id}', type='{self.type}', amount={self.amount})>"
