"""
Account model: one economic record per chat user, plus the reserved vault row.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

INITIAL_BANK_LIMIT = 200_000


class Account(Base):
    """Balances, progression, cooldowns and relationship state for one user."""

    __tablename__ = 'accounts'
    __table_args__ = (
        CheckConstraint('wallet >= 0', name='ck_accounts_wallet_nonneg'),
        CheckConstraint('bank >= 0', name='ck_accounts_bank_nonneg'),
        CheckConstraint('bank <= bank_limit', name='ck_accounts_bank_capacity'),
    )

    user_id: Mapped[str] = mapped_column(String(32), primary_key=True)  # platform snowflake as text
    username: Mapped[str] = mapped_column(String(100), nullable=False, default='')

    # Balances
    wallet: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    bank: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    bank_limit: Mapped[int] = mapped_column(BigInteger, nullable=False, default=INITIAL_BANK_LIMIT)

    # Progression
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    job_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    xp_multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    coin_multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)

    # Cooldowns, epoch milliseconds (0 = never)
    last_daily: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_steal: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_vaultrob: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Relationship
    married_to: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, index=True)
    couple_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    couple_last_claim: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    couple_anniv: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    couple_title: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Account(user_id='{self.user_id}', wallet={self.wallet}, bank={self.bank}/{self.bank_limit})>"
