"""
Lottery models: rounds, tickets and recorded wins.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, BigInteger, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class LotteryRound(Base):
    """One sales-and-draw cycle. At most one row is ever 'open'."""

    __tablename__ = 'lottery_rounds'
    __table_args__ = (
        Index(
            'uq_lottery_rounds_one_open',
            'status',
            unique=True,
            sqlite_where=text("status = 'open'"),
            postgresql_where=text("status = 'open'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default='open')  # 'open' or 'drawn'
    pot: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    rollover: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    planned_code: Mapped[Optional[str]] = mapped_column(String(6), nullable=True)
    override_splits: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)  # {"6": 0.75, ...}
    draw_code: Mapped[Optional[str]] = mapped_column(String(6), nullable=True)
    paid_out: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    drawn_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<LotteryRound(id={self.id}, status='{self.status}', pot={self.pot})>"


class LotteryTicket(Base):
    """A single purchased code. Immutable once written."""

    __tablename__ = 'lottery_tickets'
    __table_args__ = (
        Index('ix_lottery_tickets_round_user', 'round_id', 'user_id'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    round_id: Mapped[int] = mapped_column(Integer, ForeignKey('lottery_rounds.id'), nullable=False)
    user_id: Mapped[str] = mapped_column(String(32), ForeignKey('accounts.user_id'), nullable=False)
    code: Mapped[str] = mapped_column(String(6), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<LotteryTicket(id={self.id}, round_id={self.round_id}, code='{self.code}')>"


class LotteryWin(Base):
    """Audit row for every prize paid by a draw."""

    __tablename__ = 'lottery_wins'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    round_id: Mapped[int] = mapped_column(Integer, ForeignKey('lottery_rounds.id'), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    ticket_id: Mapped[int] = mapped_column(Integer, ForeignKey('lottery_tickets.id'), nullable=False)
    matches: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<LotteryWin(round_id={self.round_id}, user_id='{self.user_id}', matches={self.matches}, amount={self.amount})>"
