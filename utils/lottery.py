"""
Six-digit lottery with rollover.

Rounds move ``open -> drawn`` exactly once. Ticket purchases for one
(round, user) pair are serialized so the per-round cap holds under rapid
repeated submissions; different users buy concurrently. A draw pays all
tiers, closes the round and opens the next one in a single transaction.
"""

import logging
import math
import random
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from fractions import Fraction
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models import LotteryRound, LotteryTicket, LotteryWin
from utils.ledger import BalanceField, Ledger
from utils.locks import KeyedLock
from utils.results import Failure, GuardFailed, Result
from utils.vault import Vault

logger = logging.getLogger(__name__)

TICKET_PRICE = 500
HOUSE_CUT = Fraction(10, 100)
CODE_LEN = 6
MAX_TICKETS_PER_USER = 100
MAX_TICKETS_PER_PURCHASE = 100
# match count -> share of (pot + rollover); more matching digits pays the larger share
DEFAULT_SPLITS: Dict[int, float] = {6: 0.75, 5: 0.20, 4: 0.05}
RECENT_ROUNDS = 3

_NON_DIGITS = re.compile(r'\D')

purchase_locks = KeyedLock()


def random_code(rng: random.Random = random) -> str:
    return ''.join(str(rng.randrange(10)) for _ in range(CODE_LEN))


def normalize_code(raw) -> Optional[str]:
    """Digits only; long input keeps its last six digits, short input is zero-padded on the left."""
    digits = _NON_DIGITS.sub('', str(raw if raw is not None else ''))
    if not digits:
        return None
    if len(digits) > CODE_LEN:
        return digits[-CODE_LEN:]
    return digits.zfill(CODE_LEN)


def count_matches(code: str, winning: str) -> int:
    """Number of positions where the two codes have the same digit."""
    return sum(1 for a, b in zip(code, winning) if a == b)


def normalize_percent(value) -> Optional[float]:
    """Accept 0.2 or 20 for twenty percent. None for negatives and garbage."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or number < 0:
        return None
    return number / 100 if number > 1 else number


def effective_splits(override: Optional[dict]) -> Dict[int, float]:
    if override:
        try:
            splits = {int(k): float(v) for k, v in override.items()}
        except (TypeError, ValueError):
            return dict(DEFAULT_SPLITS)
        if set(splits) == set(DEFAULT_SPLITS) and all(v >= 0 for v in splits.values()):
            return splits
    return dict(DEFAULT_SPLITS)


@dataclass
class TicketPurchase:
    round_id: int
    tickets: List[Tuple[int, str]]
    cost: int
    to_pot: int
    held: int
    wallet: int
    house_cut_recorded: bool = True

    @property
    def count(self) -> int:
        return len(self.tickets)


@dataclass
class TierResult:
    matches: int
    share: float
    pool: int
    each: int = 0
    winners: List[Tuple[str, int]] = field(default_factory=list)  # (user_id, ticket_id)


@dataclass
class DrawResult:
    round_id: int
    code: str
    pot: int
    paid_out: int
    rollover: int
    next_round_id: int
    tiers: List[TierResult]
    ticket_count: int


@dataclass
class RoundInfo:
    round_id: Optional[int]
    pot: int = 0
    rollover: int = 0
    ticket_count: int = 0
    held: int = 0
    planned_code: Optional[str] = None
    splits: Dict[int, float] = field(default_factory=lambda: dict(DEFAULT_SPLITS))
    recent: List[Tuple[int, Optional[str], int]] = field(default_factory=list)  # (id, code, prize pool)


async def _open_round(session: AsyncSession, for_update: bool = False) -> Optional[LotteryRound]:
    stmt = (
        select(LotteryRound)
        .where(LotteryRound.status == 'open')
        .order_by(LotteryRound.id.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    return (await session.execute(stmt)).scalar_one_or_none()


async def _ticket_count(session: AsyncSession, round_id: int, user_id: Optional[str] = None) -> int:
    stmt = select(func.count(LotteryTicket.id)).where(LotteryTicket.round_id == round_id)
    if user_id is not None:
        stmt = stmt.where(LotteryTicket.user_id == str(user_id))
    return (await session.execute(stmt)).scalar_one()


async def ensure_open_round(session: AsyncSession) -> LotteryRound:
    """Return the open round, creating it if there is none.

    Runs inside the caller's transaction. The partial unique index on open
    rounds turns a lost creation race into an IntegrityError, after which the
    winner's round is read back.
    """
    current = await _open_round(session)
    if current is not None:
        return current
    try:
        async with session.begin_nested():
            created = LotteryRound(status='open', pot=0, rollover=0)
            session.add(created)
        logger.info(f"Opened lottery round #{created.id}")
        return created
    except IntegrityError:
        return await _open_round(session)


class Lottery:
    """Lottery operations."""

    @staticmethod
    async def buy_tickets(session: AsyncSession, user_id: str, username: str, code: Optional[str] = None,
                          amount: int = 1, rng: random.Random = random) -> Result[TicketPurchase]:
        """Buy one ticket with a chosen code, or up to ``amount`` random tickets.

        The batch is trimmed to the per-round cap and then to what the wallet
        covers. Nothing is charged if that leaves zero tickets.
        """
        user_id = str(user_id)
        chosen = None
        if code is not None and str(code).strip():
            chosen = normalize_code(code)
            if chosen is None:
                return Result.failure(Failure.INVALID_CODE)
            amount = 1
        if amount is None or amount <= 0:
            return Result.failure(Failure.INVALID_AMOUNT)
        amount = min(amount, MAX_TICKETS_PER_PURCHASE)

        async with session.begin():
            await Ledger.ensure(session, user_id, username)
            round_id = (await ensure_open_round(session)).id

        key = f'{round_id}:{user_id}'
        try:
            async with purchase_locks.hold(key):
                async with session.begin():
                    if session.get_bind().dialect.name == 'postgresql':
                        await session.execute(select(func.pg_advisory_xact_lock(func.hashtext(key))))

                    held = await _ticket_count(session, round_id, user_id)
                    remaining = MAX_TICKETS_PER_USER - held
                    if remaining <= 0:
                        raise GuardFailed(Failure.CAP_REACHED, limit=MAX_TICKETS_PER_USER, held=held)

                    account = await Ledger.get(session, user_id)
                    affordable = account.wallet // TICKET_PRICE
                    count = min(amount, remaining, affordable)
                    if count <= 0:
                        raise GuardFailed(Failure.INSUFFICIENT_FUNDS, balance=account.wallet, price=TICKET_PRICE)

                    cost = TICKET_PRICE * count
                    debited = await Ledger.debit(session, user_id, BalanceField.WALLET, cost)
                    if debited is None:
                        raise GuardFailed(Failure.RACE_LOST, price=cost)
                    wallet = debited.wallet

                    to_pot = math.floor(cost * (1 - HOUSE_CUT))
                    grown = await session.execute(
                        update(LotteryRound)
                        .where(LotteryRound.id == round_id, LotteryRound.status == 'open')
                        .values(pot=LotteryRound.pot + to_pot)
                        .returning(LotteryRound.id)
                        .execution_options(synchronize_session=False)
                    )
                    if grown.scalar_one_or_none() is None:
                        raise GuardFailed(Failure.ROUND_NOT_OPEN)

                    codes = [chosen] if chosen else [random_code(rng) for _ in range(count)]
                    tickets = [LotteryTicket(round_id=round_id, user_id=user_id, code=c) for c in codes]
                    session.add_all(tickets)
                    await session.flush()
                    bought = [(t.id, t.code) for t in tickets]
                    Ledger.record(session, user_id, 'lottery_tickets', -cost,
                                  description=f'{count} ticket(s) for round #{round_id}')
        except GuardFailed as e:
            return e.to_result()

        recorded = await Vault.deposit_safely(session, cost - to_pot, 'lottery_house_cut')
        return Result.success(TicketPurchase(round_id, bought, cost, to_pot, held + count, wallet, recorded))

    @staticmethod
    async def draw(session: AsyncSession, rng: random.Random = random) -> Result[DrawResult]:
        """Draw the open round, pay every tier and open the next round seeded with the rollover."""
        try:
            async with session.begin():
                current = await _open_round(session, for_update=True)
                if current is None:
                    raise GuardFailed(Failure.ROUND_NOT_OPEN)
                round_id = current.id
                pot_total = current.pot + current.rollover
                winning = normalize_code(current.planned_code) if current.planned_code else None
                winning = winning or random_code(rng)
                splits = effective_splits(current.override_splits)

                tickets = (await session.execute(
                    select(LotteryTicket.id, LotteryTicket.user_id, LotteryTicket.code)
                    .where(LotteryTicket.round_id == round_id)
                    .order_by(LotteryTicket.id)
                )).all()

                tiers = []
                paid_out = 0
                for matches in sorted(splits, reverse=True):
                    share = splits[matches]
                    pool = math.floor(Decimal(pot_total) * Decimal(str(share)))
                    tier = TierResult(matches, share, pool)
                    tier.winners = [(uid, tid) for tid, uid, code in tickets if count_matches(code, winning) == matches]
                    if tier.winners and pool > 0:
                        tier.each = max(1, pool // len(tier.winners))
                        for uid, tid in tier.winners:
                            await Ledger.credit(session, uid, BalanceField.WALLET, tier.each)
                            session.add(LotteryWin(round_id=round_id, user_id=uid, ticket_id=tid,
                                                   matches=matches, amount=tier.each))
                            Ledger.record(session, uid, 'lottery_win', tier.each,
                                          description=f'{matches} matches in round #{round_id}')
                            paid_out += tier.each
                    tiers.append(tier)

                rollover = max(0, pot_total - paid_out)
                closed = await session.execute(
                    update(LotteryRound)
                    .where(LotteryRound.id == round_id, LotteryRound.status == 'open')
                    .values(status='drawn', draw_code=winning, paid_out=paid_out,
                            planned_code=None, override_splits=None, drawn_at=datetime.utcnow())
                    .returning(LotteryRound.id)
                    .execution_options(synchronize_session=False)
                )
                if closed.scalar_one_or_none() is None:
                    raise GuardFailed(Failure.ROUND_NOT_OPEN)

                following = LotteryRound(status='open', pot=rollover, rollover=0)
                session.add(following)
                await session.flush()
                next_round_id = following.id
        except GuardFailed as e:
            return e.to_result()

        logger.info(f"Lottery round #{round_id} drawn with {winning}: paid {paid_out}, rollover {rollover}")
        return Result.success(DrawResult(round_id, winning, pot_total, paid_out, rollover,
                                         next_round_id, tiers, len(tickets)))

    @staticmethod
    async def set_planned_code(session: AsyncSession, code: Optional[str]) -> Result[Tuple[int, Optional[str]]]:
        """Force (or with ``None`` clear) the next winning code of the open round."""
        planned = None
        if code is not None:
            if not str(code).strip().isdigit():
                return Result.failure(Failure.INVALID_CODE)
            planned = normalize_code(code)
        async with session.begin():
            current = await ensure_open_round(session)
            current.planned_code = planned
            round_id = current.id
        return Result.success((round_id, planned))

    @staticmethod
    async def set_pot(session: AsyncSession, mode: str, amount: int) -> Result[Tuple[int, int]]:
        """Set or add to the open round's pot. The pot never goes below zero."""
        if mode not in ('set', 'add'):
            return Result.failure(Failure.INVALID_AMOUNT)
        amount = max(0, int(amount))
        async with session.begin():
            await ensure_open_round(session)
            current = await _open_round(session, for_update=True)
            new_pot = amount if mode == 'set' else current.pot + amount
            current.pot = max(0, new_pot)
            round_id, pot = current.id, current.pot
        return Result.success((round_id, pot))

    @staticmethod
    async def set_splits(session: AsyncSession, six: float, five: float, four: float) -> Result[Dict[int, float]]:
        """Override the tier shares of the open round. Percent (20) or fraction (0.2) accepted."""
        values = [normalize_percent(v) for v in (six, five, four)]
        if any(v is None for v in values) or sum(values) > 1.0001:
            return Result.failure(Failure.INVALID_AMOUNT)
        splits = dict(zip((6, 5, 4), values))
        async with session.begin():
            current = await ensure_open_round(session)
            current.override_splits = {str(k): v for k, v in splits.items()}
        return Result.success(splits)

    @staticmethod
    async def round_info(session: AsyncSession, user_id: Optional[str] = None) -> RoundInfo:
        """Open round summary plus the last few drawn rounds."""
        async with session.begin():
            current = await _open_round(session)
            recent = (await session.execute(
                select(LotteryRound)
                .where(LotteryRound.status == 'drawn')
                .order_by(LotteryRound.id.desc())
                .limit(RECENT_ROUNDS)
            )).scalars().all()
            info = RoundInfo(
                round_id=None,
                recent=[(r.id, r.draw_code, r.pot + r.rollover) for r in recent],
            )
            if current is not None:
                info.round_id = current.id
                info.pot = current.pot
                info.rollover = current.rollover
                info.planned_code = current.planned_code
                info.splits = effective_splits(current.override_splits)
                info.ticket_count = await _ticket_count(session, current.id)
                if user_id is not None:
                    info.held = await _ticket_count(session, current.id, user_id)
        return info

    @staticmethod
    async def my_tickets(session: AsyncSession, user_id: str, limit: int = 50) -> Result[Tuple[int, List[Tuple[int, str]]]]:
        """The user's newest tickets in the open round."""
        async with session.begin():
            current = await _open_round(session)
            if current is None:
                return Result.failure(Failure.ROUND_NOT_OPEN)
            rows = (await session.execute(
                select(LotteryTicket.id, LotteryTicket.code)
                .where(LotteryTicket.round_id == current.id, LotteryTicket.user_id == str(user_id))
                .order_by(LotteryTicket.id.desc())
                .limit(limit)
            )).all()
            round_id = current.id
        return Result.success((round_id, [(tid, code) for tid, code in rows]))
