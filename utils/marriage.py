"""
Marriage: proposals, the symmetric married_to link, the shared couple daily
and the couple title.

``married_to`` is always written on both rows in one transaction, with the
two rows locked in sorted order, so one side never points at a partner who
doesn't point back.
"""

import asyncio
import enum
import logging
import re
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from models import Account
from utils.ledger import BalanceField, Ledger, now_ms
from utils.results import Failure, GuardFailed, Result
from utils.vault import VAULT_ID

logger = logging.getLogger(__name__)

PROPOSAL_TIMEOUT = 20
DAY_MS = 24 * 60 * 60 * 1000
STREAK_GRACE_MS = 2 * DAY_MS
TITLE_MAX_LEN = 40
_DASHES_AND_SPACE = re.compile(r'[\s–—―−-]')


def couple_reward(streak: int) -> int:
    return 250 + 50 * min(streak, 15)


def clean_title(raw: str) -> Optional[str]:
    """Collapse whitespace. None if nothing but dashes/spaces remains or it's too long."""
    cleaned = ' '.join((raw or '').split())
    if not _DASHES_AND_SPACE.sub('', cleaned) or len(cleaned) > TITLE_MAX_LEN:
        return None
    return cleaned


@dataclass
class Couple:
    partner_id: str
    streak: int
    last_claim: int
    anniversary: int
    title: Optional[str]

    @property
    def next_claim(self) -> int:
        return self.last_claim + DAY_MS if self.last_claim else 0


@dataclass
class CoupleClaim:
    partner_id: str
    streak: int
    reward: int
    wallet: int


class ProposalState(enum.Enum):
    PROPOSED = 'proposed'
    ACCEPTED = 'accepted'
    DECLINED = 'declined'
    EXPIRED = 'expired'


class Proposal:
    """A pending proposal. Only the invited user can answer it, once."""

    def __init__(self, proposer_id: str, proposer_name: str, target_id: str, target_name: str,
                 timeout: float = PROPOSAL_TIMEOUT, clock=time.monotonic):
        self.proposer_id = str(proposer_id)
        self.proposer_name = proposer_name
        self.target_id = str(target_id)
        self.target_name = target_name
        self.state = ProposalState.PROPOSED
        self._deadline = clock() + timeout
        self._clock = clock
        self._lock = asyncio.Lock()

    def _closed(self, actor_id) -> Optional[Result]:
        if str(actor_id) != self.target_id:
            return Result.failure(Failure.NOT_ALLOWED)
        if self.state is ProposalState.PROPOSED and self._clock() >= self._deadline:
            self.state = ProposalState.EXPIRED
        if self.state is ProposalState.EXPIRED:
            return Result.failure(Failure.EXPIRED)
        if self.state is not ProposalState.PROPOSED:
            return Result.failure(Failure.NO_LONGER_AVAILABLE)
        return None

    async def accept(self, session: AsyncSession, actor_id) -> Result[Tuple[Account, Account]]:
        async with self._lock:
            rejected = self._closed(actor_id)
            if rejected is not None:
                return rejected
            result = await Marriage.marry(session, self.proposer_id, self.proposer_name,
                                          self.target_id, self.target_name)
            self.state = ProposalState.ACCEPTED if result.ok else ProposalState.DECLINED
            return result

    async def decline(self, actor_id) -> Result[None]:
        async with self._lock:
            rejected = self._closed(actor_id)
            if rejected is not None:
                return rejected
            self.state = ProposalState.DECLINED
            return Result.success(None)

    def expire(self) -> bool:
        """Time ran out. True if this closed a still-pending proposal."""
        if self.state is ProposalState.PROPOSED:
            self.state = ProposalState.EXPIRED
            return True
        return False


class Marriage:
    """Operations on the married_to link."""

    @staticmethod
    async def check_proposal(session: AsyncSession, proposer_id: str, proposer_name: str,
                             target_id: str, target_name: str) -> Result[None]:
        """Validate a proposal before it is shown. Acceptance checks again at write time."""
        proposer_id, target_id = str(proposer_id), str(target_id)
        if proposer_id == target_id or VAULT_ID in (proposer_id, target_id):
            return Result.failure(Failure.INVALID_TARGET)
        async with session.begin():
            proposer = await Ledger.ensure(session, proposer_id, proposer_name)
            proposer_married = proposer.married_to is not None
            target = await Ledger.ensure(session, target_id, target_name)
            target_married = target.married_to is not None
        if proposer_married or target_married:
            return Result.failure(Failure.ALREADY_MARRIED)
        return Result.success(None)

    @staticmethod
    async def marry(session: AsyncSession, first_id: str, first_name: str,
                    second_id: str, second_name: str) -> Result[Tuple[Account, Account]]:
        """Link two unmarried accounts. Both rows change or neither does."""
        first_id, second_id = str(first_id), str(second_id)
        if first_id == second_id:
            return Result.failure(Failure.INVALID_TARGET)
        now = now_ms()
        try:
            async with session.begin():
                await Ledger.ensure(session, first_id, first_name)
                await Ledger.ensure(session, second_id, second_name)
                await Ledger.lock_pair(session, first_id, second_id)

                linked = []
                for me, partner in sorted(((first_id, second_id), (second_id, first_id))):
                    row = await Ledger.apply_if(
                        session, me,
                        Account.married_to.is_(None),
                        married_to=partner,
                        couple_streak=0,
                        couple_last_claim=0,
                        couple_anniv=now,
                        couple_title=None,
                    )
                    if row is None:
                        raise GuardFailed(Failure.NO_LONGER_AVAILABLE, user_id=me)
                    linked.append(row)
        except GuardFailed as e:
            return e.to_result()

        logger.info(f"{first_id} and {second_id} are now married")
        rows = {row.user_id: row for row in linked}
        return Result.success((rows[first_id], rows[second_id]))

    @staticmethod
    async def divorce(session: AsyncSession, user_id: str, username: str = '') -> Result[str]:
        """Clear the link on both sides. Returns the former partner's id."""
        user_id = str(user_id)
        try:
            async with session.begin():
                account = await Ledger.ensure(session, user_id, username)
                partner_id = account.married_to
                if partner_id is None:
                    raise GuardFailed(Failure.NOT_MARRIED)
                await Ledger.lock_pair(session, user_id, partner_id)
                for me, partner in sorted(((user_id, partner_id), (partner_id, user_id))):
                    row = await Ledger.apply_if(
                        session, me,
                        Account.married_to == partner,
                        married_to=None,
                        couple_title=None,
                    )
                    if row is None:
                        raise GuardFailed(Failure.RACE_LOST)
        except GuardFailed as e:
            return e.to_result()
        return Result.success(partner_id)

    @staticmethod
    async def claim_daily(session: AsyncSession, user_id: str, username: str = '') -> Result[CoupleClaim]:
        """Shared couple daily: both partners get the same reward and streak."""
        user_id = str(user_id)
        now = now_ms()
        try:
            async with session.begin():
                account = await Ledger.ensure(session, user_id, username)
                partner_id = account.married_to
                if partner_id is None:
                    raise GuardFailed(Failure.NOT_MARRIED)
                me, partner = await Ledger.lock_pair(session, user_id, partner_id)
                if partner.married_to != user_id:
                    raise GuardFailed(Failure.NOT_MARRIED)

                last = max(me.couple_last_claim, partner.couple_last_claim)
                if last and now - last < DAY_MS:
                    raise GuardFailed(Failure.COOLDOWN_ACTIVE, retry_at=last + DAY_MS)
                if not last or now - last <= STREAK_GRACE_MS:
                    streak = max(me.couple_streak, partner.couple_streak) + 1
                else:
                    streak = 1
                reward = couple_reward(streak)
                observed = {user_id: me.couple_last_claim, partner_id: partner.couple_last_claim}

                wallets = {}
                for uid, other in sorted(((user_id, partner_id), (partner_id, user_id))):
                    row = await Ledger.credit(
                        session, uid, BalanceField.WALLET, reward,
                        Account.married_to == other,
                        Account.couple_last_claim == observed[uid],
                        couple_streak=streak,
                        couple_last_claim=now,
                    )
                    if row is None:
                        raise GuardFailed(Failure.RACE_LOST)
                    wallets[uid] = row.wallet
                    Ledger.record(session, uid, 'couple_daily', reward, counterparty_id=other)
        except GuardFailed as e:
            return e.to_result()
        return Result.success(CoupleClaim(partner_id, streak, reward, wallets[user_id]))

    @staticmethod
    async def set_title(session: AsyncSession, user_id: str, raw_title: str) -> Result[str]:
        """Set the couple title on both partners."""
        title = clean_title(raw_title)
        if title is None:
            return Result.failure(Failure.INVALID_TEXT, max_length=TITLE_MAX_LEN)
        user_id = str(user_id)
        try:
            async with session.begin():
                account = await Ledger.ensure(session, user_id)
                partner_id = account.married_to
                if partner_id is None:
                    raise GuardFailed(Failure.NOT_MARRIED)
                await Ledger.lock_pair(session, user_id, partner_id)
                for me, partner in sorted(((user_id, partner_id), (partner_id, user_id))):
                    if await Ledger.apply_if(session, me, Account.married_to == partner, couple_title=title) is None:
                        raise GuardFailed(Failure.RACE_LOST)
        except GuardFailed as e:
            return e.to_result()
        return Result.success(title)

    @staticmethod
    async def status(session: AsyncSession, user_id: str) -> Result[Couple]:
        async with session.begin():
            account = await Ledger.ensure(session, user_id)
            if account.married_to is None:
                return Result.failure(Failure.NOT_MARRIED)
            partner = await Ledger.get(session, account.married_to)
            couple = Couple(
                partner_id=account.married_to,
                streak=max(account.couple_streak, partner.couple_streak if partner else 0),
                last_claim=max(account.couple_last_claim, partner.couple_last_claim if partner else 0),
                anniversary=account.couple_anniv,
                title=account.couple_title or (partner.couple_title if partner else None),
            )
        return Result.success(couple)
