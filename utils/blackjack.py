"""
Blackjack as a small state machine.

``dealing -> player_turn -> dealer_turn -> settled``. The stake is taken
with a guarded debit when the round starts and the payout is credited
exactly once, however many of {button press, timeout} race to finish it.
"""

import asyncio
import enum
import logging
import random
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from utils.games import scaled_payout
from utils.ledger import BalanceField, Ledger
from utils.locks import ActiveSet
from utils.results import Failure, GuardFailed, Result

logger = logging.getLogger(__name__)

TURN_TIMEOUT = 60

# users with a round in progress in this process
active_games = ActiveSet()


class Card:
    """Represents a playing card."""

    SUITS = ['♠', '♥', '♦', '♣']
    RANKS = ['A', '2', '3', '4', '5', '6', '7', '8', '9', '10', 'J', 'Q', 'K']

    def __init__(self, rank: str, suit: str = '♠'):
        self.rank = rank
        self.suit = suit

    def value(self) -> int:
        if self.rank in ('J', 'Q', 'K'):
            return 10
        if self.rank == 'A':
            return 11
        return int(self.rank)

    def __str__(self) -> str:
        return f"{self.rank}{self.suit}"


class Hand:
    """Represents a hand of cards."""

    def __init__(self):
        self.cards: List[Card] = []

    def add_card(self, card: Card):
        self.cards.append(card)

    def _totals(self):
        value = sum(card.value() for card in self.cards)
        aces = sum(1 for card in self.cards if card.rank == 'A')
        while value > 21 and aces:
            value -= 10
            aces -= 1
        return value, aces

    def value(self) -> int:
        """Best total, counting aces as 1 where needed."""
        return self._totals()[0]

    def is_soft(self) -> bool:
        """True while an ace is still counted as 11."""
        return self._totals()[1] > 0

    def is_blackjack(self) -> bool:
        return len(self.cards) == 2 and self.value() == 21

    def is_bust(self) -> bool:
        return self.value() > 21

    def __str__(self) -> str:
        return ' '.join(str(card) for card in self.cards)


class Deck:
    """A shuffled 52-card deck."""

    def __init__(self, rng: random.Random = random):
        self.rng = rng
        self.cards: List[Card] = []
        self.reset()

    @classmethod
    def stacked(cls, ranks: List[str]) -> 'Deck':
        """Deck that deals ``ranks`` in the given order (for tests and replays)."""
        deck = cls.__new__(cls)
        deck.rng = random
        deck.cards = [Card(rank) for rank in reversed(ranks)]
        return deck

    def reset(self):
        self.cards = [Card(rank, suit) for suit in Card.SUITS for rank in Card.RANKS]
        self.rng.shuffle(self.cards)

    def deal(self) -> Card:
        if not self.cards:
            self.reset()
        return self.cards.pop()


class Phase(enum.Enum):
    DEALING = 'dealing'
    PLAYER_TURN = 'player_turn'
    DEALER_TURN = 'dealer_turn'
    SETTLED = 'settled'


class Outcome(str, enum.Enum):
    BLACKJACK = 'blackjack'
    WIN = 'win'
    PUSH = 'push'
    LOSE = 'lose'
    BUST = 'bust'


def dealer_should_hit(hand: Hand) -> bool:
    """Dealer draws below 17 and on soft 17."""
    total = hand.value()
    return total < 17 or (total == 17 and hand.is_soft())


def gross_for(outcome: Outcome, stake: int) -> int:
    if outcome is Outcome.BLACKJACK:
        return stake + stake * 3 // 2
    if outcome is Outcome.WIN:
        return stake * 2
    if outcome is Outcome.PUSH:
        return stake
    return 0


class BlackjackRound:
    """One hand of blackjack against the dealer for a single user."""

    def __init__(self, session_factory: Callable[[], AsyncSession], user_id: str, bet: int,
                 coin_multiplier: float = 1.0, deck: Optional[Deck] = None):
        self.session_factory = session_factory
        self.user_id = str(user_id)
        self.bet = bet
        self.stake = bet
        self.coin_multiplier = coin_multiplier
        self.deck = deck or Deck()
        self.player_hand = Hand()
        self.dealer_hand = Hand()
        self.phase = Phase.DEALING
        self.can_double = True
        self.outcome: Optional[Outcome] = None
        self.payout = 0
        self.finished = False
        self._lock = asyncio.Lock()

    @classmethod
    async def start(cls, session_factory: Callable[[], AsyncSession], user_id: str, username: str,
                    bet: int, deck: Optional[Deck] = None) -> Result['BlackjackRound']:
        """Take the stake and deal. Naturals settle immediately."""
        user_id = str(user_id)
        if bet is None or bet <= 0:
            return Result.failure(Failure.INVALID_AMOUNT)
        if not active_games.claim(user_id):
            return Result.failure(Failure.GAME_ACTIVE)

        try:
            async with session_factory() as session:
                async with session.begin():
                    await Ledger.ensure(session, user_id, username)
                    debited = await Ledger.debit(session, user_id, BalanceField.WALLET, bet)
                    if debited is None:
                        current = await Ledger.get(session, user_id)
                        raise GuardFailed(Failure.INSUFFICIENT_FUNDS, balance=current.wallet)
                    Ledger.record(session, user_id, 'blackjack_bet', -bet)
                    coin_multiplier = debited.coin_multiplier
        except GuardFailed as e:
            active_games.release(user_id)
            return e.to_result()
        except Exception:
            active_games.release(user_id)
            raise

        game = cls(session_factory, user_id, bet, coin_multiplier, deck)
        game._deal()
        async with game._lock:
            if game.player_hand.is_blackjack() or game.dealer_hand.is_blackjack():
                await game._settle(game._natural_outcome())
            else:
                game.phase = Phase.PLAYER_TURN
        return Result.success(game)

    def _deal(self):
        self.player_hand.add_card(self.deck.deal())
        self.dealer_hand.add_card(self.deck.deal())
        self.player_hand.add_card(self.deck.deal())
        self.dealer_hand.add_card(self.deck.deal())

    def _natural_outcome(self) -> Outcome:
        player, dealer = self.player_hand.is_blackjack(), self.dealer_hand.is_blackjack()
        if player and dealer:
            return Outcome.PUSH
        if player:
            return Outcome.BLACKJACK
        return Outcome.LOSE

    def _check_turn(self, actor_id) -> Optional[Result]:
        if str(actor_id) != self.user_id:
            return Result.failure(Failure.NOT_ALLOWED)
        if self.finished or self.phase is not Phase.PLAYER_TURN:
            return Result.failure(Failure.GAME_OVER)
        return None

    async def hit(self, actor_id) -> Result[Phase]:
        async with self._lock:
            rejected = self._check_turn(actor_id)
            if rejected is not None:
                return rejected
            self.can_double = False
            self.player_hand.add_card(self.deck.deal())
            if self.player_hand.is_bust():
                await self._settle(Outcome.BUST)
            return Result.success(self.phase)

    async def stand(self, actor_id) -> Result[Phase]:
        async with self._lock:
            rejected = self._check_turn(actor_id)
            if rejected is not None:
                return rejected
            await self._dealer_turn()
            return Result.success(self.phase)

    async def double(self, actor_id) -> Result[Phase]:
        """Double the stake, take exactly one card and stand.

        If the extra stake can't be covered, doubling is switched off and the
        round carries on.
        """
        async with self._lock:
            rejected = self._check_turn(actor_id)
            if rejected is not None:
                return rejected
            if not self.can_double:
                return Result.failure(Failure.NOT_ALLOWED)

            async with self.session_factory() as session:
                async with session.begin():
                    debited = await Ledger.debit(session, self.user_id, BalanceField.WALLET, self.bet)
                    if debited is not None:
                        Ledger.record(session, self.user_id, 'blackjack_double', -self.bet)
                    balance = None if debited is not None else (await Ledger.get(session, self.user_id)).wallet
            if balance is not None:
                self.can_double = False
                return Result.failure(Failure.INSUFFICIENT_FUNDS, balance=balance)

            self.stake += self.bet
            self.can_double = False
            self.player_hand.add_card(self.deck.deal())
            if self.player_hand.is_bust():
                await self._settle(Outcome.BUST)
            else:
                await self._dealer_turn()
            return Result.success(self.phase)

    async def timeout(self) -> bool:
        """Turn timer expired: stand on the player's behalf. No-op if already settled."""
        async with self._lock:
            if self.finished or self.phase is not Phase.PLAYER_TURN:
                return False
            logger.info(f"Blackjack turn timed out for {self.user_id}, standing")
            await self._dealer_turn()
            return True

    async def _dealer_turn(self):
        self.phase = Phase.DEALER_TURN
        self.can_double = False
        while dealer_should_hit(self.dealer_hand):
            self.dealer_hand.add_card(self.deck.deal())

        player, dealer = self.player_hand.value(), self.dealer_hand.value()
        if self.dealer_hand.is_bust() or player > dealer:
            outcome = Outcome.WIN
        elif player < dealer:
            outcome = Outcome.LOSE
        else:
            outcome = Outcome.PUSH
        await self._settle(outcome)

    async def _settle(self, outcome: Outcome):
        """Credit the payout. Runs its body once; later calls return immediately."""
        if self.finished:
            return
        self.finished = True
        self.phase = Phase.SETTLED
        self.can_double = False
        self.outcome = outcome
        self.payout = scaled_payout(self.stake, gross_for(outcome, self.stake), self.coin_multiplier)
        try:
            if self.payout > 0:
                async with self.session_factory() as session:
                    async with session.begin():
                        await Ledger.credit(session, self.user_id, BalanceField.WALLET, self.payout)
                        Ledger.record(session, self.user_id, f'blackjack_{outcome.value}', self.payout)
        except SQLAlchemyError as e:
            logger.error(f"Blackjack payout of {self.payout} to {self.user_id} failed ({outcome.value}): {e}")
            raise
        finally:
            active_games.release(self.user_id)

    @property
    def net(self) -> int:
        return self.payout - self.stake
