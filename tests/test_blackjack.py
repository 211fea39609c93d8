"""
Tests for the blackjack round state machine.
"""

import asyncio
import logging

import pytest
from sqlalchemy.exc import OperationalError

from utils.blackjack import (BlackjackRound, Card, Deck, Hand, Outcome, Phase, active_games,
                             dealer_should_hit, gross_for)
from utils.results import Failure


def hand_of(*ranks):
    hand = Hand()
    for rank in ranks:
        hand.add_card(Card(rank))
    return hand


class TestHands:

    def test_aces_soften(self):
        assert hand_of('A', 'K').is_blackjack()
        assert hand_of('A', 'A', '9').value() == 21
        assert hand_of('A', '5', 'K').value() == 16
        assert not hand_of('A', '5', 'K').is_soft()

    def test_dealer_hits_soft_seventeen(self):
        assert dealer_should_hit(hand_of('A', '6'))
        assert not dealer_should_hit(hand_of('10', '7'))
        assert dealer_should_hit(hand_of('10', '6'))

    def test_gross_for(self):
        assert gross_for(Outcome.BLACKJACK, 1000) == 2500
        assert gross_for(Outcome.WIN, 1000) == 2000
        assert gross_for(Outcome.PUSH, 1000) == 1000
        assert gross_for(Outcome.BUST, 1000) == 0

    def test_stacked_deck_deals_in_order(self):
        deck = Deck.stacked(['A', '2', '3'])
        assert [deck.deal().rank for _ in range(3)] == ['A', '2', '3']


class TestRound:

    @pytest.mark.asyncio
    async def test_natural_blackjack_settles_at_deal(self, session_maker, fund, fetch):
        await fund('1', wallet=1000)
        # deal order: player, dealer, player, dealer
        result = await BlackjackRound.start(session_maker, '1', 'alice', 1000, Deck.stacked(['A', '5', 'K', '9']))

        game = result.value
        assert game.finished
        assert game.outcome is Outcome.BLACKJACK
        assert game.payout == 2500
        assert (await fetch('1')).wallet == 2500
        assert '1' not in active_games

    @pytest.mark.asyncio
    async def test_dealer_natural_beats_player(self, session_maker, fund, fetch):
        await fund('1', wallet=1000)
        game = (await BlackjackRound.start(session_maker, '1', 'alice', 1000,
                                           Deck.stacked(['9', 'A', '9', 'K']))).value
        assert game.outcome is Outcome.LOSE
        assert (await fetch('1')).wallet == 0

    @pytest.mark.asyncio
    async def test_bust(self, session_maker, fund, fetch):
        await fund('1', wallet=1000)
        game = (await BlackjackRound.start(session_maker, '1', 'alice', 1000,
                                           Deck.stacked(['10', '9', '6', '8', 'K']))).value
        assert game.phase is Phase.PLAYER_TURN

        await game.hit('1')

        assert game.outcome is Outcome.BUST
        assert game.payout == 0
        assert (await fetch('1')).wallet == 0
        assert (await game.hit('1')).reason is Failure.GAME_OVER

    @pytest.mark.asyncio
    async def test_stand_and_dealer_busts(self, session_maker, fund, fetch):
        await fund('1', wallet=1000)
        game = (await BlackjackRound.start(session_maker, '1', 'alice', 1000,
                                           Deck.stacked(['10', '9', 'Q', '7', '10']))).value

        await game.stand('1')

        assert game.dealer_hand.is_bust()
        assert game.outcome is Outcome.WIN
        assert (await fetch('1')).wallet == 2000

    @pytest.mark.asyncio
    async def test_push_returns_stake(self, session_maker, fund, fetch):
        await fund('1', wallet=1000)
        game = (await BlackjackRound.start(session_maker, '1', 'alice', 1000,
                                           Deck.stacked(['10', '10', '8', '8']))).value
        await game.stand('1')
        assert game.outcome is Outcome.PUSH
        assert (await fetch('1')).wallet == 1000

    @pytest.mark.asyncio
    async def test_double_down(self, session_maker, fund, fetch):
        await fund('1', wallet=2000)
        game = (await BlackjackRound.start(session_maker, '1', 'alice', 1000,
                                           Deck.stacked(['5', '10', '6', '7', '9']))).value

        await game.double('1')

        assert game.stake == 2000
        assert len(game.player_hand.cards) == 3
        assert game.outcome is Outcome.WIN
        assert (await fetch('1')).wallet == 4000

    @pytest.mark.asyncio
    async def test_double_without_funds_keeps_playing(self, session_maker, fund, fetch):
        await fund('1', wallet=1000)
        game = (await BlackjackRound.start(session_maker, '1', 'alice', 1000,
                                           Deck.stacked(['5', '10', '6', '7', '9']))).value

        result = await game.double('1')

        assert result.reason is Failure.INSUFFICIENT_FUNDS
        assert not game.can_double
        assert game.phase is Phase.PLAYER_TURN
        assert game.stake == 1000
        await game.stand('1')
        assert (await fetch('1')).wallet == 0

    @pytest.mark.asyncio
    async def test_only_owner_can_act(self, session_maker, fund):
        await fund('1', wallet=1000)
        game = (await BlackjackRound.start(session_maker, '1', 'alice', 1000,
                                           Deck.stacked(['10', '9', '6', '8']))).value
        assert (await game.hit('2')).reason is Failure.NOT_ALLOWED
        assert (await game.stand('2')).reason is Failure.NOT_ALLOWED
        assert (await game.double('2')).reason is Failure.NOT_ALLOWED
        assert len(game.player_hand.cards) == 2
        assert game.phase is Phase.PLAYER_TURN
        await game.stand('1')

    @pytest.mark.asyncio
    async def test_double_after_settlement_is_rejected(self, session_maker, fund, fetch):
        await fund('1', wallet=200)
        game = (await BlackjackRound.start(session_maker, '1', 'alice', 100,
                                           Deck.stacked(['10', '10', '9', '8']))).value
        await game.stand('1')
        assert game.outcome is Outcome.WIN
        assert not game.can_double
        assert (await fetch('1')).wallet == 300

        late = await game.double('1')

        assert late.reason is Failure.GAME_OVER
        assert game.stake == 100
        assert (await fetch('1')).wallet == 300

    @pytest.mark.asyncio
    async def test_stand_and_double_race_debits_once(self, session_maker, fund, fetch):
        await fund('1', wallet=200)
        game = (await BlackjackRound.start(session_maker, '1', 'alice', 100,
                                           Deck.stacked(['10', '10', '9', '8']))).value

        stood, doubled = await asyncio.gather(game.stand('1'), game.double('1'))

        assert stood.ok
        assert doubled.reason is Failure.GAME_OVER
        assert (await fetch('1')).wallet == 300

    @pytest.mark.asyncio
    async def test_stand_and_timeout_race_settles_once(self, session_maker, fund, fetch):
        await fund('1', wallet=1000)
        game = (await BlackjackRound.start(session_maker, '1', 'alice', 1000,
                                           Deck.stacked(['10', '10', 'Q', '7']))).value

        stood, timed_out = await asyncio.gather(game.stand('1'), game.timeout())

        assert stood.ok
        assert timed_out is False
        assert game.outcome is Outcome.WIN
        assert (await fetch('1')).wallet == 2000
        assert not await game.timeout()

    @pytest.mark.asyncio
    async def test_one_game_per_user(self, session_maker, fund):
        await fund('1', wallet=5000)
        game = (await BlackjackRound.start(session_maker, '1', 'alice', 1000,
                                           Deck.stacked(['10', '9', '6', '8']))).value

        second = await BlackjackRound.start(session_maker, '1', 'alice', 1000)
        assert second.reason is Failure.GAME_ACTIVE

        await game.timeout()
        assert '1' not in active_games

    @pytest.mark.asyncio
    async def test_unaffordable_bet_releases_slot(self, session_maker, fund, fetch):
        await fund('1', wallet=100)
        result = await BlackjackRound.start(session_maker, '1', 'alice', 1000)
        assert result.reason is Failure.INSUFFICIENT_FUNDS
        assert result.detail['balance'] == 100
        assert '1' not in active_games
        assert (await fetch('1')).wallet == 100

    @pytest.mark.asyncio
    async def test_coin_multiplier_scales_profit(self, session_maker, fund, fetch):
        await fund('1', wallet=1000, coin_multiplier=2.0)
        game = (await BlackjackRound.start(session_maker, '1', 'alice', 1000,
                                           Deck.stacked(['10', '10', 'Q', '7']))).value
        await game.stand('1')
        assert game.payout == 3000
        assert (await fetch('1')).wallet == 3000

    @pytest.mark.asyncio
    async def test_failed_payout_is_logged(self, session_maker, fund, caplog):
        await fund('1', wallet=1000)
        game = (await BlackjackRound.start(session_maker, '1', 'alice', 1000,
                                           Deck.stacked(['10', '10', 'Q', '7']))).value

        def broken_session():
            raise OperationalError('UPDATE accounts', {}, Exception('disk I/O error'))

        game.session_factory = broken_session
        with caplog.at_level(logging.ERROR, logger='utils.blackjack'):
            with pytest.raises(OperationalError):
                await game.stand('1')

        assert game.finished
        assert '1' not in active_games
        assert 'payout of 2000' in caplog.text
