"""
Blackjack game cog.
"""

import logging
from typing import TYPE_CHECKING, Optional

import discord
from discord import app_commands, ui
from discord.ext import commands

from utils.blackjack import TURN_TIMEOUT, BlackjackRound, Outcome, active_games
from utils.config import Config
from utils.economy_utils import EconomyUtils
from utils.helpers import EmbedBuilder, describe_failure, format_coins, parse_amount

if TYPE_CHECKING:
    from bot import VaultBot

logger = logging.getLogger(__name__)

RESULT_TEXT = {
    Outcome.BLACKJACK: "🂡 **Blackjack!** You win 3:2.",
    Outcome.WIN: "🎉 **You win!**",
    Outcome.PUSH: "🤝 **Push.** Your bet is returned.",
    Outcome.LOSE: "😞 **Dealer wins.**",
    Outcome.BUST: "💥 **Bust!** You lose.",
}


def game_embed(game: BlackjackRound, player: discord.abc.User) -> discord.Embed:
    """Current table state. The dealer's hole card stays hidden until settlement."""
    if game.finished:
        color = discord.Color.green() if game.net > 0 else discord.Color.red() if game.net < 0 else discord.Color.light_grey()
    else:
        color = discord.Color.blue()
    embed = discord.Embed(title="🃏 Blackjack", color=color)

    if game.finished:
        dealer = f"{game.dealer_hand} (Value: {game.dealer_hand.value()})"
    else:
        dealer = f"{game.dealer_hand.cards[0]} ??"
    embed.add_field(name="Dealer's Hand", value=dealer, inline=False)
    embed.add_field(
        name=f"{player.display_name}'s Hand",
        value=f"{game.player_hand} (Value: {game.player_hand.value()})",
        inline=False
    )
    embed.add_field(name="Bet", value=format_coins(game.stake), inline=True)

    if game.finished:
        embed.add_field(name="Result", value=RESULT_TEXT[game.outcome], inline=False)
        embed.add_field(name="Payout", value=format_coins(game.payout), inline=True)
    else:
        embed.set_footer(text=f"You have {TURN_TIMEOUT}s per move before the dealer stands for you.")
    return embed


class BlackjackView(ui.View):
    """Hit / Stand / Double buttons for one round."""

    def __init__(self, game: BlackjackRound, player: discord.abc.User):
        super().__init__(timeout=TURN_TIMEOUT)
        self.game = game
        self.player = player
        self.message: Optional[discord.Message] = None
        self._sync_buttons()

    def _sync_buttons(self):
        self.double_button.disabled = not self.game.can_double
        if self.game.finished:
            for item in self.children:
                item.disabled = True
            self.stop()

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id != self.player.id:
            await interaction.response.send_message("This is not your game!", ephemeral=True)
            return False
        return True

    async def _apply(self, interaction: discord.Interaction, result):
        if not result:
            await interaction.response.send_message(describe_failure(result), ephemeral=True)
            self._sync_buttons()
            if self.message:
                await self.message.edit(view=self)
            return
        self._sync_buttons()
        await interaction.response.edit_message(embed=game_embed(self.game, self.player), view=self)

    @ui.button(label="Hit", style=discord.ButtonStyle.primary, emoji="🃏")
    async def hit_button(self, interaction: discord.Interaction, button: ui.Button):
        await self._apply(interaction, await self.game.hit(interaction.user.id))

    @ui.button(label="Stand", style=discord.ButtonStyle.secondary, emoji="✋")
    async def stand_button(self, interaction: discord.Interaction, button: ui.Button):
        await self._apply(interaction, await self.game.stand(interaction.user.id))

    @ui.button(label="Double Down", style=discord.ButtonStyle.success, emoji="⚡")
    async def double_button(self, interaction: discord.Interaction, button: ui.Button):
        await self._apply(interaction, await self.game.double(interaction.user.id))

    async def on_timeout(self):
        """Stand automatically when the player goes quiet."""
        await self.game.timeout()
        self._sync_buttons()
        if self.message:
            try:
                await self.message.edit(embed=game_embed(self.game, self.player), view=self)
            except discord.HTTPException as e:
                logger.warning(f"Could not update timed out blackjack message: {e}")


class Blackjack(commands.Cog):
    """Blackjack against the dealer."""

    def __init__(self, bot: 'VaultBot', config: Config):
        self.bot = bot
        self.config = config

    @app_commands.command(name='blackjack', description='Play a hand of blackjack')
    @app_commands.describe(bet='Bet: 1000, 10k, 25%, half or all')
    async def blackjack_slash(self, interaction: discord.Interaction, bet: str):
        user_id = str(interaction.user.id)
        if user_id in active_games:
            await interaction.response.send_message("You already have a blackjack game running!", ephemeral=True)
            return

        async with self.bot.get_session() as session:
            account = await EconomyUtils.get_account(session, user_id, interaction.user.name)
        amount = parse_amount(bet, account.wallet)

        result = await BlackjackRound.start(self.bot.get_session, user_id, interaction.user.name, amount)
        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return

        game = result.value
        view = BlackjackView(game, interaction.user)
        await interaction.response.send_message(embed=game_embed(game, interaction.user), view=view)
        if not game.finished:
            view.message = await interaction.original_response()


async def setup(bot: 'VaultBot'):
    """Setup function for the cog."""
    await bot.add_cog(Blackjack(bot, bot.config))
