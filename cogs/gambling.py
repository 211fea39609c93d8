"""
Instant wager games: gamble, slot machine and spin wheel.
"""

from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from utils.config import Config
from utils.economy_utils import EconomyUtils, WagerOutcome
from utils.helpers import EmbedBuilder, format_coins

if TYPE_CHECKING:
    from bot import VaultBot

TITLES = {
    'gamble': "🎲 Gamble",
    'slot': "🎰 Slot Machine",
    'spinwheel': "🎡 Spin Wheel",
}


def outcome_embed(outcome: WagerOutcome) -> discord.Embed:
    """Render a settled wager."""
    lines = []
    if outcome.symbols:
        lines.append(f"**[ {' | '.join(outcome.symbols)} ]**")
    lines.append(f"**{outcome.label.replace('_', ' ').title()}** (x{outcome.multiplier:g})")

    if outcome.net > 0:
        lines.append(f"You won {format_coins(outcome.net)}!")
        embed = EmbedBuilder.success_embed(TITLES[outcome.game], "\n".join(lines))
    elif outcome.net == 0:
        lines.append("You got your bet back.")
        embed = EmbedBuilder.info_embed(TITLES[outcome.game], "\n".join(lines))
    else:
        lines.append(f"You lost {format_coins(-outcome.net)}.")
        embed = EmbedBuilder.error_embed(TITLES[outcome.game], "\n".join(lines))

    embed.add_field(name="Bet", value=format_coins(outcome.bet), inline=True)
    embed.add_field(name="Payout", value=format_coins(outcome.payout), inline=True)
    embed.add_field(name="Wallet", value=format_coins(outcome.wallet), inline=True)
    return embed


class Gambling(commands.Cog):
    """Single-shot games settled in one transaction."""

    def __init__(self, bot: 'VaultBot', config: Config):
        self.bot = bot
        self.config = config

    async def _play(self, interaction: discord.Interaction, bet: str, game: str):
        async with self.bot.get_session() as session:
            result = await EconomyUtils.wager(session, str(interaction.user.id), interaction.user.name, bet, game)

        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return
        await interaction.response.send_message(embed=outcome_embed(result.value))

    @app_commands.command(name='gamble', description='Double or nothing')
    @app_commands.describe(bet='Bet: 1000, 10k, 25%, half or all')
    @app_commands.checks.cooldown(1, 3, key=lambda i: (i.guild_id, i.user.id))
    async def gamble_slash(self, interaction: discord.Interaction, bet: str):
        await self._play(interaction, bet, 'gamble')

    @app_commands.command(name='slot', description='Spin the four-reel slot machine')
    @app_commands.describe(bet='Bet: 1000, 10k, 25%, half or all')
    @app_commands.checks.cooldown(1, 3, key=lambda i: (i.guild_id, i.user.id))
    async def slot_slash(self, interaction: discord.Interaction, bet: str):
        await self._play(interaction, bet, 'slot')

    @app_commands.command(name='spinwheel', description='Spin the prize wheel')
    @app_commands.describe(bet='Bet: 1000, 10k, 25%, half or all')
    @app_commands.checks.cooldown(1, 3, key=lambda i: (i.guild_id, i.user.id))
    async def spinwheel_slash(self, interaction: discord.Interaction, bet: str):
        await self._play(interaction, bet, 'spinwheel')


async def setup(bot: 'VaultBot'):
    """Setup function for the cog."""
    await bot.add_cog(Gambling(bot, bot.config))
