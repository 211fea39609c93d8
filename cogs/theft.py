"""
Theft cog: steal, vault robbery, vault view and the big heist event.
"""

import logging
from typing import TYPE_CHECKING, Optional

import discord
from discord import app_commands, ui
from discord.ext import commands

from utils.config import Config
from utils.helpers import EmbedBuilder, describe_failure, format_coins
from utils.theft import HEIST_DURATION_S, MIN_VAULT_TO_ROB, Theft, VaultRobOutcome
from utils.vault import Vault

if TYPE_CHECKING:
    from bot import VaultBot

logger = logging.getLogger(__name__)


def vaultrob_embed(outcome: VaultRobOutcome) -> discord.Embed:
    if outcome.success:
        text = f"You cracked the vault and walked away with {format_coins(outcome.gained)}!"
        if outcome.key_used:
            text += "\n🔑 Your Master Key doubled the take and was used up."
        embed = EmbedBuilder.success_embed("💥 Big Heist!" if outcome.big_heist else "🏦 Vault robbed!", text)
    else:
        embed = EmbedBuilder.error_embed(
            "🚨 Caught!",
            f"The guards caught you. You paid a fine of {format_coins(outcome.fine)}."
        )
    embed.add_field(name="Wallet", value=format_coins(outcome.wallet), inline=True)
    return embed


class HeistView(ui.View):
    """The claim button posted with a heist announcement. The first valid click wins."""

    def __init__(self, bot: 'VaultBot'):
        super().__init__(timeout=HEIST_DURATION_S)
        self.bot = bot
        self.message: Optional[discord.Message] = None

    @ui.button(label="Rob the vault!", style=discord.ButtonStyle.danger, emoji="💰")
    async def claim_button(self, interaction: discord.Interaction, button: ui.Button):
        async with self.bot.get_session() as session:
            result = await Theft.claim_big_heist(
                session, self.bot.heist, interaction.message.id,
                str(interaction.user.id), interaction.user.name,
            )

        if not result:
            await interaction.response.send_message(describe_failure(result), ephemeral=True)
            return

        button.disabled = True
        button.label = f"Claimed by {interaction.user.display_name}"
        self.stop()
        await interaction.response.edit_message(view=self)
        await interaction.followup.send(
            f"💥 {interaction.user.mention} pulled off the heist and took {format_coins(result.value.gained)}!"
        )

    async def on_timeout(self):
        for item in self.children:
            item.disabled = True
        if self.message:
            try:
                await self.message.edit(view=self)
            except discord.HTTPException as e:
                logger.warning(f"Could not close heist message: {e}")


class TheftCog(commands.Cog, name='Theft'):
    """Crime doesn't pay. Usually."""

    def __init__(self, bot: 'VaultBot', config: Config):
        self.bot = bot
        self.config = config

    async def maybe_start_heist(self, channel: discord.abc.Messageable) -> bool:
        """Roll for a heist and announce it in ``channel``."""
        if not self.bot.heist.maybe_trigger():
            return False

        embed = EmbedBuilder.info_embed(
            "💥 Big Vault Heist Activated!",
            "The vault's defenses are down for a few minutes!\n"
            "⚠️ Only **one** person can claim the heist, and `/vaultrob` odds are boosted meanwhile."
        )
        view = HeistView(self.bot)
        try:
            view.message = await channel.send(embed=embed, view=view)
        except discord.HTTPException as e:
            logger.warning(f"Failed to send big heist message: {e}")
            self.bot.heist.abort()
            return False
        return True

    @app_commands.command(name='steal', description='Try to steal coins from another user')
    @app_commands.describe(target='Who to rob', amount='How much to try for')
    async def steal_slash(self, interaction: discord.Interaction, target: discord.User,
                          amount: app_commands.Range[int, 1]):
        if target.bot:
            await interaction.response.send_message("Bots keep their coins somewhere safer.", ephemeral=True)
            return

        async with self.bot.get_session() as session:
            result = await Theft.steal(
                session, str(interaction.user.id), interaction.user.name,
                str(target.id), target.name, amount,
            )

        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return

        outcome = result.value
        if outcome.success:
            embed = EmbedBuilder.success_embed(
                "🦹 Success!",
                f"You stole {format_coins(outcome.stolen)} from {target.mention}!"
            )
        else:
            embed = EmbedBuilder.error_embed(
                "🚓 Busted!",
                f"You got caught trying to rob {target.mention} and paid a fine of {format_coins(outcome.fine)}.\n"
                f"{target.display_name} received {outcome.victim_compensation:,} as compensation."
            )
        embed.add_field(name="Your wallet", value=format_coins(outcome.thief_wallet), inline=True)
        await interaction.response.send_message(embed=embed)

    @app_commands.command(name='vaultrob', description='Attempt to rob the bot vault')
    async def vaultrob_slash(self, interaction: discord.Interaction):
        async with self.bot.get_session() as session:
            result = await Theft.rob_vault(
                session, str(interaction.user.id), interaction.user.name, big_heist=self.bot.heist.active,
            )

        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return
        await interaction.response.send_message(embed=vaultrob_embed(result.value))

    @app_commands.command(name='vault', description='Show how much the bot vault holds')
    async def vault_slash(self, interaction: discord.Interaction):
        async with self.bot.get_session() as session:
            async with session.begin():
                balance = await Vault.balance(session)

        embed = EmbedBuilder.info_embed(
            "🏦 Bot Vault",
            f"The vault holds {format_coins(balance)} from taxes and fines."
        )
        status = "🟢 Big heist active!" if self.bot.heist.active else "🔒 Secured"
        embed.add_field(name="Status", value=status, inline=True)
        embed.add_field(name="Robbable from", value=format_coins(MIN_VAULT_TO_ROB), inline=True)
        await interaction.response.send_message(embed=embed)


async def setup(bot: 'VaultBot'):
    """Setup function for the cog."""
    await bot.add_cog(TheftCog(bot, bot.config))
