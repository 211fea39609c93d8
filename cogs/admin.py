"""
Admin commands cog.
"""

import logging
from typing import TYPE_CHECKING, Optional

import discord
from discord import app_commands
from discord.ext import commands

from models import Account
from utils.admin_tools import AdminTools, Cooldown, StatField
from utils.config import Config
from utils.helpers import EmbedBuilder, format_coins

if TYPE_CHECKING:
    from bot import VaultBot

logger = logging.getLogger(__name__)

MODE_CHOICES = [
    app_commands.Choice(name='set', value='set'),
    app_commands.Choice(name='add', value='add'),
]


def account_summary(user: discord.abc.User, account: Account) -> discord.Embed:
    embed = EmbedBuilder.success_embed("🛠️ Account updated", f"{user.mention}")
    embed.add_field(name="Wallet", value=format_coins(account.wallet), inline=True)
    embed.add_field(name="Bank", value=f"{account.bank:,} / {account.bank_limit:,}", inline=True)
    embed.add_field(name="Level", value=f"{account.level} ({account.xp:,} XP)", inline=True)
    embed.add_field(name="Job level", value=str(account.job_level), inline=True)
    embed.add_field(name="Multipliers",
                    value=f"XP x{account.xp_multiplier:g} / coins x{account.coin_multiplier:g}", inline=True)
    return embed


class Admin(commands.Cog):
    """Admin commands."""

    admin = app_commands.Group(name='admin', description='Economy admin tools')

    def __init__(self, bot: 'VaultBot', config: Config):
        self.bot = bot
        self.config = config

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        """Only allow-listed admins (or the guild owner) may use these commands."""
        owner_id = interaction.guild.owner_id if interaction.guild else None
        if self.config.is_admin(interaction.user.id, owner_id):
            return True
        await interaction.response.send_message("You don't have permission to use this command.", ephemeral=True)
        return False

    async def _reply(self, interaction: discord.Interaction, user: discord.abc.User, result, action: str):
        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return
        logger.info(f"Admin {interaction.user} ({interaction.user.id}) {action} for {user.id}")
        await interaction.response.send_message(embed=account_summary(user, result.value), ephemeral=True)

    @admin.command(name='coins', description='Set or add coins on a wallet or bank')
    @app_commands.choices(
        field=[app_commands.Choice(name='Wallet', value='wallet'), app_commands.Choice(name='Bank', value='bank')],
        mode=MODE_CHOICES,
    )
    async def coins(self, interaction: discord.Interaction, user: discord.User,
                    field: app_commands.Choice[str], mode: app_commands.Choice[str], amount: int):
        async with self.bot.get_session() as session:
            result = await AdminTools.edit_balance(session, str(user.id), field.value, amount, add=mode.value == 'add')
        await self._reply(interaction, user, result, f"{mode.value} {field.value} {amount}")

    @admin.command(name='stat', description='Set or add xp, level or job level')
    @app_commands.choices(
        stat=[app_commands.Choice(name=s.value.replace('_', ' '), value=s.value) for s in StatField],
        mode=MODE_CHOICES,
    )
    async def stat(self, interaction: discord.Interaction, user: discord.User,
                   stat: app_commands.Choice[str], mode: app_commands.Choice[str], amount: int):
        async with self.bot.get_session() as session:
            result = await AdminTools.edit_stat(session, str(user.id), stat.value, amount, add=mode.value == 'add')
        await self._reply(interaction, user, result, f"{mode.value} {stat.value} {amount}")

    @admin.command(name='resetcooldown', description='Reset a cooldown for a user')
    @app_commands.choices(cooldown=[app_commands.Choice(name=c.name.lower(), value=c.name) for c in Cooldown])
    async def resetcooldown(self, interaction: discord.Interaction, user: discord.User,
                            cooldown: app_commands.Choice[str]):
        async with self.bot.get_session() as session:
            result = await AdminTools.reset_cooldown(session, str(user.id), cooldown.value)
        await self._reply(interaction, user, result, f"reset {cooldown.name} cooldown")

    @admin.command(name='multiplier', description='Set XP and/or coin multiplier (0.1 - 10)')
    async def multiplier(self, interaction: discord.Interaction, user: discord.User,
                         xp: Optional[float] = None, coin: Optional[float] = None):
        async with self.bot.get_session() as session:
            result = await AdminTools.set_multipliers(session, str(user.id), xp=xp, coin=coin)
        await self._reply(interaction, user, result, f"set multipliers xp={xp} coin={coin}")

    @admin.command(name='resetmultiplier', description='Reset both multipliers to 1.0')
    async def resetmultiplier(self, interaction: discord.Interaction, user: discord.User):
        async with self.bot.get_session() as session:
            result = await AdminTools.reset_multipliers(session, str(user.id))
        await self._reply(interaction, user, result, "reset multipliers")


async def setup(bot: 'VaultBot'):
    """Setup function for the cog."""
    await bot.add_cog(Admin(bot, bot.config))
