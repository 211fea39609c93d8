"""
Economy cog: balances, bank, transfers, daily, work and message XP.
"""

import logging
import random
from typing import TYPE_CHECKING, Optional

import discord
from discord import app_commands, ui
from discord.ext import commands

from utils.config import Config
from utils.cooldowns import cooldown_manager
from utils.economy_utils import EconomyUtils, Reward
from utils.helpers import EmbedBuilder, format_coins
from utils.leveling import grant_message_xp
from utils.ledger import BalanceField

if TYPE_CHECKING:
    from bot import VaultBot

logger = logging.getLogger(__name__)

WORK_TIMEOUT = 10

JOB_SCENARIOS = [
    ('Sort documents', '💼', ('💼', '🧠', '🧹', '📦')),
    ('Solve a logic puzzle', '🧠', ('💼', '🧠', '🧹', '📄')),
    ('Clean the floor', '🧹', ('🧹', '📦', '🔧', '📄')),
    ('File invoices', '📄', ('📄', '📦', '📊', '🧹')),
    ('Assemble widgets', '🔧', ('🔧', '🔩', '🪛', '📦')),
    ('Pack boxes', '📦', ('📄', '📦', '🧹', '🔧')),
]

BALANCE_CHOICES = [
    app_commands.Choice(name='Wallet', value='wallet'),
    app_commands.Choice(name='Bank', value='bank'),
]


def reward_embed(title: str, reward: Reward) -> discord.Embed:
    embed = EmbedBuilder.success_embed(
        title,
        f"You earned {format_coins(reward.coins)} and **{reward.xp:,} XP**."
    )
    embed.add_field(name="Wallet", value=format_coins(reward.wallet), inline=True)
    embed.add_field(name="Level", value=str(reward.level), inline=True)
    if reward.levels_gained:
        embed.add_field(name="⬆️ Level up!", value=f"+{reward.levels_gained} level(s)", inline=False)
    return embed


class WorkView(ui.View):
    """One-shot emoji minigame. Only the worker can answer; a timeout pays the small reward."""

    def __init__(self, bot: 'VaultBot', user: discord.abc.User, correct: str, options):
        super().__init__(timeout=WORK_TIMEOUT)
        self.bot = bot
        self.user = user
        self.correct = correct
        self.answered = False
        self.message: Optional[discord.Message] = None
        for emoji in options:
            button = ui.Button(label=emoji, style=discord.ButtonStyle.secondary)
            button.callback = self._make_callback(emoji)
            self.add_item(button)

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id != self.user.id:
            await interaction.response.send_message("This is not your shift!", ephemeral=True)
            return False
        return True

    def _make_callback(self, emoji: str):
        async def callback(interaction: discord.Interaction):
            if self.answered:
                await interaction.response.defer()
                return
            self.answered = True
            self.stop()
            embed = await self._pay(emoji == self.correct)
            self._disable()
            await interaction.response.edit_message(embed=embed, view=self)
        return callback

    async def _pay(self, correct: bool) -> discord.Embed:
        async with self.bot.get_session() as session:
            result = await EconomyUtils.work(session, str(self.user.id), self.user.name, correct)
        title = "🛠️ Good work!" if correct else "🛠️ Sloppy shift"
        return reward_embed(title, result.value)

    def _disable(self):
        for item in self.children:
            item.disabled = True

    async def on_timeout(self):
        if self.answered:
            return
        self.answered = True
        embed = await self._pay(False)
        embed.description = f"⏰ Too slow! {embed.description}"
        self._disable()
        if self.message:
            try:
                await self.message.edit(embed=embed, view=self)
            except discord.HTTPException as e:
                logger.warning(f"Could not update work message: {e}")


class Economy(commands.Cog):
    """Economy commands for the bot."""

    def __init__(self, bot: 'VaultBot', config: Config):
        self.bot = bot
        self.config = config

    @commands.command(name='balance', aliases=['bal', 'wallet'])
    async def balance(self, ctx: commands.Context, user: Optional[discord.User] = None):
        """Check your or another user's balance."""
        target = user or ctx.author
        async with self.bot.get_session() as session:
            account = await EconomyUtils.get_account(session, str(target.id), target.name)
        await ctx.send(embed=EmbedBuilder.wallet_embed(target, account.wallet, account.bank, account.bank_limit))

    @app_commands.command(name='balance', description='Check your or another user\'s balance')
    @app_commands.describe(user='Whose balance to show')
    async def balance_slash(self, interaction: discord.Interaction, user: Optional[discord.User] = None):
        target = user or interaction.user
        async with self.bot.get_session() as session:
            account = await EconomyUtils.get_account(session, str(target.id), target.name)
        embed = EmbedBuilder.wallet_embed(target, account.wallet, account.bank, account.bank_limit)
        embed.add_field(name="Level", value=f"{account.level} ({account.xp:,} XP)", inline=True)
        embed.add_field(name="Job level", value=str(account.job_level), inline=True)
        await interaction.response.send_message(embed=embed)

    @app_commands.command(name='deposit', description='Move coins from your wallet to your bank')
    @app_commands.describe(amount='Amount: 1000, 10k, 25%, half or all')
    async def deposit_slash(self, interaction: discord.Interaction, amount: str):
        async with self.bot.get_session() as session:
            result = await EconomyUtils.deposit(session, str(interaction.user.id), interaction.user.name, amount)

        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return

        move = result.value
        text = f"Deposited {format_coins(move.amount)} into your bank."
        if move.clamped:
            text += f"\nOnly {move.amount:,} of {move.requested:,} fit under your bank limit."
        embed = EmbedBuilder.success_embed("🏦 Deposit", text)
        embed.add_field(name="Wallet", value=format_coins(move.wallet), inline=True)
        embed.add_field(name="Bank", value=f"{move.bank:,} / {move.bank_limit:,}", inline=True)
        await interaction.response.send_message(embed=embed)

    @app_commands.command(name='withdraw', description='Move coins from your bank to your wallet')
    @app_commands.describe(amount='Amount: 1000, 10k, 25%, half or all')
    async def withdraw_slash(self, interaction: discord.Interaction, amount: str):
        async with self.bot.get_session() as session:
            result = await EconomyUtils.withdraw(session, str(interaction.user.id), interaction.user.name, amount)

        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return

        move = result.value
        embed = EmbedBuilder.success_embed("🏦 Withdraw", f"Withdrew {format_coins(move.amount)}.")
        embed.add_field(name="Wallet", value=format_coins(move.wallet), inline=True)
        embed.add_field(name="Bank", value=f"{move.bank:,} / {move.bank_limit:,}", inline=True)
        await interaction.response.send_message(embed=embed)

    @app_commands.command(name='send', description='Send coins to another user (small transfer tax)')
    @app_commands.describe(user='Recipient', amount='Amount to send', source='Pay from', destination='Deliver to')
    @app_commands.choices(source=BALANCE_CHOICES, destination=BALANCE_CHOICES)
    async def send_slash(self, interaction: discord.Interaction, user: discord.User, amount: str,
                         source: Optional[app_commands.Choice[str]] = None,
                         destination: Optional[app_commands.Choice[str]] = None):
        if user.bot:
            await interaction.response.send_message("You can't send coins to a bot.", ephemeral=True)
            return

        src = BalanceField.parse(source.value if source else 'wallet')
        dst = BalanceField.parse(destination.value if destination else 'wallet')
        async with self.bot.get_session() as session:
            result = await EconomyUtils.transfer(
                session, str(interaction.user.id), interaction.user.name,
                str(user.id), user.name, amount, src, dst,
            )

        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return

        receipt = result.value
        text = (f"{user.mention} received {format_coins(receipt.net)} in their {receipt.destination.value}.\n"
                f"You paid {format_coins(receipt.gross)} (tax {receipt.tax:,}).")
        if receipt.adjusted:
            text += "\nThe amount was reduced to fit the recipient's bank limit."
        await interaction.response.send_message(embed=EmbedBuilder.success_embed("💸 Transfer complete", text))

    @app_commands.command(name='daily', description='Claim your daily reward')
    async def daily_slash(self, interaction: discord.Interaction):
        async with self.bot.get_session() as session:
            result = await EconomyUtils.daily(session, str(interaction.user.id), interaction.user.name)

        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return

        embed = reward_embed("🎁 Daily reward", result.value)
        if result.value.bonus:
            embed.add_field(name="🍀 Lucky!", value="+25% bonus coins", inline=False)
        await interaction.response.send_message(embed=embed)

    @app_commands.command(name='work', description='Do a quick job to earn coins and XP')
    @app_commands.checks.cooldown(1, 60, key=lambda i: (i.guild_id, i.user.id))
    async def work_slash(self, interaction: discord.Interaction):
        task, correct, pool = random.choice(JOB_SCENARIOS)
        options = random.sample(pool, 3)
        if correct not in options:
            options[random.randrange(3)] = correct

        view = WorkView(self.bot, interaction.user, correct, options)
        embed = EmbedBuilder.info_embed(
            "🛠️ Work",
            f"**Task:** {task}\nChoose the right tool within {WORK_TIMEOUT} seconds!"
        )
        await interaction.response.send_message(embed=embed, view=view)
        view.message = await interaction.original_response()

    @app_commands.command(name='leaderboard', description='Top 10 users by level and XP')
    async def leaderboard_slash(self, interaction: discord.Interaction):
        async with self.bot.get_session() as session:
            accounts = await EconomyUtils.leaderboard(session)

        if not accounts:
            embed = EmbedBuilder.info_embed("🏆 Leaderboard", "Nobody has earned any XP yet.")
            await interaction.response.send_message(embed=embed)
            return

        lines = []
        for idx, account in enumerate(accounts, 1):
            medal = ["🥇", "🥈", "🥉"][idx - 1] if idx <= 3 else f"`{idx}.`"
            name = account.username or f"User {account.user_id}"
            lines.append(f"{medal} **{name}** - Level **{account.level}**, XP `{account.xp:,}`")

        embed = discord.Embed(
            title="🏆 Leaderboard",
            description="\n".join(lines),
            color=discord.Color.gold()
        )
        await interaction.response.send_message(embed=embed)

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message):
        """Message XP and the big heist trigger."""
        if message.author.bot or message.guild is None:
            return

        theft = self.bot.get_cog('Theft')
        if theft is not None:
            await theft.maybe_start_heist(message.channel)

        user_id = str(message.author.id)
        if not cooldown_manager.try_acquire('message_xp', user_id, self.config.xp_cooldown_seconds):
            return

        async with self.bot.get_session() as session:
            account, gained, levels_gained = await grant_message_xp(session, user_id, message.author.name)

        if levels_gained:
            logger.info(f"{message.author} reached level {account.level}")
            try:
                await message.channel.send(
                    f"🎉 {message.author.mention} reached **level {account.level}**!"
                )
            except discord.HTTPException as e:
                logger.warning(f"Could not announce level up: {e}")


async def setup(bot: 'VaultBot'):
    """Setup function for the cog."""
    await bot.add_cog(Economy(bot, bot.config))
