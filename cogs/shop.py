"""
Shop cog: bank and job upgrades, items and inventory.
"""

from typing import TYPE_CHECKING, Optional

import discord
from discord import app_commands
from discord.ext import commands

from utils.config import Config
from utils.helpers import EmbedBuilder, format_coins
from utils.shop import (BANK_HARD_CAP, BANK_STEP, CATALOG, MAX_STACK_PER_PURCHASE, Shop,
                        bank_upgrade_price, job_upgrade_price)

if TYPE_CHECKING:
    from bot import VaultBot

BUY_CHOICES = [
    app_commands.Choice(name='Bank upgrade', value='bank_upgrade'),
    app_commands.Choice(name='Job upgrade', value='job_upgrade'),
] + [app_commands.Choice(name=item.name, value=item.key) for item in CATALOG.values()]


class ShopCog(commands.Cog, name='Shop'):
    """Spend coins on upgrades and items."""

    def __init__(self, bot: 'VaultBot', config: Config):
        self.bot = bot
        self.config = config

    @app_commands.command(name='shop', description='Show the shop and your current prices')
    async def shop_slash(self, interaction: discord.Interaction):
        async with self.bot.get_session() as session:
            account, items = await Shop.inventory(session, str(interaction.user.id), interaction.user.name)

        embed = EmbedBuilder.info_embed("🛒 Shop", f"Your wallet: {format_coins(account.wallet)}")
        if account.bank_limit >= BANK_HARD_CAP:
            bank_line = "Your bank is fully upgraded."
        else:
            bank_line = (f"+{BANK_STEP:,} capacity for {format_coins(bank_upgrade_price(account.bank_limit))}\n"
                         f"Current limit: {account.bank_limit:,} / {BANK_HARD_CAP:,}")
        embed.add_field(name="🏦 Bank upgrade", value=bank_line, inline=False)
        embed.add_field(
            name="🛠️ Job upgrade",
            value=f"Level {account.job_level} → {account.job_level + 1} for "
                  f"{format_coins(job_upgrade_price(account.job_level))}",
            inline=False
        )
        for item in CATALOG.values():
            owned = items.get(item.key, 0)
            cap = f" (max {item.max_count})" if item.is_flag else ""
            embed.add_field(
                name=f"{item.name} - {format_coins(item.price)}{cap}",
                value=f"{item.description}\nOwned: {owned}",
                inline=False
            )
        await interaction.response.send_message(embed=embed)

    @app_commands.command(name='buy', description='Buy an upgrade or item')
    @app_commands.describe(item='What to buy', quantity='How many (stack items only)')
    @app_commands.choices(item=BUY_CHOICES)
    async def buy_slash(self, interaction: discord.Interaction, item: app_commands.Choice[str],
                        quantity: app_commands.Range[int, 1, MAX_STACK_PER_PURCHASE] = 1):
        user_id, username = str(interaction.user.id), interaction.user.name
        async with self.bot.get_session() as session:
            if item.value == 'bank_upgrade':
                result = await Shop.buy_bank_upgrade(session, user_id, username)
            elif item.value == 'job_upgrade':
                result = await Shop.buy_job_upgrade(session, user_id, username)
            else:
                result = await Shop.buy_item(session, user_id, username, item.value, quantity)

        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return

        purchase = result.value
        if purchase.bank_limit is not None:
            text = f"Your bank limit is now **{purchase.bank_limit:,}**."
        elif purchase.job_level is not None:
            text = f"You were promoted to job level **{purchase.job_level}**."
        else:
            text = f"You bought {purchase.quantity}x **{CATALOG[purchase.item].name}** (you own {purchase.count})."
        embed = EmbedBuilder.success_embed("🛒 Purchase complete", text)
        embed.add_field(name="Paid", value=format_coins(purchase.price), inline=True)
        embed.add_field(name="Wallet", value=format_coins(purchase.wallet), inline=True)
        await interaction.response.send_message(embed=embed)

    @app_commands.command(name='inventory', description='Show your items')
    async def inventory_slash(self, interaction: discord.Interaction, user: Optional[discord.User] = None):
        target = user or interaction.user
        async with self.bot.get_session() as session:
            _, items = await Shop.inventory(session, str(target.id), target.name)

        if not items:
            description = "Nothing here yet. Check out `/shop`."
        else:
            description = "\n".join(
                f"**{CATALOG[key].name if key in CATALOG else key}** x{count}" for key, count in items.items()
            )
        await interaction.response.send_message(
            embed=EmbedBuilder.info_embed(f"🎒 {target.display_name}'s Inventory", description)
        )


async def setup(bot: 'VaultBot'):
    """Setup function for the cog."""
    await bot.add_cog(ShopCog(bot, bot.config))
