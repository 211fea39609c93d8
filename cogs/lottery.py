"""
Lottery cog.
"""

from typing import TYPE_CHECKING, Optional

import discord
from discord import app_commands
from discord.ext import commands

from utils.config import Config
from utils.helpers import EmbedBuilder, format_coins
from utils.lottery import MAX_TICKETS_PER_PURCHASE, MAX_TICKETS_PER_USER, TICKET_PRICE, Lottery

if TYPE_CHECKING:
    from bot import VaultBot


def _percent(value: float) -> str:
    return f"{value * 100:g}%"


class LotteryCog(commands.Cog, name='Lottery'):
    """Six-digit lottery with a rolling jackpot."""

    lottery = app_commands.Group(name='lottery', description='Play the lottery')

    def __init__(self, bot: 'VaultBot', config: Config):
        self.bot = bot
        self.config = config

    async def _admin_only(self, interaction: discord.Interaction) -> bool:
        owner_id = interaction.guild.owner_id if interaction.guild else None
        if self.config.is_admin(interaction.user.id, owner_id):
            return True
        await interaction.response.send_message("You don't have permission to use this command.", ephemeral=True)
        return False

    @lottery.command(name='buy', description=f'Buy tickets ({TICKET_PRICE:,} coins each)')
    @app_commands.describe(code='Pick your own 6-digit code (buys one ticket)',
                           amount='Number of random tickets')
    async def buy(self, interaction: discord.Interaction, code: Optional[str] = None,
                  amount: app_commands.Range[int, 1, MAX_TICKETS_PER_PURCHASE] = 1):
        async with self.bot.get_session() as session:
            result = await Lottery.buy_tickets(session, str(interaction.user.id), interaction.user.name,
                                               code=code, amount=amount)

        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return

        purchase = result.value
        codes = ", ".join(f"`{c}`" for _, c in purchase.tickets[:10])
        if purchase.count > 10:
            codes += f" and {purchase.count - 10} more"
        text = f"You bought **{purchase.count}** ticket(s) for round #{purchase.round_id}: {codes}"
        if purchase.count < amount and not code:
            text += f"\nOnly {purchase.count} of {amount} could be bought (ticket limit or wallet)."
        embed = EmbedBuilder.success_embed("🎟️ Tickets bought", text)
        embed.add_field(name="Cost", value=format_coins(purchase.cost), inline=True)
        embed.add_field(name="Your tickets", value=f"{purchase.held} / {MAX_TICKETS_PER_USER}", inline=True)
        embed.add_field(name="Wallet", value=format_coins(purchase.wallet), inline=True)
        await interaction.response.send_message(embed=embed)

    @lottery.command(name='info', description='Show the current round')
    async def info(self, interaction: discord.Interaction):
        async with self.bot.get_session() as session:
            info = await Lottery.round_info(session, str(interaction.user.id))

        if info.round_id is None:
            embed = EmbedBuilder.info_embed("🎟️ Lottery", "No round is open yet. Buy a ticket to start one!")
        else:
            embed = EmbedBuilder.info_embed(
                f"🎟️ Lottery round #{info.round_id}",
                f"Prize pool: {format_coins(info.pot + info.rollover)}"
            )
            embed.add_field(name="Tickets sold", value=f"{info.ticket_count:,}", inline=True)
            embed.add_field(name="Your tickets", value=f"{info.held} / {MAX_TICKETS_PER_USER}", inline=True)
            embed.add_field(
                name="Prize shares",
                value="\n".join(f"{m} matches: {_percent(share)}" for m, share in sorted(info.splits.items(), reverse=True)),
                inline=False
            )
        if info.recent:
            embed.add_field(
                name="Recent draws",
                value="\n".join(f"#{rid}: `{code}` ({pool:,} coins)" for rid, code, pool in info.recent),
                inline=False
            )
        await interaction.response.send_message(embed=embed)

    @lottery.command(name='my', description='Show your tickets in the current round')
    async def my(self, interaction: discord.Interaction):
        async with self.bot.get_session() as session:
            result = await Lottery.my_tickets(session, str(interaction.user.id))

        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return

        round_id, tickets = result.value
        if not tickets:
            description = "You have no tickets in this round."
        else:
            description = "\n".join(f"#{tid}: `{code}`" for tid, code in tickets)
        await interaction.response.send_message(
            embed=EmbedBuilder.info_embed(f"🎟️ Your tickets (round #{round_id})", description),
            ephemeral=True
        )

    @lottery.command(name='draw', description='Draw the current round (admin only)')
    async def draw(self, interaction: discord.Interaction):
        if not await self._admin_only(interaction):
            return
        async with self.bot.get_session() as session:
            result = await Lottery.draw(session)

        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return

        draw = result.value
        embed = EmbedBuilder.success_embed(
            f"🎉 Lottery round #{draw.round_id} drawn",
            f"Winning code: **`{draw.code}`**\nPrize pool: {format_coins(draw.pot)} from {draw.ticket_count:,} tickets"
        )
        for tier in draw.tiers:
            if tier.winners:
                mentions = ", ".join(sorted({f"<@{uid}>" for uid, _ in tier.winners}))
                value = f"{len(tier.winners)} winning ticket(s), {tier.each:,} coins each\n{mentions}"
            else:
                value = "No winners"
            embed.add_field(name=f"{tier.matches} matches ({_percent(tier.share)})", value=value, inline=False)
        embed.add_field(name="Rolls over", value=format_coins(draw.rollover), inline=True)
        embed.add_field(name="Next round", value=f"#{draw.next_round_id}", inline=True)
        await interaction.response.send_message(embed=embed)

    @lottery.command(name='setcode', description='Force the next winning code (admin only)')
    @app_commands.describe(code='6-digit code, leave empty to clear')
    async def setcode(self, interaction: discord.Interaction, code: Optional[str] = None):
        if not await self._admin_only(interaction):
            return
        async with self.bot.get_session() as session:
            result = await Lottery.set_planned_code(session, code)

        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return
        round_id, planned = result.value
        text = f"Round #{round_id} will draw `{planned}`." if planned else f"Round #{round_id} will draw a random code."
        await interaction.response.send_message(embed=EmbedBuilder.success_embed("🎟️ Code set", text), ephemeral=True)

    @lottery.command(name='setpot', description='Set or add to the prize pot (admin only)')
    @app_commands.choices(mode=[
        app_commands.Choice(name='set', value='set'),
        app_commands.Choice(name='add', value='add'),
    ])
    async def setpot(self, interaction: discord.Interaction, mode: app_commands.Choice[str],
                     amount: app_commands.Range[int, 0]):
        if not await self._admin_only(interaction):
            return
        async with self.bot.get_session() as session:
            result = await Lottery.set_pot(session, mode.value, amount)

        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return
        round_id, pot = result.value
        await interaction.response.send_message(
            embed=EmbedBuilder.success_embed("🎟️ Pot updated", f"Round #{round_id} pot is now {format_coins(pot)}."),
            ephemeral=True
        )

    @lottery.command(name='setsplits', description='Override prize shares for this round (admin only)')
    @app_commands.describe(six='Share for 6 matches (75 or 0.75)', five='Share for 5 matches',
                           four='Share for 4 matches')
    async def setsplits(self, interaction: discord.Interaction, six: float, five: float, four: float):
        if not await self._admin_only(interaction):
            return
        async with self.bot.get_session() as session:
            result = await Lottery.set_splits(session, six, five, four)

        if not result:
            await interaction.response.send_message(
                "Shares must be non-negative and add up to at most 100%.", ephemeral=True
            )
            return
        text = ", ".join(f"{m} matches: {_percent(share)}" for m, share in result.value.items())
        await interaction.response.send_message(
            embed=EmbedBuilder.success_embed("🎟️ Shares updated", text), ephemeral=True
        )


async def setup(bot: 'VaultBot'):
    """Setup function for the cog."""
    await bot.add_cog(LotteryCog(bot, bot.config))
