"""
Marriage cog: proposals, couple daily, titles and divorce.
"""

import logging
from typing import TYPE_CHECKING, Optional

import discord
from discord import app_commands, ui
from discord.ext import commands

from utils.config import Config
from utils.helpers import EmbedBuilder, describe_failure, format_coins, format_ms
from utils.marriage import PROPOSAL_TIMEOUT, TITLE_MAX_LEN, Marriage, Proposal
from utils.results import Failure

if TYPE_CHECKING:
    from bot import VaultBot

logger = logging.getLogger(__name__)


class ProposalView(ui.View):
    """Accept / decline buttons. Only the invited user may answer, once."""

    def __init__(self, bot: 'VaultBot', proposal: Proposal):
        super().__init__(timeout=PROPOSAL_TIMEOUT)
        self.bot = bot
        self.proposal = proposal
        self.message: Optional[discord.Message] = None

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if str(interaction.user.id) != self.proposal.target_id:
            await interaction.response.send_message("This proposal isn't for you!", ephemeral=True)
            return False
        return True

    def _close(self):
        for item in self.children:
            item.disabled = True
        self.stop()

    @ui.button(label="Accept", style=discord.ButtonStyle.success, emoji="💍")
    async def accept_button(self, interaction: discord.Interaction, button: ui.Button):
        async with self.bot.get_session() as session:
            result = await self.proposal.accept(session, interaction.user.id)

        if not result and result.reason is Failure.NOT_ALLOWED:
            await interaction.response.send_message(describe_failure(result), ephemeral=True)
            return

        self._close()
        if result:
            embed = EmbedBuilder.success_embed(
                "💞 Just married!",
                f"<@{self.proposal.proposer_id}> and <@{self.proposal.target_id}> are now married!"
            )
        else:
            embed = EmbedBuilder.failure_embed(result, "💔 Proposal closed")
        await interaction.response.edit_message(embed=embed, view=self)

    @ui.button(label="Decline", style=discord.ButtonStyle.danger, emoji="💔")
    async def decline_button(self, interaction: discord.Interaction, button: ui.Button):
        result = await self.proposal.decline(interaction.user.id)
        if not result:
            await interaction.response.send_message(describe_failure(result), ephemeral=True)
            return

        self._close()
        embed = EmbedBuilder.error_embed(
            "💔 Proposal declined",
            f"<@{self.proposal.target_id}> said no to <@{self.proposal.proposer_id}>."
        )
        await interaction.response.edit_message(embed=embed, view=self)

    async def on_timeout(self):
        if not self.proposal.expire():
            return
        self._close()
        if self.message:
            embed = EmbedBuilder.info_embed("⌛ Proposal expired", "No answer in time.")
            try:
                await self.message.edit(embed=embed, view=self)
            except discord.HTTPException as e:
                logger.warning(f"Could not expire proposal message: {e}")


class MarriageCog(commands.Cog, name='Marriage'):
    """Get married and claim the couple daily together."""

    marriage = app_commands.Group(name='marriage', description='Marriage commands')

    def __init__(self, bot: 'VaultBot', config: Config):
        self.bot = bot
        self.config = config

    @marriage.command(name='propose', description='Propose to another user')
    async def propose(self, interaction: discord.Interaction, user: discord.User):
        if user.bot:
            await interaction.response.send_message("Bots can't get married.", ephemeral=True)
            return

        async with self.bot.get_session() as session:
            result = await Marriage.check_proposal(
                session, str(interaction.user.id), interaction.user.name, str(user.id), user.name
            )
        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return

        proposal = Proposal(str(interaction.user.id), interaction.user.name, str(user.id), user.name)
        view = ProposalView(self.bot, proposal)
        embed = EmbedBuilder.info_embed(
            "💍 Marriage proposal",
            f"{user.mention}, {interaction.user.mention} wants to marry you!\n"
            f"You have {PROPOSAL_TIMEOUT} seconds to answer."
        )
        await interaction.response.send_message(content=user.mention, embed=embed, view=view)
        view.message = await interaction.original_response()

    @marriage.command(name='status', description='Show your marriage')
    async def status(self, interaction: discord.Interaction):
        async with self.bot.get_session() as session:
            result = await Marriage.status(session, str(interaction.user.id))

        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return

        couple = result.value
        embed = EmbedBuilder.info_embed(
            f"💞 {couple.title}" if couple.title else "💞 Marriage",
            f"Married to <@{couple.partner_id}>"
        )
        embed.add_field(name="Streak", value=f"{couple.streak} day(s)", inline=True)
        embed.add_field(name="Next claim", value=format_ms(couple.next_claim) if couple.last_claim else "Now", inline=True)
        embed.add_field(name="Anniversary", value=f"<t:{couple.anniversary // 1000}:D>", inline=True)
        await interaction.response.send_message(embed=embed)

    @marriage.command(name='claim', description='Claim the couple daily reward for both of you')
    async def claim(self, interaction: discord.Interaction):
        async with self.bot.get_session() as session:
            result = await Marriage.claim_daily(session, str(interaction.user.id), interaction.user.name)

        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return

        claim = result.value
        embed = EmbedBuilder.success_embed(
            "💝 Couple daily",
            f"You and <@{claim.partner_id}> each received {format_coins(claim.reward)}!"
        )
        embed.add_field(name="Streak", value=f"{claim.streak} day(s)", inline=True)
        embed.add_field(name="Wallet", value=format_coins(claim.wallet), inline=True)
        await interaction.response.send_message(embed=embed)

    @marriage.command(name='settitle', description='Set a title for your couple')
    @app_commands.describe(title=f'Up to {TITLE_MAX_LEN} characters')
    async def settitle(self, interaction: discord.Interaction, title: str):
        async with self.bot.get_session() as session:
            result = await Marriage.set_title(session, str(interaction.user.id), title)

        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return
        await interaction.response.send_message(
            embed=EmbedBuilder.success_embed("💞 Title set", f"Your couple title is now **{result.value}**.")
        )

    @marriage.command(name='divorce', description='End your marriage')
    async def divorce(self, interaction: discord.Interaction):
        async with self.bot.get_session() as session:
            result = await Marriage.divorce(session, str(interaction.user.id), interaction.user.name)

        if not result:
            await interaction.response.send_message(embed=EmbedBuilder.failure_embed(result), ephemeral=True)
            return
        await interaction.response.send_message(
            embed=EmbedBuilder.info_embed("💔 Divorced", f"You and <@{result.value}> are no longer married.")
        )


async def setup(bot: 'VaultBot'):
    """Setup function for the cog."""
    await bot.add_cog(MarriageCog(bot, bot.config))
