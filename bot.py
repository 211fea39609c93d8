"""
Main entry point for the VaultBot Discord economy bot.

Users earn and spend coins through slash commands (games, daily rewards,
theft, a lottery, marriage and a shop). Every balance change goes through
guarded SQL updates so concurrent commands can't corrupt shared state.
It uses discord.py for interactions and SQLAlchemy for async database operations.
"""

import asyncio
import logging
import os

import discord
from discord import app_commands
from discord.ext import commands
from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncSession

from utils.config import Config
from utils.database import create_engine, create_session_maker, init_models
from utils.theft import HeistEvent

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=getattr(logging, os.getenv('LOG_LEVEL', 'INFO').upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler('bot.log'),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

EXTENSIONS = (
    'cogs.economy',
    'cogs.gambling',
    'cogs.games_blackjack',
    'cogs.shop',
    'cogs.theft',
    'cogs.lottery',
    'cogs.marriage',
    'cogs.admin',
)


class VaultBot(commands.Bot):
    """Main bot class for VaultBot."""

    def __init__(self, config: Config):
        intents = discord.Intents.default()
        intents.members = True  # For member-related commands
        intents.message_content = True  # For message XP

        super().__init__(
            command_prefix='v?',
            intents=intents,
            help_command=commands.DefaultHelpCommand()
        )

        self.config = config
        self.engine = create_engine(config.database_url)
        self.async_session_maker = create_session_maker(self.engine)
        self.heist = HeistEvent()
        self.tree.on_error = self.on_app_command_error

    def get_session(self) -> AsyncSession:
        """Get a database session."""
        return self.async_session_maker()

    async def setup_hook(self) -> None:
        """Setup hook called before the bot starts."""
        # Create database tables
        await init_models(self.engine)

        for extension in EXTENSIONS:
            try:
                await self.load_extension(extension)
                logger.info(f'Loaded {extension}')
            except commands.ExtensionError as e:
                logger.error(f'Failed to load {extension}: {e}')

        # Sync slash commands
        try:
            if self.config.guild_id:
                guild = discord.Object(id=self.config.guild_id)
                self.tree.copy_global_to(guild=guild)
                await self.tree.sync(guild=guild)
                logger.info(f"Synced slash commands to guild {self.config.guild_id}")
            else:
                await self.tree.sync()
                logger.info("Synced slash commands globally")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

        logger.info(f"Registered slash commands: {[cmd.name for cmd in self.tree.get_commands()]}")

    async def on_ready(self):
        """Called when the bot is ready."""
        if self.user:
            logger.info(f'Logged in as {self.user} (ID: {self.user.id})')
        else:
            logger.info('Bot logged in but user is None')
        logger.info(f'Connected to {len(self.guilds)} guilds')

        await self.change_presence(
            activity=discord.Game(name="/daily | /lottery info")
        )

    async def close(self):
        await super().close()
        await self.engine.dispose()

    async def on_command_error(self, ctx: commands.Context, error: commands.CommandError):
        """Handle command errors."""
        if isinstance(error, commands.CommandNotFound):
            return
        if isinstance(error, commands.CommandOnCooldown):
            await ctx.send(f"This command is on cooldown. Try again in {error.retry_after:.2f} seconds.")
        elif isinstance(error, commands.BadArgument):
            await ctx.send("Invalid argument provided.")
        else:
            logger.error(f"Command error in {ctx.command}: {error}", exc_info=error)
            await ctx.send("An error occurred while processing your command.")

    async def on_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        """Handle slash command errors."""
        if isinstance(error, app_commands.CommandOnCooldown):
            message = f"This command is on cooldown. Try again in {error.retry_after:.2f} seconds."
        elif isinstance(error, app_commands.CheckFailure):
            message = "You can't use this command."
        else:
            original = getattr(error, 'original', error)
            logger.error(f"Slash command error in {interaction.command and interaction.command.qualified_name}: "
                         f"{original}", exc_info=original)
            message = "Something went wrong while processing your command. Please try again."

        if interaction.response.is_done():
            return
        await interaction.response.send_message(message, ephemeral=True)


async def main():
    """Main function to run the bot."""
    config = Config()

    if not config.discord_token:
        logger.error("DISCORD_TOKEN not found in environment variables.")
        return

    bot = VaultBot(config)

    try:
        await bot.start(config.discord_token)
    except KeyboardInterrupt:
        logger.info("Bot shutdown requested.")
    finally:
        await bot.close()


def run():
    """Console entry point."""
    asyncio.run(main())


if __name__ == '__main__':
    run()
