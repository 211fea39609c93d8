"""
Presentation helpers shared by the cogs: embeds, number formatting, amount parsing
and failure messages.
"""

import re
from datetime import datetime
from typing import Optional, Union

import discord

from utils.results import Failure, Result

_SUFFIXES = {'k': 1_000, 'm': 1_000_000, 'b': 1_000_000_000}
_SUFFIX_RE = re.compile(r'^(\d+(?:\.\d+)?)\s*([kmb])$')
_PERCENT_RE = re.compile(r'^(\d{1,3})\s*%$')

# largest value a 64-bit INTEGER column holds
MAX_AMOUNT = 2 ** 63 - 1


def format_coins(amount: int) -> str:
    """Format an amount of coins for display."""
    return f"{max(0, int(amount)):,} coins"


def parse_amount(raw: Union[str, int, None], base: int) -> Optional[int]:
    """Parse a user-entered amount.

    Accepts plain integers (commas allowed), ``10k``/``2.5m``/``1b``, ``25%``,
    ``half`` and ``all``. Relative forms are taken from ``base`` (the balance
    the amount is drawn from). Returns ``None`` for anything unparseable or
    larger than ``MAX_AMOUNT``.
    """
    amount = _parse_amount(raw, base)
    if amount is None or amount > MAX_AMOUNT:
        return None
    return amount


def _parse_amount(raw: Union[str, int, None], base: int) -> Optional[int]:
    if raw is None:
        return None
    if isinstance(raw, int):
        return raw
    text = raw.strip().lower()
    if text == 'all':
        return max(0, base)
    if text == 'half':
        return max(0, base) // 2

    pct = _PERCENT_RE.match(text)
    if pct:
        percent = int(pct.group(1))
        if percent > 100:
            return None
        return max(0, base) * percent // 100

    suffix = _SUFFIX_RE.match(text)
    if suffix:
        value = float(suffix.group(1)) * _SUFFIXES[suffix.group(2)]
        return int(value) if value <= MAX_AMOUNT else None

    digits = text.replace(',', '')
    if digits.isdecimal():
        return int(digits)
    return None


def format_ms(timestamp_ms: int) -> str:
    """Discord relative timestamp for an epoch-millisecond value."""
    return f"<t:{timestamp_ms // 1000}:R>"


_FAILURE_TEXT = {
    Failure.INVALID_AMOUNT: "That amount isn't valid. Use a positive number, `10k`, `25%`, `half` or `all`.",
    Failure.INVALID_TARGET: "You can't target that user.",
    Failure.INVALID_CODE: "That code isn't valid.",
    Failure.INVALID_TEXT: "That text isn't allowed.",
    Failure.INSUFFICIENT_FUNDS: "You don't have enough coins for that.",
    Failure.CAPACITY_EXCEEDED: "There isn't enough bank space for that.",
    Failure.CAP_REACHED: "You've already reached the limit for that.",
    Failure.COOLDOWN_ACTIVE: "You're on cooldown.",
    Failure.NOT_FOUND: "Nothing was found.",
    Failure.RACE_LOST: "Your balance changed while processing. Please try again.",
    Failure.ALREADY_MARRIED: "One of you is already married.",
    Failure.NOT_MARRIED: "You're not married.",
    Failure.NO_LONGER_AVAILABLE: "That proposal is no longer available.",
    Failure.ROUND_NOT_OPEN: "There's no open lottery round.",
    Failure.VAULT_EMPTY: "The vault doesn't hold enough coins to rob.",
    Failure.NOT_ALLOWED: "That isn't yours to act on.",
    Failure.GAME_ACTIVE: "You already have a game in progress.",
    Failure.GAME_OVER: "This game has already ended.",
    Failure.EXPIRED: "This has expired.",
}


def describe_failure(result: Result) -> str:
    """Turn a failed Result into a user-facing sentence."""
    text = _FAILURE_TEXT.get(result.reason, "Something went wrong. Please try again.")
    detail = result.detail
    if 'retry_at' in detail:
        text += f" Try again {format_ms(detail['retry_at'])}."
    if 'balance' in detail:
        text += f" Balance: **{format_coins(detail['balance'])}**."
    if 'price' in detail:
        text += f" Price: **{format_coins(detail['price'])}**."
    if 'space' in detail:
        text += f" Free bank space: **{format_coins(detail['space'])}**."
    if 'limit' in detail and result.reason is Failure.CAP_REACHED:
        text += f" Limit: **{detail['limit']:,}**."
    return text


class EmbedBuilder:
    """Factory for the bot's standard embeds."""

    @staticmethod
    def success_embed(title: str, description: str) -> discord.Embed:
        return discord.Embed(title=title, description=description, color=discord.Color.green(),
                             timestamp=datetime.utcnow())

    @staticmethod
    def error_embed(title: str, description: str) -> discord.Embed:
        return discord.Embed(title=title, description=description, color=discord.Color.red(),
                             timestamp=datetime.utcnow())

    @staticmethod
    def info_embed(title: str, description: str) -> discord.Embed:
        return discord.Embed(title=title, description=description, color=discord.Color.blurple(),
                             timestamp=datetime.utcnow())

    @staticmethod
    def failure_embed(result: Result, title: str = "❌ Not applied") -> discord.Embed:
        """Error embed for a failed Result."""
        return EmbedBuilder.error_embed(title, describe_failure(result))

    @staticmethod
    def wallet_embed(user: Union[discord.User, discord.Member], wallet: int, bank: int, bank_limit: int) -> discord.Embed:
        """Embed showing a user's wallet and bank."""
        embed = discord.Embed(title=f"🏦 {user.display_name}'s Balance", color=discord.Color.gold())
        embed.add_field(name="💰 Wallet", value=format_coins(wallet), inline=True)
        embed.add_field(name="🏦 Bank", value=f"{bank:,} / {bank_limit:,} coins", inline=True)
        embed.add_field(name="💎 Net Worth", value=format_coins(wallet + bank), inline=False)
        embed.set_thumbnail(url=user.display_avatar.url)
        return embed
