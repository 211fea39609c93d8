"""
Configuration loaded from environment variables.
"""

import os
from typing import List, Optional


def _int_or_none(value: Optional[str]) -> Optional[int]:
    if value is None or not value.strip():
        return None
    return int(value)


class Config:
    """Bot configuration. Values come from the environment (and .env via python-dotenv)."""

    def __init__(self):
        self.discord_token: Optional[str] = os.getenv('DISCORD_TOKEN')
        self.database_url: str = os.getenv('DATABASE_URL', 'sqlite+aiosqlite:///economy.db')
        self.guild_id: Optional[int] = _int_or_none(os.getenv('GUILD_ID'))
        self.owner_id: Optional[int] = _int_or_none(os.getenv('OWNER_ID'))
        self.admin_ids: List[int] = [
            int(part) for part in os.getenv('ADMIN_IDS', '').split(',') if part.strip()
        ]
        self.log_level: str = os.getenv('LOG_LEVEL', 'INFO')

        # Message XP is granted at most once per this many seconds per user
        self.xp_cooldown_seconds: float = float(os.getenv('XP_COOLDOWN_SECONDS', '20'))

    def is_admin(self, user_id: int, guild_owner_id: Optional[int] = None) -> bool:
        """Check the admin allow-list (explicit ids, bot owner, or the guild owner)."""
        if user_id in self.admin_ids:
            return True
        if self.owner_id is not None and user_id == self.owner_id:
            return True
        return guild_owner_id is not None and user_id == guild_owner_id
