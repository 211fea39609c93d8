"""
In-memory cooldowns for cheap, non-economic throttles (message XP).

Economy cooldowns (daily, steal, vault robbery) live on the account row and
are checked by guarded updates instead.
"""

import time
from typing import Callable, Dict


class CooldownManager:
    """Manages per-user cooldowns for named actions."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.cooldowns: Dict[str, Dict[str, float]] = {}
        self._clock = clock

    def is_on_cooldown(self, action: str, user_id: str, cooldown_seconds: float) -> bool:
        """Check if a user is on cooldown for an action."""
        last_used = self.cooldowns.get(action, {}).get(str(user_id))
        if last_used is None:
            return False
        return self._clock() - last_used < cooldown_seconds

    def set_cooldown(self, action: str, user_id: str):
        self.cooldowns.setdefault(action, {})[str(user_id)] = self._clock()

    def try_acquire(self, action: str, user_id: str, cooldown_seconds: float) -> bool:
        """Start the cooldown and return True, or return False if it is still running."""
        if self.is_on_cooldown(action, user_id, cooldown_seconds):
            return False
        self.set_cooldown(action, user_id)
        return True

    def get_remaining_time(self, action: str, user_id: str, cooldown_seconds: float) -> float:
        """Get remaining cooldown time in seconds."""
        if not self.is_on_cooldown(action, user_id, cooldown_seconds):
            return 0.0
        return cooldown_seconds - (self._clock() - self.cooldowns[action][str(user_id)])

    def clear_cooldown(self, action: str, user_id: str):
        self.cooldowns.get(action, {}).pop(str(user_id), None)


# Global cooldown manager instance
cooldown_manager = CooldownManager()
