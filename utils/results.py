"""
Typed outcomes returned by every economy operation.

Expected failures (not enough coins, cooldowns, caps) never raise across the
cog boundary. They come back as a ``Result`` carrying a ``Failure`` tag and a
small detail mapping that the cogs render into text.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar('T')


class Failure(str, enum.Enum):
    """Why an operation did not apply."""

    INVALID_AMOUNT = 'invalid_amount'
    INVALID_TARGET = 'invalid_target'
    INVALID_CODE = 'invalid_code'
    INVALID_TEXT = 'invalid_text'
    INSUFFICIENT_FUNDS = 'insufficient_funds'
    CAPACITY_EXCEEDED = 'capacity_exceeded'
    CAP_REACHED = 'cap_reached'
    COOLDOWN_ACTIVE = 'cooldown_active'
    NOT_FOUND = 'not_found'
    RACE_LOST = 'race_lost'
    ALREADY_MARRIED = 'already_married'
    NOT_MARRIED = 'not_married'
    NO_LONGER_AVAILABLE = 'no_longer_available'
    ROUND_NOT_OPEN = 'round_not_open'
    VAULT_EMPTY = 'vault_empty'
    NOT_ALLOWED = 'not_allowed'
    GAME_ACTIVE = 'game_active'
    GAME_OVER = 'game_over'
    EXPIRED = 'expired'


@dataclass
class Result(Generic[T]):
    """Success payload or tagged failure."""

    ok: bool
    value: Optional[T] = None
    reason: Optional[Failure] = None
    detail: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, value: T) -> 'Result[T]':
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, reason: Failure, **detail: Any) -> 'Result[T]':
        return cls(ok=False, reason=reason, detail=detail)

    def __bool__(self) -> bool:
        return self.ok


class GuardFailed(Exception):
    """Raised inside a unit of work to abort it when a guard does not hold.

    Raising from inside ``session.begin()`` rolls the whole unit back; the
    operation then catches it and turns it into a failure ``Result``.
    """

    def __init__(self, reason: Failure, **detail: Any):
        super().__init__(reason.value)
        self.reason = reason
        self.detail = detail

    def to_result(self) -> Result:
        return Result.failure(self.reason, **self.detail)
