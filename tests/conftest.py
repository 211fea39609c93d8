import random

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from utils.blackjack import active_games
from utils.database import create_engine, create_session_maker, init_models
from utils.ledger import BalanceField, Ledger


class StubRandom(random.Random):
    """random.Random whose ``random()`` replays fixed values; everything else is seeded.

    ``getrandbits`` is overridden so integer draws (``randint``, ``choice``,
    ``shuffle``) use the seeded bits and never eat a scripted value.
    """

    def __init__(self, *values: float, seed: int = 1234):
        super().__init__(seed)
        self._values = list(values)

    def random(self) -> float:
        if self._values:
            return self._values.pop(0)
        return super().random()

    def getrandbits(self, k: int) -> int:
        return super().getrandbits(k)


@pytest.fixture(autouse=True)
def clear_active_games():
    yield
    active_games.clear()


@pytest_asyncio.fixture()
async def engine(tmp_path):
    """A file-backed SQLite database, so separate sessions really contend for locks."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def session_maker(engine):
    return create_session_maker(engine)


@pytest_asyncio.fixture()
async def session(session_maker):
    async with session_maker() as sess:  # type: ignore
        yield sess


@pytest.fixture()
def stub_rng():
    return StubRandom


@pytest_asyncio.fixture()
async def fund(session_maker):
    """Create an account with the given wallet/bank balances."""

    async def _fund(user_id: str, wallet: int = 0, bank: int = 0, **values):
        async with session_maker() as sess:
            async with sess.begin():
                await Ledger.ensure(sess, user_id, f"user{user_id}")
                if wallet:
                    await Ledger.credit(sess, user_id, BalanceField.WALLET, wallet)
                if bank:
                    await Ledger.credit(sess, user_id, BalanceField.BANK, bank)
                if values:
                    await Ledger.apply_if(sess, user_id, **values)

    return _fund


@pytest_asyncio.fixture()
async def fetch(session_maker):
    """Fresh read of an account in its own session."""

    async def _fetch(user_id: str):
        async with session_maker() as sess:
            async with sess.begin():
                return await Ledger.get(sess, user_id)

    return _fetch
