"""
Engine and session factory setup.
"""

import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from models import Base

logger = logging.getLogger(__name__)


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine.

    On SQLite every transaction is opened with ``BEGIN IMMEDIATE`` so the write
    lock is taken before the first read. That gives the same serialization the
    ``SELECT ... FOR UPDATE`` row locks give on PostgreSQL.
    """
    connect_args = {}
    if database_url.startswith('sqlite'):
        connect_args['timeout'] = 30
    engine = create_async_engine(database_url, echo=echo, connect_args=connect_args)

    if engine.dialect.name == 'sqlite':
        @event.listens_for(engine.sync_engine, 'connect')
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            # let the 'begin' hook below emit BEGIN itself
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, 'begin')
        def _begin_immediate(conn):
            conn.exec_driver_sql('BEGIN IMMEDIATE')

    return engine


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables that don't exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")
