from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .engine import session_factory as default_session_factory


@asynccontextmanager
async def get_or_create_session(
    existing_session: AsyncSession | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, Any]:
    """
    Run a unit of work in one transaction.

    An ``existing_session`` is yielded untouched; its owner decides when to
    commit. Otherwise a session is opened from ``session_factory`` (the
    module-level one if omitted), committed when the block exits cleanly
    and rolled back on any exception.
    """
    if existing_session is not None:
        yield existing_session
        return

    async with (session_factory or default_session_factory)() as session:
        await session.begin()
        try:
            yield session
        except SQLAlchemyError as e:
            logger.error(f"Transaction rolled back on database error: {e}")
            await session.rollback()
            raise
        except BaseException:
            await session.rollback()
            raise
        await session.commit()
