from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from clinic.settings import settings

engine = create_async_engine(str(settings.db_url), echo=settings.DB_ECHO)

# Objects stay readable after commit; callers hand them out of the session
session_factory = async_sessionmaker(engine, expire_on_commit=False)


async def create_tables() -> None:
    """Create every table registered by the model modules."""
    from clinic.db.meta import meta
    from clinic.db.models import load_all_models

    load_all_models()
    async with engine.begin() as conn:
        await conn.run_sync(meta.create_all)
    logger.info(f"Tables ready on {engine.url.render_as_string(hide_password=True)}")


async def close_engine() -> None:
    await engine.dispose()
    logger.info("Database engine disposed")
