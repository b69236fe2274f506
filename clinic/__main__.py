from aiohttp import web
from loguru import logger

from clinic.db.engine import close_engine, create_tables
from clinic.loader import create_app
from clinic.settings import settings
from clinic.settings.logging import setup_logging


async def on_startup(app: web.Application) -> None:
    """Prepare the database."""
    await create_tables()
    logger.info(f"Clinic service started on {settings.HOST}:{settings.PORT}")


async def on_cleanup(app: web.Application) -> None:
    """Release the database engine."""
    await close_engine()
    logger.info("Clinic service stopped")


def main() -> None:
    """Main function."""
    setup_logging()
    app = create_app()
    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    web.run_app(app, host=settings.HOST, port=settings.PORT, print=None)


if __name__ == "__main__":
    main()
