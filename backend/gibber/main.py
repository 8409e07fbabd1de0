# gibber/main.py
import asyncio
import logging

from gibber.config import settings
from gibber.core.bootstrap import configure_logging, print_logo
from gibber.core.db import close_db, init_db
from gibber.server import SessionSupervisor
from gibber.services.stores import Stores

logger = logging.getLogger("gibber")


async def main():
    configure_logging()
    print_logo()
    logger.info("starting %s (%s) on %s:%s", settings.APP_NAME, settings.env, settings.host, settings.port)
    # DB initialization
    await init_db(generate_schemas=settings.generate_schemas)
    try:
        await SessionSupervisor(Stores.create(), settings).serve()
    finally:
        await close_db()
        logger.info("server stopped")


def run():
    """Console entry point (gibber-server)."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("interrupted")


if __name__ == "__main__":
    run()
