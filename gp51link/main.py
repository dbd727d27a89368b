import asyncio

import structlog

from gp51link.app import GP51Link
from gp51link.core.logging import Logger
from gp51link.core.logging import configure as configure_logging

configure_logging()

logger: Logger = structlog.get_logger()


async def main():
    logger.info("Starting gp51link application...")
    app = GP51Link(enable_http=True)

    await app.run()

    await logger.ainfo("gp51link finished")


if __name__ == "__main__":
    asyncio.run(main())
