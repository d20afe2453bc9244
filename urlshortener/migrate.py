"""Schema migration executable, shipped next to the service.

    urlshortener-migrate upgrade     # create missing tables
    urlshortener-migrate downgrade   # drop every table
"""

import argparse
import asyncio
import logging
import sys

from sqlalchemy.ext.asyncio import AsyncEngine

from . import models  # noqa: F401  registers tables on Base.metadata
from .config import get_settings
from .database import Base, create_engine
from .logging_config import setup_logging

logger = logging.getLogger(__name__)


async def upgrade(engine: AsyncEngine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Schema up to date: {', '.join(sorted(Base.metadata.tables))}")


async def downgrade(engine: AsyncEngine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("Schema dropped")


async def _run(command: str):
    settings = get_settings()
    engine = create_engine(settings)
    try:
        await (upgrade if command == "upgrade" else downgrade)(engine)
    finally:
        await engine.dispose()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="urlshortener-migrate", description=__doc__.splitlines()[0])
    parser.add_argument("command", choices=["upgrade", "downgrade"], nargs="?", default="upgrade")
    args = parser.parse_args(argv)

    setup_logging(get_settings().LOG_LEVEL)
    asyncio.run(_run(args.command))
    return 0


if __name__ == "__main__":
    sys.exit(main())
