"""
Initialize database tables.

    python init_db.py          create missing tables
    python init_db.py --reset  drop every fieldops table first
"""
import asyncio
import sys

from fieldops.database import engine, Base
from fieldops.models import *  # noqa: F401,F403 - Import all models to register them
from fieldops.utils.logger import configure_logging, get_logger

logger = get_logger("fieldops.init_db")


async def init(reset: bool = False):
    async with engine.begin() as conn:
        if reset:
            await conn.run_sync(Base.metadata.drop_all)
            logger.warning(f"Dropped tables: {', '.join(Base.metadata.tables)}")
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    print(f"Database tables ready: {len(Base.metadata.tables)} tables.")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(init(reset="--reset" in sys.argv[1:]))
