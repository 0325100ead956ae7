"""
Create all fee ledger tables on the configured database.
Run from project root: python -m app.db.init_db
"""

import asyncio
import logging

import app.core.models  # noqa: F401 - register models on Base.metadata
from app.core.logging import configure_logging
from app.db.session import Base, engine

logger = logging.getLogger(__name__)


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    logger.info("Fee ledger tables created")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(init_db())
