from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

import atexit
import logging

from . import config

logger = logging.getLogger(__name__)

DATABASE_URL = config.DATABASE_URL

# NullPool: sqlite connections are cheap and this avoids pooled connections
# outliving the event loop that created them (common under pytest-asyncio).
engine = create_async_engine(DATABASE_URL, echo=False, future=True, poolclass=NullPool)

async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db():
    # the session table is the only table; import registers it on the metadata
    from .models import Session  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info('init_db complete for %s', DATABASE_URL)


# Ensure engine sync pool is disposed at interpreter exit to avoid pool
# finalizer warnings during teardown.
def _dispose_sync_engine():
    try:
        if hasattr(engine, 'sync_engine') and engine.sync_engine is not None:
            engine.sync_engine.dispose()
    except Exception:
        logger.exception('failed to dispose engine at exit')


atexit.register(_dispose_sync_engine)
