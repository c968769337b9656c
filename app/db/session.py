import logging
from typing import AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """Owns the async engine and session factory for one application instance.

    Created explicitly (see app.main.create_app) and connected/disconnected by the
    application lifespan. Request handlers reach it through get_db.
    """

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self.url = url
        engine_kwargs = {"echo": echo, "future": True, "pool_pre_ping": True}
        if not url.startswith("sqlite"):
            # pool_recycle: discard connections after this many seconds to avoid stale connections.
            engine_kwargs["pool_recycle"] = 300
        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    def session(self) -> AsyncSession:
        return self.session_factory()

    async def connect(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection established")

    async def disconnect(self) -> None:
        await self.engine.dispose()
        logger.info("Database connections closed")

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception:
            logger.exception("Database ping failed")
            return False
        return True

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)


def get_database(request: Request) -> Database:
    database: Optional[Database] = getattr(request.app.state, "database", None)
    if database is None:
        raise RuntimeError("Database is not configured on the application")
    return database


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    async with get_database(request).session() as session:
        yield session
