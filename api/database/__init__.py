from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from config import Settings


def build_engine(url: str | None = None, **kwargs) -> AsyncEngine:
    return create_async_engine(url or Settings().generate_postgres_url(), pool_pre_ping=True, **kwargs)


engine = build_engine()
async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session
