from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from integration_service.core.config import get_settings


def normalize_database_url(url: str) -> str:
    """Accept postgres:// and postgresql:// and use the asyncpg driver for both."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://") and "asyncpg" not in url:
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


database_url = normalize_database_url(get_settings().database_url)

engine = create_async_engine(database_url, echo=get_settings().sql_echo)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)
Base = declarative_base()
