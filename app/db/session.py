import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings

logger = logging.getLogger(__name__)


def build_engine(url: str = None):
    url = url or settings.DATABASE_URL
    kwargs = {"future": True, "echo": settings.DATABASE_ECHO}
    if url.startswith("sqlite"):
        # Wait on the file lock instead of failing when writers overlap
        kwargs["connect_args"] = {"timeout": 30}
    else:
        kwargs["pool_pre_ping"] = True
    return create_async_engine(url, **kwargs)


engine = build_engine()
SessionAsync = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

logger.info(f"Database engine configured for dialect: {engine.dialect.name}")
