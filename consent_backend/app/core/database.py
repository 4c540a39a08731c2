from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from consent_backend.app.core.settings import get_settings

settings = get_settings()


def _engine_options(url: str) -> dict:
    # Pool sizing only applies to the PostgreSQL record store
    if not url.startswith("postgresql"):
        return {}
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_timeout": 30,
    }


engine = create_async_engine(settings.db_url, echo=False, **_engine_options(settings.db_url))
async_session = async_sessionmaker(engine, expire_on_commit=False)
