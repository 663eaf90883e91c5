"""Result database — one process-wide async engine for detection history."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from .config import AnomalyEngineConfig
from .models.base import Base
from .utils.logging import get_logger

logger = get_logger("database")

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _engine_options(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    if ":memory:" in url:
        # every session must see the same in-memory database
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {"connect_args": {"timeout": 30}}


def get_engine(config: AnomalyEngineConfig) -> AsyncEngine:
    """Return the shared engine, creating it from ``config.database_url`` on first use."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            config.database_url, echo=config.debug, **_engine_options(config.database_url)
        )
    return _engine


def get_session_factory(config: AnomalyEngineConfig) -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(config), expire_on_commit=False)
    return _session_factory


async def create_tables(config: AnomalyEngineConfig) -> None:
    engine = get_engine(config)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("result_tables_ready", url=engine.url.render_as_string(hide_password=True))


async def close_engine() -> None:
    """Dispose the shared engine; the next get_engine call builds a fresh one."""
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("result_database_closed")
