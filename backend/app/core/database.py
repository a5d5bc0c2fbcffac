"""
Configurazione Database - SQLAlchemy 2.0 Async
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Engine, session factory e dependency per FastAPI.

PostgreSQL (asyncpg) è il database di esercizio. SQLite (aiosqlite)
è accettato per sviluppo locale e test: in quel caso ogni transazione
parte con BEGIN IMMEDIATE, così le scritture concorrenti (contatori,
storni) si serializzano come con i lock di riga di PostgreSQL.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings

logger = logging.getLogger(__name__)


def _serialize_sqlite_writes(async_engine: AsyncEngine) -> None:
    """Transazioni SQLite con lock di scrittura acquisito all'inizio."""

    @event.listens_for(async_engine.sync_engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Crea l'engine async per l'URL indicato.

    Args:
        url: URL SQLAlchemy (postgresql+asyncpg:// o sqlite+aiosqlite://)
        echo: Log delle query
    """
    if make_url(url).get_backend_name() == "sqlite":
        async_engine = create_async_engine(url, echo=echo, connect_args={"timeout": 30})
        _serialize_sqlite_writes(async_engine)
        return async_engine

    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory: oggetti validi dopo il commit, flush solo esplicito."""
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine: AsyncEngine = build_engine(settings.database_url, echo=settings.debug)
AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency FastAPI: una sessione per richiesta.

    Le operazioni dei service fanno commit esplicito; un'eccezione
    non gestita annulla la transazione aperta.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Verifica all'avvio che il database risponda."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database non raggiungibile (%s): %s", engine.url.render_as_string(), e)
        raise
    logger.info("Connessione al database %s stabilita", engine.dialect.name)


async def create_tables(target: AsyncEngine | None = None) -> None:
    """
    Crea le tabelle mancanti (solo sviluppo e test).

    Args:
        target: Engine su cui creare lo schema (default: engine applicazione)
    """
    from app.models import Base

    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Schema database creato")


async def close_db() -> None:
    await engine.dispose()
    logger.info("Connessioni database chiuse")
