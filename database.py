import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

import config

logger = logging.getLogger(__name__)


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Creates the async engine for `url`.

    SQLite connections get the driver's implicit transaction handling switched
    off so that SAVEPOINTs (used by the best-effort cleanup steps) nest inside
    the request transaction the same way they do on PostgreSQL. Foreign keys
    are enforced as well, since SQLite leaves them off by default.
    """
    engine = create_async_engine(url, echo=echo, future=True)
    if engine.dialect.name == "sqlite":

        @event.listens_for(engine.sync_engine, "connect")
        def _configure_connection(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


def build_session_factory(bind: AsyncEngine) -> sessionmaker:
    # expire_on_commit=False keeps loaded attributes usable after the commit in an endpoint
    return sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False, future=True)


# --- SQLAlchemy Engine Setup ---
engine = build_engine(config.DATABASE_URL, echo=config.SQL_ECHO)
# --- SQLAlchemy Session Factory ---
AsyncSessionFactory = build_session_factory(engine)

# --- Base for Declarative Models ---
# All SQLAlchemy models will inherit from this Base
Base = declarative_base()


# --- Database Initialization ---
async def init_db(bind: AsyncEngine = engine):
    """
    Creates all tables defined in the models.
    This should be called once at application startup.
    """
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created (or already exist).")


# --- Dependency for FastAPI to Get DB Session ---
async def get_async_session() -> AsyncSession:
    """
    Dependency that provides an asynchronous database session for each request.
    Ensures the session is closed after the request is processed.
    """
    async_session = AsyncSessionFactory()
    try:
        yield async_session
        await async_session.commit()  # Commit changes if no exceptions
    except Exception as e:
        await async_session.rollback()  # Rollback on error
        logger.error(f"Database session error: {e}")
        raise
    finally:
        await async_session.close()
