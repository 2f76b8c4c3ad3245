import json
import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from datetime import datetime, date
from typing import AsyncGenerator
from uuid import UUID

from sqlalchemy import event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.orm.exc import StaleDataError
from psycopg.types.json import set_json_dumps

from docflow.config import settings
from docflow.core.exceptions import ConflictError, PersistenceError


logger = logging.getLogger(__name__)


# Custom JSON encoder that handles Decimal, datetime, UUID, etc.
class CustomJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal, datetime, UUID and other types."""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, UUID):
            return str(obj)
        return super().default(obj)


def custom_json_dumps(obj):
    """Custom JSON dumps function used for JSON columns on every dialect."""
    return json.dumps(obj, cls=CustomJSONEncoder)


# Configure psycopg to use our custom JSON encoder globally
set_json_dumps(custom_json_dumps)


def normalize_database_url(database_url: str) -> str:
    """Point PostgreSQL URLs at the psycopg async driver."""
    if database_url.startswith("postgresql+asyncpg://"):
        return database_url.replace("postgresql+asyncpg://", "postgresql+psycopg://")
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+psycopg://")
    return database_url


def _install_sqlite_locking(engine: AsyncEngine) -> None:
    """
    Make SQLite transactions take the write lock up front.

    pysqlite/aiosqlite defer BEGIN until the first write, so two amendment
    allocators could both read the sibling set before either inserts.
    BEGIN IMMEDIATE serializes them the way SELECT ... FOR UPDATE does on
    PostgreSQL, and disabling the driver's own BEGIN keeps SAVEPOINT usable.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine with dialect-appropriate settings."""
    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url,
            echo=echo,
            json_serializer=custom_json_dumps,
            connect_args={
                "check_same_thread": False,
                "timeout": settings.AMENDMENT_LOCK_TIMEOUT_SECONDS,
            },
        )
        _install_sqlite_locking(engine)
        return engine

    return create_async_engine(
        normalize_database_url(database_url),
        echo=echo,
        json_serializer=custom_json_dumps,
        pool_pre_ping=True,  # Check connection health before use
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        connect_args={
            "prepare_threshold": None,  # Disable prepared statements for poolers
            "connect_timeout": 30,
        },
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

async_session_factory = build_session_factory(engine)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def get_db_session(session_factory: async_sessionmaker[AsyncSession] = None):
    """Context manager for one unit of work outside a request."""
    factory = session_factory or async_session_factory
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def flush_changes(session: AsyncSession, context: str) -> None:
    """
    Flush pending changes, translating store rejections.

    A stale row_version means someone else updated the row first; the
    caller can reload and retry. Constraint violations are not retryable.
    """
    try:
        await session.flush()
    except StaleDataError as e:
        raise ConflictError(
            f"{context}: the document was modified concurrently. Reload and retry.",
            retryable=True,
        ) from e
    except IntegrityError as e:
        logger.error(f"{context}: write rejected: {e.orig}")
        raise PersistenceError(f"{context}: write rejected by the database", original=e) from e


def import_models() -> None:
    """Import all model modules so they register with Base.metadata."""
    from docflow.models import (  # noqa: F401
        audit_log,
        billing,
        delivery,
        document_sequence,
        master_data,
        quotation,
        sales_order,
        supplier_lpo,
    )


async def init_db(bind: AsyncEngine = None) -> None:
    """Create all tables that do not exist yet."""
    import_models()
    target = bind or engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database ready ({len(Base.metadata.tables)} tables)")
