"""Async engine, session factory and declarative base for the billing tables"""

import re
import ssl
from typing import Any, AsyncGenerator, Dict, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from app.config import settings

_SSLMODE = re.compile(r"[?&]sslmode=([^&]+)", re.I)


def _normalize_url(raw_url: str) -> Tuple[str, Dict[str, Any]]:
    """
    Switch plain postgres URLs to asyncpg and move sslmode into connect_args.

    asyncpg rejects the libpq `sslmode` query parameter; it takes an
    SSLContext instead. Managed Postgres certificates often fail hostname
    verification, so the context encrypts without verifying.
    """
    url = raw_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    args: Dict[str, Any] = {}

    match = _SSLMODE.search(url)
    if match:
        if match.group(1).lower() in ("require", "required", "verify-full"):
            ctx = ssl.create_default_context()
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
            args["ssl"] = ctx
        url = _SSLMODE.sub("", url)
        url = url.replace("?&", "?").rstrip("?")
        if "?" not in url and "&" in url:
            url = url.replace("&", "?", 1)
    return url, args


def _engine_options(url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.DEBUG, "future": True}
    if url.startswith("sqlite"):
        # SQLite (tests, local runs) has no server-side pool to size
        return options
    options.update(
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
    )
    return options


database_url, connect_args = _normalize_url(settings.DATABASE_URL)

engine = create_async_engine(database_url, connect_args=connect_args, **_engine_options(database_url))

# Billing writes commit one row at a time and keep using the objects afterwards
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session: committed when the endpoint returns, rolled back if it raises.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create missing tables. Development only; deployed databases are migrated with Alembic."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
