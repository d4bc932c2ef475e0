from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.config import settings

# The reconciler's read-check-write on a transaction row is only safe from read committed upwards.
_POSTGRES_ISOLATION_LEVELS = frozenset({"READ COMMITTED", "REPEATABLE READ", "SERIALIZABLE"})


def postgres_isolation_level(value: str) -> str:
    level = " ".join((value or "").upper().split())
    if level not in _POSTGRES_ISOLATION_LEVELS:
        raise ValueError(
            f"DB_POSTGRES_ISOLATION_LEVEL={value!r} is too weak for payment reconciliation; "
            f"use one of {sorted(_POSTGRES_ISOLATION_LEVELS)}"
        )
    return level


def create_engine_for(url: str, *, echo: bool = False) -> AsyncEngine:
    backend = make_url(url).get_backend_name()

    # aiosqlite runs every connection on its own thread; pooling them buys nothing.
    if backend == "sqlite":
        return create_async_engine(url, poolclass=NullPool, echo=echo)

    extra = {}
    if backend in {"postgresql", "postgres"}:
        extra["isolation_level"] = postgres_isolation_level(settings.DB_POSTGRES_ISOLATION_LEVEL)

    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=settings.DB_POOL_PRE_PING,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT_SECONDS,
        pool_recycle=settings.DB_POOL_RECYCLE_SECONDS,
        **extra,
    )


engine = create_engine_for(settings.DATABASE_URL, echo=settings.DEBUG)

# expire_on_commit=False: notification results are serialized after the unit of work commits.
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db_session():
    async with AsyncSessionLocal() as session:
        yield session
