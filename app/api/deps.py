from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.config import get_settings as _config_settings
from app.db.session import get_db_session


async def get_redis_client(request: Request):
    state = getattr(getattr(request, "app", None), "state", None)
    return getattr(state, "redis", None)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_db_session():
        yield session


def get_settings() -> Settings:
    return _config_settings()
