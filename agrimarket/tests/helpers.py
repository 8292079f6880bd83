"""Helpers shared by the test modules."""
from typing import Optional, Type, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agrimarket.app.core.auth import create_access_token

T = TypeVar("T")


def auth_header(user_id: int) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


async def reload(session_factory: async_sessionmaker[AsyncSession], model: Type[T], pk: int) -> Optional[T]:
    """Read a row through a short-lived session, so no lock outlives the read."""
    async with session_factory() as session:
        return await session.get(model, pk)
