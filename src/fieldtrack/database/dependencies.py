from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from fastapi import HTTPException, status

from .database import db


async def verify_database() -> AsyncIterator[AsyncSession]:
    """Yield a session, reconnecting first if the database went away"""
    if not db.is_connected:
        try:
            await db.reconnect()
        except Exception:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Database connection is not available",
            )
    session = await db.get_client()
    try:
        yield session
    finally:
        await session.close()
