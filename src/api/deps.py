"""Shared FastAPI dependencies."""
from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.session import get_db
from src.services.nicepay import NicePayClient


async def get_db_session(
    db: AsyncSession = Depends(get_db),
) -> AsyncGenerator[AsyncSession, None]:
    yield db


def get_gateway(request: Request) -> NicePayClient:
    """The gateway client built by the application lifespan."""
    return request.app.state.gateway
