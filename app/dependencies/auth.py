"""Authentication dependencies for FastAPI"""
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.database import get_db
from app.core.exceptions import Unauthorized
from app.core.security import verify_api_key
from app.models.user import User


async def verify_api_credentials(
    business_id: Optional[str] = Header(None, alias="X-Business-Id"),
    business_token: Optional[str] = Header(None, alias="X-Business-Token"),
    api_key: Optional[str] = Header(None, alias="X-API-Key"),
    session: AsyncSession = Depends(get_db),
) -> User:
    """
    Dependency to verify API credentials from headers.
    Args:
        business_id: Business ID from X-Business-Id header
        business_token: Business token from X-Business-Token header
        api_key: API key from X-API-Key header
        session: Database session
    Returns:
        User: Authenticated user
    Raises:
        Unauthorized: If credentials are missing or invalid (401)
    """
    if not business_id or not business_token or not api_key:
        raise Unauthorized("Missing API credentials", headers={"WWW-Authenticate": "Bearer"})

    stmt = select(User).where(
        User.business_id == business_id,
        User.business_token == business_token,
        User.is_active.is_(True),
    )
    result = await session.execute(stmt)
    user = result.scalars().first()
    if user and verify_api_key(api_key, user.api_key):
        return user
    raise Unauthorized("Invalid API credentials", headers={"WWW-Authenticate": "Bearer"})
