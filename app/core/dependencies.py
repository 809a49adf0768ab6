"""
FastAPI dependencies for the application.
"""

from typing import Optional
from uuid import UUID

from fastapi import Cookie, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.security import session_manager
from app.db.session import get_db
from app.errors import ForbiddenError, UnauthorizedError
from app.models.user import User
from app.repositories.user_repository import UserRepository

# Bearer header is optional; the session cookie is accepted as well
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session_token: Optional[str] = Cookie(None, alias=settings.SESSION_COOKIE_NAME),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Get the current authenticated user from the session token.
    
    Reads the bearer header first, then the session cookie, loads the user
    from database, and ensures the user is active.
    
    Raises:
        401: If token is missing, invalid or user not found
        403: If user is not active
    """
    token = credentials.credentials if credentials else session_token
    if not token:
        raise UnauthorizedError("Unauthorized")
    
    payload = session_manager.verify_session_token(token)
    if not payload:
        raise UnauthorizedError("Invalid authentication credentials")
    
    try:
        user_id = UUID(str(payload.get("user_id")))
    except ValueError:
        raise UnauthorizedError("Invalid token payload")
    
    user = await UserRepository(db).get_by_id(user_id)
    if not user:
        raise UnauthorizedError("User not found")
    
    if not user.is_active:
        raise ForbiddenError("User account is inactive")
    
    return user
