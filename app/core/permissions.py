"""
Role-based permission helpers.

Provides the admin check and the dependency that enforces it.
"""

from fastapi import Depends

from app.core.dependencies import get_current_user
from app.errors import ForbiddenError
from app.models.user import User

ADMIN_ROLE = "admin"


def check_is_admin(user_role: str) -> bool:
    return user_role == ADMIN_ROLE


def require_admin():
    """
    Dependency to require the admin role.

    Usage:
        @router.post("/analysis/queue/status")
        async def control_queue(current_user: User = Depends(require_admin())):
            ...

    Raises:
        ForbiddenError: 403 if the user is not an admin
    """
    async def admin_checker(current_user: User = Depends(get_current_user)) -> User:
        if not check_is_admin(current_user.role):
            raise ForbiddenError("Admin access required")
        return current_user
    return admin_checker
