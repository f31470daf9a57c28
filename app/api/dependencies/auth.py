"""
FastAPI dependencies for authenticating API requests

Usage:
    @router.post("/orders/{order_id}/accept")
    async def accept(
        order_id: int,
        driver: User = Depends(require_driver),
        db: AsyncSession = Depends(get_db),
    ):
        ...
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import verify_token
from app.core.exceptions import AccessDeniedError, ErrorCode
from app.core.logging import get_logger
from app.db.database import get_db
from app.db.models.user import User, UserRole

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Verify the bearer token and load the user it belongs to.

    Raises 401 if the token is missing, invalid or expired, or the user is gone.
    Raises 403 if the account has been deactivated.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token_data = verify_token(credentials.credentials)
    if not token_data:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(select(User).where(User.id == token_data.user_id))
    user = result.scalar_one_or_none()
    if not user:
        logger.warning("Token for unknown user", extra_data={"user_id": token_data.user_id})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User no longer exists",
        )

    if not user.is_active:
        code = ErrorCode.DRIVER_INACTIVE if user.is_driver else ErrorCode.FORBIDDEN
        raise AccessDeniedError("Account is inactive", error_code=code)

    return user


async def require_customer(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.CUSTOMER:
        raise AccessDeniedError("Customers only", error_code=ErrorCode.INVALID_USER_ROLE)
    return user


async def require_driver(user: User = Depends(get_current_user)) -> User:
    if not user.is_driver:
        raise AccessDeniedError("Drivers only", error_code=ErrorCode.INVALID_USER_ROLE)
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.ADMIN:
        raise AccessDeniedError("Admins only", error_code=ErrorCode.INVALID_USER_ROLE)
    return user
