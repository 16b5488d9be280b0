"""Authentication dependencies for FastAPI."""
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session as DbSession

from assessment_api.database import get_db
from assessment_api.models.db.user import User
from assessment_api.services.auth_service import get_user_by_id, verify_token

# HTTP Bearer scheme for JWT
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[DbSession, Depends(get_db)],
) -> User:
    """Get the current authenticated user.

    Raises:
        HTTPException: 401 if not authenticated or token is invalid.
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")

    payload = verify_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Invalid or expired token")

    user_id = payload.get("sub")
    if user_id is None:
        raise _unauthorized("Invalid token payload")

    try:
        user = get_user_by_id(db, int(user_id))
    except ValueError:
        raise _unauthorized("Invalid token payload") from None
    if user is None:
        raise _unauthorized("User not found")

    if not user.is_active:
        raise _unauthorized("User is inactive")

    return user


async def require_learner(
    user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Current user, who must hold a role allowed to take assessments."""
    if not user.is_learner:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Enroll as a student to take assessments",
        )
    return user


async def require_staff(
    user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Current user, who must be an administrator or supervisor."""
    if not user.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required",
        )
    return user
