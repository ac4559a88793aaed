"""API dependencies for dependency injection."""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlmodel import Session

from app.config import get_settings
from app.db.session import get_session

settings = get_settings()
security = HTTPBearer()


def get_db_session() -> Generator[Session, None, None]:
    """Get database session dependency."""
    yield from get_session()


DBSession = Annotated[Session, Depends(get_db_session)]


def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> str:
    """Resolve the authenticated user id (``sub`` claim) from the bearer JWT.

    Users live in the auth service; the token is the only source of identity.
    """
    token = credentials.credentials
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
        user_id: str | None = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    return str(user_id)


CurrentUserId = Annotated[str, Depends(get_current_user_id)]
