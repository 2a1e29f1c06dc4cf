import structlog
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from storefront.core.exceptions import ForbiddenError
from storefront.core.security import decode_token
from storefront.db.session import get_db
from storefront.models.user import User

logger = structlog.get_logger()


def _bearer_token(request: Request):
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1]
    return None


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    """Resolve the shopper or operator from the bearer token."""
    token = _bearer_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(token)
    user_id = payload.get("sub")
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )

    return user


def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    if not current_user.is_active:
        raise ForbiddenError("Account is inactive")
    return current_user


def require_admin(
    request: Request,
    current_user: User = Depends(get_current_active_user),
) -> User:
    if not current_user.is_admin:
        logger.warning(
            "admin_access_denied",
            action=f"{request.method} {request.url.path}",
            user_id=current_user.id,
        )
        raise ForbiddenError("Admin access required")
    return current_user
