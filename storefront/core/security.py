from datetime import datetime, timedelta
from typing import Optional, Union

from jose import JWTError, jwt
from fastapi import HTTPException, status

from storefront.core.config import settings


def create_access_token(subject: Union[str, int], expires_delta: Optional[timedelta] = None) -> str:
    """Issue a signed bearer token identifying a shopper.

    Token issuance belongs to the identity service; this helper exists for
    tooling and tests that need to act as a given user.
    """
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {"sub": str(subject), "exp": expire, "type": "access"}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and verify a bearer token"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
        )
    return payload
