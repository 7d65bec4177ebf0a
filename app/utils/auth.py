"""Bearer token utilities."""
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from app.config import settings


def create_access_token(
    user_id: str, company_id: str, expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token for a user of a company.

    Args:
        user_id: User ID to encode in token
        company_id: Company the user acts for
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string

    Example:
        >>> token = create_access_token(user_id="user123", company_id="acme")
        >>> isinstance(token, str)
        True
    """
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expiration_minutes)

    to_encode = {
        "sub": user_id,
        "company_id": company_id,
        "exp": expire,
    }

    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_access_token(token: str) -> tuple[str, str]:
    """
    Verify and decode a JWT access token.

    Args:
        token: JWT token string to verify

    Returns:
        Tuple of (user ID, company ID) from the token

    Raises:
        JWTError: If token is invalid, expired or misses a claim

    Example:
        >>> token = create_access_token(user_id="user123", company_id="acme")
        >>> verify_access_token(token)
        ('user123', 'acme')
    """
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    user_id = payload.get("sub")
    company_id = payload.get("company_id")

    if user_id is None:
        raise JWTError("Token payload missing 'sub' claim")
    if company_id is None:
        raise JWTError("Token payload missing 'company_id' claim")

    return user_id, company_id
