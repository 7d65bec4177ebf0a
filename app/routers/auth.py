"""Auth router - bearer token dependency, identity and token refresh."""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from pydantic import BaseModel

from app.models.user import CurrentUser
from app.utils.auth import create_access_token, verify_access_token


router = APIRouter(prefix="/auth", tags=["auth"])
security = HTTPBearer(auto_error=False)


class TokenResponse(BaseModel):
    """Token response model."""

    access_token: str
    token_type: str = "bearer"


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> CurrentUser:
    """
    Dependency to get the current user and company from the JWT token.

    Tokens are issued by the identity service; this API verifies and refreshes them.

    Args:
        credentials: HTTP bearer credentials

    Returns:
        Current user identity

    Raises:
        HTTPException: If token is missing or invalid (401)
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    try:
        user_id, company_id = verify_access_token(credentials.credentials)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )

    return CurrentUser(user_id=user_id, company_id=company_id)


@router.get("/me", response_model=CurrentUser)
async def get_me(current_user: CurrentUser = Depends(get_current_user)):
    """
    Get the identity carried by the current token.

    - Requires authentication
    """
    return current_user


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(current_user: CurrentUser = Depends(get_current_user)):
    """
    Exchange a valid token for a fresh one with a new expiry.

    - Requires authentication
    """
    token = create_access_token(
        user_id=current_user.user_id, company_id=current_user.company_id
    )
    return TokenResponse(access_token=token)
