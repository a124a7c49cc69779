"""
Authentication for dashboard admin endpoints
Validates Supabase session JWTs and provides user context
"""
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from .config import get_settings

# Security scheme for bearer tokens
security = HTTPBearer(auto_error=False)

JWT_ALGORITHM = "HS256"


class TokenUser(BaseModel):
    """User data extracted from a Supabase JWT"""
    id: str
    email: Optional[str] = None
    role: str = "authenticated"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"}
    )


def decode_supabase_token(token: str) -> dict:
    """
    Decode and validate a Supabase session token.

    Supabase access tokens are HS256 JWTs signed with the project's JWT secret:
    {
        "sub": "user uuid",
        "email": "admin@example.com",
        "role": "authenticated",
        "aud": "authenticated",
        "exp": 1234567890
    }
    """
    secret = get_settings().SUPABASE_JWT_SECRET
    if not secret:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="SUPABASE_JWT_SECRET is not configured"
        )

    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            options={"verify_aud": False}
        )
    except JWTError as e:
        if "expired" in str(e).lower():
            raise _unauthorized("Token has expired")
        raise _unauthorized(f"Invalid token: {str(e)}")


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> TokenUser:
    """
    Dependency that extracts and validates the current user from JWT.

    Usage:
        @router.put("/credentials")
        async def save(user: TokenUser = Depends(get_current_user)):
            ...
    """
    if not credentials:
        raise _unauthorized("Authentication required")

    payload = decode_supabase_token(credentials.credentials)

    user_id = payload.get("sub")
    if not user_id:
        raise _unauthorized("Invalid token payload: missing user id")

    return TokenUser(
        id=user_id,
        email=payload.get("email"),
        role=payload.get("role", "authenticated")
    )
