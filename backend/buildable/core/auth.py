"""Bearer token authentication against Clerk.

This module handles:
1. JWT verification with the Clerk JWKS endpoint
2. User provisioning on first authentication
3. The FastAPI dependency that resolves the calling user
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import jwt
from jwt import PyJWKClient, PyJWKClientError
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from ..db.database import get_db
from ..db.models import UserModel
from ..db.repository import UserRepository

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI docs
security = HTTPBearer(auto_error=False)

DEV_USER_ID = "dev_user"


@lru_cache
def get_jwks_client(jwks_url: str) -> PyJWKClient:
    """JWKS client for a Clerk instance, cached per URL."""
    logger.info(f"Initialized JWKS client for {jwks_url}")
    return PyJWKClient(jwks_url, cache_keys=True)


@dataclass
class ClerkUser:
    """Identity extracted from a verified token."""
    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None


def verify_clerk_token(token: str) -> Optional[ClerkUser]:
    """
    Verify a Clerk JWT and extract the user identity.

    Returns:
        ClerkUser if the token is valid, None otherwise
    """
    settings = get_settings()

    try:
        signing_key = get_jwks_client(settings.clerk_jwks_url).get_signing_key_from_jwt(token)

        payload = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            issuer=settings.clerk_issuer or None,
            options={
                "verify_iss": bool(settings.clerk_issuer),
                "verify_aud": False,  # Clerk doesn't always include aud
            }
        )
    except jwt.ExpiredSignatureError:
        logger.warning("JWT token has expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid JWT token: {e}")
        return None
    except PyJWKClientError as e:
        logger.error(f"JWKS client error: {e}")
        return None

    user_id = payload.get("sub")
    if not user_id:
        logger.warning("JWT token missing 'sub' claim")
        return None

    display_name = payload.get("name")
    if not display_name and "first_name" in payload:
        display_name = f"{payload.get('first_name', '')} {payload.get('last_name', '')}".strip() or None

    return ClerkUser(
        id=user_id,
        email=payload.get("email") or payload.get("primary_email_address"),
        display_name=display_name,
    )


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> UserModel:
    """
    FastAPI dependency that resolves the authenticated user.

    Without CLERK_JWKS_URL configured, every request runs as a development
    user. The resolved user id is stored on ``request.state`` for the rate
    limiter and request logging.

    Raises:
        HTTPException 401 if a token is required and missing or invalid
    """
    users = UserRepository(db)

    if not get_settings().clerk_jwks_url:
        user = await users.get_or_create(DEV_USER_ID, email="dev@example.com")
        request.state.user_id = user.id
        return user

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    clerk_user = verify_clerk_token(credentials.credentials)
    if not clerk_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await users.get_or_create(clerk_user.id, email=clerk_user.email)
    if clerk_user.display_name and user.display_name != clerk_user.display_name:
        user.display_name = clerk_user.display_name
        await db.commit()

    request.state.user_id = user.id
    return user
