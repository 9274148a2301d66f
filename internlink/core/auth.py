"""
Authentication Utility - JWT handling.

Tokens are issued by the identity service; this module only verifies them
and turns the claims into an Actor:
    sub          -> actor id (student id or company user id)
    role         -> "student" | "company"
    email        -> optional, denormalized onto new applications
    company_name -> optional, restricts a company actor to its own postings

Provides:
- JWT token creation/verification
- FastAPI dependencies for HTTP routes and WebSocket endpoints
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Query, WebSocketException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from internlink.core.config import get_settings
from internlink.schemas.schemas import Actor, ActorRole

settings = get_settings()

# Bearer token extractor
bearer_scheme = HTTPBearer()


def create_access_token(actor: Actor, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token for an actor (identity service and tests)."""
    to_encode = {"sub": actor.id, "role": actor.role.value}
    if actor.email:
        to_encode["email"] = actor.email
    if actor.company_name:
        to_encode["company_name"] = actor.company_name
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify JWT token."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def actor_from_token(token: str) -> Optional[Actor]:
    payload = decode_token(token)
    if not payload or not payload.get("sub"):
        return None
    try:
        role = ActorRole(payload.get("role"))
    except ValueError:
        return None
    return Actor(
        id=str(payload["sub"]),
        role=role,
        email=payload.get("email"),
        company_name=payload.get("company_name"),
    )


async def get_current_actor(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> Actor:
    """
    FastAPI dependency - Get the acting identity.

    Usage:
        @router.get("/protected")
        async def route(actor: Actor = Depends(get_current_actor)):
            return actor
    """
    actor = actor_from_token(credentials.credentials)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor


async def get_websocket_actor(token: str = Query(...)) -> Actor:
    """Browsers cannot set headers on WebSocket upgrades, so the token comes as ?token=."""
    actor = actor_from_token(token)
    if actor is None:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid or expired token")
    return actor
