import logging
import secrets
from datetime import timedelta
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, HTTPException, Request, status
import jwt
from jwt.exceptions import InvalidTokenError as JWTError

from matka.config import settings
from matka.database import get_db
from matka.utils import utcnow

logger = logging.getLogger("matka.auth")

ALGORITHM = "HS256"


def decode_jwt(token: str) -> dict:
    """Decode a JWT, trying the current secret first, then the old one.

    This allows zero-downtime rotation of JWT_SECRET:
    1. Set JWT_SECRET to the new value and JWT_SECRET_OLD to the previous one.
    2. After ACCESS_TOKEN_EXPIRE_MINUTES, all old tokens have expired.
    3. Remove JWT_SECRET_OLD from .env.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError:
        if settings.JWT_SECRET_OLD:
            return jwt.decode(token, settings.JWT_SECRET_OLD, algorithms=[ALGORITHM])
        raise


def create_access_token(user_id: str) -> str:
    expire = utcnow() + timedelta(
        minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    payload = {
        "sub": user_id,
        "exp": expire,
        "type": "access",
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGORITHM)


def _token_from_request(request: Request) -> Optional[str]:
    """Access token from the ``access_token`` cookie or a Bearer header."""
    token = request.cookies.get("access_token")
    if token:
        return token
    header = request.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


async def get_current_user(request: Request, db=Depends(get_db)) -> dict:
    """FastAPI dependency: extract and validate the user from the access token."""
    token = _token_from_request(request)
    if not token:
        raise _unauthorized("Not authenticated.")

    try:
        payload = decode_jwt(token)
    except JWTError:
        raise _unauthorized("Invalid token.")

    if payload.get("type") != "access":
        raise _unauthorized("Invalid token type.")

    user_id = payload.get("sub")
    if not user_id:
        raise _unauthorized("Invalid token.")

    try:
        oid = ObjectId(user_id)
    except InvalidId:
        raise _unauthorized("Invalid token.")

    user = await db.users.find_one({"_id": oid, "is_deleted": {"$ne": True}})
    if not user:
        raise _unauthorized("User not found.")

    if user.get("is_banned"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account has been suspended.",
        )

    return user


async def get_admin_user(request: Request, db=Depends(get_db)) -> dict:
    """FastAPI dependency: requires an authenticated admin user."""
    user = await get_current_user(request, db)
    if not user.get("is_admin"):
        logger.warning("Non-admin %s tried %s %s", user["_id"], request.method, request.url.path)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admins only.",
        )
    return user
