import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import jwt
from fastapi import Depends, Header
from passlib.context import CryptContext

from database import get_document_by_id
from errors import Forbidden, Unauthorized
from settings import settings

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS = "access"
REFRESH = "refresh"


def hash_password(p: str) -> str:
    return pwd_context.hash(p)


def verify_password(p: str, h: str) -> bool:
    return pwd_context.verify(p, h)


def _encode(user_id: str, token_type: str, minutes: int) -> str:
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "jti": uuid4().hex,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_alg)


def create_access_token(user_id: str) -> str:
    return _encode(user_id, ACCESS, settings.jwt_expire_minutes)


def create_refresh_token(user_id: str) -> str:
    return _encode(user_id, REFRESH, settings.jwt_refresh_expire_minutes)


def decode_token(token: str, token_type: str = ACCESS) -> Optional[str]:
    """Return the user id carried by a valid token of the given type, else None."""
    try:
        data = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_alg])
    except jwt.InvalidTokenError as e:
        logger.debug("Rejected %s token: %s", token_type, e)
        return None
    if data.get("type") != token_type:
        return None
    return data.get("sub")


def public_user(user: dict) -> dict:
    return {
        "id": user["_id"],
        "username": user.get("username"),
        "email": user.get("email"),
        "role": user.get("role", "customer"),
        "first_name": user.get("first_name"),
        "last_name": user.get("last_name"),
        "full_name": " ".join(p for p in (user.get("first_name"), user.get("last_name")) if p) or None,
        "phone": user.get("phone"),
        "address": user.get("address"),
        "last_login": user.get("last_login"),
    }


def _bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


def get_optional_user(authorization: Optional[str] = Header(default=None)) -> Optional[dict]:
    token = _bearer(authorization)
    if not token:
        return None
    uid = decode_token(token)
    if not uid:
        return None
    user = get_document_by_id("user", uid)
    if not user or not user.get("is_active", True):
        return None
    return user


def get_current_user(authorization: Optional[str] = Header(default=None)) -> dict:
    token = _bearer(authorization)
    if not token:
        raise Unauthorized("Not authorized, no token")
    uid = decode_token(token)
    if not uid:
        raise Unauthorized("Not authorized, token failed")
    user = get_document_by_id("user", uid)
    if not user or not user.get("is_active", True):
        raise Unauthorized("Not authorized, user not found")
    return user


def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "admin":
        raise Forbidden("Not authorized as admin")
    return user
