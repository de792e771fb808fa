import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from pymongo.errors import DuplicateKeyError

from database import create_document, find_one, get_document_by_id, update_and_return, update_document, utcnow
from errors import Conflict, InvalidCredentials, Unauthorized
from schemas import Role, User
from security import (
    REFRESH,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_current_user,
    get_optional_user,
    hash_password,
    public_user,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, description="Username or email")
    password: str = Field(..., min_length=6)


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3)
    email: EmailStr
    password: str = Field(..., min_length=6)
    first_name: Optional[str] = Field(None, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    role: Optional[Role] = None


class RefreshRequest(BaseModel):
    refresh_token: str


class ProfileUpdate(BaseModel):
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(None, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    phone: Optional[str] = Field(None, pattern=r"^\+?[\d\s\-()]+$")
    address: Optional[dict] = None


def _issue_tokens(user_id: str, **extra) -> dict:
    token = create_access_token(user_id)
    refresh_token = create_refresh_token(user_id)
    update_document("user", user_id, {"refresh_token": refresh_token, **extra})
    return {"token": token, "refresh_token": refresh_token}


@router.post("/login")
def login(payload: LoginRequest):
    user = find_one("user", {"$or": [{"username": payload.username}, {"email": payload.username}]})
    if not user or not user.get("is_active", True):
        logger.debug("Login rejected for %s: unknown or inactive", payload.username)
        raise InvalidCredentials()
    if not verify_password(payload.password, user["password_hash"]):
        logger.debug("Login rejected for %s: bad password", payload.username)
        raise InvalidCredentials()

    user["last_login"] = utcnow()
    tokens = _issue_tokens(user["_id"], last_login=user["last_login"])
    return {"success": True, "message": "Login successful", **tokens, "user": public_user(user)}


@router.post("/register", status_code=201)
def register(payload: RegisterRequest, current: Optional[dict] = Depends(get_optional_user)):
    if find_one("user", {"$or": [{"username": payload.username}, {"email": payload.email}]}):
        raise Conflict("User already exists")

    # only an admin may hand out the admin role
    role = "customer"
    if payload.role and current and current.get("role") == "admin":
        role = payload.role

    user = User(
        username=payload.username,
        email=payload.email,
        password_hash=hash_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
        role=role,
    )
    try:
        user_id = create_document("user", user)
    except DuplicateKeyError:
        raise Conflict("User already exists")

    tokens = _issue_tokens(user_id)
    logger.info("Registered %s user %s", role, payload.username)
    return {
        "success": True,
        "message": "User registered successfully",
        **tokens,
        "user": public_user(get_document_by_id("user", user_id)),
    }


@router.post("/refresh")
def refresh(payload: RefreshRequest):
    user_id = decode_token(payload.refresh_token, REFRESH)
    user = get_document_by_id("user", user_id) if user_id else None
    if not user or not user.get("is_active", True) or user.get("refresh_token") != payload.refresh_token:
        raise Unauthorized("Invalid refresh token")
    return {"success": True, **_issue_tokens(user["_id"])}


@router.post("/logout")
def logout(user: Optional[dict] = Depends(get_optional_user)):
    if user:
        update_and_return("user", user["_id"], {"$unset": {"refresh_token": ""}})
    return {"success": True, "message": "Logout successful"}


@router.get("/profile")
def get_profile(user: dict = Depends(get_current_user)):
    return {"success": True, "user": public_user(user)}


@router.put("/profile")
def update_profile(payload: ProfileUpdate, user: dict = Depends(get_current_user)):
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "email" in changes:
        other = find_one("user", {"email": changes["email"]})
        if other and other["_id"] != user["_id"]:
            raise Conflict("Email already in use")
    updated = update_and_return("user", user["_id"], {"$set": changes})
    return {"success": True, "message": "Profile updated successfully", "user": public_user(updated)}
