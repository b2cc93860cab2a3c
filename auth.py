import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import get_db, oid
from errors import Forbidden, InvalidInput, NotFound, Unauthenticated
from schemas import ROLES, User
from security import create_access_token, get_current_user, get_settings, require_admin
from stores import UserStore, hash_password, public_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


# Auth models
class RegisterInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    # Accepted for compatibility; new accounts are always customers
    role: Optional[str] = None


class LoginInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str


class GoogleLoginInput(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    email: EmailStr
    name: str = Field(..., min_length=1)
    google_id: str = Field(..., alias="googleId", min_length=1)
    picture: Optional[str] = None


class ProfileInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    address: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_null(cls, v):
        # Only runs when the field was sent; the stored user always keeps a name
        if v is None:
            raise ValueError("name cannot be null")
        return v


class RoleInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: str


def _users(db: Database = Depends(get_db)) -> UserStore:
    return UserStore(db)


def _token_for(request: Request, user: dict) -> str:
    return create_access_token(str(user["_id"]), get_settings(request))


# Routes
@router.post("/register", status_code=201)
def register(payload: RegisterInput, request: Request, users: UserStore = Depends(_users)):
    if users.find_by_email(payload.email):
        raise InvalidInput("User already exists with this email")
    try:
        user = users.create(
            User(
                name=payload.name,
                email=payload.email.lower(),
                password=hash_password(payload.password),
                role="customer",
            )
        )
    except DuplicateKeyError:
        # Lost a race with a concurrent registration for the same email
        raise InvalidInput("User already exists with this email")
    return {"message": "User registered successfully", "token": _token_for(request, user), "user": public_user(user)}


@router.post("/login")
def login(payload: LoginInput, request: Request, users: UserStore = Depends(_users)):
    user = users.find_by_email(payload.email)
    if not user or not users.verify_password(user, payload.password):
        raise Unauthenticated("Invalid credentials")
    return {"message": "Login successful", "token": _token_for(request, user), "user": public_user(user)}


@router.post("/google-login")
def google_login(payload: GoogleLoginInput, request: Request, users: UserStore = Depends(_users)):
    user = users.find_by_email(payload.email)
    if not user:
        try:
            user = users.create(
                User(name=payload.name, email=payload.email.lower(), googleId=payload.google_id, role="customer")
            )
            logger.info("New Google user created: %s", user["email"])
            return {"message": "Google login successful", "token": _token_for(request, user), "user": public_user(user)}
        except DuplicateKeyError:
            # Created concurrently; continue with the stored account
            user = users.find_by_email(payload.email)
    if not user.get("googleId"):
        user = users.link_google(user["_id"], payload.google_id)
        logger.info("Google account linked to existing user: %s", user["email"])
    else:
        logger.info("Existing Google user logged in: %s", user["email"])
    return {"message": "Google login successful", "token": _token_for(request, user), "user": public_user(user)}


@router.get("/me")
def me(current_user: dict = Depends(get_current_user)):
    return {"user": public_user(current_user)}


@router.put("/profile")
def update_profile(
    payload: ProfileInput,
    current_user: dict = Depends(get_current_user),
    users: UserStore = Depends(_users),
):
    changes = payload.model_dump(exclude_unset=True)
    user = users.update_profile(current_user["_id"], changes) if changes else current_user
    return {"message": "Profile updated successfully", "user": public_user(user)}


@router.get("/test-admin")
def test_admin(admin: dict = Depends(require_admin)):
    return {
        "message": "Admin access working correctly",
        "user": public_user(admin),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/users")
def list_users(admin: dict = Depends(require_admin), users: UserStore = Depends(_users)):
    logger.info("Fetching users - Admin: %s", admin.get("email"))
    items = [public_user(u) for u in users.list_all()]
    return {"message": "Users fetched successfully", "users": items, "total": len(items)}


@router.patch("/users/{user_id}/role")
def update_role(
    user_id: str,
    payload: RoleInput,
    admin: dict = Depends(require_admin),
    users: UserStore = Depends(_users),
):
    if payload.role not in ROLES:
        raise InvalidInput("Invalid role. Must be customer or admin.")
    if user_id == str(admin["_id"]):
        raise Forbidden("You cannot change your own role")
    target = users.find_by_id(oid(user_id))
    if not target:
        raise NotFound("User not found")
    user = users.set_role(target["_id"], payload.role)
    logger.info("User %s role changed from %s to %s by %s", user["email"], target.get("role"), payload.role, admin["email"])
    return {"message": f"User role updated to {payload.role} successfully", "user": public_user(user)}
