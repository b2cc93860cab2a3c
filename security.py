import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from bson import ObjectId
from fastapi import Depends, Header, Request
from jose import JWTError, jwt

from config import Settings
from errors import Forbidden, Unauthenticated
from stores import UserStore

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def create_access_token(user_id: str, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=settings.jwt_expire_days))
    to_encode = {"sub": str(user_id), "exp": expire}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise Unauthenticated()


def authenticate(token: str, settings: Settings, users: UserStore) -> dict:
    """Resolve a bearer token to the stored user, without its password hash."""
    payload = decode_token(token, settings)
    user_id = payload.get("sub")
    if not user_id or not ObjectId.is_valid(user_id):
        raise Unauthenticated()
    user = users.find_by_id(ObjectId(user_id))
    if not user:
        raise Unauthenticated()
    user.pop("password", None)
    return user


# Dependency to get current user

def get_current_user(request: Request, authorization: Optional[str] = Header(default=None)) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthenticated("Access denied. No token provided.")
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise Unauthenticated("Access denied. No token provided.")
    user = authenticate(token, get_settings(request), UserStore(request.app.state.db))
    request.state.user = user
    return user


def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    if current_user.get("role") != "admin":
        logger.info("Access denied for user %s. Role: %s", current_user.get("email"), current_user.get("role"))
        raise Forbidden("Access denied. Admin only.")
    return current_user
