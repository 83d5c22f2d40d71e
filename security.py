import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, Response, status
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

import config
from database import get_db, to_object_id

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def hash_password(password):
    return pwd_context.hash(password)


def create_session_token(user: dict, expires_delta: timedelta | None = None):
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(seconds=config.SESSION_MAX_AGE_SECONDS))
    to_encode = {
        "sub": str(user["_id"]),
        "role": user.get("role", "customer"),
        "status": user.get("status", "approved"),
        "name": user.get("name", ""),
        "exp": expire,
    }
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def set_session_cookie(response: Response, user: dict):
    response.set_cookie(
        key=config.SESSION_COOKIE_NAME,
        value=create_session_token(user),
        max_age=config.SESSION_MAX_AGE_SECONDS,
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="lax",
    )


def clear_session_cookie(response: Response):
    response.delete_cookie(
        key=config.SESSION_COOKIE_NAME,
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="lax",
    )


def _user_from_cookie(request: Request, db: Database) -> Optional[dict]:
    token = request.cookies.get(config.SESSION_COOKIE_NAME)
    if not token:
        return None
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        return None
    user_id = to_object_id(payload.get("sub"))
    if user_id is None:
        return None
    # Role and status are read from the stored user, not the token.
    return db["user"].find_one({"_id": user_id})


async def get_current_user(request: Request, db: Database = Depends(get_db)) -> dict:
    user = _user_from_cookie(request, db)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    if user.get("status") == "suspended":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Your account has been suspended")
    return user


async def get_optional_user(request: Request, db: Database = Depends(get_db)) -> Optional[dict]:
    user = _user_from_cookie(request, db)
    if user is None or user.get("status") == "suspended":
        return None
    return user


def require_roles(*roles: str):
    async def checker(current: dict = Depends(get_current_user)) -> dict:
        if current.get("role") not in roles:
            logger.warning("Denied %s (role %s); needs one of %s", current["_id"], current.get("role"), roles)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current

    return checker


require_admin = require_roles("admin")
require_artisan = require_roles("artisan")
require_customer = require_roles("customer")


async def require_approved_artisan(current: dict = Depends(get_current_user)) -> dict:
    if current.get("role") != "artisan":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Artisan access required")
    if current.get("status") != "approved":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Your artisan account is pending approval")
    return current


def public_user(user: dict, include_stats: bool = False) -> dict:
    data = {
        "_id": str(user["_id"]),
        "name": user.get("name", ""),
        "email": user.get("email"),
        "role": user.get("role", "customer"),
        "status": user.get("status", "approved"),
        "profile": user.get("profile") or {},
    }
    if include_stats:
        data["stats"] = user.get("stats") or {}
    return data
