import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import config
from database import create_document, get_db, utcnow
from schemas import AdminBootstrap, LoginPayload, PasswordChange, ProfileUpdate, RegisterPayload, User
from security import (
    clear_session_cookie,
    get_current_user,
    get_optional_user,
    hash_password,
    public_user,
    set_session_cookie,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def get_user_by_email(db: Database, email: str):
    return db["user"].find_one({"email": email.strip().lower()})


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(body: RegisterPayload, response: Response, db: Database = Depends(get_db)):
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name, email, and password are required")
    email = body.email.strip().lower()
    if get_user_by_email(db, email):
        raise HTTPException(status_code=400, detail="User with this email already exists")

    user = User(
        name=name,
        email=email,
        password_hash=hash_password(body.password),
        role=body.role,
        status="pending" if body.role == "artisan" else "approved",
        profile=body.profile or {},
    )
    try:
        user_id = create_document(db, "user", user.model_dump())
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="User with this email already exists")
    stored = db["user"].find_one({"email": email})
    set_session_cookie(response, stored)
    logger.info("Registered %s %s (%s)", body.role, email, user_id)
    return {"message": "User registered successfully", "user": public_user(stored)}


@router.post("/login")
def login(body: LoginPayload, response: Response, db: Database = Depends(get_db)):
    user = get_user_by_email(db, body.email)
    if not user or not verify_password(body.password, user["password_hash"]):
        logger.warning("Failed login for %s", body.email)
        raise HTTPException(status_code=400, detail="Invalid email or password")
    if user.get("status") == "suspended":
        raise HTTPException(status_code=403, detail="Your account has been suspended. Please contact support.")
    set_session_cookie(response, user)
    logger.info("Login %s", user["email"])
    return {"message": "Login successful", "user": public_user(user)}


@router.post("/logout")
def logout(response: Response, current: dict = Depends(get_current_user)):
    clear_session_cookie(response)
    logger.info("Logout %s", current["email"])
    return {"message": "Logout successful"}


@router.get("/me")
def me(response: Response, current=Depends(get_optional_user)):
    if current is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    # Rolling session: every check extends the cookie lifetime.
    set_session_cookie(response, current)
    return {"user": public_user(current, include_stats=True)}


@router.put("/profile")
def update_profile(body: ProfileUpdate, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    updates = body.model_dump(exclude_unset=True, exclude_none=True)
    if "name" in updates:
        updates["name"] = updates["name"].strip()
        if not updates["name"]:
            raise HTTPException(status_code=400, detail="Name cannot be empty")
    if not updates:
        return {"message": "Nothing to update", "user": public_user(current)}
    updates["updated_at"] = utcnow()
    db["user"].update_one({"_id": current["_id"]}, {"$set": updates})
    user = db["user"].find_one({"_id": current["_id"]})
    return {"message": "Profile updated successfully", "user": public_user(user)}


@router.put("/change-password")
def change_password(body: PasswordChange, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    if not verify_password(body.current_password, current["password_hash"]):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    db["user"].update_one(
        {"_id": current["_id"]},
        {"$set": {"password_hash": hash_password(body.new_password), "updated_at": utcnow()}},
    )
    logger.info("Password changed for %s", current["email"])
    return {"message": "Password changed successfully"}


@router.post("/create-admin", status_code=status.HTTP_201_CREATED)
def create_initial_admin(request: Request, body: AdminBootstrap | None = None, db: Database = Depends(get_db)):
    if db["user"].find_one({"role": "admin"}):
        raise HTTPException(status_code=400, detail="Admin user already exists")
    if get_user_by_email(db, config.ADMIN_EMAIL):
        raise HTTPException(status_code=400, detail="Admin email is already registered")
    body = body or AdminBootstrap()
    admin = User(
        name="Admin",
        email=config.ADMIN_EMAIL,
        password_hash=hash_password(body.admin_password),
        role="admin",
        status="approved",
    )
    try:
        create_document(db, "user", admin.model_dump())
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Admin email is already registered")
    logger.info("Bootstrap admin %s created from %s", config.ADMIN_EMAIL, request.client.host if request.client else "-")
    return {"message": "Admin user created successfully", "email": config.ADMIN_EMAIL}
