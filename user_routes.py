import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo import DESCENDING
from pymongo.database import Database

from database import get_db, paginate, populate, serialize_doc, to_object_id, utcnow
from schemas import FavoritePayload, UserStatusUpdate
from security import get_current_user, public_user, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])

USER_PROJECTION = {"password_hash": 0}


@router.get("")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    _: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    query = {}
    if role:
        query["role"] = role
    if status:
        query["status"] = status
    if search:
        pattern = re.escape(search)
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"email": {"$regex": pattern, "$options": "i"}},
        ]
    users = list(
        db["user"].find(query, USER_PROJECTION)
        .sort("created_at", DESCENDING)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    total = db["user"].count_documents(query)
    return {
        "success": True,
        "users": serialize_doc(users),
        "pagination": paginate(page, limit, total),
    }


@router.get("/favorites")
def get_favorites(current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    ids = current.get("favorites") or []
    products = list(db["product"].find({"_id": {"$in": ids}}))
    populate(db, products, "artisan", "user", ["name", "profile.business_name"])
    # Keep the order in which products were favorited.
    by_id = {p["_id"]: p for p in products}
    ordered = [by_id[i] for i in ids if i in by_id]
    return {"favorites": serialize_doc(ordered)}


@router.post("/favorites")
def add_favorite(body: FavoritePayload, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    product_id = to_object_id(body.product_id)
    if product_id is None:
        raise HTTPException(status_code=400, detail="Invalid product id")
    if product_id in (current.get("favorites") or []):
        raise HTTPException(status_code=400, detail="Product already in favorites")
    if not db["product"].find_one({"_id": product_id}, {"_id": 1}):
        raise HTTPException(status_code=404, detail="Product not found")
    db["user"].update_one({"_id": current["_id"]}, {"$addToSet": {"favorites": product_id}})
    return {"message": "Product added to favorites"}


@router.delete("/favorites/{product_id}")
def remove_favorite(product_id: str, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    oid = to_object_id(product_id)
    if oid is not None:
        db["user"].update_one({"_id": current["_id"]}, {"$pull": {"favorites": oid}})
    return {"message": "Product removed from favorites"}


@router.get("/{user_id}")
def get_user(user_id: str, _: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    oid = to_object_id(user_id)
    user = db["user"].find_one({"_id": oid}) if oid else None
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "user": public_user(user)}


@router.put("/{user_id}/status")
def update_user_status(
    user_id: str,
    body: UserStatusUpdate,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    oid = to_object_id(user_id)
    user = db["user"].find_one({"_id": oid}) if oid else None
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    updates = {"status": body.status, "updated_at": utcnow()}
    if body.status == "approved" and user.get("role") == "artisan-pending":
        updates["role"] = "artisan"
    db["user"].update_one({"_id": oid}, {"$set": updates})
    logger.info("Admin %s set user %s status to %s", admin["_id"], oid, body.status)
    user = db["user"].find_one({"_id": oid})
    return {"success": True, "message": "User status updated successfully", "user": public_user(user)}


@router.delete("/{user_id}")
def delete_user(user_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    oid = to_object_id(user_id)
    result = db["user"].delete_one({"_id": oid}) if oid else None
    if not result or result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    logger.info("Admin %s deleted user %s", admin["_id"], oid)
    return {"success": True, "message": "User deleted successfully"}
