import json
import logging
import math
import re
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database

import config
from catalog_text import generate_description, slugify, suggest_tags
from database import get_db, paginate, populate, serialize_doc, to_object_id, utcnow
from schemas import PRODUCT_CATEGORIES, DescriptionRequest, ProductStatusUpdate
from security import get_current_user, get_optional_user, require_admin, require_approved_artisan, require_artisan
from uploads import remove_product_image, save_product_images

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])

ARTISAN_STATUSES = ("draft", "published")
SORT_FIELDS = {"created_at", "price", "title", "stats.views", "stats.sales", "stats.rating"}
ARTISAN_SUMMARY = ["name", "profile.business_name", "profile.location"]


def parse_price(value) -> float:
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid price value")
    if math.isnan(price) or math.isinf(price) or price < 0:
        raise HTTPException(status_code=400, detail="Invalid price value")
    return price


def parse_stock(value) -> int:
    try:
        stock = int(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid stock value")
    if stock < 0:
        raise HTTPException(status_code=400, detail="Invalid stock value")
    return stock


def parse_tags(value: Optional[str]) -> List[str]:
    if not value:
        return []
    try:
        parsed = json.loads(value)
    except ValueError:
        parsed = value.split(",")
    if isinstance(parsed, str):
        parsed = parsed.split(",")
    if not isinstance(parsed, list):
        raise HTTPException(status_code=400, detail="Tags must be a list")
    return [str(tag).strip() for tag in parsed if str(tag).strip()]


def parse_customization_options(value: Optional[str]) -> dict:
    if not value:
        return {"customizable": False}
    try:
        parsed = json.loads(value)
    except ValueError:
        return {"customizable": False, "customization_note": ""}
    return parsed if isinstance(parsed, dict) else {"customizable": False}


def check_category(category: str) -> str:
    if category not in PRODUCT_CATEGORIES:
        raise HTTPException(status_code=400, detail=f"Invalid category: {category}")
    return category


def find_owned_product(db: Database, product_id: str, artisan: dict) -> dict:
    oid = to_object_id(product_id)
    product = db["product"].find_one({"_id": oid, "artisan": artisan["_id"]}) if oid else None
    if not product:
        raise HTTPException(status_code=404, detail="Product not found or access denied")
    return product


def check_artisan_can_set_status(product: dict) -> None:
    if product.get("status") not in ARTISAN_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"Product is {product.get('status')}; only an admin can change its status",
        )


@router.get("")
def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    category: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    status: Optional[str] = None,
    current: Optional[dict] = Depends(get_optional_user),
    db: Database = Depends(get_db),
):
    is_admin = current is not None and current.get("role") == "admin"
    query = {}
    if not is_admin:
        query["status"] = "published"
    elif status:
        query["status"] = status
    if category:
        query["category"] = category
    if min_price is not None or max_price is not None:
        query["price"] = {}
        if min_price is not None:
            query["price"]["$gte"] = min_price
        if max_price is not None:
            query["price"]["$lte"] = max_price
    if search:
        pattern = re.escape(search)
        query["$or"] = [
            {"title": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
            {"tags": {"$regex": pattern, "$options": "i"}},
        ]

    sort_field = sort_by if sort_by in SORT_FIELDS else "created_at"
    direction = DESCENDING if sort_order == "desc" else ASCENDING
    products = list(
        db["product"].find(query)
        .sort(sort_field, direction)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    populate(db, products, "artisan", "user", ARTISAN_SUMMARY)
    total = db["product"].count_documents(query)
    return {"products": serialize_doc(products), "pagination": paginate(page, limit, total)}


@router.get("/categories")
def get_categories(db: Database = Depends(get_db)):
    return sorted(db["product"].distinct("category", {"status": "published"}))


@router.post("/generate-description")
def describe_product(body: DescriptionRequest, _: dict = Depends(get_current_user)):
    return {
        "description": generate_description(body.category, body.materials, body.title),
        "suggested_tags": suggest_tags(body.category, body.materials),
    }


@router.get("/artisan/my-products")
def get_artisan_products(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    category: Optional[str] = None,
    current: dict = Depends(require_artisan),
    db: Database = Depends(get_db),
):
    query = {"artisan": current["_id"]}
    if status:
        query["status"] = status
    if category:
        query["category"] = category
    products = list(
        db["product"].find(query)
        .sort("created_at", DESCENDING)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    total = db["product"].count_documents(query)
    return {"products": serialize_doc(products), "pagination": paginate(page, limit, total)}


@router.get("/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    oid = to_object_id(product_id)
    product = None
    if oid:
        product = db["product"].find_one_and_update(
            {"_id": oid},
            {"$inc": {"stats.views": 1}},
            return_document=ReturnDocument.AFTER,
        )
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    populate(db, [product], "artisan", "user", ARTISAN_SUMMARY + ["profile.bio"])
    return serialize_doc(product)


@router.post("", status_code=201)
async def create_product(
    title: str = Form(...),
    category: str = Form(...),
    materials: str = Form(...),
    price: str = Form(...),
    stock: str = Form(...),
    description: Optional[str] = Form(None),
    size: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    customization_options: Optional[str] = Form(None),
    shipping_cost: Optional[str] = Form(None),
    free_shipping: bool = Form(False),
    status: str = Form("published"),
    images: Optional[List[UploadFile]] = File(None),
    current: dict = Depends(require_approved_artisan),
    db: Database = Depends(get_db),
):
    title = title.strip()
    if not title or not materials.strip():
        raise HTTPException(status_code=400, detail="Title, category, materials, price, and stock are required")
    check_category(category)
    if status not in ARTISAN_STATUSES:
        raise HTTPException(status_code=400, detail="Artisans can only save products as draft or published")
    if status == "published" and not (description or "").strip():
        raise HTTPException(status_code=400, detail="Description is required for published products")
    parsed_price = parse_price(price)
    parsed_stock = parse_stock(stock)
    parsed_shipping = parse_price(shipping_cost) if shipping_cost else 0.0
    options = parse_customization_options(customization_options)

    image_urls = await save_product_images(images)

    now = utcnow()
    product = {
        "title": title,
        "description": (description or "").strip() or None,
        "category": category,
        "materials": materials.strip(),
        "size": size,
        "price": parsed_price,
        "currency": "USD",
        "stock": parsed_stock,
        "images": image_urls,
        "tags": parse_tags(tags),
        "customizable": bool(options.get("customizable")),
        "customization_options": options,
        "artisan": current["_id"],
        "status": status,
        "featured": False,
        "stats": {"views": 0, "likes": 0, "sales": 0, "rating": 0, "review_count": 0},
        "seo": {"slug": slugify(title)},
        "shipping": {
            "free_shipping": free_shipping,
            "shipping_cost": parsed_shipping,
            "processing_time": "1-3 business days",
        },
        "created_at": now,
        "updated_at": now,
    }
    product["_id"] = db["product"].insert_one(product).inserted_id
    logger.info("Artisan %s created product %s (%s)", current["_id"], product["_id"], status)
    return {"message": "Product created successfully", "product": serialize_doc(product)}


@router.put("/{product_id}")
async def update_product(
    product_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    materials: Optional[str] = Form(None),
    size: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    stock: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    customization_options: Optional[str] = Form(None),
    shipping_cost: Optional[str] = Form(None),
    free_shipping: Optional[bool] = Form(None),
    status: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    current: dict = Depends(require_approved_artisan),
    db: Database = Depends(get_db),
):
    product = find_owned_product(db, product_id, current)
    updates = {}
    if title is not None:
        if not title.strip():
            raise HTTPException(status_code=400, detail="Title cannot be empty")
        updates["title"] = title.strip()
        updates["seo.slug"] = slugify(title)
    if description is not None:
        updates["description"] = description.strip() or None
    if category is not None:
        updates["category"] = check_category(category)
    if materials is not None:
        updates["materials"] = materials.strip()
    if size is not None:
        updates["size"] = size
    if price is not None:
        updates["price"] = parse_price(price)
    if stock is not None:
        updates["stock"] = parse_stock(stock)
    if tags is not None:
        updates["tags"] = parse_tags(tags)
    if customization_options is not None:
        options = parse_customization_options(customization_options)
        updates["customization_options"] = options
        updates["customizable"] = bool(options.get("customizable"))
    if shipping_cost is not None:
        updates["shipping.shipping_cost"] = parse_price(shipping_cost)
    if free_shipping is not None:
        updates["shipping.free_shipping"] = free_shipping
    if status is not None:
        if status not in ARTISAN_STATUSES:
            raise HTTPException(status_code=400, detail="Artisans can only save products as draft or published")
        check_artisan_can_set_status(product)
        updates["status"] = status

    final_status = updates.get("status", product.get("status"))
    final_description = updates["description"] if "description" in updates else product.get("description")
    if final_status == "published" and not final_description:
        raise HTTPException(status_code=400, detail="Description is required for published products")

    incoming = [f for f in (images or []) if f is not None and f.filename]
    if len(product.get("images") or []) + len(incoming) > config.MAX_PRODUCT_IMAGES:
        raise HTTPException(status_code=400, detail=f"A product can have at most {config.MAX_PRODUCT_IMAGES} images")
    new_images = await save_product_images(incoming)

    updates["updated_at"] = utcnow()
    change = {"$set": updates}
    if new_images:
        change["$push"] = {"images": {"$each": new_images}}
    updated = db["product"].find_one_and_update({"_id": product["_id"]}, change, return_document=ReturnDocument.AFTER)
    return {"message": "Product updated successfully", "product": serialize_doc(updated)}


@router.delete("/{product_id}")
def delete_product(product_id: str, current: dict = Depends(require_approved_artisan), db: Database = Depends(get_db)):
    product = find_owned_product(db, product_id, current)
    db["product"].delete_one({"_id": product["_id"]})
    for url in product.get("images") or []:
        remove_product_image(url)
    logger.info("Artisan %s deleted product %s", current["_id"], product["_id"])
    return {"message": "Product deleted successfully"}


@router.put("/{product_id}/toggle-status")
def toggle_product_status(product_id: str, current: dict = Depends(require_approved_artisan), db: Database = Depends(get_db)):
    product = find_owned_product(db, product_id, current)
    check_artisan_can_set_status(product)
    new_status = "draft" if product.get("status") == "published" else "published"
    if new_status == "published" and not product.get("description"):
        raise HTTPException(status_code=400, detail="Description is required for published products")
    updated = db["product"].find_one_and_update(
        {"_id": product["_id"], "status": product["status"]},
        {"$set": {"status": new_status, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise HTTPException(status_code=409, detail="Product status changed concurrently, reload and retry")
    label = "published" if new_status == "published" else "saved as draft"
    return {"message": f"Product {label} successfully", "product": serialize_doc(updated)}


@router.put("/{product_id}/status")
def moderate_product(
    product_id: str,
    body: ProductStatusUpdate,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    oid = to_object_id(product_id)
    updates = {"status": body.status, "updated_at": utcnow()}
    if body.status == "rejected" and body.rejection_reason:
        updates["rejection_reason"] = body.rejection_reason
    product = None
    if oid:
        product = db["product"].find_one_and_update(
            {"_id": oid}, {"$set": updates}, return_document=ReturnDocument.AFTER
        )
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    populate(db, [product], "artisan", "user", ["name", "email", "profile.business_name"])
    logger.info("Admin %s set product %s status to %s", admin["_id"], oid, body.status)
    return {"message": f"Product status updated to {body.status}", "product": serialize_doc(product)}


@router.delete("/{product_id}/admin")
def admin_delete_product(product_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    oid = to_object_id(product_id)
    product = db["product"].find_one_and_delete({"_id": oid}) if oid else None
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    for url in product.get("images") or []:
        remove_product_image(url)
    logger.info("Admin %s deleted product %s", admin["_id"], oid)
    return {"message": "Product deleted successfully by admin"}
