import logging
import random
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import config
from database import get_db, paginate, populate, serialize_doc, to_object_id, utcnow
from policies import can_access_order, check_transition, timeline_entry
from schemas import ORDER_STATUSES, OrderCreate, OrderStatusUpdate, TrackingInfo
from security import get_current_user, require_admin, require_artisan, require_customer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])

ORDER_NUMBER_ATTEMPTS = 5


def generate_order_number(now: Optional[datetime] = None, rng: Optional[random.Random] = None) -> str:
    now = now or utcnow()
    return f"KAR{now:%y%m}{(rng or random).randint(0, 9999):04d}"


def compute_pricing(lines: List[dict], tax_rate: float = 0.0, discount: float = 0.0) -> dict:
    """Pricing breakdown where total = subtotal + shipping + tax - discount."""
    subtotal = round(sum(line["price"] * line["quantity"] for line in lines), 2)
    shipping = round(sum(line.get("shipping_cost", 0) for line in lines), 2)
    tax = round(subtotal * tax_rate, 2)
    return {
        "subtotal": subtotal,
        "shipping": shipping,
        "tax": tax,
        "discount": discount,
        "total": round(subtotal + shipping + tax - discount, 2),
    }


def release_stock(db: Database, reserved: List[tuple]) -> None:
    for product_id, quantity in reserved:
        db["product"].update_one({"_id": product_id}, {"$inc": {"stock": quantity, "stats.sales": -quantity}})


def tracking_fields(tracking: Optional[TrackingInfo]) -> dict:
    if tracking is None:
        return {}
    return {f"tracking.{k}": v for k, v in tracking.model_dump(exclude_none=True).items()}


def populate_order(db: Database, orders: List[dict]) -> List[dict]:
    populate(db, orders, "customer", "user", ["name", "email", "profile"])
    populate(db, orders, "items.product", "product", ["title", "description", "price", "images"])
    populate(db, orders, "items.artisan", "user", ["name", "email", "profile.business_name", "profile.location"])
    return orders


def load_order(db: Database, order_id: str) -> dict:
    oid = to_object_id(order_id)
    order = db["order"].find_one({"_id": oid}) if oid else None
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.get("")
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    customer: Optional[str] = None,
    artisan: Optional[str] = None,
    _: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    query = {}
    if status:
        query["status"] = status
    if customer:
        query["customer"] = to_object_id(customer)
    if artisan:
        query["items.artisan"] = to_object_id(artisan)
    orders = list(
        db["order"].find(query)
        .sort("created_at", DESCENDING)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    populate_order(db, orders)
    total = db["order"].count_documents(query)
    return {"success": True, "orders": serialize_doc(orders), "pagination": paginate(page, limit, total)}


@router.post("", status_code=201)
def create_order(body: OrderCreate, current: dict = Depends(require_customer), db: Database = Depends(get_db)):
    products = []
    for item in body.items:
        oid = to_object_id(item.product_id)
        product = db["product"].find_one({"_id": oid, "status": "published"}) if oid else None
        if not product:
            raise HTTPException(status_code=400, detail=f"Product not available: {item.product_id}")
        products.append(product)

    # No multi-document transaction: each decrement is guarded on its own
    # document and earlier ones are handed back if a later one fails.
    reserved = []
    try:
        for item, product in zip(body.items, products):
            result = db["product"].update_one(
                {"_id": product["_id"], "stock": {"$gte": item.quantity}},
                {"$inc": {"stock": -item.quantity, "stats.sales": item.quantity}},
            )
            if result.modified_count == 0:
                raise HTTPException(status_code=400, detail=f"Insufficient stock for {product['title']}")
            reserved.append((product["_id"], item.quantity))

        lines = []
        for item, product in zip(body.items, products):
            shipping = product.get("shipping") or {}
            lines.append({
                "product": product["_id"],
                "artisan": product["artisan"],
                "title": product["title"],
                "quantity": item.quantity,
                "price": product["price"],
                "shipping_cost": 0 if shipping.get("free_shipping") else shipping.get("shipping_cost") or 0,
                "customizations": item.customizations.model_dump(exclude_none=True) if item.customizations else {},
                "status": "pending",
            })

        now = utcnow()
        order = {
            "customer": current["_id"],
            "items": lines,
            "shipping_address": body.shipping_address.model_dump(),
            "billing_address": body.billing_address.model_dump() if body.billing_address else {"same_as_shipping": True},
            "pricing": compute_pricing(lines, config.TAX_RATE),
            "payment": {"method": body.payment_method, "status": "pending"},
            "status": "pending",
            "tracking": {},
            "notes": {"customer": body.customer_note},
            "timeline": [timeline_entry("pending", current["_id"], "Order placed")],
            "created_at": now,
            "updated_at": now,
        }
        for _ in range(ORDER_NUMBER_ATTEMPTS):
            order["order_number"] = generate_order_number(now)
            try:
                order["_id"] = db["order"].insert_one(order).inserted_id
                break
            except DuplicateKeyError:
                order.pop("_id", None)
        else:
            raise RuntimeError("Could not allocate a unique order number")
    except Exception:
        release_stock(db, reserved)
        raise

    db["user"].update_one({"_id": current["_id"]}, {"$inc": {"stats.total_orders": 1}})
    for line in lines:
        db["user"].update_one({"_id": line["artisan"]}, {"$inc": {"stats.total_sales": line["quantity"]}})
    logger.info("Order %s placed by %s (total %s)", order["order_number"], current["_id"], order["pricing"]["total"])
    return {"message": "Order placed successfully", "order": serialize_doc(order)}


@router.get("/customer/my-orders")
def get_customer_orders(current: dict = Depends(require_customer), db: Database = Depends(get_db)):
    orders = list(db["order"].find({"customer": current["_id"]}).sort("created_at", DESCENDING))
    populate(db, orders, "items.product", "product", ["title", "price", "images"])
    populate(db, orders, "items.artisan", "user", ["name", "profile.business_name"])
    return {"orders": serialize_doc(orders)}


@router.get("/artisan/my-orders")
def get_artisan_orders(current: dict = Depends(require_artisan), db: Database = Depends(get_db)):
    orders = list(db["order"].find({"items.artisan": current["_id"]}).sort("created_at", DESCENDING))
    populate(db, orders, "customer", "user", ["name", "email", "profile"])
    populate(db, orders, "items.product", "product", ["title", "price", "images"])
    return {"orders": serialize_doc(orders)}


@router.get("/{order_id}")
def get_order(order_id: str, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    order = load_order(db, order_id)
    if not can_access_order(current, order):
        logger.warning("User %s denied access to order %s", current["_id"], order["_id"])
        raise HTTPException(status_code=403, detail="Access denied")
    populate_order(db, [order])
    return {"order": serialize_doc(order)}


@router.put("/{order_id}/status/artisan")
def update_order_status_artisan(
    order_id: str,
    body: OrderStatusUpdate,
    current: dict = Depends(require_artisan),
    db: Database = Depends(get_db),
):
    oid = to_object_id(order_id)
    order = db["order"].find_one({"_id": oid, "items.artisan": current["_id"]}) if oid else None
    if not order:
        raise HTTPException(status_code=404, detail="Order not found or access denied")

    check_transition(order["status"], body.status)

    now = utcnow()
    updates = {"status": body.status, "updated_at": now}
    if body.status == "shipped":
        tracking = body.tracking
        if not tracking or not (tracking.carrier and tracking.tracking_number and tracking.estimated_delivery):
            raise HTTPException(
                status_code=400,
                detail="Shipping requires carrier, tracking_number and estimated_delivery",
            )
        updates["tracking.shipped_date"] = now
    elif body.status == "delivered":
        updates["tracking.delivered_date"] = now
    updates.update(tracking_fields(body.tracking))

    entry = timeline_entry(body.status, current["_id"], body.note or f"Status updated to {body.status} by artisan")
    # Compare-and-set on the status read above.
    updated = db["order"].find_one_and_update(
        {"_id": oid, "status": order["status"]},
        {"$set": updates, "$push": {"timeline": entry}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise HTTPException(status_code=409, detail="Order status changed concurrently, reload and retry")
    logger.info("Artisan %s moved order %s from %s to %s", current["_id"], oid, order["status"], body.status)
    populate(db, [updated], "customer", "user", ["name", "email"])
    return {"message": "Order status updated successfully", "order": serialize_doc(updated)}


@router.put("/{order_id}/status")
def update_order_status_admin(
    order_id: str,
    body: OrderStatusUpdate,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    if body.status not in ORDER_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status: {body.status}")
    order = load_order(db, order_id)

    now = utcnow()
    updates = {"status": body.status, "updated_at": now}
    if body.status == "shipped":
        updates["tracking.shipped_date"] = now
    elif body.status == "delivered":
        updates["tracking.delivered_date"] = now
    updates.update(tracking_fields(body.tracking))

    entry = timeline_entry(body.status, admin["_id"], body.note or f"Status updated to {body.status} by admin")
    updated = db["order"].find_one_and_update(
        {"_id": order["_id"]},
        {"$set": updates, "$push": {"timeline": entry}},
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Admin %s overrode order %s status %s -> %s", admin["_id"], order["_id"], order["status"], body.status)
    populate(db, [updated], "customer", "user", ["name", "email"])
    return {"message": "Order status updated successfully", "order": serialize_doc(updated)}
