import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from database import get_db, paginate, populate, serialize_doc, to_object_id, utcnow
from policies import can_access_customization, ref_id, timeline_entry
from schemas import CustomizationCreate, CustomizationStatusUpdate, QuotePayload
from security import get_current_user, require_admin, require_artisan, require_customer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/customizations", tags=["customizations"])

QUOTABLE_STATUSES = ("pending", "under-review", "quoted")


def populate_request(db: Database, requests: list) -> list:
    populate(db, requests, "customer", "user", ["name", "email", "profile"])
    populate(db, requests, "artisan", "user", ["name", "email", "profile.business_name", "profile.location"])
    populate(db, requests, "product", "product", ["title", "description", "price", "images"])
    return requests


def load_request(db: Database, request_id: str) -> dict:
    oid = to_object_id(request_id)
    request = db["customization"].find_one({"_id": oid}) if oid else None
    if not request:
        raise HTTPException(status_code=404, detail="Customization request not found")
    return request


@router.get("")
def list_requests(
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
        query["artisan"] = to_object_id(artisan)
    requests = list(
        db["customization"].find(query)
        .sort("created_at", DESCENDING)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    populate_request(db, requests)
    total = db["customization"].count_documents(query)
    return {"success": True, "requests": serialize_doc(requests), "pagination": paginate(page, limit, total)}


@router.post("", status_code=201)
def create_request(body: CustomizationCreate, current: dict = Depends(require_customer), db: Database = Depends(get_db)):
    artisan_id = to_object_id(body.artisan_id)
    product_id = to_object_id(body.product_id)
    if artisan_id is None or product_id is None:
        raise HTTPException(status_code=400, detail="Artisan, product, and request details are required")
    artisan = db["user"].find_one({"_id": artisan_id, "role": "artisan"}, {"_id": 1})
    if not artisan:
        raise HTTPException(status_code=400, detail="Artisan not found")
    product = db["product"].find_one({"_id": product_id, "artisan": artisan_id}, {"_id": 1})
    if not product:
        raise HTTPException(status_code=400, detail="Product does not belong to this artisan")

    now = utcnow()
    request = {
        "customer": current["_id"],
        "artisan": artisan_id,
        "product": product_id,
        "request_details": body.request_details.model_dump(),
        "status": "pending",
        "priority": body.priority,
        "tags": body.tags,
        "artisan_response": None,
        "quote": None,
        "timeline": [timeline_entry("pending", current["_id"], "Customization request submitted")],
        "created_at": now,
        "updated_at": now,
    }
    request["_id"] = db["customization"].insert_one(request).inserted_id
    logger.info("Customer %s opened customization %s with artisan %s", current["_id"], request["_id"], artisan_id)
    populate_request(db, [request])
    return {"message": "Customization request created successfully", "request": serialize_doc(request)}


@router.get("/customer/my-requests")
def get_customer_requests(current: dict = Depends(require_customer), db: Database = Depends(get_db)):
    requests = list(db["customization"].find({"customer": current["_id"]}).sort("created_at", DESCENDING))
    populate(db, requests, "artisan", "user", ["name", "profile.business_name"])
    populate(db, requests, "product", "product", ["title", "price", "images"])
    return {"requests": serialize_doc(requests)}


@router.get("/artisan/my-requests")
def get_artisan_requests(current: dict = Depends(require_artisan), db: Database = Depends(get_db)):
    requests = list(db["customization"].find({"artisan": current["_id"]}).sort("created_at", DESCENDING))
    populate(db, requests, "customer", "user", ["name", "email", "profile"])
    populate(db, requests, "product", "product", ["title", "price", "images"])
    return {"requests": serialize_doc(requests)}


@router.get("/{request_id}")
def get_request(request_id: str, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    request = load_request(db, request_id)
    if not can_access_customization(current, request):
        raise HTTPException(status_code=403, detail="Access denied")
    populate_request(db, [request])
    return {"request": serialize_doc(request)}


@router.put("/{request_id}/status")
def update_request_status(
    request_id: str,
    body: CustomizationStatusUpdate,
    current: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    request = load_request(db, request_id)
    if not can_access_customization(current, request):
        logger.warning("User %s denied status change on customization %s", current["_id"], request["_id"])
        raise HTTPException(status_code=403, detail="Access denied")

    entry = timeline_entry(
        body.status, current["_id"], body.note or f"Customization request status updated to {body.status}"
    )
    updated = db["customization"].find_one_and_update(
        {"_id": request["_id"]},
        {"$set": {"status": body.status, "updated_at": utcnow()}, "$push": {"timeline": entry}},
        return_document=ReturnDocument.AFTER,
    )
    populate_request(db, [updated])
    return {"message": "Customization request status updated successfully", "request": serialize_doc(updated)}


@router.put("/{request_id}/quote")
def quote_request(
    request_id: str,
    body: QuotePayload,
    current: dict = Depends(require_artisan),
    db: Database = Depends(get_db),
):
    request = load_request(db, request_id)
    if ref_id(request.get("artisan")) != ref_id(current["_id"]):
        raise HTTPException(status_code=403, detail="Access denied")
    if request.get("status") not in QUOTABLE_STATUSES:
        raise HTTPException(status_code=400, detail=f"Cannot quote a request that is {request.get('status')}")

    components = body.base_price + body.customization_fee + body.material_cost + body.labor_cost
    total = body.total_price if body.total_price is not None else round(components, 2)
    now = utcnow()
    quote = {
        "base_price": body.base_price,
        "customization_fee": body.customization_fee,
        "material_cost": body.material_cost,
        "labor_cost": body.labor_cost,
        "total_price": total,
        "currency": body.currency,
        "valid_until": body.valid_until,
        "terms": body.terms,
    }
    response = {
        "is_available": True,
        "estimated_price": total,
        "estimated_delivery": body.estimated_delivery,
        "message": body.message,
        "alternative_options": body.alternative_options,
        "responded_at": now,
    }
    entry = timeline_entry("quoted", current["_id"], body.message or f"Quoted {total} {body.currency}")
    updated = db["customization"].find_one_and_update(
        {"_id": request["_id"]},
        {
            "$set": {"quote": quote, "artisan_response": response, "status": "quoted", "updated_at": now},
            "$push": {"timeline": entry},
        },
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Artisan %s quoted %s on customization %s", current["_id"], total, request["_id"])
    populate_request(db, [updated])
    return {"message": "Quote submitted successfully", "request": serialize_doc(updated)}
