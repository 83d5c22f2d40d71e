import logging
from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from database import get_db, serialize_doc, to_object_id, utcnow
from policies import can_access_chat
from schemas import MessageCreate, RoomCreate
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])


def generate_room_id(user_a, user_b, entity_id=None) -> str:
    """Same id for the same pair (in either order) and related entity."""
    first, second = sorted([str(user_a), str(user_b)])
    room_id = f"{first}_{second}"
    if entity_id:
        room_id += f"_{entity_id}"
    return room_id


def load_room(db: Database, room_id: str, current: dict, projection: Optional[dict] = None) -> dict:
    room = db["chat"].find_one({"room_id": room_id}, projection)
    if not room:
        raise HTTPException(status_code=404, detail="Chat room not found")
    if not can_access_chat(current, room):
        raise HTTPException(status_code=403, detail="Access denied")
    return room


@router.post("/rooms")
def open_room(body: RoomCreate, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    other_id = to_object_id(body.participant_id)
    if other_id is None:
        raise HTTPException(status_code=400, detail="Invalid participant id")
    if other_id == current["_id"]:
        raise HTTPException(status_code=400, detail="Cannot open a chat with yourself")
    other = db["user"].find_one({"_id": other_id}, {"role": 1})
    if not other:
        raise HTTPException(status_code=404, detail="User not found")
    entity_id = None
    if body.entity_id:
        entity_id = to_object_id(body.entity_id)
        if entity_id is None:
            raise HTTPException(status_code=400, detail="Invalid related entity id")

    room_id = generate_room_id(current["_id"], other_id, entity_id)
    now = utcnow()
    # room_id itself comes from the upsert filter.
    new_room = {
        "participants": [
            {"user": current["_id"], "role": current.get("role"), "joined_at": now, "last_seen": now},
            {"user": other_id, "role": other.get("role"), "joined_at": now, "last_seen": now},
        ],
        "messages": [],
        "chat_type": "direct",
        "subject": body.subject,
        "related_entity": {"entity_type": body.entity_type or "general", "entity_id": entity_id} if entity_id else None,
        "status": "active",
        "last_activity": now,
        "created_at": now,
    }
    # Upsert keyed on room_id; concurrent opens land on the same document.
    room = db["chat"].find_one_and_update(
        {"room_id": room_id},
        {"$setOnInsert": new_room},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Chat room %s opened by %s", room_id, current["_id"])
    return {"room": serialize_doc(room)}


@router.get("/rooms")
def list_rooms(current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    rooms = list(
        db["chat"].find({"participants.user": current["_id"]}, {"messages": 0}).sort("last_activity", DESCENDING)
    )
    return {"rooms": serialize_doc(rooms)}


@router.get("/rooms/{room_id}")
def get_room(
    room_id: str,
    limit: int = Query(50, ge=1, le=500),
    current: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    room = load_room(db, room_id, current)
    room["messages"] = (room.get("messages") or [])[-limit:]
    return {"room": serialize_doc(room)}


@router.post("/rooms/{room_id}/messages", status_code=201)
def send_message(
    room_id: str,
    body: MessageCreate,
    current: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    room = load_room(db, room_id, current, {"participants": 1})
    if not any(p.get("user") == current["_id"] for p in room.get("participants") or []):
        raise HTTPException(status_code=403, detail="Only participants can post messages")
    now = utcnow()
    message = {
        "_id": ObjectId(),
        "sender": current["_id"],
        "content": body.content,
        "message_type": body.message_type,
        "status": "sent",
        "timestamp": now,
        "is_edited": False,
    }
    db["chat"].update_one(
        {"room_id": room_id},
        {"$push": {"messages": message}, "$set": {"last_activity": now}},
    )
    return {"message": serialize_doc(message)}
