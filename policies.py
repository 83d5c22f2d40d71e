"""Order fulfilment transitions and resource ownership checks."""

from datetime import datetime, timezone
from typing import Any, Optional

# Artisans may only move an order one step along this chain.
# cancelled/refunded are reachable through the admin override only.
ORDER_TRANSITIONS = {
    "pending": ("confirmed",),
    "confirmed": ("processing",),
    "processing": ("shipped",),
    "shipped": ("delivered",),
}


class InvalidTransition(ValueError):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot transition from {current} to {requested}")


def can_transition(current: str, requested: str) -> bool:
    return requested in ORDER_TRANSITIONS.get(current, ())


def check_transition(current: str, requested: str) -> None:
    if not can_transition(current, requested):
        raise InvalidTransition(current, requested)


def timeline_entry(status: str, actor_id: Any, note: Optional[str] = None) -> dict:
    return {
        "status": status,
        "timestamp": datetime.now(timezone.utc),
        "note": note,
        "updated_by": actor_id,
    }


def ref_id(value: Any) -> Optional[str]:
    """String id of a reference, whether raw or already populated."""
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get("_id")
    return str(value) if value is not None else None


def is_admin(user: dict) -> bool:
    return user.get("role") == "admin"


def can_access_order(user: dict, order: dict) -> bool:
    if is_admin(user):
        return True
    uid = ref_id(user.get("_id"))
    if ref_id(order.get("customer")) == uid:
        return True
    return any(ref_id(item.get("artisan")) == uid for item in order.get("items") or [])


def can_access_customization(user: dict, customization: dict) -> bool:
    if is_admin(user):
        return True
    uid = ref_id(user.get("_id"))
    return uid in (ref_id(customization.get("customer")), ref_id(customization.get("artisan")))


def can_access_chat(user: dict, chat: dict) -> bool:
    if is_admin(user):
        return True
    uid = ref_id(user.get("_id"))
    return any(ref_id(p.get("user")) == uid for p in chat.get("participants") or [])
