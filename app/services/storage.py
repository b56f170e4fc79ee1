"""
Inventory and barn capacity accounting.

Crops are keyed by crop name and count against storage; tools are keyed
by item id, carry type TOOL and never count against storage.
"""

import logging
from typing import Any, Dict, List, Optional

from ..config.game_constants import YIELD_BOOSTER
from ..models.schemas import (
    FarmState,
    InventoryItem,
    ItemType,
    Rarity,
    Slot,
    SlotStatus,
    User,
)
from .pricing import sell_price

logger = logging.getLogger(__name__)

NEAR_FULL_PERCENT = 90


def capacity(user: User) -> Optional[int]:
    """Total barn capacity, or None when unlimited."""
    if user.storage_max is None:
        return None
    return user.storage_max + user.extra_storage


def storage_info(user: User) -> Dict[str, Any]:
    total = capacity(user)
    if total is None:
        return {
            "used": user.storage_used,
            "capacity": None,
            "percentage": 0,
            "is_near_full": False,
            "is_full": False,
            "is_unlimited": True,
        }

    percentage = round(user.storage_used / total * 100) if total > 0 else 100
    return {
        "used": user.storage_used,
        "capacity": total,
        "percentage": percentage,
        "is_near_full": percentage >= NEAR_FULL_PERCENT,
        "is_full": user.storage_used >= total,
        "is_unlimited": False,
    }


def roll_yield(user: User, rng) -> int:
    """Units produced by one harvest. Rolled fresh every time."""
    if user.has_yield_booster and rng.random() < YIELD_BOOSTER["double_chance"]:
        return 2
    return 1


def can_harvest(slot: Slot, user: User, rng) -> Dict[str, Any]:
    """
    Check whether a slot can be harvested right now.

    The yield is rolled here and returned as "amount"; the caller must
    harvest exactly that amount so the capacity check and the credit agree.
    """
    if slot.status != SlotStatus.READY or slot.crop is None:
        return {"can": False, "reason": "Crop is not ready"}

    total = capacity(user)
    if total is not None and user.storage_used >= total:
        return {"can": False, "reason": "Storage full - cannot harvest", "storage_full": True}

    amount = roll_yield(user, rng)
    if total is not None and user.storage_used + amount > total:
        return {"can": False, "reason": "Not enough storage for harvest", "storage_full": True}

    available = None if total is None else total - user.storage_used
    return {"can": True, "reason": None, "amount": amount, "available": available}


def plan_batch_harvest(state: FarmState, rng) -> Dict[str, Any]:
    """
    Roll yields for every READY slot and check them against capacity as one unit.

    Returns {"can", "reason", "yields": {slot_id: amount}, "total"}.
    """
    ready = [slot for slot in state.slots if slot.status == SlotStatus.READY and slot.crop is not None]
    if not ready:
        return {"can": False, "reason": "No crops ready to harvest"}

    yields = {slot.id: roll_yield(state.user, rng) for slot in ready}
    needed = sum(yields.values())

    total = capacity(state.user)
    if total is not None and state.user.storage_used + needed > total:
        return {
            "can": False,
            "reason": f"Not enough storage: need {needed}, have {max(0, total - state.user.storage_used)}",
            "storage_full": True,
        }

    return {"can": True, "reason": None, "yields": yields, "total": needed}


def add_crop(state: FarmState, crop_name: str, rarity: Rarity, amount: int) -> None:
    """Put harvested units in the barn. Capacity is the caller's concern."""
    item = state.inventory.get(crop_name)
    if item is None:
        item = InventoryItem(crop_name=crop_name, rarity=rarity, quantity=0, type=ItemType.CROP)
        state.inventory[crop_name] = item
    item.quantity += amount
    state.user.storage_used += amount


def add_tool(state: FarmState, item_id: str, amount: int = 1) -> None:
    item = state.inventory.get(item_id)
    if item is None:
        item = InventoryItem(crop_name=item_id, rarity=Rarity.COMMON, quantity=0, type=ItemType.TOOL)
        state.inventory[item_id] = item
    item.quantity += amount


def crop_items(state: FarmState) -> List[InventoryItem]:
    return [
        item for item in state.inventory.values()
        if item.type == ItemType.CROP and item.quantity > 0
    ]


def tool_items(state: FarmState) -> List[InventoryItem]:
    return [
        item for item in state.inventory.values()
        if item.type == ItemType.TOOL and item.quantity > 0
    ]


def sell_all(state: FarmState, now: int) -> Dict[str, Any]:
    """
    Liquidate every crop in the barn at the current market price.

    Each crop stack is priced separately; totals are summed as integers.
    Tools stay in the inventory.
    """
    crops = crop_items(state)
    if not crops:
        return {"success": False, "message": "Nothing to sell"}

    sold = []
    total = 0
    for item in crops:
        quote = sell_price(item.crop_name, item.quantity, state.user.plan, state.active_buffs, now)
        total += quote["total_price"]
        sold.append({
            "crop_name": item.crop_name,
            "quantity": item.quantity,
            "total_price": quote["total_price"],
            "breakdown": quote["breakdown"],
        })

    state.inventory = {
        key: item for key, item in state.inventory.items()
        if item.type != ItemType.CROP
    }
    state.user.balance += total
    state.user.total_sales += total
    state.user.storage_used = 0

    return {
        "success": True,
        "message": f"Sold for {total:,} PTS!",
        "total": total,
        "sold": sold,
    }
