import logging
from typing import Dict, List

from ..config.game_constants import CONSUMABLES
from ..models.schemas import BuffType, FarmState, ItemType

logger = logging.getLogger(__name__)


def is_active(active_buffs: Dict[BuffType, int], effect: BuffType, now: int) -> bool:
    """An effect is active while its expiry is in the future."""
    return active_buffs.get(effect, 0) > now


def activate(active_buffs: Dict[BuffType, int], effect: BuffType, duration_ms: int, now: int) -> int:
    """Start (or restart) an effect. Durations overwrite, never stack."""
    expiry = now + duration_ms
    active_buffs[effect] = expiry
    return expiry


def sweep_expired(active_buffs: Dict[BuffType, int], now: int) -> List[BuffType]:
    """Drop expired entries. Only bounds memory; lookups compare timestamps."""
    expired = [effect for effect, expiry in active_buffs.items() if expiry <= now]
    for effect in expired:
        del active_buffs[effect]
    return expired


def remaining_ms(active_buffs: Dict[BuffType, int], now: int) -> Dict[str, int]:
    return {
        effect.value: expiry - now
        for effect, expiry in active_buffs.items()
        if expiry > now
    }


def use_item(state: FarmState, item_id: str, now: int) -> Dict:
    """Consume one tool from the inventory and start its buff."""
    consumable = CONSUMABLES.get(item_id)
    if not consumable:
        return {"success": False, "message": "Invalid item"}

    item = state.inventory.get(item_id)
    if not item or item.type != ItemType.TOOL or item.quantity <= 0:
        return {"success": False, "message": "No items available"}

    if is_active(state.active_buffs, consumable["effect"], now):
        return {"success": False, "message": "Buff already active!"}

    expiry = activate(state.active_buffs, consumable["effect"], consumable["duration"], now)

    item.quantity -= 1
    if item.quantity <= 0:
        del state.inventory[item_id]

    return {
        "success": True,
        "message": f"{consumable['name']} activated!",
        "effect": consumable["effect"].value,
        "expires_at": expiry,
    }
