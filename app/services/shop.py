import logging
from typing import Any, Dict, List

from ..config.game_constants import CONSUMABLES, STORAGE_CONFIG, YIELD_BOOSTER
from ..models.schemas import FarmState, SlotStatus, TaskAction
from .buffs import activate
from .daily_tasks import update_progress
from .slots import purchasable_range, purchase_slot, slot_price

logger = logging.getLogger(__name__)

PLOT_PREFIX = "plot_"
STORAGE_UPGRADE_ID = "storage_up"


def storage_upgrades_bought(state: FarmState) -> int:
    return state.user.extra_storage // STORAGE_CONFIG["upgrade_amount"]


def shop_items(state: FarmState) -> List[Dict[str, Any]]:
    """What this player can buy right now, with current prices."""
    items = []

    plot_cost = slot_price(state)
    for slot_id in purchasable_range(state.user.plan):
        slot = state.slot(slot_id)
        if slot is None or slot.is_purchased or slot.status != SlotStatus.LOCKED_SHOP:
            continue
        items.append({
            "id": f"{PLOT_PREFIX}{slot_id}",
            "name": f"Land Plot #{slot_id}",
            "type": "PERMANENT",
            "cost": plot_cost,
            "description": f"Unlocks Plot #{slot_id}",
            "slot_id": slot_id,
        })

    if state.user.storage_max is not None:
        items.append({
            "id": STORAGE_UPGRADE_ID,
            "name": "Barn Upgrade",
            "type": "PERMANENT",
            "cost": STORAGE_CONFIG["cost"],
            "description": f"+{STORAGE_CONFIG['upgrade_amount']} Storage Slots",
            "remaining": STORAGE_CONFIG["max_upgrades"] - storage_upgrades_bought(state),
        })

    for item_id, consumable in CONSUMABLES.items():
        items.append({
            "id": item_id,
            "name": consumable["name"],
            "type": "CONSUMABLE",
            "cost": consumable["cost"],
            "description": consumable["description"],
            "effect": consumable["effect"].value,
            "duration": consumable["duration"],
        })

    items.append({
        "id": YIELD_BOOSTER["id"],
        "name": YIELD_BOOSTER["name"],
        "type": "PERMANENT",
        "cost": YIELD_BOOSTER["cost"],
        "description": "25% chance for Double Harvest",
        "owned": state.user.has_yield_booster,
    })

    return items


def buy_item(state: FarmState, item_id: str, now: int) -> Dict[str, Any]:
    """Debit and apply one shop purchase."""
    if item_id.startswith(PLOT_PREFIX):
        try:
            slot_id = int(item_id[len(PLOT_PREFIX):])
        except ValueError:
            return {"success": False, "message": "Item not found"}
        return purchase_slot(state, slot_id)

    if item_id == STORAGE_UPGRADE_ID:
        return _buy_storage_upgrade(state)

    if item_id == YIELD_BOOSTER["id"]:
        return _buy_yield_booster(state)

    consumable = CONSUMABLES.get(item_id)
    if consumable is None:
        return {"success": False, "message": "Item not found"}

    if state.user.balance < consumable["cost"]:
        return {"success": False, "message": "Insufficient balance"}

    state.user.balance -= consumable["cost"]
    expiry = activate(state.active_buffs, consumable["effect"], consumable["duration"], now)
    update_progress(state.daily_tasks, TaskAction.BUY_ITEM, 1)

    return {
        "success": True,
        "message": f"{consumable['name']} activated!",
        "cost": consumable["cost"],
        "effect": consumable["effect"].value,
        "expires_at": expiry,
    }


def _buy_storage_upgrade(state: FarmState) -> Dict[str, Any]:
    if state.user.storage_max is None:
        return {"success": False, "message": "Storage is already unlimited"}
    if storage_upgrades_bought(state) >= STORAGE_CONFIG["max_upgrades"]:
        return {"success": False, "message": "Maximum storage upgrades reached"}
    if state.user.balance < STORAGE_CONFIG["cost"]:
        return {"success": False, "message": "Insufficient balance"}

    state.user.balance -= STORAGE_CONFIG["cost"]
    state.user.extra_storage += STORAGE_CONFIG["upgrade_amount"]

    return {
        "success": True,
        "message": f"Barn upgraded! +{STORAGE_CONFIG['upgrade_amount']} storage",
        "cost": STORAGE_CONFIG["cost"],
    }


def _buy_yield_booster(state: FarmState) -> Dict[str, Any]:
    if state.user.has_yield_booster:
        return {"success": False, "message": "Already owned"}
    if state.user.balance < YIELD_BOOSTER["cost"]:
        return {"success": False, "message": "Insufficient balance"}

    state.user.balance -= YIELD_BOOSTER["cost"]
    state.user.has_yield_booster = True

    return {"success": True, "message": f"{YIELD_BOOSTER['name']} unlocked!", "cost": YIELD_BOOSTER["cost"]}
