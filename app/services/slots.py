"""
Plot state machine.

DISABLED -> LOCKED_SHOP -> EMPTY -> GROWING -> READY -> (harvest) -> GROWING

Harvest and the automatic replant are one transition: the slot never
rests in EMPTY between them, so a growth tick cannot observe it half-done.
"""

import logging
from typing import Any, Dict, List

from ..config.game_constants import EXTRA_SLOT_PRICES, PLAN_CONFIG, TOTAL_SLOTS
from ..models.schemas import CropInstance, FarmState, Plan, Slot, SlotStatus
from .drop_engine import roll_crop
from .storage import add_crop, can_harvest, plan_batch_harvest

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (SlotStatus.GROWING, SlotStatus.READY)
CLOSED_STATUSES = (SlotStatus.DISABLED, SlotStatus.LOCKED_SHOP)


def initial_slots(plan: Plan = Plan.FREE) -> List[Slot]:
    slots = [
        Slot(id=i, status=SlotStatus.EMPTY if i == 1 else SlotStatus.LOCKED_SHOP)
        for i in range(1, TOTAL_SLOTS + 1)
    ]
    recompute_slot_statuses(slots, plan)
    return slots


def recompute_slot_statuses(slots: List[Slot], plan: Plan) -> None:
    """
    Re-derive every idle slot's status from (plan, is_purchased).

    Idempotent. GROWING and READY slots are left alone so growth survives
    plan changes.
    """
    config = PLAN_CONFIG[plan]

    for slot in slots:
        if slot.status in ACTIVE_STATUSES:
            continue

        if slot.id == 1 or slot.is_purchased or slot.id <= config["base_limit"]:
            # LOCKED_SHOP opens too: a lower plan's shop slot is outside this
            # plan's purchasable range and could never be bought otherwise.
            if slot.status in CLOSED_STATUSES:
                slot.status = SlotStatus.EMPTY
        elif config["purchasable_start"] <= slot.id <= config["purchasable_end"]:
            slot.status = SlotStatus.LOCKED_SHOP
        else:
            slot.status = SlotStatus.DISABLED


def is_ripe(slot: Slot, now: int) -> bool:
    if slot.status != SlotStatus.GROWING or slot.crop is None or slot.planted_at is None:
        return False
    return (now - slot.planted_at) / 1000 >= slot.crop.growth_time


def advance_growth(slots: List[Slot], now: int) -> List[int]:
    """Growth tick: GROWING -> READY for every ripe slot. Returns the ids that ripened."""
    ripened = []
    for slot in slots:
        if is_ripe(slot, now):
            slot.status = SlotStatus.READY
            ripened.append(slot.id)
    return ripened


def remaining_seconds(slot: Slot, now: int) -> float:
    if slot.status != SlotStatus.GROWING or slot.crop is None or slot.planted_at is None:
        return 0.0
    return max(0.0, slot.crop.growth_time - (now - slot.planted_at) / 1000)


def _sow(state: FarmState, slot: Slot, now: int, rng) -> CropInstance:
    crop = roll_crop(state.active_buffs, now, rng)
    slot.crop = crop
    slot.planted_at = now
    slot.status = SlotStatus.GROWING
    return crop


def plant(state: FarmState, slot_id: int, now: int, rng) -> Dict[str, Any]:
    slot = state.slot(slot_id)
    if slot is None:
        return {"success": False, "message": "Invalid slot"}
    if slot.status != SlotStatus.EMPTY:
        return {"success": False, "message": "Slot is not empty"}

    crop = _sow(state, slot, now, rng)
    return {
        "success": True,
        "message": f"Planted {crop.name}!",
        "slot_id": slot.id,
        "crop": crop,
    }


def _reap(state: FarmState, slot: Slot, amount: int, now: int, rng) -> Dict[str, Any]:
    """READY -> EMPTY -> GROWING in one step."""
    harvested = slot.crop
    add_crop(state, harvested.name, harvested.rarity, amount)
    state.user.total_harvests += amount

    slot.status = SlotStatus.EMPTY
    slot.crop = None
    slot.planted_at = None

    replanted = _sow(state, slot, now, rng)
    return {
        "slot_id": slot.id,
        "crop_name": harvested.name,
        "rarity": harvested.rarity.value,
        "amount": amount,
        "is_double": amount > 1,
        "replanted": replanted,
    }


def harvest(state: FarmState, slot_id: int, now: int, rng) -> Dict[str, Any]:
    slot = state.slot(slot_id)
    if slot is None:
        return {"success": False, "message": "Invalid slot"}

    check = can_harvest(slot, state.user, rng)
    if not check["can"]:
        return {
            "success": False,
            "message": check["reason"],
            "storage_full": check.get("storage_full", False),
        }

    result = _reap(state, slot, check["amount"], now, rng)
    message = f"Harvested {result['amount']}x {result['crop_name']}!"
    return {"success": True, "message": message, **result}


def harvest_all(state: FarmState, now: int, rng) -> Dict[str, Any]:
    """Batch harvest: one aggregate capacity check, all slots or none."""
    check = plan_batch_harvest(state, rng)
    if not check["can"]:
        return {
            "success": False,
            "message": check["reason"],
            "storage_full": check.get("storage_full", False),
        }

    results = [
        _reap(state, state.slot(slot_id), amount, now, rng)
        for slot_id, amount in check["yields"].items()
    ]
    doubles = sum(1 for r in results if r["is_double"])

    return {
        "success": True,
        "message": f"Harvested {check['total']} crops from {len(results)} plots!",
        "total_harvested": check["total"],
        "total_doubles": doubles,
        "harvested": results,
        "ad_required": not PLAN_CONFIG[state.user.plan]["is_ad_free"],
    }


def purchasable_range(plan: Plan) -> range:
    config = PLAN_CONFIG[plan]
    return range(config["purchasable_start"], config["purchasable_end"] + 1)


def slot_price(state: FarmState) -> int:
    """First extra plot in the plan's shop range costs less than the second."""
    owned = sum(
        1 for slot in state.slots
        if slot.id in purchasable_range(state.user.plan) and slot.is_purchased
    )
    return EXTRA_SLOT_PRICES["first"] if owned == 0 else EXTRA_SLOT_PRICES["second"]


def purchase_slot(state: FarmState, slot_id: int) -> Dict[str, Any]:
    slot = state.slot(slot_id)
    if slot is None:
        return {"success": False, "message": "Invalid slot"}
    if slot.is_purchased or slot.status != SlotStatus.LOCKED_SHOP:
        return {"success": False, "message": "Slot is not for sale"}
    if slot_id not in purchasable_range(state.user.plan):
        return {"success": False, "message": "Slot is not available on your plan"}

    price = slot_price(state)
    if state.user.balance < price:
        return {"success": False, "message": f"Not enough PTS ({price:,} required)"}

    state.user.balance -= price
    slot.is_purchased = True
    recompute_slot_statuses(state.slots, state.user.plan)

    return {
        "success": True,
        "message": f"Plot {slot_id} unlocked!",
        "slot_id": slot_id,
        "cost": price,
    }
