"""
Market pricing.

Hourly prices are a pure function of (crop name, hour bucket), so any
process can rebuild the board for any hour without shared state. Sale
totals are computed in integer percent units and floored exactly once.
"""

import hashlib
import math
from typing import Any, Dict, List

from ..config.game_constants import (
    CROPS,
    HOUR_MS,
    MARKET_CONFIG,
    PLAN_CONFIG,
    PRICE_BOOSTER_PERCENT,
    TRADE_PERMIT_PERCENT,
    TREND_SELL_MULTIPLIER,
)
from ..models.schemas import BuffType, Plan, Trend
from .buffs import is_active


def hour_bucket(timestamp: int) -> int:
    return timestamp // HOUR_MS


def _hash_ints(crop_name: str, bucket: int) -> List[int]:
    digest = hashlib.sha256(f"{crop_name}:{bucket}".encode("utf-8")).digest()
    return [int.from_bytes(digest[i:i + 4], "big") for i in range(0, 12, 4)]


def hourly_price(crop_name: str, timestamp: int) -> Dict[str, Any]:
    """
    Deterministic market price for one crop in the hour containing timestamp.

    70% of hours are STABLE, 15% UP by 0-15%, 15% DOWN by 0-15%; the
    result is clamped to [70%, 130%] of the base price.

    Returns:
        {"price": int, "trend": Trend, "change_percent": float}
    """
    crop = CROPS.get(crop_name)
    if not crop:
        return {"price": 0, "trend": Trend.STABLE, "change_percent": 0.0}

    base = crop["sell_price"]
    trend_seed, up_seed, down_seed = _hash_ints(crop_name, hour_bucket(timestamp))

    trend_roll = trend_seed % 100
    up_cutoff = MARKET_CONFIG["up_percent"]
    down_cutoff = 100 - MARKET_CONFIG["stable_percent"]
    span = MARKET_CONFIG["max_change_bp"] + 1

    if trend_roll < up_cutoff:
        trend = Trend.UP
        change_bp = up_seed % span
    elif trend_roll < down_cutoff:
        trend = Trend.DOWN
        change_bp = -(down_seed % span)
    else:
        trend = Trend.STABLE
        change_bp = 0

    # Round half up in integer basis points
    price = (base * (10_000 + change_bp) + 5_000) // 10_000

    min_price = math.floor(round(base * MARKET_CONFIG["min_price_ratio"], 6))
    max_price = math.ceil(round(base * MARKET_CONFIG["max_price_ratio"], 6))
    price = max(min_price, min(max_price, price))

    return {"price": price, "trend": trend, "change_percent": change_bp / 10_000}


def market_prices(timestamp: int) -> List[Dict[str, Any]]:
    """The whole board for one hour."""
    board = []
    for name, crop in CROPS.items():
        quote = hourly_price(name, timestamp)
        board.append({
            "crop_name": name,
            "rarity": crop["rarity"].value,
            "base_price": crop["sell_price"],
            "price": quote["price"],
            "trend": quote["trend"].value,
            "change_percent": quote["change_percent"],
        })
    return board


def bonus_percent(plan: Plan, active_buffs: Dict[BuffType, int], now: int) -> Dict[str, int]:
    return {
        "plan_bonus": PLAN_CONFIG[plan]["bonus_percent"],
        "trade_permit": TRADE_PERMIT_PERCENT if is_active(active_buffs, BuffType.TRADE_PERMIT, now) else 0,
        "booster": PRICE_BOOSTER_PERCENT if is_active(active_buffs, BuffType.PRICE_BOOSTER, now) else 0,
    }


def compose_sell_price(unit_price: int, trend_mod: int, total_bonus_percent: int, quantity: int) -> int:
    """unit_price x trend% x (100 + bonus)% x quantity, floored once."""
    return (unit_price * trend_mod * (100 + total_bonus_percent) * quantity) // 10_000


def sell_price(
    crop_name: str,
    quantity: int,
    plan: Plan,
    active_buffs: Dict[BuffType, int],
    now: int,
) -> Dict[str, Any]:
    """
    Final sale value for a stack of one crop.

    The trend multiplier here is a flat +/-10%, independent of the hourly
    change_percent.
    """
    if crop_name not in CROPS:
        return {
            "total_price": 0,
            "breakdown": {"base_price": 0, "trend": Trend.STABLE.value, "trend_mod": 100,
                          "plan_bonus": 0, "trade_permit": 0, "booster": 0},
        }

    quote = hourly_price(crop_name, now)
    trend_mod = TREND_SELL_MULTIPLIER[quote["trend"].value]
    bonuses = bonus_percent(plan, active_buffs, now)

    total = compose_sell_price(quote["price"], trend_mod, sum(bonuses.values()), quantity)

    return {
        "total_price": total,
        "breakdown": {
            "base_price": quote["price"],
            "trend": quote["trend"].value,
            "trend_mod": trend_mod,
            **bonuses,
        },
    }
