"""
Lucky spin.

Free spins: cooldown-gated; the drawn reward waits in SpinState until the
player claims it (after an ad) or closes the wheel. The cooldown restarts
on claim, not on draw.

Paid spins: the fee is debited at draw time and the reward is granted
unconditionally once reveal_at passes.
"""

import logging
from typing import Any, Dict, Optional

from ..config.game_constants import SPIN_CONFIG, SPIN_FALLBACK_REWARD, SPIN_PRIZE_POOL
from ..models.schemas import (
    CoinsReward,
    FarmState,
    HerbReward,
    JackpotReward,
    SpinState,
    User,
)
from .storage import add_crop

logger = logging.getLogger(__name__)

REWARD_TYPES = {
    "COINS": CoinsReward,
    "HERB": HerbReward,
    "JACKPOT": JackpotReward,
}

TOTAL_WEIGHT = sum(weight for weight, _ in SPIN_PRIZE_POOL)


def build_reward(entry: Dict[str, Any]):
    return REWARD_TYPES[entry["type"]](**entry)


def weighted_draw(rng):
    """Cumulative-weight draw over the prize table, in table order."""
    r = rng.random() * TOTAL_WEIGHT
    cumulative = 0.0
    for weight, entry in SPIN_PRIZE_POOL:
        cumulative += weight
        if r <= cumulative:
            return build_reward(entry)
    return build_reward(SPIN_FALLBACK_REWARD)


def format_reward(reward) -> str:
    if isinstance(reward, HerbReward):
        return reward.name
    return f"{reward.amount} PTS"


def expected_value() -> float:
    """Average PTS per spin from coin and jackpot prizes. Herbs are not counted."""
    value = sum(
        weight * entry["amount"]
        for weight, entry in SPIN_PRIZE_POOL
        if entry["type"] in ("COINS", "JACKPOT")
    )
    return value / TOTAL_WEIGHT


def remaining_cooldown(user: User, now: int) -> int:
    return max(0, SPIN_CONFIG["free_cooldown"] - (now - user.last_spin_time))


def can_free_spin(user: User, now: int) -> bool:
    return remaining_cooldown(user, now) == 0


def format_cooldown(ms: int) -> str:
    hours = ms // 3_600_000
    minutes = (ms % 3_600_000) // 60_000
    seconds = (ms % 60_000) // 1000

    if hours > 0:
        return f"{hours}h {minutes}m"
    elif minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def grant_reward(state: FarmState, reward) -> None:
    # Herb prizes skip the capacity check
    if isinstance(reward, HerbReward):
        add_crop(state, reward.name, reward.rarity, 1)
    else:
        state.user.balance += reward.amount


def start_spin(state: FarmState, paid: bool, now: int, rng, reveal_ms: int) -> Dict[str, Any]:
    if state.spin.pending_reward is not None:
        return {"success": False, "message": "Already spinning!"}

    if paid:
        cost = SPIN_CONFIG["paid_cost"]
        if state.user.balance < cost:
            return {"success": False, "message": f"Not enough PTS ({cost} required)"}

        state.user.balance -= cost
        reward = weighted_draw(rng)
        state.spin = SpinState(pending_reward=reward, is_paid=True, reveal_at=now + reveal_ms)
        return {
            "success": True,
            "message": "Spinning...",
            "is_ad_required": False,
            "reward": reward,
            "reveal_at": state.spin.reveal_at,
        }

    if not can_free_spin(state.user, now):
        return {
            "success": False,
            "message": f"Cooldown: {format_cooldown(remaining_cooldown(state.user, now))}",
        }

    reward = weighted_draw(rng)
    state.spin = SpinState(pending_reward=reward, is_paid=False)
    return {"success": True, "message": "Spinning...", "is_ad_required": True, "reward": reward}


def claim_free_reward(state: FarmState, now: int) -> Dict[str, Any]:
    reward = state.spin.pending_reward
    if reward is None or state.spin.is_paid:
        return {"success": False, "message": "No pending reward"}

    grant_reward(state, reward)
    state.user.last_spin_time = now
    state.spin = SpinState()

    return {"success": True, "message": f"Won {format_reward(reward)}!", "reward": reward}


def close_spin(state: FarmState) -> Dict[str, Any]:
    """Drop an unclaimed free reward. Paid spins in flight cannot be cancelled."""
    if state.spin.pending_reward is None or state.spin.is_paid:
        return {"success": False, "message": "No pending reward"}

    state.spin = SpinState()
    return {"success": True, "message": "Spin closed"}


def settle_due(state: FarmState, now: int) -> Optional[Any]:
    """Grant a paid reward whose reveal time has passed. Returns it, or None."""
    spin = state.spin
    if spin.pending_reward is None or not spin.is_paid:
        return None
    if spin.reveal_at is not None and spin.reveal_at > now:
        return None

    reward = spin.pending_reward
    grant_reward(state, reward)
    state.spin = SpinState()
    return reward
