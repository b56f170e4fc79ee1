"""
Two-tier affiliate ledger.

Every function here works on the REFERRER's aggregate: the referral list
and pending commission belong to the upline, not to the player who sold.
"""

import logging
import math
from typing import Any, Dict, Optional

from ..config.game_constants import AFFILIATE_CONFIG
from ..models.schemas import FarmState, Plan, Referral, TaskAction
from .daily_tasks import update_progress

logger = logging.getLogger(__name__)


def referral_link(user_id: str, bot_username: str) -> str:
    return f"https://t.me/{bot_username}?startapp={user_id}"


def find_referral(state: FarmState, referral_id: str) -> Optional[Referral]:
    for referral in state.referrals:
        if referral.id == referral_id:
            return referral
    return None


def register_referral(
    state: FarmState,
    referral_id: str,
    username: str,
    tier: int,
    now: int,
) -> Dict[str, Any]:
    """Add a new downline member. Tier is fixed from here on."""
    if referral_id == state.user.id:
        return {"success": False, "message": "Cannot refer yourself"}
    if find_referral(state, referral_id) is not None:
        return {"success": False, "message": "Referral already registered"}

    state.referrals.append(Referral(
        id=referral_id,
        username=username,
        tier=tier,
        joined_at=now,
    ))
    if tier == 1:
        update_progress(state.daily_tasks, TaskAction.INVITE_FRIEND, 1)

    return {"success": True, "message": f"{username} joined your team!"}


def record_sale(state: FarmState, referral_id: str, sale_amount: int) -> Dict[str, Any]:
    """
    Credit a downline sale.

    The referral's contribution grows at its own tier's rate; the referrer's
    pending commission grows at the tier-1 rate. Nothing flows further up.
    """
    referral = find_referral(state, referral_id)
    if referral is None:
        return {"success": False, "message": "Referral not found"}
    if sale_amount <= 0:
        return {"success": False, "message": "Nothing to record"}

    rates = AFFILIATE_CONFIG["commissions"]
    contribution = math.floor(sale_amount * rates[referral.tier])
    commission = math.floor(sale_amount * rates[1])

    referral.contribution += contribution
    referral.is_active = True
    state.user.pending_commission += commission

    return {
        "success": True,
        "message": f"Commission of {commission} PTS recorded",
        "contribution": contribution,
        "commission": commission,
    }


def record_upgrade(state: FarmState, referral_id: str, plan: Plan) -> Dict[str, Any]:
    """Flat bonus to the referrer when a downline member buys a membership."""
    referral = find_referral(state, referral_id)
    if referral is None:
        return {"success": False, "message": "Referral not found"}

    bonus = AFFILIATE_CONFIG["upgrade_bonuses"].get(plan, 0)
    if bonus <= 0:
        return {"success": False, "message": "No bonus for this plan"}

    referral.contribution += bonus
    referral.is_active = True
    state.user.pending_commission += bonus

    return {"success": True, "message": f"Upgrade bonus of {bonus:,} PTS recorded", "commission": bonus}


def claim_commission(state: FarmState) -> Dict[str, Any]:
    min_claim = AFFILIATE_CONFIG["min_claim_amount"]
    if state.user.pending_commission < min_claim:
        return {"success": False, "message": f"Minimum {min_claim} PTS required to claim"}

    amount = state.user.pending_commission
    state.user.balance += amount
    state.user.pending_commission = 0
    state.user.total_commission_earned += amount

    return {"success": True, "message": f"Successfully claimed {amount:,} PTS!", "amount": amount}


def affiliate_stats(state: FarmState, bot_username: str) -> Dict[str, Any]:
    referrals = state.referrals
    return {
        "total_referrals": len(referrals),
        "active_referrals": sum(1 for r in referrals if r.is_active),
        "tier1_count": sum(1 for r in referrals if r.tier == 1),
        "tier2_count": sum(1 for r in referrals if r.tier == 2),
        "total_earnings": sum(r.contribution for r in referrals),
        "pending_commission": state.user.pending_commission,
        "total_commission_earned": state.user.total_commission_earned,
        "referral_link": referral_link(state.user.id, bot_username),
    }
