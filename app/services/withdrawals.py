"""
Withdrawal ledger: PTS -> USDT conversion requests.

Balance is debited when the request is recorded; payout happens outside
this service and reports back through settle_withdrawal().
"""

import logging
import math
import re
import uuid
from typing import Any, Dict, List, Optional

from ..config.game_constants import EXCHANGE_RATE, WITHDRAW_CONFIG
from ..models.schemas import FarmState, User, Withdrawal, WithdrawMethod, WithdrawStatus

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
TON_ADDRESS_PATTERN = re.compile(r"^[A-Za-z0-9_\-:+/=]+$")

FINAL_STATUSES = (WithdrawStatus.SUCCESS, WithdrawStatus.FAILED, WithdrawStatus.CANCELLED)


def fee_rate(method: WithdrawMethod, ton_fee: float) -> float:
    if method == WithdrawMethod.TON:
        return ton_fee
    return WITHDRAW_CONFIG["fee_faucetpay"]


def pts_to_usdt(pts: int, rate: float = 0.0) -> float:
    """USDT paid out for pts after a fee of rate (0.10 = 10%)."""
    return (pts / EXCHANGE_RATE) * (1 - rate)


def usdt_to_pts(usdt: float) -> int:
    return math.floor(usdt * EXCHANGE_RATE)


def withdraw_fee(pts: int, rate: float) -> int:
    return math.floor(pts * rate)


def minimum_withdrawal(user: User) -> int:
    if user.has_withdrawn:
        return WITHDRAW_CONFIG["min_returning_user"]
    return WITHDRAW_CONFIG["min_new_user"]


def is_valid_destination(method: WithdrawMethod, destination: str) -> bool:
    if not destination:
        return False
    if method == WithdrawMethod.FAUCETPAY:
        return EMAIL_PATTERN.match(destination) is not None
    if method == WithdrawMethod.TON:
        return (
            len(destination) >= WITHDRAW_CONFIG["ton_address_min_length"]
            and TON_ADDRESS_PATTERN.match(destination) is not None
        )
    return False


def validate_request(user: User, amount_pts: int, method: WithdrawMethod, destination: str) -> List[str]:
    """All problems with a request, in checking order. Empty means valid."""
    errors = []

    if amount_pts > user.balance:
        errors.append("Insufficient balance")

    minimum = minimum_withdrawal(user)
    if amount_pts < minimum:
        errors.append(f"Minimum withdrawal is {minimum} PTS")

    if not is_valid_destination(method, destination):
        if method == WithdrawMethod.FAUCETPAY:
            errors.append("Invalid FaucetPay email address")
        else:
            errors.append("Invalid TON wallet address")

    return errors


def locked_destination(user: User, method: WithdrawMethod) -> Optional[str]:
    """Destination bound to this method by the first withdrawal through it."""
    if method == WithdrawMethod.FAUCETPAY:
        return user.wallet_email
    return user.wallet_address


def request_withdrawal(
    state: FarmState,
    amount_pts: int,
    method: WithdrawMethod,
    destination: str,
    now: int,
    ton_fee: float,
) -> Dict[str, Any]:
    """
    Validate, debit and record a withdrawal request.

    The first failing check wins. On success the entry is PENDING and the
    destination is locked for the method if it was not already.
    """
    errors = validate_request(state.user, amount_pts, method, destination)
    if errors:
        return {"success": False, "message": errors[0]}

    rate = fee_rate(method, ton_fee)
    net_usdt = pts_to_usdt(amount_pts, rate)

    withdrawal = Withdrawal(
        id=f"wd_{now}_{uuid.uuid4().hex[:9]}",
        user_id=state.user.id,
        amount_pts=amount_pts,
        amount_usdt=net_usdt,
        fee_pts=withdraw_fee(amount_pts, rate),
        net_usdt=net_usdt,
        method=method,
        destination=destination,
        status=WithdrawStatus.PENDING,
        timestamp=now,
    )

    state.user.balance -= amount_pts
    state.withdrawals.insert(0, withdrawal)

    if locked_destination(state.user, method) is None:
        if method == WithdrawMethod.FAUCETPAY:
            state.user.wallet_email = destination
        else:
            state.user.wallet_address = destination
    state.user.has_withdrawn = True

    return {"success": True, "message": "Withdrawal Requested!", "withdrawal": withdrawal}


def settle_withdrawal(
    state: FarmState,
    withdrawal_id: str,
    status: WithdrawStatus,
    now: int,
) -> Dict[str, Any]:
    """
    Move a PENDING entry to a final status.

    FAILED and CANCELLED requests give the debited PTS back.
    """
    if status not in FINAL_STATUSES:
        return {"success": False, "message": "Invalid status"}

    for index, entry in enumerate(state.withdrawals):
        if entry.id != withdrawal_id:
            continue
        if entry.status != WithdrawStatus.PENDING:
            return {"success": False, "message": f"Withdrawal already {entry.status.value}"}

        settled = entry.model_copy(update={"status": status, "processed_at": now})
        state.withdrawals[index] = settled
        if status != WithdrawStatus.SUCCESS:
            state.user.balance += entry.amount_pts

        return {"success": True, "message": f"Withdrawal {status.value}", "withdrawal": settled}

    return {"success": False, "message": "Withdrawal not found"}
