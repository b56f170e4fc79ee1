"""
Collaborator endpoints.

Called by the payment and payout services, never by players. Guarded by
the X-Admin-Key header.
"""

from fastapi import APIRouter, Depends
import logging

from ..models.schemas import APIResponse, PlanChangeRequest, WithdrawalStatusUpdate
from ..services.game_engine import GameEngine, get_engine
from ..auth import require_admin_key
from .common import call_engine, result_response

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_key)]
)


@router.post("/users/{user_id}/plan", response_model=APIResponse, summary="Apply a paid membership")
async def change_plan(
    user_id: str,
    request: PlanChangeRequest,
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    return result_response(call_engine("upgrade_plan", engine.upgrade_plan, user_id, request.plan))


@router.post(
    "/users/{user_id}/withdrawals/{withdrawal_id}/status",
    response_model=APIResponse,
    summary="Record the payout outcome of a withdrawal"
)
async def settle_withdrawal(
    user_id: str,
    withdrawal_id: str,
    request: WithdrawalStatusUpdate,
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    result = call_engine(
        "settle_withdrawal",
        engine.settle_withdrawal,
        user_id,
        withdrawal_id,
        request.status,
    )
    return result_response(result)
