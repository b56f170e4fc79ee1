"""
Finance API Endpoints

Withdrawal requests and the affiliate program.
"""

from fastapi import APIRouter, Depends
import logging

from ..models.schemas import APIResponse, WithdrawalCreate
from ..services.game_engine import GameEngine, get_engine
from ..auth import get_current_user
from .common import call_engine, result_response

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1",
    tags=["finance"]
)


@router.post("/withdrawals", response_model=APIResponse, summary="Request a PTS withdrawal")
async def request_withdrawal(
    request: WithdrawalCreate,
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    result = call_engine(
        "request_withdrawal",
        engine.request_withdrawal,
        current_user["id"],
        request.amount_pts,
        request.method,
        request.destination,
    )
    return result_response(result)


@router.get("/withdrawals", response_model=APIResponse, summary="Withdrawal history")
async def list_withdrawals(
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    entries = call_engine("list_withdrawals", engine.list_withdrawals, current_user["id"])
    return APIResponse(
        success=True,
        message="Withdrawals retrieved",
        data={"withdrawals": entries}
    )


@router.get("/affiliate", response_model=APIResponse, summary="Affiliate stats and referrals")
async def affiliate_overview(
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    overview = call_engine("affiliate_overview", engine.affiliate_overview, current_user["id"])
    return APIResponse(
        success=True,
        message="Affiliate stats retrieved",
        data=overview
    )


@router.post("/affiliate/claim", response_model=APIResponse, summary="Move pending commission to balance")
async def claim_commission(
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    return result_response(call_engine("claim_commission", engine.claim_commission, current_user["id"]))
