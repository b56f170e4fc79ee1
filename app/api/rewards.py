"""
Rewards API Endpoints

Lucky spin, daily tasks, and the ad and social events that feed them.
"""

from fastapi import APIRouter, Depends
import logging

from ..models.schemas import APIResponse, SpinRequest
from ..services.game_engine import GameEngine, get_engine
from ..auth import get_current_user
from .common import call_engine, result_response

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1",
    tags=["rewards"]
)


@router.post("/spin", response_model=APIResponse, summary="Start a free or paid spin")
async def start_spin(
    request: SpinRequest,
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    return result_response(call_engine("start_spin", engine.start_spin, current_user["id"], request.paid))


@router.post("/spin/claim", response_model=APIResponse, summary="Claim a free spin reward after the ad")
async def claim_spin(
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    return result_response(call_engine("claim_spin", engine.claim_free_spin_reward, current_user["id"]))


@router.post("/spin/close", response_model=APIResponse, summary="Discard an unclaimed free spin reward")
async def close_spin(
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    return result_response(call_engine("close_spin", engine.close_spin, current_user["id"]))


@router.get("/tasks", response_model=APIResponse, summary="Today's tasks and progress")
async def get_tasks(
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    overview = call_engine("daily_task_overview", engine.daily_task_overview, current_user["id"])
    return APIResponse(
        success=True,
        message="Daily tasks retrieved",
        data=overview
    )


@router.post("/tasks/full-bonus", response_model=APIResponse, summary="Claim the all-tasks bonus")
async def claim_full_bonus(
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    return result_response(call_engine("claim_full_bonus", engine.claim_full_bonus, current_user["id"]))


@router.post("/tasks/{task_id}/claim", response_model=APIResponse, summary="Claim a completed task")
async def claim_task(
    task_id: str,
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    return result_response(call_engine("claim_daily_task", engine.claim_daily_task, current_user["id"], task_id))


@router.post("/events/ad-watched", response_model=APIResponse, summary="Report a completed ad")
async def ad_watched(
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    return result_response(call_engine("on_ad_watched", engine.on_ad_watched, current_user["id"]))


@router.post("/events/join-channel", response_model=APIResponse, summary="Report joining the channel")
async def join_channel(
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    return result_response(call_engine("on_join_channel", engine.on_join_channel, current_user["id"]))
