"""
Farm API Endpoints

Plot status, planting, harvesting and plot purchases.
"""

from fastapi import APIRouter, Depends
import logging

from ..models.schemas import APIResponse
from ..services.game_engine import GameEngine, get_engine
from ..auth import get_current_user
from .common import call_engine, result_response

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/farm",
    tags=["farm"]
)


@router.get("/status", response_model=APIResponse, summary="Full farm state")
async def farm_status(
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    status_data = call_engine("farm_status", engine.farm_status, current_user["id"])
    return APIResponse(
        success=True,
        message="Farm status retrieved",
        data=status_data
    )


@router.post("/slots/{slot_id}/plant", response_model=APIResponse, summary="Plant a crop")
async def plant(
    slot_id: int,
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    return result_response(call_engine("plant", engine.plant, current_user["id"], slot_id))


@router.post("/slots/{slot_id}/harvest", response_model=APIResponse, summary="Harvest and replant a plot")
async def harvest(
    slot_id: int,
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    return result_response(call_engine("harvest", engine.harvest, current_user["id"], slot_id))


@router.post("/harvest-all", response_model=APIResponse, summary="Harvest every ready plot")
async def harvest_all(
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    return result_response(call_engine("harvest_all", engine.harvest_all, current_user["id"]))


@router.post("/slots/{slot_id}/purchase", response_model=APIResponse, summary="Buy an extra plot")
async def purchase_slot(
    slot_id: int,
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    return result_response(call_engine("purchase_slot", engine.purchase_slot, current_user["id"], slot_id))
