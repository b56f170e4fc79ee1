"""
Market API Endpoints

Hourly price board, selling, the shop and consumable tools.
"""

from fastapi import APIRouter, Depends
import logging

from ..models.schemas import APIResponse
from ..services.game_engine import GameEngine, get_engine
from ..auth import get_current_user
from .common import call_engine, result_response

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/market",
    tags=["market"]
)


@router.get("/prices", response_model=APIResponse, summary="Current hourly prices")
async def market_prices(engine: GameEngine = Depends(get_engine)) -> APIResponse:
    return APIResponse(
        success=True,
        message="Market prices retrieved",
        data={"prices": engine.market_board()}
    )


@router.post("/sell-all", response_model=APIResponse, summary="Sell every crop in the barn")
async def sell_all(
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    return result_response(call_engine("sell_all", engine.sell_all, current_user["id"]))


@router.get("/shop", response_model=APIResponse, summary="Items for sale")
async def shop(
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    items = call_engine("shop_items", engine.shop_items, current_user["id"])
    return APIResponse(
        success=True,
        message="Shop items retrieved",
        data={"items": items}
    )


@router.post("/buy/{item_id}", response_model=APIResponse, summary="Buy a shop item")
async def buy_item(
    item_id: str,
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    return result_response(call_engine("buy_item", engine.buy_item, current_user["id"], item_id))


@router.post("/tools/{item_id}/use", response_model=APIResponse, summary="Use a tool from the inventory")
async def use_tool(
    item_id: str,
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    return result_response(call_engine("use_item", engine.use_item, current_user["id"], item_id))


@router.post("/booster", response_model=APIResponse, summary="Activate the ad price booster")
async def activate_booster(
    current_user: dict = Depends(get_current_user),
    engine: GameEngine = Depends(get_engine)
) -> APIResponse:
    return result_response(call_engine("activate_booster", engine.activate_booster, current_user["id"]))
