import logging

from fastapi import APIRouter, HTTPException, status, Depends

from ..core.config import settings
from ..models.schemas import APIResponse, TelegramLoginRequest
from ..services.game_engine import GameEngine, get_engine
from .security import create_access_token, get_current_user
from .telegram import InitDataError, validate_init_data

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/telegram", response_model=APIResponse)
async def telegram_login(
    request: TelegramLoginRequest,
    engine: GameEngine = Depends(get_engine),
):
    try:
        identity = validate_init_data(
            request.init_data,
            settings.telegram_bot_token,
            max_age_seconds=settings.init_data_max_age_seconds,
        )
    except InitDataError as e:
        logger.info(f"[AUTH] Telegram login rejected: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )

    state, created = engine.get_or_create_user(
        identity["user_id"],
        identity["username"],
        referrer_id=request.start_param,
    )

    access_token = create_access_token(
        data={"sub": identity["user_id"], "username": identity["username"]}
    )

    return APIResponse(
        success=True,
        message="Welcome to the farm!" if created else "Login successful",
        data={
            "access_token": access_token,
            "token_type": "bearer",
            "expires_in": settings.access_token_expire_minutes * 60,
            "user_id": identity["user_id"],
            "username": identity["username"],
            "is_new_user": created,
        }
    )


@router.get("/me", response_model=APIResponse)
async def get_me(current_user: dict = Depends(get_current_user)):
    return APIResponse(
        success=True,
        message="User retrieved successfully",
        data={
            "user_id": current_user["id"],
            "username": current_user.get("username"),
        }
    )
