"""Shared plumbing between the HTTP routers and the game engine."""

import logging
from typing import Any, Callable, Dict

from fastapi import HTTPException, status

from ..db.database import StoredDocumentError
from ..models.schemas import APIResponse
from ..services.game_engine import UserNotFoundError

logger = logging.getLogger(__name__)


def call_engine(operation: str, fn: Callable[..., Any], *args, **kwargs) -> Any:
    """
    Run an engine call and translate failures into HTTP errors.

    Business rejections are ordinary return values and pass straight through.
    """
    try:
        return fn(*args, **kwargs)
    except UserNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    except StoredDocumentError as e:
        logger.error(f"[ENGINE] {operation} failed on stored document for {e.user_id}: {e.reason}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error"
        )
    except Exception as e:
        logger.exception(f"[ENGINE] {operation} failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error"
        )


def result_response(result: Dict[str, Any]) -> APIResponse:
    """Wrap an engine result dict; everything but success/message becomes data."""
    data = {key: value for key, value in result.items() if key not in ("success", "message")}
    return APIResponse(
        success=bool(result.get("success")),
        message=result.get("message", ""),
        data=data or None
    )
