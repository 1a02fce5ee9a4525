import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from chatlens.config import get_ai_config_public, update_ai_config

router = APIRouter(prefix="/api/v1/settings", tags=["settings"])
logger = logging.getLogger(__name__)


def _internal_error(message: str, exc: Optional[Exception] = None) -> HTTPException:
    if exc is not None:
        logger.exception(message)
    return HTTPException(status_code=500, detail=message)


def _bad_request(message: str, exc: Optional[Exception] = None) -> HTTPException:
    if exc is not None:
        logger.warning(f"{message}: {exc}")
    return HTTPException(status_code=400, detail=message)


class AIConfigUpdate(BaseModel):
    enabled: Optional[bool] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    api_key: Optional[str] = None
    api_base_url: Optional[str] = None
    timeout_seconds: Optional[float] = Field(default=None, gt=0, le=600)


@router.get("/ai")
async def get_ai_settings():
    try:
        return get_ai_config_public()
    except Exception as e:
        raise _internal_error("Internal server error.", e)


@router.put("/ai")
async def save_ai_settings(payload: AIConfigUpdate):
    try:
        partial = payload.model_dump(exclude_none=True)
        return update_ai_config(partial)
    except Exception as e:
        raise _bad_request("Invalid request.", e)
