import logging
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from chatlens.engine import get_engine
from chatlens.memory.schema import Message

router = APIRouter(prefix="/api/v1/capture", tags=["capture"])
logger = logging.getLogger(__name__)


class CapturedMessage(BaseModel):
    id: str = Field(min_length=1)
    text: str
    sender: str
    timestamp: int
    reply_to: Optional[str] = None


class CaptureMessagePayload(BaseModel):
    chat_id: str = Field(min_length=1)
    platform: Optional[str] = None
    message: CapturedMessage


class CaptureContextPayload(BaseModel):
    chat_id: str = Field(min_length=1)
    platform: Optional[str] = None
    title: Optional[str] = None


@router.post("/messages")
async def capture_message(payload: CaptureMessagePayload):
    message = Message(chat_id=payload.chat_id, **payload.message.model_dump())
    return await get_engine().submit_message(payload.chat_id, message, platform=payload.platform)


@router.post("/context")
async def capture_context(payload: CaptureContextPayload):
    metadata = payload.model_dump(exclude_none=True, exclude={"chat_id"})
    return await get_engine().set_active_context(payload.chat_id, metadata)
