import logging
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from chatlens.engine import get_engine

router = APIRouter(prefix="/api/v1", tags=["query"])
logger = logging.getLogger(__name__)


class QueryPayload(BaseModel):
    task: str
    chat_id: Optional[str] = None


@router.post("/query")
async def run_query(payload: QueryPayload):
    return await get_engine().query(payload.task, payload.chat_id)


@router.post("/analyze")
async def run_analysis(payload: QueryPayload):
    return await get_engine().analyze(payload.task, payload.chat_id)


@router.get("/context")
async def get_context():
    return get_engine().get_context()


@router.get("/messages/count")
async def get_message_count(chat_id: Optional[str] = None):
    return get_engine().message_count(chat_id)
