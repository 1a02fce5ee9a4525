from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Platform(str, Enum):
    WHATSAPP = "whatsapp"
    TELEGRAM = "telegram"


class KeyPointType(str, Enum):
    ASSIGNMENT = "assignment"
    TECHNICAL_ISSUE = "technical_issue"
    QUESTION = "question"
    RESPONSE = "response"
    OTHER = "other"


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    sender: str
    timestamp: int  # epoch millis
    chat_id: str
    reply_to: Optional[str] = None


class ConversationContext(BaseModel):
    chat_id: str
    platform: Platform = Platform.WHATSAPP
    title: str = ""


class KeyPoint(BaseModel):
    type: KeyPointType
    text: str
    sender: str
    reply_to: Optional[str] = None
    context: Dict[str, Optional[str]] = Field(default_factory=dict)
    is_response: bool = False
    chat_context: Optional[ConversationContext] = None


class Group(BaseModel):
    main_point: KeyPoint
    points: List[KeyPoint] = Field(default_factory=list)

    @property
    def responses(self) -> List[KeyPoint]:
        return [p for p in self.points if p.is_response]
