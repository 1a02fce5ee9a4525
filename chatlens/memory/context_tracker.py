from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from chatlens.memory.schema import ConversationContext, Platform

logger = logging.getLogger(__name__)

# Capture dedup cache bound; oldest ids are forgotten first.
_MAX_SEEN_IDS = 5000


def _normalize_platform(value: Any) -> Platform:
    if isinstance(value, Platform):
        return value
    raw = str(value or "").strip().lower()
    aliases = {"wa": "whatsapp", "tg": "telegram"}
    try:
        return Platform(aliases.get(raw, raw))
    except ValueError:
        return Platform.WHATSAPP


class ContextTracker:
    """Owns the single active conversation and the capture dedup cache."""

    def __init__(self):
        self._active: Optional[ConversationContext] = None
        self._known: Dict[str, ConversationContext] = {}
        self._seen_ids: Dict[str, None] = {}

    @property
    def active_chat_id(self) -> Optional[str]:
        return self._active.chat_id if self._active else None

    def set_context(self, chat_id: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
        """Activate ``chat_id``. Returns True when this was a switch to a different conversation."""
        meta = metadata or {}
        key = str(chat_id or "").strip()
        if not key:
            logger.debug("Ignoring context update without chat id")
            return False

        if self._active is not None and self._active.chat_id == key:
            if "title" in meta and meta.get("title") is not None:
                self._active.title = str(meta.get("title"))
            if "platform" in meta and meta.get("platform") is not None:
                self._active.platform = _normalize_platform(meta.get("platform"))
            self._known[key] = self._active
            return False

        previous = self.active_chat_id
        self._active = ConversationContext(
            chat_id=key,
            platform=_normalize_platform(meta.get("platform")),
            title=str(meta.get("title") or ""),
        )
        self._known[key] = self._active
        self._seen_ids.clear()
        logger.info("Switching active chat: %s -> %s", previous, key)
        return True

    def get_context(self) -> Optional[ConversationContext]:
        return self._active

    def context_for(self, chat_id: Optional[str]) -> Optional[ConversationContext]:
        return self._known.get(str(chat_id or "").strip())

    def remember(self, message_id: str) -> bool:
        """Record a captured message id. False when it was already seen since the last switch."""
        if message_id in self._seen_ids:
            return False
        self._seen_ids[message_id] = None
        if len(self._seen_ids) > _MAX_SEEN_IDS:
            self._seen_ids.pop(next(iter(self._seen_ids)))
        return True

    def forget(self, message_id: str) -> None:
        """Drop an id from the capture cache so a failed capture can be retried."""
        self._seen_ids.pop(message_id, None)
