"""
In-memory message store.

Holds one ordered buffer per conversation and enforces the acceptance rules
for new inserts:
  - duplicate ids within a conversation are ignored
  - only messages dated on the capture day are accepted
  - buffers are capped; overflow trims the oldest entries first

Reads never raise: an unknown or empty chat id simply has no messages.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Dict, List, Optional

from chatlens.memory.schema import Message
from chatlens.utils.dates import date_key, now_ms, parse_date_key, today_key

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGES_PER_CHAT = 1000


def _chat_key(chat_id: Optional[str]) -> str:
    return str(chat_id or "").strip()


class MessageStore:
    def __init__(self, max_messages_per_chat: int = DEFAULT_MAX_MESSAGES_PER_CHAT):
        self.max_messages_per_chat = max(1, int(max_messages_per_chat))
        self._buffers: Dict[str, List[Message]] = {}
        self._ids: Dict[str, set[str]] = {}
        self._last_seen: Dict[str, int] = {}

    # ── writes ────────────────────────────────────────────────────────────────

    def add_message(self, chat_id: str, message: Message, *, now: Optional[datetime] = None) -> None:
        key = _chat_key(chat_id)
        if not key:
            logger.debug("Message without chat id ignored: %s", message.id)
            return
        if _chat_key(message.chat_id) != key:
            logger.info("Message for another chat ignored: chat=%s message_chat=%s id=%s", key, message.chat_id, message.id)
            return

        capture_day = today_key(now)
        if date_key(message.timestamp) != capture_day:
            logger.info("Message from different date ignored: chat=%s id=%s", key, message.id)
            return

        ids = self._ids.setdefault(key, set())
        if message.id in ids:
            logger.info("Duplicate message ignored: chat=%s id=%s", key, message.id)
            return

        buffer = self._buffers.setdefault(key, [])
        buffer.append(message)
        ids.add(message.id)
        self._last_seen[key] = now_ms(now)

        overflow = len(buffer) - self.max_messages_per_chat
        if overflow > 0:
            for evicted in buffer[:overflow]:
                ids.discard(evicted.id)
            del buffer[:overflow]
            logger.debug("Trimmed %d oldest messages from chat=%s", overflow, key)

    def _target_keys(self, chat_id: Optional[str]) -> List[str]:
        if chat_id is None:
            return list(self._buffers.keys())
        key = _chat_key(chat_id)
        return [key] if key in self._buffers else []

    def purge_older_than(
        self,
        duration_ms: int,
        *,
        chat_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Drop every message older than ``now - duration_ms``. Returns the number removed.

        Applies to all conversations unless ``chat_id`` narrows it to one.
        """
        cutoff = now_ms(now) - int(duration_ms)
        removed = 0
        for key in self._target_keys(chat_id):
            buffer = self._buffers[key]
            kept = [m for m in buffer if m.timestamp >= cutoff]
            removed += len(buffer) - len(kept)
            if kept:
                self._buffers[key] = kept
                self._ids[key] = {m.id for m in kept}
            else:
                self._drop(key)
        if removed:
            logger.info("Purged %d messages older than %d ms", removed, duration_ms)
        return removed

    def purge_inactive(
        self,
        max_idle_ms: int,
        *,
        chat_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """Drop whole buffers for conversations with no accepted insert in the window."""
        cutoff = now_ms(now) - int(max_idle_ms)
        stale = [key for key in self._target_keys(chat_id) if self._last_seen.get(key, 0) < cutoff]
        for key in stale:
            self._drop(key)
        if stale:
            logger.info("Purged %d inactive conversations", len(stale))
        return stale

    def _drop(self, key: str) -> None:
        self._buffers.pop(key, None)
        self._ids.pop(key, None)
        self._last_seen.pop(key, None)

    # ── reads ─────────────────────────────────────────────────────────────────

    def get_messages(self, chat_id: Optional[str], date_bucket: Optional[str] = None) -> List[Message]:
        buffer = self._buffers.get(_chat_key(chat_id))
        if not buffer:
            return []
        if date_bucket is None:
            return list(buffer)
        wanted = str(date_bucket).strip()
        scoped = [m for m in buffer if date_key(m.timestamp) == wanted]
        scoped.sort(key=lambda m: m.timestamp)
        return scoped

    def bucket_by_date(self, chat_id: Optional[str]) -> "OrderedDict[str, List[Message]]":
        """Messages grouped by calendar date, oldest date first, each bucket timestamp-ordered."""
        buckets: Dict[str, List[Message]] = {}
        for message in self.get_messages(chat_id):
            buckets.setdefault(date_key(message.timestamp), []).append(message)
        ordered: "OrderedDict[str, List[Message]]" = OrderedDict()
        for key in sorted(buckets.keys(), key=parse_date_key):
            ordered[key] = sorted(buckets[key], key=lambda m: m.timestamp)
        return ordered

    def message_count(self, chat_id: Optional[str]) -> int:
        return len(self._buffers.get(_chat_key(chat_id)) or [])

    def chat_ids(self) -> List[str]:
        return list(self._buffers.keys())
