"""
ChatLens engine: wires the message store, context tracker and write queue to
the analysis pipeline and returns structured ``{status, ...}`` results.

Every store mutation or read for a conversation goes through that
conversation's write-queue lane, so inserts, queries and purges for the same
chat never interleave.
"""
from __future__ import annotations

import logging
from datetime import datetime
from functools import partial
from typing import Any, Callable, Dict, Optional

import httpx

from chatlens.analysis.query_router import NO_MESSAGES, process_query
from chatlens.insights.service import AIServiceError, build_prompt, generate_answer
from chatlens.memory.context_tracker import ContextTracker
from chatlens.memory.message_store import DEFAULT_MAX_MESSAGES_PER_CHAT, MessageStore
from chatlens.memory.schema import Message
from chatlens.memory.write_queue import ConversationWriteQueue
from chatlens.utils.dates import DAY_MS, today_key

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 7


def _success(**payload: Any) -> Dict[str, Any]:
    return {"status": "success", **payload}


def _error(message: str) -> Dict[str, Any]:
    return {"status": "error", "error": message}


def _default_ai_config() -> dict:
    from chatlens.config import load_config

    cfg = load_config()
    return cfg.get("ai", {}) if isinstance(cfg.get("ai"), dict) else {}


class ChatEngine:
    def __init__(
        self,
        *,
        store: Optional[MessageStore] = None,
        tracker: Optional[ContextTracker] = None,
        queue: Optional[ConversationWriteQueue] = None,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        ai_config_loader: Optional[Callable[[], dict]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.store = store or MessageStore(DEFAULT_MAX_MESSAGES_PER_CHAT)
        self.tracker = tracker or ContextTracker()
        self.queue = queue or ConversationWriteQueue()
        self.retention_days = max(1, int(retention_days))
        self._ai_config_loader = ai_config_loader or _default_ai_config
        self._http_client = http_client

    @classmethod
    def from_config(cls, cfg: dict) -> "ChatEngine":
        store_cfg = cfg.get("store", {}) if isinstance(cfg.get("store"), dict) else {}
        queue_cfg = cfg.get("capture_queue", {}) if isinstance(cfg.get("capture_queue"), dict) else {}
        return cls(
            store=MessageStore(int(store_cfg.get("max_messages_per_chat", DEFAULT_MAX_MESSAGES_PER_CHAT))),
            queue=ConversationWriteQueue(
                max_pending=int(queue_cfg.get("max_pending", 500)),
                overflow=str(queue_cfg.get("overflow") or "drop_oldest"),
            ),
            retention_days=int(store_cfg.get("retention_days", DEFAULT_RETENTION_DAYS)),
        )

    # ── capture side ─────────────────────────────────────────────────────────

    async def submit_message(
        self,
        chat_id: str,
        message: Message,
        *,
        platform: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        key = str(chat_id or "").strip()
        if key != self.tracker.active_chat_id:
            logger.info(f"Message from different chat ignored: chat={key} active={self.tracker.active_chat_id}")
            return _success()
        if platform:
            # Same chat id, so this only refreshes metadata.
            self.tracker.set_context(key, {"platform": platform})
        if not self.tracker.remember(message.id):
            logger.debug(f"Message already captured: {message.id}")
            return _success()

        captured_at = now or datetime.now()
        accepted = self.queue.submit(
            key,
            partial(self.store.add_message, key, message, now=captured_at),
            on_dropped=partial(self.tracker.forget, message.id),
        )
        if not accepted:
            self.tracker.forget(message.id)
            return _error("capture queue full")
        return _success()

    async def set_active_context(self, chat_id: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        switched = self.tracker.set_context(chat_id, metadata or {})
        return _success(switched=switched)

    # ── UI side ──────────────────────────────────────────────────────────────

    def _resolve_chat(self, chat_id: Optional[str]) -> str:
        return str(chat_id or "").strip() or str(self.tracker.active_chat_id or "")

    def _has_messages(self, key: str) -> bool:
        # Pending captures count; unknown chats never get a lane.
        return self.store.message_count(key) > 0 or self.queue.pending(key) > 0

    async def query(self, task: str, chat_id: Optional[str] = None, *, now: Optional[datetime] = None) -> Dict[str, Any]:
        key = self._resolve_chat(chat_id)
        if not key or not self._has_messages(key):
            return _success(response=NO_MESSAGES)
        try:
            response = await self.queue.enqueue(
                key,
                partial(process_query, task, key, store=self.store, tracker=self.tracker, now=now),
            )
        except Exception as e:
            logger.exception("Query processing failed")
            return _error(f"Failed to process query: {e}")
        return _success(response=response)

    async def analyze(self, task: str, chat_id: Optional[str] = None, *, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Forward an open-ended prompt plus today's transcript to the generative-AI provider."""
        key = self._resolve_chat(chat_id)
        context = self.tracker.context_for(key)
        title = context.title if context and context.title else "this chat"

        messages = []
        if key and self._has_messages(key):
            messages = await self.queue.enqueue(key, partial(self.store.get_messages, key, today_key(now)))
        if not messages:
            return _success(
                response=f"No messages available for analysis in current chat: {title}. "
                "Please wait for some messages to be captured."
            )

        logger.info(f"Analyzing {len(messages)} messages from {title}")
        prompt = build_prompt(task, messages, title, now=now)
        try:
            answer = await generate_answer(prompt, self._ai_config_loader(), client=self._http_client)
        except AIServiceError as e:
            logger.warning(f"AI analysis failed: {e}")
            return _error(str(e))
        except Exception as e:
            logger.exception("AI analysis failed unexpectedly")
            return _error(f"Failed to generate insight: {e}")
        return _success(response=answer)

    def get_context(self) -> Dict[str, Any]:
        context = self.tracker.get_context()
        return _success(context=context.model_dump(mode="json") if context else None)

    def message_count(self, chat_id: Optional[str] = None) -> Dict[str, Any]:
        return _success(count=self.store.message_count(self._resolve_chat(chat_id)))

    # ── maintenance ──────────────────────────────────────────────────────────

    async def purge_expired(self, *, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Retention sweep: old messages and idle conversations, one lane at a time."""
        window_ms = self.retention_days * DAY_MS
        removed = 0
        dropped_chats = []
        for chat in self.store.chat_ids():
            removed += await self.queue.enqueue(
                chat, partial(self.store.purge_older_than, window_ms, chat_id=chat, now=now)
            )
            dropped = await self.queue.enqueue(
                chat, partial(self.store.purge_inactive, window_ms, chat_id=chat, now=now)
            )
            dropped_chats.extend(dropped)

        live = set(self.store.chat_ids())
        for chat in self.queue.chat_ids():
            if chat not in live and self.queue.pending(chat) == 0:
                self.queue.close_lane(chat)
        logger.info(f"Retention purge complete: removed={removed} dropped_chats={len(dropped_chats)}")
        return _success(removed_messages=removed, dropped_chats=dropped_chats)


_engine: Optional[ChatEngine] = None


def get_engine() -> ChatEngine:
    global _engine
    if _engine is None:
        from chatlens.config import load_config

        _engine = ChatEngine.from_config(load_config())
    return _engine


def reset_engine(engine: Optional[ChatEngine] = None):
    global _engine
    if _engine is not None:
        _engine.queue.shutdown()
    _engine = engine
