# chatlens/memory/write_queue.py
import asyncio
import inspect
import logging
from functools import partial
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

OVERFLOW_DROP_OLDEST = "drop_oldest"
OVERFLOW_REJECT_NEW = "reject_new"
OVERFLOW_POLICIES = {OVERFLOW_DROP_OLDEST, OVERFLOW_REJECT_NEW}

Operation = Callable[[], Any]  # may return a value or an awaitable


class QueueOverflowError(RuntimeError):
    pass


class _Lane:
    """One bounded queue plus the single worker that drains it."""

    def __init__(self, chat_id: str, maxsize: int):
        self.chat_id = chat_id
        self.loop = asyncio.get_running_loop()
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.task = asyncio.create_task(self._worker(), name=f"chatlens-lane-{chat_id}")

    def usable(self) -> bool:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            return False
        return running is self.loop and not self.task.done()

    async def _worker(self):
        """Processes operations for this conversation sequentially."""
        while True:
            operation, future = await self.queue.get()
            try:
                if future.cancelled():
                    continue
                result = operation()
                if inspect.isawaitable(result):
                    result = await result
                if not future.done():
                    future.set_result(result)
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            finally:
                self.queue.task_done()


def _log_unobserved_failure(future: asyncio.Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.warning(f"Queued capture operation failed: {exc}")


def _notify_if_dropped(callback: Callable[[], Any], future: asyncio.Future) -> None:
    if not future.cancelled() and isinstance(future.exception(), QueueOverflowError):
        callback()


class ConversationWriteQueue:
    """Serializes every operation per conversation id.

    ``enqueue`` awaits the operation's result; ``submit`` is fire-and-forget and
    applies the overflow policy when the lane is full instead of blocking.
    """

    def __init__(self, max_pending: int = 500, overflow: str = OVERFLOW_DROP_OLDEST):
        self.max_pending = max(1, int(max_pending))
        self.overflow = overflow if overflow in OVERFLOW_POLICIES else OVERFLOW_DROP_OLDEST
        self._lanes: dict[str, _Lane] = {}

    def _lane_for(self, chat_id: str) -> _Lane:
        key = str(chat_id or "")
        lane = self._lanes.get(key)
        if lane is None or not lane.usable():
            lane = _Lane(key, self.max_pending)
            self._lanes[key] = lane
        return lane

    async def enqueue(self, chat_id: str, operation: Operation) -> Any:
        """Submit an operation and await its result."""
        lane = self._lane_for(chat_id)
        future = lane.loop.create_future()
        await lane.queue.put((operation, future))
        return await future

    def submit(
        self,
        chat_id: str,
        operation: Operation,
        on_dropped: Callable[[], Any] | None = None,
    ) -> bool:
        """Queue an operation without waiting. Returns False when it was rejected.

        ``on_dropped`` runs if an accepted operation is later evicted by ``drop_oldest``.
        """
        lane = self._lane_for(chat_id)
        future = lane.loop.create_future()
        future.add_done_callback(_log_unobserved_failure)
        if on_dropped is not None:
            future.add_done_callback(partial(_notify_if_dropped, on_dropped))

        if lane.queue.full():
            if self.overflow == OVERFLOW_REJECT_NEW:
                logger.warning(f"Capture queue full for chat={chat_id}; rejecting new request")
                future.cancel()
                return False
            _, dropped = lane.queue.get_nowait()
            lane.queue.task_done()
            if not dropped.done():
                dropped.set_exception(QueueOverflowError(f"Dropped oldest pending request for chat={chat_id}"))
            logger.warning(f"Capture queue full for chat={chat_id}; dropped oldest pending request")

        lane.queue.put_nowait((operation, future))
        return True

    async def drain(self, chat_id: str | None = None):
        """Wait until pending operations (for one chat or all chats) are processed."""
        if chat_id is None:
            lanes = list(self._lanes.values())
        else:
            lanes = [self._lanes[chat_id]] if chat_id in self._lanes else []
        for lane in lanes:
            if lane.usable():
                await lane.queue.join()

    def pending(self, chat_id: str) -> int:
        lane = self._lanes.get(str(chat_id or ""))
        return lane.queue.qsize() if lane else 0

    def chat_ids(self) -> list[str]:
        return list(self._lanes.keys())

    def close_lane(self, chat_id: str):
        lane = self._lanes.pop(str(chat_id or ""), None)
        if lane is not None and not lane.task.done():
            lane.task.cancel()

    def shutdown(self):
        for chat_id in list(self._lanes.keys()):
            self.close_lane(chat_id)
