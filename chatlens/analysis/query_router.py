"""
Maps a free-text analysis request to a date bucket and an output mode.

Routing is substring based and case-insensitive; ``ROUTE_RULES`` is checked in
order, so "sentiment for today" runs the sentiment analyzer.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from chatlens.analysis.classifier import extract_key_points
from chatlens.analysis.report import format_report
from chatlens.analysis.sentiment import analyze_sentiment
from chatlens.memory.context_tracker import ContextTracker
from chatlens.memory.message_store import MessageStore
from chatlens.utils.dates import today_key, yesterday_key

logger = logging.getLogger(__name__)

MODE_SENTIMENT = "sentiment"
MODE_SUMMARY = "summary"

PERIOD_TODAY = "today"
PERIOD_YESTERDAY = "yesterday"
PERIOD_LATEST = "latest"

NO_MESSAGES = "No messages found in the current chat."


@dataclass(frozen=True)
class QueryRoute:
    mode: str
    period: str


# (keyword, route); the fallback route applies when no keyword matches.
ROUTE_RULES = (
    ("sentiment", QueryRoute(MODE_SENTIMENT, PERIOD_TODAY)),
    ("today", QueryRoute(MODE_SUMMARY, PERIOD_TODAY)),
    ("yesterday", QueryRoute(MODE_SUMMARY, PERIOD_YESTERDAY)),
)
FALLBACK_ROUTE = QueryRoute(MODE_SUMMARY, PERIOD_LATEST)


def resolve_route(task: str) -> QueryRoute:
    lowered = str(task or "").lower()
    for keyword, route in ROUTE_RULES:
        if keyword in lowered:
            return route
    return FALLBACK_ROUTE


def process_query(
    task: str,
    chat_id: Optional[str],
    *,
    store: MessageStore,
    tracker: ContextTracker,
    now: Optional[datetime] = None,
) -> str:
    buckets = store.bucket_by_date(chat_id)
    if not buckets:
        return NO_MESSAGES

    chat_context = tracker.context_for(chat_id)
    title = chat_context.title if chat_context and chat_context.title else "this chat"
    route = resolve_route(task)
    logger.debug("Routing query for chat=%s to %s/%s", chat_id, route.mode, route.period)

    if route.period == PERIOD_TODAY:
        today = today_key(now)
        messages = buckets.get(today) or []
        if not messages:
            return f"No messages found for today ({today}) in {title}."
        if route.mode == MODE_SENTIMENT:
            return analyze_sentiment(messages, chat_context)
        return format_report(extract_key_points(messages, chat_context), "today")

    if route.period == PERIOD_YESTERDAY:
        yesterday = yesterday_key(now)
        messages = buckets.get(yesterday) or []
        if not messages:
            return f"No messages found for yesterday ({yesterday})."
        return format_report(extract_key_points(messages, chat_context), "yesterday")

    latest = next(reversed(buckets))
    return format_report(extract_key_points(buckets[latest], chat_context), latest)
