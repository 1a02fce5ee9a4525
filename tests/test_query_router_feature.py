from datetime import datetime, timedelta

from chatlens.analysis.query_router import (
    FALLBACK_ROUTE,
    MODE_SENTIMENT,
    MODE_SUMMARY,
    NO_MESSAGES,
    PERIOD_TODAY,
    PERIOD_YESTERDAY,
    process_query,
    resolve_route,
)
from chatlens.memory.context_tracker import ContextTracker
from chatlens.memory.message_store import MessageStore
from chatlens.memory.schema import Message
from chatlens.utils.dates import now_ms

NOW = datetime(2026, 3, 10, 12, 0, 0)


def _setup(title="Python Batch"):
    store = MessageStore()
    tracker = ContextTracker()
    tracker.set_context("c1", {"title": title})
    return store, tracker


def _add(store, msg_id, text, sender, at=NOW, captured=NOW):
    message = Message(id=str(msg_id), text=text, sender=sender, timestamp=now_ms(at), chat_id="c1")
    store.add_message("c1", message, now=captured)


def test_route_resolution_is_ordered_and_case_insensitive():
    assert resolve_route("Sentiment for TODAY").mode == MODE_SENTIMENT
    assert resolve_route("summarize Today").period == PERIOD_TODAY
    route = resolve_route("what happened yesterday")
    assert (route.mode, route.period) == (MODE_SUMMARY, PERIOD_YESTERDAY)
    assert resolve_route("anything new") == FALLBACK_ROUTE


def test_no_messages_at_all():
    store, tracker = _setup()
    assert process_query("today", "c1", store=store, tracker=tracker, now=NOW) == NO_MESSAGES
    assert process_query("today", "unknown", store=store, tracker=tracker, now=NOW) == NO_MESSAGES


def test_today_on_empty_bucket_names_the_date():
    store, tracker = _setup()
    earlier = NOW - timedelta(days=2)
    _add(store, 1, "old news", "Ann", at=earlier, captured=earlier)

    response = process_query("today", "c1", store=store, tracker=tracker, now=NOW)

    assert response == "No messages found for today (10/03/2026) in Python Batch."


def test_sentiment_on_empty_today_bucket():
    store, tracker = _setup()
    earlier = NOW - timedelta(days=2)
    _add(store, 1, "old news", "Ann", at=earlier, captured=earlier)

    response = process_query("sentiment", "c1", store=store, tracker=tracker, now=NOW)

    assert response.startswith("No messages found for today (10/03/2026)")


def test_yesterday_summary_and_fallback():
    store, tracker = _setup()
    yesterday = NOW - timedelta(days=1)
    assert process_query("yesterday", "c1", store=store, tracker=tracker, now=NOW) == NO_MESSAGES

    _add(store, 1, "Good morning", "Ann")
    empty = process_query("yesterday", "c1", store=store, tracker=tracker, now=NOW)
    assert empty == "No messages found for yesterday (09/03/2026)."

    _add(store, 2, "Assignment 1 is out", "Bob", at=yesterday, captured=yesterday)
    report = process_query("yesterday", "c1", store=store, tracker=tracker, now=NOW)
    assert "key action items from yesterday" in report
    assert "* [Bob] Assignment 1 is out" in report
    assert "Good morning" not in report


def test_fallback_uses_most_recent_date_bucket():
    store, tracker = _setup()
    feb = datetime(2026, 2, 28, 9, 0)
    _add(store, 1, "February chatter", "Ann", at=feb, captured=feb)
    _add(store, 2, "March chatter", "Bob")

    report = process_query("catch me up", "c1", store=store, tracker=tracker, now=NOW)

    assert "key action items from 10/03/2026" in report
    assert "March chatter" in report
    assert "February chatter" not in report


def test_sentiment_with_only_technical_issues():
    store, tracker = _setup()
    _add(store, 1, "paint is not working", "Ann")
    _add(store, 2, "same error here", "Bob", at=NOW + timedelta(seconds=5))

    response = process_query("sentiment", "c1", store=store, tracker=tracker, now=NOW)

    assert "**Overall Sentiment:** Mixed to Concerned" in response


def test_today_report_groups_reply_under_question():
    store, tracker = _setup()
    _add(store, "1", "Can someone help with assignment 2, getting a value error", "Ann")
    _add(store, "2", "@Ann try checking your imports", "Bob", at=NOW + timedelta(seconds=1))

    report = process_query("today", "c1", store=store, tracker=tracker, now=NOW)

    assert report.startswith("Chat: Python Batch\nHere's a breakdown of the key action items from today:")
    assert "**Assignment Updates:**" in report
    assert "* [Ann] Can someone help with assignment 2, getting a value error\n  → Bob" in report
    assert "**Technical Issues:**" not in report
