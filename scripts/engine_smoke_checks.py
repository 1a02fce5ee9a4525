#!/usr/bin/env python3
from __future__ import annotations

import asyncio
import json
import os
import sys
import tempfile
from datetime import datetime, timedelta

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
REPO_ROOT = os.path.dirname(SCRIPT_DIR)
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

os.environ.setdefault("CHATLENS_APPDATA_DIR", tempfile.mkdtemp(prefix="chatlens-smoke-"))

from chatlens.engine import ChatEngine
from chatlens.memory.schema import Message
from chatlens.utils.dates import now_ms


def _assert(condition: bool, message: str) -> None:
    if not condition:
        raise AssertionError(message)


def _message(msg_id: str, text: str, sender: str, at: datetime) -> Message:
    return Message(id=msg_id, text=text, sender=sender, timestamp=now_ms(at), chat_id="c1")


async def _scenario() -> dict:
    now = datetime.now().replace(microsecond=0)
    engine = ChatEngine()
    try:
        await engine.set_active_context("c1", {"title": "Smoke Chat", "platform": "whatsapp"})
        await engine.submit_message(
            "c1", _message("1", "Can someone help with assignment 2, getting a value error", "Ann", now), now=now
        )
        await engine.submit_message(
            "c1", _message("2", "@Ann try checking your imports", "Bob", now + timedelta(seconds=1)), now=now
        )
        # Duplicate capture must not create a second copy.
        await engine.submit_message(
            "c1", _message("2", "@Ann try checking your imports", "Bob", now + timedelta(seconds=1)), now=now
        )
        today = await engine.query("today", now=now)
        sentiment = await engine.query("sentiment", now=now)
        count = engine.message_count("c1")
    finally:
        engine.queue.shutdown()
    return {"today": today, "sentiment": sentiment, "count": count}


def run() -> int:
    results = asyncio.run(_scenario())

    # 1) End-to-end capture -> categorized report with the reply attached.
    today = results["today"]
    _assert(today.get("status") == "success", f"query failed: {today}")
    report = str(today.get("response") or "")
    _assert("**Assignment Updates:**" in report, "assignment precedence regression")
    _assert("* [Ann]" in report and "\n  → Bob" in report, "reply grouping regression")

    # 2) Dedup keeps exactly one copy per message id.
    _assert(results["count"].get("count") == 2, f"dedup regression: {results['count']}")

    # 3) Sentiment mode renders an overall label.
    sentiment = str(results["sentiment"].get("response") or "")
    _assert("**Overall Sentiment:**" in sentiment, "sentiment report missing label")

    print(json.dumps({"status": "ok", "checks": 3}, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(run())
    except Exception as exc:
        print(json.dumps({"status": "error", "error": str(exc)}, ensure_ascii=False))
        raise SystemExit(1)
