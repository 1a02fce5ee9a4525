"""
ChatLens Background Scheduler
=============================
Runs background tasks on a schedule:
  - Retention purge: messages older than ``retention_days`` and idle
    conversation buffers, every ``purge_interval_hours`` (default 24h)

State persisted to CONFIG_DIR/scheduler_state.json so the cadence survives restarts.
"""
import asyncio
import json
import os
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional

logger = logging.getLogger(__name__)

PURGE_INTERVAL_HOURS = 24
PURGE_MIN_INTERVAL_HOURS = 1
CHECK_INTERVAL_SECONDS = 60


def _get_state_path() -> str:
    from chatlens.config import CONFIG_DIR
    return os.path.join(CONFIG_DIR, "scheduler_state.json")


def _load_state() -> dict:
    path = _get_state_path()
    if not os.path.exists(path):
        return {}
    try:
        with open(path) as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}
    except Exception:
        return {}


def _save_state(state: dict):
    path = _get_state_path()
    try:
        with open(path, "w") as f:
            json.dump(state, f, default=str, indent=2)
    except Exception as e:
        logger.error(f"Failed to save scheduler state: {e}")


def _parse_dt(s: Optional[str]) -> Optional[datetime]:
    if not s:
        return None
    try:
        return datetime.fromisoformat(s)
    except Exception:
        return None


def _purge_interval_hours(cfg: dict) -> int:
    store_cfg = cfg.get("store", {}) if isinstance(cfg.get("store"), dict) else {}
    try:
        hours = int(store_cfg.get("purge_interval_hours", PURGE_INTERVAL_HOURS))
    except Exception:
        hours = PURGE_INTERVAL_HOURS
    return max(PURGE_MIN_INTERVAL_HOURS, hours)


def is_purge_due(state: dict, now: datetime, interval_hours: int = PURGE_INTERVAL_HOURS) -> bool:
    last_purge = _parse_dt(state.get("last_retention_purge"))
    return last_purge is None or (now - last_purge) > timedelta(hours=interval_hours)


# ---------------------------------------------------------------------------
# Retention purge
# ---------------------------------------------------------------------------

async def run_retention_purge() -> dict:
    """Drop expired messages and idle conversations from the live engine."""
    logger.info("Running retention purge...")
    from chatlens.engine import get_engine

    result = await get_engine().purge_expired()
    logger.info(
        "Retention purge: removed=%s dropped_chats=%s",
        result.get("removed_messages", 0),
        len(result.get("dropped_chats") or []),
    )
    return result


async def scheduler_loop():
    """Main scheduler loop: runs forever, checks tasks at 1-minute intervals."""
    logger.info("Scheduler started")

    while True:
        try:
            from chatlens.config import load_config

            now = datetime.now(timezone.utc)
            state = _load_state()  # Reload each iteration to pick up external changes
            interval_hours = _purge_interval_hours(load_config())

            if is_purge_due(state, now, interval_hours):
                await run_retention_purge()
                state["last_retention_purge"] = now.isoformat()
                _save_state(state)

        except Exception as e:
            logger.error(f"Scheduler loop error: {e}")

        await asyncio.sleep(CHECK_INTERVAL_SECONDS)


def start_scheduler() -> asyncio.Task:
    """Schedule the scheduler loop on the running event loop."""
    return asyncio.create_task(scheduler_loop())
