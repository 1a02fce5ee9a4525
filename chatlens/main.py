from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import asyncio
import logging

from chatlens.config import DEFAULT_CONFIG, load_config
from chatlens.engine import get_engine
from chatlens.routers import capture, query, settings

logger = logging.getLogger(__name__)

VERSION = "0.1.0"

app = FastAPI(title="ChatLens API", version=VERSION)

_scheduler_task: asyncio.Task | None = None


def _cors_origins_from_config() -> list[str]:
    defaults = list(DEFAULT_CONFIG["server"]["cors_origins"])
    try:
        cfg = load_config()
        server_cfg = cfg.get("server", {}) if isinstance(cfg.get("server"), dict) else {}
        configured = server_cfg.get("cors_origins")
        if isinstance(configured, list):
            origins = [str(v or "").strip() for v in configured if str(v or "").strip()]
            return origins or defaults
    except Exception as e:
        logger.warning(f"Could not read CORS origins from config: {e}")
    return defaults


# ─── CORS ───────────────────────────────────────────────────────────────────
# The capture layer runs inside the chat web apps; the UI is served locally.
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins_from_config(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Startup / Shutdown ───────────────────────────────────────────────────────
@app.on_event("startup")
async def startup_event():
    global _scheduler_task

    # 1. Load config (writes defaults on first launch)
    load_config(force_reload=True)

    # 2. Build the engine (store, context tracker, per-conversation queue)
    engine = get_engine()
    logger.info(
        "Engine ready: max_messages_per_chat=%s retention_days=%s",
        engine.store.max_messages_per_chat,
        engine.retention_days,
    )

    # 3. Start asyncio scheduler (retention purge)
    from chatlens.scheduler import start_scheduler
    _scheduler_task = start_scheduler()


@app.on_event("shutdown")
async def shutdown_event():
    global _scheduler_task
    if _scheduler_task is not None:
        _scheduler_task.cancel()
        _scheduler_task = None
    get_engine().queue.shutdown()


# ─── Routers ──────────────────────────────────────────────────────────────────
app.include_router(capture.router)
app.include_router(query.router)
app.include_router(settings.router)


# ─── Health Endpoint ──────────────────────────────────────────────────────────
@app.get("/health")
async def health():
    engine = get_engine()
    return {
        "status": "ok",
        "version": VERSION,
        "conversations": len(engine.store.chat_ids()),
        "active_chat_id": engine.tracker.active_chat_id,
    }
