import logging
import os

import uvicorn

from chatlens.config import load_config


def _log_level(cfg: dict) -> str:
    level = str(os.environ.get("CHATLENS_LOG_LEVEL") or cfg.get("log_level") or "INFO").strip().upper()
    return level if level in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL") else "INFO"


if __name__ == "__main__":
    cfg = load_config()
    level = _log_level(cfg)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    server_cfg = cfg.get("server", {}) if isinstance(cfg.get("server"), dict) else {}
    port = int(os.environ.get("CHATLENS_PORT", server_cfg.get("port", 7870)))
    # Loopback by default; set CHATLENS_HOST=0.0.0.0 to expose the API
    host = os.environ.get("CHATLENS_HOST", server_cfg.get("host", "127.0.0.1"))

    from chatlens.main import app
    uvicorn.run(app, host=host, port=port, log_level=level.lower())
