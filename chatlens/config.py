import yaml
import os
import copy
import stat
import logging

logger = logging.getLogger(__name__)

if os.environ.get("CHATLENS_APPDATA_DIR"):
    CONFIG_DIR = os.environ["CHATLENS_APPDATA_DIR"]
elif os.name == 'nt':
    CONFIG_DIR = os.path.join(os.environ['APPDATA'], 'ChatLens')
else:
    CONFIG_DIR = os.path.join(os.path.expanduser('~'), '.chatlens')

if not os.path.exists(CONFIG_DIR):
    os.makedirs(CONFIG_DIR, exist_ok=True)

CONFIG_PATH = os.path.join(CONFIG_DIR, "config.yaml")


def _ensure_private_permissions() -> bool:
    """
    Best-effort permission hardening on POSIX systems (the file may hold an API key):
      - config dir: 700
      - config file: 600
    """
    if os.name == "nt":
        return False
    changed = False
    try:
        if os.path.isdir(CONFIG_DIR):
            mode = stat.S_IMODE(os.stat(CONFIG_DIR).st_mode)
            if mode != 0o700:
                os.chmod(CONFIG_DIR, 0o700)
                changed = True
    except Exception as e:
        logger.debug(f"Could not harden CONFIG_DIR permissions: {e}")
    try:
        if os.path.exists(CONFIG_PATH):
            mode = stat.S_IMODE(os.stat(CONFIG_PATH).st_mode)
            if mode != 0o600:
                os.chmod(CONFIG_PATH, 0o600)
                changed = True
    except Exception as e:
        logger.debug(f"Could not harden CONFIG_PATH permissions: {e}")
    return changed


DEFAULT_CONFIG = {
    "log_level": "INFO",
    "store": {
        "max_messages_per_chat": 1000,
        "retention_days": 7,
        "purge_interval_hours": 24,
    },
    "capture_queue": {
        "max_pending": 500,
        "overflow": "drop_oldest",  # "drop_oldest" | "reject_new"
    },
    "ai": {
        "enabled": True,
        "provider": "gemini",  # "gemini" | "openai" | "ollama"
        "model": "gemini-2.0-flash",
        "api_key": "",
        "api_base_url": "",
        "timeout_seconds": 30,
    },
    "server": {
        "host": "127.0.0.1",
        "port": 7870,
        "cors_origins": [
            "https://web.whatsapp.com",
            "https://web.telegram.org",
            "http://localhost:7870",
            "http://127.0.0.1:7870",
        ],
    },
}

_SECTIONS = ("store", "capture_queue", "ai", "server")

_config_cache = None


def _merge_defaults(original: dict) -> dict:
    # Deep-merge known sections so minimal/legacy configs are still fully usable.
    merged = {**copy.deepcopy(DEFAULT_CONFIG), **original}
    for section in _SECTIONS:
        current = original.get(section)
        merged[section] = {
            **copy.deepcopy(DEFAULT_CONFIG.get(section, {})),
            **(current if isinstance(current, dict) else {}),
        }
    return merged


def load_config(force_reload: bool = False) -> dict:
    global _config_cache
    if _config_cache and not force_reload:
        return _config_cache

    if not os.path.exists(CONFIG_PATH):
        _config_cache = copy.deepcopy(DEFAULT_CONFIG)
        save_config(_config_cache)
        return _config_cache

    with open(CONFIG_PATH, "r") as f:
        loaded = yaml.safe_load(f) or {}

    original = loaded if isinstance(loaded, dict) else {}
    merged = _merge_defaults(original)
    needs_save = merged != original
    _config_cache = merged

    if needs_save:
        try:
            save_config(_config_cache)
        except Exception:
            # Best-effort persistence; runtime config remains usable even if save fails.
            pass
    else:
        _ensure_private_permissions()

    return _config_cache


def save_config(config: dict):
    global _config_cache
    merged = _merge_defaults(config if isinstance(config, dict) else {})
    _config_cache = merged
    with open(CONFIG_PATH, "w") as f:
        yaml.dump(merged, f, default_flow_style=False)
    _ensure_private_permissions()


def _masked(value: str) -> str:
    if not value:
        return ""
    if len(value) <= 6:
        return "*" * len(value)
    return value[:2] + "*" * (len(value) - 4) + value[-2:]


def get_ai_config_public() -> dict:
    cfg = load_config(force_reload=True)
    ai_cfg = cfg.get("ai", {})
    return {**ai_cfg, "api_key": _masked(str(ai_cfg.get("api_key") or ""))}


def update_ai_config(partial: dict) -> dict:
    cfg = load_config(force_reload=True)
    current = cfg.get("ai", {})
    merged = {**current, **{k: v for k, v in (partial or {}).items() if v is not None}}

    api_key = merged.get("api_key")
    if isinstance(api_key, str) and current.get("api_key"):
        current_key = str(current.get("api_key"))
        if (api_key and set(api_key) == {"*"}) or api_key == _masked(current_key):
            merged["api_key"] = current_key

    for key in ("provider", "model", "api_key", "api_base_url"):
        value = merged.get(key)
        if isinstance(value, str):
            merged[key] = value.strip()
    if isinstance(merged.get("provider"), str):
        merged["provider"] = merged["provider"].lower()
    if isinstance(merged.get("api_base_url"), str):
        merged["api_base_url"] = merged["api_base_url"].rstrip("/")
    if "enabled" in merged:
        merged["enabled"] = bool(merged.get("enabled"))

    cfg["ai"] = merged
    save_config(copy.deepcopy(cfg))
    return get_ai_config_public()
