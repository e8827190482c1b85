"""
Configuration persistence.
- Prefers writing config.json beside the executable.
- Falls back to user profile when permission is denied.
"""
import json
import os
from typing import Optional

from paths import get_exe_dir

CONFIG_PATH_PRIMARY = os.path.join(get_exe_dir(), "config.json")
CONFIG_PATH_FALLBACK = os.path.join(os.path.expanduser("~"), "LanPromptBridge_config.json")
CONFIG_PATH_IN_USE = CONFIG_PATH_PRIMARY

VARIANTS = ("standalone", "editor")
REPLY_MODES = ("inline", "command")

# Runtime mirrors of config content.
USER_IP: Optional[str] = None
WS_PORT: Optional[int] = None
WORKSPACE: Optional[str] = None
REPLY_MODE: str = "inline"
VARIANT: str = "standalone"
CONFIG_DATA: dict = {}


def _try_write_json(path: str, data: dict) -> bool:
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        return True
    except Exception:
        return False


def _try_read_json(path: str) -> Optional[dict]:
    try:
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except Exception:
        return None


def _normalize_port(raw) -> Optional[int]:
    try:
        port = int(raw)
    except (TypeError, ValueError):
        return None
    return port if 0 < port < 65536 else None


def _normalize_choice(raw, choices, default: str) -> str:
    value = (raw or "").strip().lower() if isinstance(raw, str) else ""
    return value if value in choices else default


def _apply(data: dict):
    global USER_IP, WS_PORT, WORKSPACE, REPLY_MODE, VARIANT, CONFIG_DATA
    CONFIG_DATA = data
    ip = (data.get("user_ip") or "").strip()
    USER_IP = ip if ip else None
    WS_PORT = _normalize_port(data.get("ws_port"))
    ws = (data.get("workspace") or "").strip()
    WORKSPACE = ws if ws else None
    REPLY_MODE = _normalize_choice(data.get("reply_mode"), REPLY_MODES, "inline")
    VARIANT = _normalize_choice(data.get("variant"), VARIANTS, "standalone")


def load_config():
    """
    Read config at startup.
    Priority:
    1) exe directory config.json
    2) user profile fallback
    3) create defaults when both missing
    """
    global CONFIG_PATH_IN_USE

    for path in (CONFIG_PATH_PRIMARY, CONFIG_PATH_FALLBACK):
        data = _try_read_json(path)
        if isinstance(data, dict):
            _apply(data)
            CONFIG_PATH_IN_USE = path
            print(f"[config] loaded {path}")
            return

    _apply({})
    save_config()
    print(f"[config] created defaults at {CONFIG_PATH_IN_USE}")


def save_config():
    """
    Persist the runtime mirrors to disk.
    Prefer exe directory; fall back to user profile when blocked.
    """
    global CONFIG_PATH_IN_USE
    data = dict(CONFIG_DATA) if isinstance(CONFIG_DATA, dict) else {}
    data["user_ip"] = USER_IP
    data["ws_port"] = WS_PORT
    data["workspace"] = WORKSPACE
    data["reply_mode"] = REPLY_MODE
    data["variant"] = VARIANT

    if _try_write_json(CONFIG_PATH_PRIMARY, data):
        CONFIG_PATH_IN_USE = CONFIG_PATH_PRIMARY
        return True

    if _try_write_json(CONFIG_PATH_FALLBACK, data):
        CONFIG_PATH_IN_USE = CONFIG_PATH_FALLBACK
        return True

    print("[config] unable to write config file")
    return False
