"""Desktop notifications (tray balloon + Windows toast) and the connection sideband."""
import threading
from typing import Optional

import protocol

try:
    from winotify import Notification

    WINOTIFY_AVAILABLE = True
except Exception:
    WINOTIFY_AVAILABLE = False

APP_NAME = "LAN Prompt Bridge"

tray_icon = None  # injected by tray module
_connection_state = protocol.connection_status(False)


def set_tray_icon(icon) -> None:
    """Allow other modules to trigger tray balloons."""
    global tray_icon
    tray_icon = icon


def notify(title: str, msg: str) -> None:
    """Print, fire tray balloon and optional Windows toast without raising."""
    print(f"[notify] {title}: {msg}")

    try:
        if tray_icon:
            tray_icon.notify(msg, title)
    except Exception:
        pass

    if not WINOTIFY_AVAILABLE:
        return

    def _toast():
        try:
            toast = Notification(app_id=APP_NAME, title=title, msg=msg, duration="short")
            toast.show()
        except Exception:
            pass

    threading.Thread(target=_toast, daemon=True).start()


def on_connection_change(connected: bool) -> None:
    """Transport listener: remember the UI sideband state and tell the user."""
    global _connection_state
    _connection_state = protocol.connection_status(connected)
    if connected:
        notify("Phone connected", "Staged text will be mirrored into the focused input")
    else:
        notify("Phone disconnected", "Waiting for the phone to reconnect")


def connection_state() -> dict:
    return dict(_connection_state)


def tray_title(base: Optional[str] = None) -> str:
    suffix = "connected" if _connection_state.get("connected") else "waiting"
    return f"{base or APP_NAME} ({suffix})"
