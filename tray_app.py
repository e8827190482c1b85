"""System tray menu actions."""
import os
import time

import pyperclip
import pystray
from PIL import Image, ImageDraw
from pystray import MenuItem as item

from notifier import APP_NAME, notify, set_tray_icon, tray_title
from settings import CLIPBOARD_DEDUP_SEC

CLIPBOARD_LAST_TEXT = ""
CLIPBOARD_LAST_TIME = 0.0
RELAY = None
GET_URLS = None


def _make_icon() -> Image.Image:
    img = Image.new("RGB", (64, 64), "#1f6feb")
    draw = ImageDraw.Draw(img)
    draw.rounded_rectangle((18, 8, 46, 56), radius=6, outline="white", width=4)
    draw.ellipse((28, 44, 36, 52), fill="white")
    return img


def tray_send_clipboard_reply(icon, _):
    """Relay the desktop clipboard (usually a copied agent answer) to the phone."""
    global CLIPBOARD_LAST_TEXT, CLIPBOARD_LAST_TIME

    try:
        text = (pyperclip.paste() or "").strip()
    except Exception as e:
        print(f"[clipboard] read failed: {e}")
        text = ""
    if not text:
        notify("Send reply", "Clipboard is empty or unreadable")
        return

    now = time.time()
    if text == CLIPBOARD_LAST_TEXT and (now - CLIPBOARD_LAST_TIME) < CLIPBOARD_DEDUP_SEC:
        return

    CLIPBOARD_LAST_TEXT = text
    CLIPBOARD_LAST_TIME = now

    if RELAY and RELAY.send_agent_output(text):
        notify("Send reply", "Reply sent to the phone")
    else:
        notify("Send reply failed", "Bridge is not running")


def tray_show_urls(icon, _):
    if not GET_URLS:
        return
    ws_url, web_url = GET_URLS()
    notify("Connect your phone", web_url or ws_url)
    icon.title = tray_title()


def tray_quit(icon, _):
    notify("Quit", f"{APP_NAME} stopped")
    icon.stop()
    os._exit(0)


def run_tray(relay, get_urls):
    global RELAY, GET_URLS
    RELAY = relay
    GET_URLS = get_urls
    menu = (
        item("Send clipboard as reply", tray_send_clipboard_reply, default=True),
        item("Show connection URL", tray_show_urls),
        item("Quit", tray_quit),
    )
    tray_icon = pystray.Icon("LanPromptBridge", _make_icon(), tray_title(), menu)
    set_tray_icon(tray_icon)
    tray_icon.run()
