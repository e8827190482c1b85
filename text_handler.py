"""Legacy `text`/`image` insertion with deduplication and a three-tier fallback."""
import time

from automation import InputSurface
from image_store import ImageStore
from protocol import now_ms
from session_state import image_markdown
from settings import SERVER_DEDUP_WINDOW_SEC

TIER_PASTE = "paste"
TIER_TYPED = "typed"
TIER_SIDE_FILE = "side_file"
TIER_DEDUP = "dedup"

_last_msg = ""
_last_time = 0.0
_last_mode = ""


def server_dedup(text: str, mode: str = "text") -> bool:
    """Drop duplicate messages within a short window."""
    global _last_msg, _last_time, _last_mode
    now = time.time()
    if text == _last_msg and mode == _last_mode and (now - _last_time) < SERVER_DEDUP_WINDOW_SEC:
        return True
    _last_msg = text
    _last_mode = mode
    _last_time = now
    return False


def reset_dedup():
    global _last_msg, _last_time, _last_mode
    _last_msg = ""
    _last_time = 0.0
    _last_mode = ""


async def insert_content(surface: InputSurface, store: ImageStore, content: str) -> str:
    """
    Best effort, in order:
    1) clipboard + paste
    2) type the text directly
    3) append to the workspace side file
    Returns the tier that took the content.
    """
    try:
        await surface.write_clipboard(content)
        await surface.paste()
        return TIER_PASTE
    except Exception as e:
        print(f"[legacy] paste failed, typing instead: {e}")

    try:
        await surface.type_text(content)
        return TIER_TYPED
    except Exception as e:
        print(f"[legacy] typing failed, writing side file: {e}")

    path = store.append_side_file(content)
    print(f"[legacy] content appended to {path}")
    return TIER_SIDE_FILE


async def handle_legacy_text(surface: InputSurface, store: ImageStore, text: str) -> str:
    text = (text or "").strip()
    if not text:
        return TIER_DEDUP
    if server_dedup(text, mode="text"):
        print("[legacy] duplicate text dropped:", text[:50])
        return TIER_DEDUP
    return await insert_content(surface, store, text)


async def handle_legacy_image(surface: InputSurface, store: ImageStore, data: str, mime_type: str) -> str:
    ref = store.save(str(now_ms()), data, mime_type)
    return await insert_content(surface, store, image_markdown(ref))
