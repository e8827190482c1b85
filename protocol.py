"""Wire message schema: parsing inbound frames and building outbound replies."""
import json
import time
from typing import Optional

# phone -> desktop
SYNC_TEXT = "sync_text"
SYNC_IMAGE_ADD = "sync_image_add"
SYNC_IMAGE_REMOVE = "sync_image_remove"
PASTE_ONLY = "paste_only"
SUBMIT = "submit"
GET_CLIPBOARD = "get_clipboard"
GET_CURRENT_LINE = "get_current_line"
REPLACE_LINE = "replace_line"
LEGACY_TEXT = "text"
LEGACY_IMAGE = "image"

# desktop -> phone
ACK = "ack"
ERROR = "error"
CLIPBOARD_CONTENT = "clipboard_content"
CURRENT_LINE_CONTENT = "current_line_content"
AI_REPLY = "ai_reply"
CONNECTION = "connection"

INBOUND_TYPES = frozenset(
    {
        SYNC_TEXT,
        SYNC_IMAGE_ADD,
        SYNC_IMAGE_REMOVE,
        PASTE_ONLY,
        SUBMIT,
        GET_CLIPBOARD,
        GET_CURRENT_LINE,
        REPLACE_LINE,
        LEGACY_TEXT,
        LEGACY_IMAGE,
        AI_REPLY,
    }
)

# Commands that touch staged content or the physical input surface.
MUTATING_TYPES = frozenset(
    {
        SYNC_TEXT,
        SYNC_IMAGE_ADD,
        SYNC_IMAGE_REMOVE,
        PASTE_ONLY,
        SUBMIT,
        GET_CURRENT_LINE,
        REPLACE_LINE,
        LEGACY_TEXT,
        LEGACY_IMAGE,
    }
)


class ProtocolError(ValueError):
    """Inbound frame that cannot be interpreted as a message."""


def now_ms() -> int:
    return int(time.time() * 1000)


def parse_message(raw) -> dict:
    """Decode one frame into a message dict with a non-empty string `type`."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError(f"frame is not valid UTF-8: {e}") from e
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"invalid JSON frame: {e}") from e
    if not isinstance(payload, dict):
        raise ProtocolError("message must be a JSON object")
    msg_type = payload.get("type")
    if not isinstance(msg_type, str) or not msg_type.strip():
        raise ProtocolError("message is missing a 'type' field")
    payload["type"] = msg_type.strip()
    return payload


def encode(message: dict) -> str:
    return json.dumps(message, ensure_ascii=False)


def flag(message: dict, name: str) -> bool:
    """Boolean fields count only when literally true."""
    return message.get(name) is True


def ack(action: str, id: Optional[str] = None, status: Optional[str] = None, **extra) -> dict:
    msg = {"type": ACK, "action": action}
    if id is not None:
        msg["id"] = id
    if status:
        msg["status"] = status
    msg.update(extra)
    return msg


def error(message: str) -> dict:
    return {"type": ERROR, "message": message}


def clipboard_content(content: str) -> dict:
    return {"type": CLIPBOARD_CONTENT, "content": content, "timestamp": now_ms()}


def current_line_content(content: str) -> dict:
    return {"type": CURRENT_LINE_CONTENT, "content": content, "timestamp": now_ms()}


def ai_reply(summary: str, content: Optional[str] = None, timestamp: Optional[int] = None) -> dict:
    return {
        "type": AI_REPLY,
        "summary": summary,
        "content": content or summary,
        "timestamp": timestamp or now_ms(),
    }


def connection_status(connected: bool) -> dict:
    return {"type": CONNECTION, "connected": bool(connected)}


def preview(text: str, limit: int = 50) -> str:
    text = text or ""
    return text if len(text) <= limit else text[:limit] + "..."
