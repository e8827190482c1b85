"""
Phone-side connection manager.

Keeps one WebSocket to the desktop bridge, remembers the last URL that
worked, reconnects when the app returns to the foreground and routes the
desktop's replies into UI state.
"""
import asyncio
import json
import os
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

import protocol
from chat_log import ChatLog
from settings import CONNECT_TIMEOUT_SEC, WS_MAX_FRAME_BYTES

DEFAULT_URL_STORE = os.path.join(os.path.expanduser("~"), ".lan_prompt_bridge", "last_url.json")


class ConnectTimeoutError(TimeoutError):
    pass


class NotConnectedError(RuntimeError):
    def __init__(self):
        super().__init__("not connected to the desktop bridge")


class UrlStore:
    """Last-known-good URL, persisted as a tiny JSON file."""

    def __init__(self, path: str = DEFAULT_URL_STORE):
        self.path = path

    def get(self) -> Optional[str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            return None
        url = data.get("url") if isinstance(data, dict) else None
        return url or None

    def save(self, url: str) -> bool:
        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump({"url": url}, f)
            return True
        except OSError as e:
            print(f"[client] could not save url: {e}")
            return False


@dataclass
class DraftImage:
    id: str
    base64: str
    mime_type: str = "image/jpeg"
    uri: Optional[str] = None


class ClientSession:
    """One connection, one handler per event; registering again replaces it."""

    def __init__(self, url_store: Optional[UrlStore] = None, connect_timeout: float = CONNECT_TIMEOUT_SEC):
        self.url_store = url_store or UrlStore()
        self.connect_timeout = connect_timeout
        self.url = ""
        self.ws: Optional[ClientConnection] = None
        self._reader: Optional[asyncio.Task] = None

        self._on_open: Optional[Callable[[], None]] = None
        self._on_close: Optional[Callable[[], None]] = None
        self._on_error: Optional[Callable[[Exception], None]] = None
        self._on_message: Optional[Callable[[dict], object]] = None

        # Client-local copy of the draft, kept for UI persistence and re-sync.
        self.draft_text = ""
        self.draft_images: Dict[str, DraftImage] = {}

    # ---- handlers ----------------------------------------------------------

    def on_open(self, callback: Callable[[], None]):
        self._on_open = callback

    def on_close(self, callback: Callable[[], None]):
        self._on_close = callback

    def on_error(self, callback: Callable[[Exception], None]):
        self._on_error = callback

    def on_message(self, callback: Callable[[dict], object]):
        self._on_message = callback

    def _emit_error(self, err: Exception):
        if self._on_error:
            self._on_error(err)

    # ---- lifecycle ---------------------------------------------------------

    async def connect(self, url: str, auto_save: bool = True):
        if self.ws is not None:
            await self.disconnect()
        self.url = url
        try:
            ws = await asyncio.wait_for(
                connect(url, open_timeout=None, max_size=WS_MAX_FRAME_BYTES), self.connect_timeout
            )
        except asyncio.TimeoutError as e:
            err = ConnectTimeoutError(f"connection to {url} timed out")
            self._emit_error(err)
            raise err from e
        except Exception as e:
            print(f"[client] connect failed: {e}")
            self._emit_error(e)
            raise

        self.ws = ws
        print(f"[client] connected to {url}")
        if auto_save:
            self.url_store.save(url)
        self._reader = asyncio.ensure_future(self._read_loop(ws))
        if self._on_open:
            self._on_open()

    async def try_auto_connect(self) -> bool:
        last_url = self.url_store.get()
        if not last_url:
            return False
        try:
            await self.connect(last_url, auto_save=False)
            return True
        except Exception as e:
            print(f"[client] auto-connect failed: {e}")
            return False

    async def on_foreground(self) -> bool:
        """App came back: reconnect silently and push the local draft again."""
        if self.is_connected():
            return True
        if not await self.try_auto_connect():
            return False
        await self.resync_draft()
        return True

    async def disconnect(self):
        ws, self.ws = self.ws, None
        if ws is not None:
            await ws.close()
        if self._reader is not None:
            await asyncio.gather(self._reader, return_exceptions=True)
            self._reader = None

    def is_connected(self) -> bool:
        return self.ws is not None and self.ws.state is State.OPEN

    async def _read_loop(self, ws: ClientConnection):
        try:
            async for raw in ws:
                try:
                    data = json.loads(raw)
                except ValueError as e:
                    print(f"[client] unparseable message: {e}")
                    continue
                if self._on_message:
                    result = self._on_message(data)
                    if asyncio.iscoroutine(result):
                        await result
        except ConnectionClosed:
            pass
        finally:
            if self.ws is ws:
                self.ws = None
            print("[client] connection closed")
            if self._on_close:
                self._on_close()

    # ---- senders -----------------------------------------------------------

    async def _send(self, message: dict, required: bool = True) -> bool:
        if not self.is_connected():
            if required:
                raise NotConnectedError()
            print(f"[client] not connected, {message['type']} not sent")
            return False
        message.setdefault("timestamp", protocol.now_ms())
        await self.ws.send(protocol.encode(message))
        return True

    async def sync_text(self, content: str) -> bool:
        self.draft_text = content or ""
        return await self._send({"type": protocol.SYNC_TEXT, "content": self.draft_text}, required=False)

    async def sync_image_add(self, image_id: str, base64: str, mime_type: str = "image/jpeg",
                             uri: Optional[str] = None) -> bool:
        self.draft_images[image_id] = DraftImage(image_id, base64, mime_type, uri)
        return await self._send(
            {"type": protocol.SYNC_IMAGE_ADD, "id": image_id, "base64": base64, "mimeType": mime_type},
            required=False,
        )

    async def sync_image_remove(self, image_id: str) -> bool:
        self.draft_images.pop(image_id, None)
        return await self._send({"type": protocol.SYNC_IMAGE_REMOVE, "id": image_id}, required=False)

    async def resync_draft(self):
        if self.draft_text:
            await self.sync_text(self.draft_text)
        for img in list(self.draft_images.values()):
            await self.sync_image_add(img.id, img.base64, img.mime_type, img.uri)

    def clear_draft(self):
        self.draft_text = ""
        self.draft_images = {}

    def _command(self, msg_type: str, need_ai_reply: bool = False) -> dict:
        message = {"type": msg_type}
        if need_ai_reply:
            message["needAiReply"] = True
        return message

    async def paste_only(self, need_ai_reply: bool = False):
        await self._send(self._command(protocol.PASTE_ONLY, need_ai_reply))

    async def submit(self, need_ai_reply: bool = False):
        await self._send(self._command(protocol.SUBMIT, need_ai_reply))

    async def get_clipboard(self):
        await self._send({"type": protocol.GET_CLIPBOARD})

    async def get_current_line(self):
        await self._send({"type": protocol.GET_CURRENT_LINE})

    async def replace_line(self):
        await self._send({"type": protocol.REPLACE_LINE})

    async def send_text(self, content: str):
        await self._send({"type": protocol.LEGACY_TEXT, "content": content})

    async def send_image(self, base64: str, mime_type: str = "image/jpeg"):
        await self._send({"type": protocol.LEGACY_IMAGE, "base64": base64, "mimeType": mime_type})


class ClientState:
    """UI-facing state fed by `ClientSession.on_message`."""

    def __init__(self, session: ClientSession, chat_log: Optional[ChatLog] = None):
        self.session = session
        self.chat_log = chat_log or ChatLog()
        self.connected = False
        self.sending = False
        self.last_ack: Optional[dict] = None
        self.errors: List[str] = []
        self.notices: List[str] = []
        self.current_line: Optional[str] = None

    def bind(self):
        self.session.on_open(lambda: setattr(self, "connected", True))
        self.session.on_close(lambda: setattr(self, "connected", False))
        self.session.on_message(self.route)

    async def send_draft(self, submit: bool = True, need_ai_reply: bool = False):
        """Record the draft in the chat log, then paste or submit it on the desktop."""
        session = self.session
        if not session.draft_text.strip() and not session.draft_images:
            raise ValueError("nothing to send")
        uris = [img.uri for img in session.draft_images.values() if img.uri]
        self.sending = True
        self.chat_log.add_user_message(session.draft_text or "[image]", uris or None)
        if submit:
            await session.submit(need_ai_reply)
        else:
            await session.paste_only(need_ai_reply)
            session.clear_draft()
            self.sending = False

    async def route(self, data: dict):
        msg_type = data.get("type")
        if msg_type == protocol.ACK:
            self.last_ack = data
            if data.get("action") == protocol.SUBMIT:
                self.session.clear_draft()
            if data.get("action") in (protocol.SUBMIT, protocol.PASTE_ONLY):
                self.sending = False
        elif msg_type == protocol.ERROR:
            self.sending = False
            self.errors.append(data.get("message") or "operation failed")
        elif msg_type == protocol.AI_REPLY:
            self.chat_log.add_assistant_message(data.get("summary") or "", data.get("content"))
        elif msg_type == protocol.CLIPBOARD_CONTENT:
            content = data.get("content") or ""
            if content:
                await self.session.sync_text(self.session.draft_text + content)
            else:
                self.notices.append("desktop clipboard is empty")
        elif msg_type == protocol.CURRENT_LINE_CONTENT:
            self.current_line = data.get("content") or ""
