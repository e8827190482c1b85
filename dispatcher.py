"""Maps inbound command messages onto ordered surface steps and reply messages."""
import asyncio
from typing import Optional

import protocol
from automation import STATUS_FAILED, STATUS_OK, worst_status
from image_store import ImageDecodeError, ImageStore, WorkspaceMissingError
from protocol import ProtocolError, flag, preview
from reply_policy import SummaryRequestPolicy
from session_state import Session, SessionClaimError, SessionRegistry
from settings import CLEAR_LINE_SETTLE_SEC, CLIPBOARD_SETTLE_SEC, SUBMIT_SETTLE_SEC
from sync_engine import STATUS_NOOP, SyncEngine
from text_handler import handle_legacy_image, handle_legacy_text

APPLICATION_ERRORS = (ProtocolError, SessionClaimError, WorkspaceMissingError, ImageDecodeError)


def _require_id(message: dict):
    value = message.get("id")
    if isinstance(value, bool) or not isinstance(value, (str, int)) or str(value) == "":
        raise ProtocolError(f"{message.get('type')} requires an 'id' field")
    return value


def _optional_text(message: dict, name: str) -> str:
    value = message.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ProtocolError(f"'{name}' must be a string")
    return value


class CommandDispatcher:
    """
    One instance per desktop endpoint. Holds no state of its own across
    commands; staged content lives in the injected session registry.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        engine: SyncEngine,
        store: ImageStore,
        policy: Optional[SummaryRequestPolicy] = None,
        relay=None,
        variant: str = "standalone",
    ):
        self.registry = registry
        self.engine = engine
        self.surface = engine.surface
        self.store = store
        self.policy = policy or SummaryRequestPolicy()
        self.relay = relay
        self.variant = variant
        self.handlers = {
            protocol.SYNC_TEXT: self._sync_text,
            protocol.SYNC_IMAGE_ADD: self._sync_image_add,
            protocol.SYNC_IMAGE_REMOVE: self._sync_image_remove,
            protocol.PASTE_ONLY: self._paste_only,
            protocol.SUBMIT: self._submit,
            protocol.GET_CLIPBOARD: self._get_clipboard,
            protocol.GET_CURRENT_LINE: self._get_current_line,
            protocol.REPLACE_LINE: self._replace_line,
            protocol.LEGACY_TEXT: self._legacy_text,
            protocol.LEGACY_IMAGE: self._legacy_image,
            protocol.AI_REPLY: self._ai_reply,
        }

    # ---- session lifecycle -------------------------------------------------

    def connect(self, connection_id: str) -> Session:
        return self.registry.open(connection_id)

    def disconnect(self, connection_id: str):
        was_holder = self.registry.holder == connection_id
        self.registry.close(connection_id)
        if was_holder:
            self.engine.cancel()

    # ---- dispatch ----------------------------------------------------------

    async def dispatch(self, connection_id: str, message: dict) -> Optional[dict]:
        """Handle one message; returns the reply for the sender, if any."""
        msg_type = message.get("type")
        handler = self.handlers.get(msg_type)
        if handler is None:
            print(f"[dispatch] unknown message type: {msg_type}")
            return protocol.error(f"unknown message type: {msg_type}")

        session = self.registry.get(connection_id) or self.registry.open(connection_id)
        try:
            if msg_type in protocol.MUTATING_TYPES:
                session = self.registry.claim(connection_id)
            return await handler(session, message)
        except APPLICATION_ERRORS as e:
            print(f"[dispatch] {msg_type} rejected: {e}")
            return protocol.error(str(e))
        except Exception as e:
            print(f"[dispatch] {msg_type} failed: {e}")
            return protocol.error(f"{msg_type} failed: {e}")

    async def _step(self, label: str, fn, *args) -> str:
        try:
            await fn(*args)
            return STATUS_OK
        except Exception as e:
            print(f"[dispatch] {label} failed: {e}")
            return STATUS_FAILED

    @staticmethod
    def _ack(action: str, *statuses: str, **fields) -> dict:
        status = worst_status(*[s for s in statuses if s != STATUS_NOOP])
        return protocol.ack(action, status=None if status == STATUS_OK else status, **fields)

    # ---- staging -----------------------------------------------------------

    async def _sync_text(self, session: Session, message: dict) -> dict:
        session.staged.apply_text(_optional_text(message, "content"))
        print(f"[dispatch] text synced: {preview(session.staged.text)}")
        self.engine.schedule(session.staged)
        return protocol.ack(protocol.SYNC_TEXT)

    async def _sync_image_add(self, session: Session, message: dict) -> dict:
        image_id = _require_id(message)
        ref = self.store.save(str(image_id), message.get("base64"), message.get("mimeType"))
        session.staged.add_image(str(image_id), ref)
        print(f"[dispatch] image staged: {image_id} -> {ref}")
        self.engine.schedule(session.staged)
        return protocol.ack(protocol.SYNC_IMAGE_ADD, id=image_id)

    async def _sync_image_remove(self, session: Session, message: dict) -> dict:
        image_id = _require_id(message)
        ref = session.staged.remove_image(str(image_id))
        self.store.delete(ref)
        print(f"[dispatch] image removed: {image_id}")
        self.engine.schedule(session.staged)
        return protocol.ack(protocol.SYNC_IMAGE_REMOVE, id=image_id)

    # ---- commit ------------------------------------------------------------

    async def _paste_only(self, session: Session, message: dict) -> dict:
        staged = session.staged
        text = self.policy.wrap_if_requested(staged.text, flag(message, "needAiReply"))
        self.engine.cancel()
        async with self.engine.lock:
            # Live sync already put the draft in the input; replace it instead of appending.
            replace = None if self.engine.live else False
            status = await self.engine.paste_render(staged, text=text, replace=replace)
        print(f"[dispatch] paste_only ({status})")
        return self._ack(protocol.PASTE_ONLY, status)

    async def _submit(self, session: Session, message: dict) -> dict:
        staged = session.staged
        text = self.policy.wrap_if_requested(staged.text, flag(message, "needAiReply"))
        self.engine.cancel()
        async with self.engine.lock:
            pasted = await self.engine.paste_render(staged, text=text)
            await asyncio.sleep(SUBMIT_SETTLE_SEC)
            committed = await self._step("commit key", self.surface.press_enter)
        staged.reset()
        print(f"[dispatch] submit (paste={pasted}, enter={committed})")
        return self._ack(protocol.SUBMIT, pasted, committed)

    # ---- clipboard and line editing ----------------------------------------

    async def _get_clipboard(self, session: Session, message: dict) -> dict:
        content = ""
        async with self.engine.lock:
            try:
                content = await self.surface.read_clipboard()
            except Exception as e:
                print(f"[dispatch] clipboard read failed: {e}")
        print(f"[dispatch] clipboard -> phone: {preview(content, 30)}")
        return protocol.clipboard_content(content)

    async def _get_current_line(self, session: Session, message: dict) -> dict:
        if self.variant != "standalone":
            return protocol.error("get_current_line is only available in the standalone bridge")
        content = ""
        async with self.engine.lock:
            await self._step("copy line", self.surface.copy_line)
            await asyncio.sleep(CLIPBOARD_SETTLE_SEC)
            try:
                content = (await self.surface.read_clipboard()).strip()
            except Exception as e:
                print(f"[dispatch] clipboard read failed: {e}")
        return protocol.current_line_content(content)

    async def _replace_line(self, session: Session, message: dict) -> dict:
        async with self.engine.lock:
            cleared = await self._step("clear line", self.surface.clear_line)
            await asyncio.sleep(CLEAR_LINE_SETTLE_SEC)
            pasted = await self._step("paste", self.surface.paste)
        return self._ack(protocol.REPLACE_LINE, cleared, pasted)

    # ---- legacy and relay --------------------------------------------------

    async def _legacy_text(self, session: Session, message: dict) -> dict:
        async with self.engine.lock:
            tier = await handle_legacy_text(self.surface, self.store, _optional_text(message, "content"))
        print(f"[dispatch] legacy text via {tier}")
        return protocol.ack(protocol.LEGACY_TEXT, timestamp=protocol.now_ms())

    async def _legacy_image(self, session: Session, message: dict) -> dict:
        async with self.engine.lock:
            tier = await handle_legacy_image(self.surface, self.store, message.get("base64"), message.get("mimeType"))
        print(f"[dispatch] legacy image via {tier}")
        return protocol.ack(protocol.LEGACY_IMAGE, timestamp=protocol.now_ms())

    async def _ai_reply(self, session: Session, message: dict) -> Optional[dict]:
        summary = _optional_text(message, "summary")
        if not summary:
            raise ProtocolError("ai_reply requires a 'summary' field")
        if self.relay is None:
            return protocol.error("reply relay is not available")
        await self.relay.broadcast_reply(summary, _optional_text(message, "content") or None)
        return None
