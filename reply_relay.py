"""Push short assistant replies from the desktop to every connected phone."""
import re
from typing import Optional

import protocol
from protocol import preview
from settings import SUMMARY_FALLBACK_CHARS

_SUMMARY_PATTERN = re.compile(r"\[(?:Summary|摘要)\s*[:：]\s*(.+?)\]", re.IGNORECASE)


def extract_summary(text: str, limit: int = SUMMARY_FALLBACK_CHARS) -> str:
    """Pull the `[Summary: ...]` line an agent was asked to emit, else the head of the text."""
    text = (text or "").strip()
    m = _SUMMARY_PATTERN.search(text)
    if m:
        return m.group(1).strip()
    return text[:limit]


class ReplyRelay:
    """
    Best-effort fan-out: no acknowledgement, no retry, nothing is kept for
    phones that connect later.
    """

    def __init__(self, transport):
        self.transport = transport

    async def broadcast_reply(self, summary: str, content: Optional[str] = None) -> int:
        message = protocol.ai_reply(summary, content)
        delivered = await self.transport.broadcast(message)
        print(f"[relay] reply to {delivered} client(s): {preview(summary)}")
        return delivered

    def send_assistant_reply(self, summary: str, content: Optional[str] = None) -> bool:
        """Thread-safe entry for the tray and the HTTP sidecar."""
        message = protocol.ai_reply(summary, content)
        ok = self.transport.schedule_broadcast(message)
        if ok:
            print(f"[relay] reply queued: {preview(summary)}")
        else:
            print("[relay] endpoint not running, reply dropped")
        return ok

    def send_agent_output(self, text: str) -> bool:
        """Relay a full agent answer, using its summary line for the preview."""
        text = (text or "").strip()
        if not text:
            return False
        return self.send_assistant_reply(extract_summary(text), text)
