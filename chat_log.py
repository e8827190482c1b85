"""Phone-side chat log of submitted prompts and assistant replies."""
import time
import uuid
from dataclasses import asdict, dataclass
from typing import Callable, List, Optional, Set

from settings import MAX_CHAT_MESSAGES


@dataclass
class ChatMessage:
    id: str
    type: str  # user | assistant
    content: str
    timestamp: int
    summary: Optional[str] = None
    images: Optional[List[str]] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


def _new_id(kind: str) -> str:
    return f"{kind}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class ChatLog:
    """Append-only, keeps the newest `limit` entries."""

    def __init__(self, limit: int = MAX_CHAT_MESSAGES):
        self.limit = limit
        self._messages: List[ChatMessage] = []
        self._listeners: Set[Callable[[List[ChatMessage]], None]] = set()

    def messages(self) -> List[ChatMessage]:
        return list(self._messages)

    def add_user_message(self, content: str, images: Optional[List[str]] = None) -> ChatMessage:
        return self._append(
            ChatMessage(_new_id("user"), "user", content, int(time.time() * 1000), images=images or None)
        )

    def add_assistant_message(self, summary: str, content: Optional[str] = None) -> ChatMessage:
        return self._append(
            ChatMessage(_new_id("assistant"), "assistant", content or summary, int(time.time() * 1000), summary=summary)
        )

    def clear(self):
        self._messages = []
        self._notify()

    def subscribe(self, listener: Callable[[List[ChatMessage]], None]) -> Callable[[], None]:
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)

    def _append(self, message: ChatMessage) -> ChatMessage:
        self._messages.append(message)
        if len(self._messages) > self.limit:
            self._messages = self._messages[-self.limit:]
        self._notify()
        return message

    def _notify(self):
        snapshot = self.messages()
        for listener in list(self._listeners):
            listener(snapshot)

    def __len__(self) -> int:
        return len(self._messages)
