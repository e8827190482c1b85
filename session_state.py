"""Desktop-side staged content and per-connection sessions."""
from dataclasses import dataclass, field
from typing import Dict, Optional


def image_markdown(ref: str) -> str:
    return f"![image]({ref})"


class StagedContent:
    """The draft the phone is composing, as mirrored on the desktop."""

    def __init__(self):
        self.text = ""
        self.images: Dict[str, str] = {}
        self.first_sync = True

    def reset(self):
        self.text = ""
        self.images = {}
        self.first_sync = True

    def apply_text(self, text: Optional[str]):
        self.text = text or ""

    def add_image(self, image_id: str, ref: str):
        self.images[image_id] = ref

    def remove_image(self, image_id: str) -> Optional[str]:
        return self.images.pop(image_id, None)

    def is_empty(self) -> bool:
        return not self.text and not self.images

    def image_block(self) -> str:
        return "\n".join(image_markdown(ref) for ref in self.images.values())

    def render(self, text: Optional[str] = None) -> str:
        """
        Text followed by one markdown image line per staged image.
        `text` overrides the staged text (used for the summary-request wrap).
        """
        body = self.text if text is None else text
        block = self.image_block()
        if body and block:
            return f"{body}\n{block}"
        return body or block


@dataclass
class Session:
    connection_id: str
    staged: StagedContent = field(default_factory=StagedContent)


class SessionClaimError(RuntimeError):
    """A second connection tried to mutate while another holds the claim."""


class SessionRegistry:
    """
    Sessions keyed by connection id, plus the single-writer claim.
    The first connection to mutate becomes the holder until it disconnects.
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self.holder: Optional[str] = None

    def open(self, connection_id: str) -> Session:
        session = Session(connection_id)
        self._sessions[connection_id] = session
        return session

    def close(self, connection_id: str) -> Optional[Session]:
        if self.holder == connection_id:
            self.holder = None
        return self._sessions.pop(connection_id, None)

    def get(self, connection_id: str) -> Optional[Session]:
        return self._sessions.get(connection_id)

    def claim(self, connection_id: str) -> Session:
        session = self._sessions.get(connection_id)
        if session is None:
            raise KeyError(connection_id)
        if self.holder is None:
            self.holder = connection_id
        elif self.holder != connection_id:
            raise SessionClaimError("another phone is currently driving this desktop")
        return session

    def active(self) -> Optional[Session]:
        return self._sessions.get(self.holder) if self.holder else None

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, connection_id) -> bool:
        return connection_id in self._sessions
