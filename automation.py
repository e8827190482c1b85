"""
Input-surface automation: clipboard access and simulated keystrokes.

The sync engine and dispatcher only talk to `InputSurface`; the desktop
implementation drives the real keyboard through pyautogui and the system
clipboard through pyperclip. Every step is a blocking OS call pushed onto a
worker thread so the event loop keeps serving other connections.
"""
import asyncio
import sys

from settings import (
    CLEAR_LINE_KEY_GAP_SEC,
    CLIPBOARD_VERIFY_SEC,
    COPY_LINE_KEY_GAP_SEC,
)

STATUS_OK = "ok"
STATUS_UNCONFIRMED = "unconfirmed"
STATUS_FAILED = "failed"

_STATUS_RANK = {STATUS_OK: 0, STATUS_UNCONFIRMED: 1, STATUS_FAILED: 2}


def worst_status(*statuses: str) -> str:
    return max(statuses or (STATUS_OK,), key=lambda s: _STATUS_RANK.get(s, 0))


class InputSurface:
    """Capability consumed by the sync core. Subclasses implement the raw steps."""

    async def write_clipboard(self, text: str) -> None:
        raise NotImplementedError

    async def read_clipboard(self) -> str:
        raise NotImplementedError

    async def paste(self) -> None:
        raise NotImplementedError

    async def select_all(self) -> None:
        raise NotImplementedError

    async def press_enter(self) -> None:
        raise NotImplementedError

    async def clear_line(self) -> None:
        raise NotImplementedError

    async def copy_line(self) -> None:
        raise NotImplementedError

    async def type_text(self, text: str) -> None:
        raise NotImplementedError

    async def write_clipboard_confirmed(self, text: str, settle: float = CLIPBOARD_VERIFY_SEC) -> str:
        """Write, wait, read back. Raises if the write itself fails."""
        await self.write_clipboard(text)
        if settle:
            await asyncio.sleep(settle)
        try:
            current = await self.read_clipboard()
        except Exception as e:
            print(f"[clipboard] read-back failed: {e}")
            return STATUS_UNCONFIRMED
        if current != text:
            print("[clipboard] read-back mismatch, write unconfirmed")
            return STATUS_UNCONFIRMED
        return STATUS_OK


class DesktopInputSurface(InputSurface):
    """Real keyboard and clipboard of the machine this process runs on."""

    def __init__(self, platform: str = sys.platform):
        import pyautogui
        import pyperclip

        self._gui = pyautogui
        self._clip = pyperclip
        self._gui.PAUSE = 0.01
        # Command on macOS, Ctrl elsewhere; terminal line editing always uses Ctrl.
        self.mod = "command" if platform == "darwin" else "ctrl"

    async def _run(self, fn, *args):
        return await asyncio.to_thread(fn, *args)

    async def _hotkey(self, *keys):
        await self._run(self._gui.hotkey, *keys)

    async def write_clipboard(self, text: str) -> None:
        await self._run(self._clip.copy, text)

    async def read_clipboard(self) -> str:
        return (await self._run(self._clip.paste)) or ""

    async def paste(self) -> None:
        await self._hotkey(self.mod, "v")

    async def select_all(self) -> None:
        await self._hotkey(self.mod, "a")

    async def press_enter(self) -> None:
        await self._run(self._gui.press, "enter")

    async def clear_line(self) -> None:
        await self._hotkey("ctrl", "a")
        await asyncio.sleep(CLEAR_LINE_KEY_GAP_SEC)
        await self._hotkey("ctrl", "k")

    async def copy_line(self) -> None:
        await self._hotkey("ctrl", "a")
        await asyncio.sleep(COPY_LINE_KEY_GAP_SEC)
        await self._hotkey("shift", "ctrl", "e")
        await asyncio.sleep(COPY_LINE_KEY_GAP_SEC)
        await self._hotkey(self.mod, "c")
        await asyncio.sleep(COPY_LINE_KEY_GAP_SEC)
        await self._run(self._gui.press, "right")

    async def type_text(self, text: str) -> None:
        print("[input] typing text:", text[:50])
        await self._run(self._gui.write, text)
