"""Debounced live mirroring of staged content into the focused input surface."""
import asyncio
from typing import Optional, Set

from automation import STATUS_FAILED, InputSurface
from protocol import preview
from session_state import StagedContent
from settings import SELECT_ALL_SETTLE_SEC, SYNC_DEBOUNCE_SEC

STATUS_NOOP = "noop"


class SyncEngine:
    """
    Collapses bursts of stage mutations into a single apply.

    The first apply of a session pastes into the surface; later applies
    select everything first so the paste replaces what was mirrored before.
    `lock` guards every physical interaction with the surface, debounced
    applies and dispatcher commands alike.
    """

    def __init__(
        self,
        surface: InputSurface,
        debounce: float = SYNC_DEBOUNCE_SEC,
        settle: float = SELECT_ALL_SETTLE_SEC,
        live: bool = True,
    ):
        self.surface = surface
        self.debounce = debounce
        self.settle = settle
        self.live = live
        self.lock = asyncio.Lock()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def schedule(self, staged: StagedContent) -> bool:
        """Restart the debounce timer; the newest schedule wins."""
        if not self.live:
            return False
        loop = asyncio.get_running_loop()
        self.cancel()
        self._timer = loop.call_later(self.debounce, self._fire, staged)
        return True

    def cancel(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self, staged: StagedContent):
        self._timer = None
        task = asyncio.ensure_future(self.apply(staged))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait_idle(self):
        """Wait until no timer is pending and every started apply finished."""
        while True:
            if self._timer is not None:
                await asyncio.sleep(self.debounce)
                continue
            running = [t for t in self._tasks if not t.done()]
            if not running:
                return
            await asyncio.gather(*running, return_exceptions=True)

    async def apply(self, staged: StagedContent) -> str:
        async with self.lock:
            status = await self.paste_render(staged)
        if status != STATUS_NOOP:
            print(f"[sync] applied ({status}): {preview(staged.render())}")
        return status

    async def paste_render(
        self,
        staged: StagedContent,
        text: Optional[str] = None,
        replace: Optional[bool] = None,
    ) -> str:
        """
        Write the render to the clipboard and paste it. Caller holds `lock`.
        `replace=None` picks select-all + paste once the session was applied
        before, a plain paste otherwise.
        """
        render = staged.render(text)
        if not render:
            return STATUS_NOOP
        if replace is None:
            replace = not staged.first_sync
        try:
            status = await self.surface.write_clipboard_confirmed(render)
            if replace:
                await self.surface.select_all()
                await asyncio.sleep(self.settle)
            await self.surface.paste()
        except Exception as e:
            print(f"[sync] apply failed: {e}")
            return STATUS_FAILED
        staged.first_sync = False
        return status
