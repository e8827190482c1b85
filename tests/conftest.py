import socket

import pytest

from automation import InputSurface


class FakeSurface(InputSurface):
    """Records every step; steps named in `fail` raise."""

    def __init__(self, fail=(), echo=True, line=""):
        self.calls = []
        self.clipboard = ""
        self.fail = set(fail)
        self.echo = echo
        self.line = line
        self.typed = ""

    def names(self):
        return [c[0] for c in self.calls]

    async def _step(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail:
            raise RuntimeError(f"{name} broke")

    async def write_clipboard(self, text):
        await self._step("write_clipboard", text)
        if self.echo:
            self.clipboard = text

    async def read_clipboard(self):
        await self._step("read_clipboard")
        return self.clipboard

    async def paste(self):
        await self._step("paste")

    async def select_all(self):
        await self._step("select_all")

    async def press_enter(self):
        await self._step("press_enter")

    async def clear_line(self):
        await self._step("clear_line")

    async def copy_line(self):
        await self._step("copy_line")
        self.clipboard = self.line

    async def type_text(self, text):
        await self._step("type_text", text)
        self.typed += text


@pytest.fixture
def surface():
    return FakeSurface()


@pytest.fixture
def blocked_port():
    """A loopback port held by a listening socket for the duration of the test."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    try:
        yield sock.getsockname()[1]
    finally:
        sock.close()
