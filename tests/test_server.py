import asyncio
import json

from websockets.asyncio.client import connect

import config_store
import notifier
import server
from conftest import FakeSurface


def test_bridge_end_to_end(tmp_path, monkeypatch):
    monkeypatch.setattr(notifier, "notify", lambda title, msg: None)
    surface = FakeSurface()

    async def main():
        bridge = server.Bridge(surface, workspace=str(tmp_path), host="127.0.0.1", user_ip="127.0.0.1")
        port = await bridge.start(0)
        try:
            async with connect(f"ws://127.0.0.1:{port}") as phone:
                await phone.send(json.dumps({"type": "sync_text", "content": "fix bug"}))
                first = json.loads(await phone.recv())
                await phone.send(json.dumps({"type": "submit"}))
                second = json.loads(await phone.recv())
                await phone.send(json.dumps({"type": "ai_reply", "summary": "done"}))
                third = json.loads(await phone.recv())
        finally:
            await bridge.transport.close()
        return bridge, [first, second, third]

    bridge, replies = asyncio.run(main())

    assert replies[0] == {"type": "ack", "action": "sync_text"}
    assert replies[1] == {"type": "ack", "action": "submit"}
    assert replies[2]["type"] == "ai_reply"
    assert surface.names()[-1] == "press_enter"
    assert bridge.urls()[0] == f"ws://127.0.0.1:{bridge.port}"
    assert bridge.url_state()["ws_port"] == bridge.port


def test_command_reply_mode_uses_bound_port(tmp_path):
    async def main():
        bridge = server.Bridge(FakeSurface(), workspace=str(tmp_path), reply_mode="command", host="127.0.0.1")
        port = await bridge.start(0)
        await bridge.transport.close()
        return bridge, port

    bridge, port = asyncio.run(main())
    assert f"--port={port}" in bridge.dispatcher.policy.suffix()


def test_parser_flags():
    args = server.build_parser().parse_args(
        ["-p", "9600", "--variant", "editor", "--reply-mode", "command", "--no-live-sync", "--no-http"]
    )
    assert args.port == 9600
    assert args.variant == "editor"
    assert args.reply_mode == "command"
    assert args.no_live_sync and args.no_http and not args.tray


def test_main_exits_1_when_port_is_taken(monkeypatch, blocked_port, capsys):
    monkeypatch.setattr(config_store, "load_config", lambda: None)
    monkeypatch.setattr(config_store, "WORKSPACE", None)
    monkeypatch.setattr(config_store, "USER_IP", None)
    monkeypatch.setattr(server, "DesktopInputSurface", FakeSurface)

    code = server.main(["--port", str(blocked_port), "--variant", "editor", "--no-http"])

    assert code == 1
    assert "stop it or pass --port" in capsys.readouterr().out
