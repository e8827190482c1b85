"""
LAN Prompt Bridge - desktop entry point.

Listens for the phone, mirrors its staged text/images into whatever input
has focus and relays short agent replies back.

Usage:
  python server.py [--port 9527] [--workspace DIR] [--variant standalone|editor]
"""
import argparse
import asyncio
import os
import sys
import threading
from typing import List, Optional

import qrcode

import config_store
import notifier
from automation import DesktopInputSurface, InputSurface
from dispatcher import CommandDispatcher
from http_server import run_http
from image_store import ImageStore
from ip_utils import build_urls, choose_free_port, get_effective_ip, is_valid_ipv4, preferred_port
from paths import resolve_workspace
from reply_policy import make_policy
from reply_relay import ReplyRelay
from session_state import SessionRegistry
from settings import DEFAULT_HTTP_PORT, DEFAULT_WS_PORT, MAX_PORT_TRY
from sync_engine import SyncEngine
from transport import AddressInUseError, TransportEndpoint


class Bridge:
    """Wires transport, sessions, sync engine, dispatcher and relay together."""

    def __init__(
        self,
        surface: InputSurface,
        workspace: Optional[str] = None,
        variant: str = "standalone",
        reply_mode: str = "inline",
        live_sync: bool = True,
        host: str = "0.0.0.0",
        user_ip: Optional[str] = None,
    ):
        self.variant = variant
        self.reply_mode = reply_mode
        self.user_ip = user_ip
        self.http_port: Optional[int] = None
        self.registry = SessionRegistry()
        self.engine = SyncEngine(surface, live=live_sync)
        self.store = ImageStore(workspace)
        self.transport = TransportEndpoint(
            on_message=self._on_message,
            on_connect=self._on_connect,
            on_disconnect=self._on_disconnect,
            connection_listener=notifier.on_connection_change,
            host=host,
        )
        self.relay = ReplyRelay(self.transport)
        self.dispatcher = CommandDispatcher(
            self.registry,
            self.engine,
            self.store,
            policy=make_policy(reply_mode),
            relay=self.relay,
            variant=variant,
        )
        self._stop: Optional[asyncio.Event] = None

    def _on_connect(self, client_id: str):
        self.dispatcher.connect(client_id)

    def _on_disconnect(self, client_id: str):
        self.dispatcher.disconnect(client_id)

    async def _on_message(self, client_id: str, message: dict) -> Optional[dict]:
        return await self.dispatcher.dispatch(client_id, message)

    @property
    def port(self) -> Optional[int]:
        return self.transport.port

    async def start(self, port: int) -> int:
        attempts = MAX_PORT_TRY if self.variant == "standalone" else 1
        actual = await self.transport.listen(port, attempts)
        self.dispatcher.policy = make_policy(self.reply_mode, actual)
        return actual

    async def run(self, port: int, on_ready=None):
        self._stop = asyncio.Event()
        await self.start(port)
        if on_ready:
            on_ready(self)
        try:
            await self._stop.wait()
        finally:
            self.engine.cancel()
            await self.transport.close()

    def stop(self):
        if self._stop is not None:
            self._stop.set()

    def urls(self):
        return build_urls(get_effective_ip(self.user_ip), self.port, self.http_port)

    def url_state(self) -> dict:
        ws_url, web_url = self.urls()
        return {"ws_port": self.port, "http_port": self.http_port, "url": web_url or ws_url}


def show_startup_info(bridge: Bridge):
    ws_url, web_url = bridge.urls()
    print()
    print("=" * 52)
    print(f"  {notifier.APP_NAME} ({bridge.variant})")
    print(f"  WebSocket: {ws_url}")
    if web_url:
        print(f"  Web page:  {web_url}")
    print("=" * 52)
    print("\nScan with the phone app to connect:\n")
    qr = qrcode.QRCode(border=1)
    qr.add_data(ws_url)
    qr.make(fit=True)
    qr.print_ascii(invert=True)
    port_arg = f" --port={bridge.port}" if bridge.port != DEFAULT_WS_PORT else ""
    print(f'\nSend an agent reply: python send_reply.py "text"{port_arg}')
    print("Press Ctrl+C to stop\n")


def start_http_thread(bridge: Bridge):
    bridge.http_port = choose_free_port(DEFAULT_HTTP_PORT)
    threading.Thread(
        target=run_http,
        args=(bridge.url_state, bridge.relay, lambda: bridge.transport.client_count),
        daemon=True,
    ).start()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Mirror phone input into the focused desktop input.")
    parser.add_argument("--port", "-p", type=int, help=f"WebSocket port (default {DEFAULT_WS_PORT})")
    parser.add_argument("--workspace", help="folder that receives .cursor/voice-images (default: cwd)")
    parser.add_argument("--variant", choices=config_store.VARIANTS,
                        help="standalone scans for a free port; editor fails if the port is taken")
    parser.add_argument("--host-ip", help="LAN IP advertised to the phone")
    parser.add_argument("--reply-mode", choices=config_store.REPLY_MODES,
                        help="how the agent is asked to report back")
    parser.add_argument("--no-live-sync", action="store_true",
                        help="only stage content; apply it on paste/submit")
    parser.add_argument("--no-http", action="store_true", help="do not start the HTTP sidecar")
    parser.add_argument("--tray", action="store_true", help="run with a system tray icon")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config_store.load_config()

    if args.host_ip:
        if not is_valid_ipv4(args.host_ip):
            print(f"[config] invalid --host-ip: {args.host_ip}")
            return 2
        config_store.USER_IP = args.host_ip
        config_store.save_config()

    workspace = resolve_workspace(args.workspace or config_store.WORKSPACE or os.getcwd())
    if workspace is None:
        print("[config] workspace folder not found, image sync disabled")

    bridge = Bridge(
        DesktopInputSurface(),
        workspace=workspace,
        variant=args.variant or config_store.VARIANT,
        reply_mode=args.reply_mode or config_store.REPLY_MODE,
        live_sync=not args.no_live_sync,
        user_ip=config_store.USER_IP,
    )
    port = preferred_port(args.port, config_store.WS_PORT)

    def on_ready(b: Bridge):
        if not args.no_http:
            start_http_thread(b)
        show_startup_info(b)

    try:
        if not args.tray:
            asyncio.run(bridge.run(port, on_ready))
            return 0

        errors = []
        ready = threading.Event()

        def _ready(b: Bridge):
            on_ready(b)
            ready.set()

        def _ws_thread():
            try:
                asyncio.run(bridge.run(port, _ready))
            except Exception as e:
                errors.append(e)
                ready.set()

        threading.Thread(target=_ws_thread, daemon=True).start()
        ready.wait()
        if errors:
            raise errors[0]

        from tray_app import run_tray

        run_tray(bridge.relay, bridge.urls)
        return 0
    except AddressInUseError as e:
        print(f"\n[ws] startup failed: {e}")
        print("[ws] another bridge is probably running; stop it or pass --port\n")
        return 1
    except OSError as e:
        print(f"\n[ws] startup failed: {e}\n")
        return 1
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
