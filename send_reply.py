"""
Send an assistant reply to every phone connected to the bridge.
Usage: python send_reply.py "short summary" [--content "full text"] [--port 9527]
"""
import argparse
import asyncio
import sys
from typing import List, Optional

from websockets.asyncio.client import connect

import protocol
from ip_utils import get_lan_ip_best_effort, preferred_port
from settings import REPLY_SEND_TIMEOUT_SEC, WS_MAX_FRAME_BYTES


async def send_reply(url: str, summary: str, content: Optional[str] = None,
                     timeout: float = REPLY_SEND_TIMEOUT_SEC):
    async def _send():
        async with connect(url, open_timeout=timeout, max_size=WS_MAX_FRAME_BYTES) as ws:
            await ws.send(protocol.encode(protocol.ai_reply(summary, content)))

    await asyncio.wait_for(_send(), timeout)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Send an AI reply summary to the phone.")
    parser.add_argument("summary", help="short reply summary shown on the phone")
    parser.add_argument("--content", help="full reply text (defaults to the summary)")
    parser.add_argument("--port", "-p", type=int, help="bridge WebSocket port")
    parser.add_argument("--host", help="bridge host (defaults to this machine's LAN IP)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    summary = (args.summary or "").strip()
    if not summary:
        print('usage: send_reply.py "reply text"', file=sys.stderr)
        return 1

    host = args.host or get_lan_ip_best_effort()
    url = f"ws://{host}:{preferred_port(args.port)}"
    try:
        asyncio.run(send_reply(url, summary, args.content))
    except asyncio.TimeoutError:
        print("[reply] connection timed out", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"[reply] connection failed: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"[reply] send failed: {e}", file=sys.stderr)
        return 1

    print("[reply] sent to phone:", protocol.preview(summary))
    return 0


if __name__ == "__main__":
    sys.exit(main())
