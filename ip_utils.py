"""Port selection, LAN IP and connection URL utilities."""
import os
import re
import socket
from typing import Iterable, Optional

from settings import DEFAULT_WS_PORT, MAX_HTTP_PORT_TRY, PORT_ENV_VARS


def is_port_free(port: int) -> bool:
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("0.0.0.0", port))
            return True
    except OSError:
        return False


def choose_free_port(start_port: int, attempts: int = MAX_HTTP_PORT_TRY) -> int:
    for p in range(start_port, start_port + attempts):
        if is_port_free(p):
            return p
    raise RuntimeError(f"no free port found (tried {attempts} from {start_port})")


def get_lan_ip_best_effort() -> str:
    """Get default outbound interface IP via UDP connect (no packets sent)."""
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
    except Exception:
        ip = "127.0.0.1"
    finally:
        s.close()
    return ip


def is_valid_ipv4(ip: str) -> bool:
    if not ip:
        return False
    if not re.match(r"^\d{1,3}(\.\d{1,3}){3}$", ip):
        return False
    return all(0 <= int(x) <= 255 for x in ip.split("."))


def get_effective_ip(user_ip: Optional[str]) -> str:
    """Prefer user-selected IP, otherwise auto-detect."""
    if user_ip and user_ip.strip():
        return user_ip.strip()
    return get_lan_ip_best_effort()


def parse_port(raw) -> Optional[int]:
    try:
        port = int(str(raw).strip())
    except (TypeError, ValueError):
        return None
    return port if 0 < port < 65536 else None


def preferred_port(cli_port=None, configured=None, env: Optional[dict] = None,
                   env_vars: Iterable[str] = PORT_ENV_VARS) -> int:
    """CLI flag > environment > config file > default."""
    port = parse_port(cli_port) if cli_port is not None else None
    if port:
        return port
    env = os.environ if env is None else env
    for name in env_vars:
        port = parse_port(env.get(name)) if env.get(name) else None
        if port:
            return port
    return parse_port(configured) or DEFAULT_WS_PORT


def build_urls(ip: str, ws_port: int, http_port: Optional[int] = None):
    """Return (ws_url, web_url); web_url is None without the HTTP sidecar."""
    ws_url = f"ws://{ip}:{ws_port}"
    web_url = f"http://{ip}:{http_port}?ws={ws_port}" if http_port else None
    return ws_url, web_url
