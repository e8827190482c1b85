"""
Runtime configuration flags and shared constants for LAN Prompt Bridge.
Keep values here so behavior tweaks stay in one place.
"""

# WebSocket endpoint; the standalone variant scans forward on EADDRINUSE.
DEFAULT_WS_PORT = 9527
MAX_PORT_TRY = 10

# HTTP sidecar (config page, status, reply relay).
DEFAULT_HTTP_PORT = 9580
MAX_HTTP_PORT_TRY = 50

# Environment overrides for the listening port, checked in order.
PORT_ENV_VARS = ("LAN_PROMPT_BRIDGE_PORT", "PORT")

# Live sync tuning (seconds).
SYNC_DEBOUNCE_SEC = 0.05
SELECT_ALL_SETTLE_SEC = 0.03
SUBMIT_SETTLE_SEC = 0.05
CLIPBOARD_SETTLE_SEC = 0.1
CLIPBOARD_VERIFY_SEC = 0.05
CLEAR_LINE_KEY_GAP_SEC = 0.02
CLEAR_LINE_SETTLE_SEC = 0.05
COPY_LINE_KEY_GAP_SEC = 0.05

# Legacy text/image messages.
SERVER_DEDUP_WINDOW_SEC = 1.2

# Workspace layout for images and the fallback side file.
WORKSPACE_DATA_DIR = ".cursor"
IMAGE_SUBDIR = "voice-images"
SIDE_FILE_NAME = "voice-input.md"

# WebSocket heartbeat.
WS_PING_INTERVAL = 20
WS_PING_TIMEOUT = 10

# Largest accepted frame; full-resolution photos arrive as base64 in one frame.
WS_MAX_FRAME_BYTES = 64 * 1024 * 1024

# Client side.
CONNECT_TIMEOUT_SEC = 5.0
REPLY_SEND_TIMEOUT_SEC = 3.0
MAX_CHAT_MESSAGES = 100

# Reply relay.
SUMMARY_FALLBACK_CHARS = 100

# Clipboard-to-phone debounce for the tray action.
CLIPBOARD_DEDUP_SEC = 1.0
