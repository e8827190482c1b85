"""Flask sidecar: web client page, runtime config, connection status and reply relay."""
import os

from flask import Flask, jsonify, request, send_file

import notifier
from paths import resource_path


def create_app(get_url_state, relay=None, get_client_count=None):
    """
    get_url_state should return a dict:
    {"http_port": int, "ws_port": int, "url": str}
    """
    app = Flask(__name__)

    @app.route("/")
    def index():
        page = resource_path("index.html")
        if not os.path.isfile(page):
            return "web client not bundled", 404
        return send_file(page)

    @app.route("/config")
    def config():
        state = get_url_state()
        return jsonify(
            {
                "ws_port": state.get("ws_port"),
                "http_port": state.get("http_port"),
                "url": state.get("url"),
            }
        )

    @app.route("/status")
    def status():
        body = notifier.connection_state()
        body["clients"] = get_client_count() if get_client_count else 0
        return jsonify(body)

    @app.route("/reply", methods=["POST"])
    def reply():
        if relay is None:
            return jsonify({"ok": False, "message": "reply relay is not running"}), 503
        payload = request.get_json(silent=True) or {}
        summary = str(payload.get("summary") or "").strip()
        content = payload.get("content")
        if not summary:
            return jsonify({"ok": False, "message": "summary is required"}), 400
        ok = relay.send_assistant_reply(summary, str(content) if content else None)
        return jsonify({"ok": ok}), (200 if ok else 503)

    return app


def run_http(get_url_state, relay=None, get_client_count=None):
    state = get_url_state()
    app = create_app(get_url_state, relay, get_client_count)
    print(f"[http] serving on http://0.0.0.0:{state.get('http_port')}")
    app.run(host="0.0.0.0", port=state.get("http_port"), debug=False, use_reloader=False)
