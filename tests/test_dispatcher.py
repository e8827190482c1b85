import asyncio
import base64
import os

from conftest import FakeSurface
from dispatcher import CommandDispatcher
from image_store import ImageStore
from reply_policy import INLINE_SUFFIX
from session_state import SessionRegistry
from sync_engine import SyncEngine
from text_handler import reset_dedup

PNG_B64 = base64.b64encode(b"\x89PNG\r\n\x1a\nfake-image").decode()


class FakeRelay:
    def __init__(self):
        self.replies = []

    async def broadcast_reply(self, summary, content=None):
        self.replies.append((summary, content))
        return 1


def _make(surface, workspace, variant="standalone", relay=None, live=True, debounce=0.02):
    engine = SyncEngine(surface, debounce=debounce, settle=0, live=live)
    return CommandDispatcher(SessionRegistry(), engine, ImageStore(workspace), relay=relay, variant=variant)


def _run(surface, workspace, steps, **kwargs):
    """Run (connection_id, message) steps in order and collect the replies."""

    async def main():
        d = _make(surface, workspace, **kwargs)
        replies = []
        for cid, message in steps:
            if message == "connect":
                d.connect(cid)
            elif message == "disconnect":
                d.disconnect(cid)
            elif message == "idle":
                await d.engine.wait_idle()
            else:
                replies.append(await d.dispatch(cid, message))
        await d.engine.wait_idle()
        return d, replies

    return asyncio.run(main())


def test_two_quick_sync_texts_ack_each_and_apply_once(tmp_path):
    surface = FakeSurface()
    d, replies = _run(surface, str(tmp_path), [
        ("c1", "connect"),
        ("c1", {"type": "sync_text", "content": "h"}),
        ("c1", {"type": "sync_text", "content": "hello"}),
    ])

    assert replies == [{"type": "ack", "action": "sync_text"}] * 2
    assert surface.names().count("paste") == 1
    assert surface.clipboard == "hello"
    assert d.registry.get("c1").staged.first_sync is False


def test_submit_with_summary_request(tmp_path):
    surface = FakeSurface()
    d, replies = _run(surface, str(tmp_path), [
        ("c1", "connect"),
        ("c1", {"type": "sync_text", "content": "fix bug"}),
        ("c1", {"type": "submit", "needAiReply": True}),
    ])

    assert replies[-1] == {"type": "ack", "action": "submit"}
    assert surface.clipboard == "fix bug" + INLINE_SUFFIX
    names = surface.names()
    assert names.index("paste") < names.index("press_enter")
    assert names.count("paste") == 1
    staged = d.registry.get("c1").staged
    assert staged.is_empty()
    assert staged.first_sync is True


def test_submit_after_live_apply_replaces_instead_of_appending(tmp_path):
    surface = FakeSurface()
    _run(surface, str(tmp_path), [
        ("c1", "connect"),
        ("c1", {"type": "sync_text", "content": "fix bug"}),
        ("c1", "idle"),
        ("c1", {"type": "submit"}),
    ])

    names = surface.names()
    tail = names[names.index("press_enter") - 2:]
    assert tail == ["select_all", "paste", "press_enter"]
    assert surface.clipboard == "fix bug"


def test_submit_with_nothing_staged_only_presses_enter(tmp_path):
    surface = FakeSurface()
    _, replies = _run(surface, str(tmp_path), [("c1", {"type": "submit"})])

    assert replies == [{"type": "ack", "action": "submit"}]
    assert surface.names() == ["press_enter"]


def test_submit_reports_failed_step_but_still_resets(tmp_path):
    surface = FakeSurface(fail={"paste"})
    d, replies = _run(surface, str(tmp_path), [
        ("c1", "connect"),
        ("c1", {"type": "sync_text", "content": "x"}),
        ("c1", {"type": "submit"}),
    ])

    assert replies[-1] == {"type": "ack", "action": "submit", "status": "failed"}
    assert d.registry.get("c1").staged.is_empty()


def test_unknown_type_is_an_error_and_not_fatal(tmp_path):
    surface = FakeSurface()
    _, replies = _run(surface, str(tmp_path), [
        ("c1", "connect"),
        ("c1", {"type": "frobnicate"}),
        ("c1", {"type": "sync_text", "content": "still here"}),
    ])

    assert replies[0] == {"type": "error", "message": "unknown message type: frobnicate"}
    assert replies[1] == {"type": "ack", "action": "sync_text"}


def test_paste_only_keeps_staging(tmp_path):
    surface = FakeSurface()
    d, replies = _run(surface, str(tmp_path), [
        ("c1", "connect"),
        ("c1", {"type": "sync_text", "content": "draft"}),
        ("c1", {"type": "paste_only"}),
    ])

    assert replies[-1] == {"type": "ack", "action": "paste_only"}
    assert "press_enter" not in surface.names()
    assert "select_all" not in surface.names()
    assert d.registry.get("c1").staged.text == "draft"


def test_image_add_then_remove(tmp_path):
    surface = FakeSurface()
    d, replies = _run(surface, str(tmp_path), [
        ("c1", "connect"),
        ("c1", {"type": "sync_image_add", "id": "a1", "base64": PNG_B64, "mimeType": "image/png"}),
        ("c1", "idle"),
    ])
    path = tmp_path / ".cursor" / "voice-images" / "img_a1.png"

    assert replies == [{"type": "ack", "action": "sync_image_add", "id": "a1"}]
    assert path.read_bytes().startswith(b"\x89PNG")
    assert surface.clipboard == "![image](.cursor/voice-images/img_a1.png)"

    async def remove():
        reply = await d.dispatch("c1", {"type": "sync_image_remove", "id": "a1"})
        await d.engine.wait_idle()
        return reply

    assert asyncio.run(remove()) == {"type": "ack", "action": "sync_image_remove", "id": "a1"}
    assert not path.exists()
    assert d.registry.get("c1").staged.images == {}


def test_image_without_workspace_is_rejected(tmp_path):
    surface = FakeSurface()
    _, replies = _run(surface, None, [
        ("c1", {"type": "sync_image_add", "id": "a1", "base64": PNG_B64, "mimeType": "image/png"}),
    ])
    assert replies[0]["type"] == "error"
    assert "workspace" in replies[0]["message"]


def test_bad_image_payloads_are_errors(tmp_path):
    surface = FakeSurface()
    _, replies = _run(surface, str(tmp_path), [
        ("c1", {"type": "sync_image_add", "id": "a1", "base64": "@@not-base64@@"}),
        ("c1", {"type": "sync_image_add", "base64": PNG_B64}),
        ("c1", {"type": "sync_image_remove"}),
    ])
    assert [r["type"] for r in replies] == ["error", "error", "error"]
    assert surface.calls == []


def test_second_phone_cannot_mutate_while_first_holds_claim(tmp_path):
    surface = FakeSurface()
    surface.clipboard = "shared"
    _, replies = _run(surface, str(tmp_path), [
        ("a", "connect"),
        ("b", "connect"),
        ("a", {"type": "sync_text", "content": "mine"}),
        ("b", {"type": "sync_text", "content": "theirs"}),
        ("b", {"type": "get_clipboard"}),
        ("a", "disconnect"),
        ("b", {"type": "sync_text", "content": "theirs"}),
    ])

    assert replies[0] == {"type": "ack", "action": "sync_text"}
    assert replies[1]["type"] == "error"
    assert replies[2]["type"] == "clipboard_content"
    assert replies[3] == {"type": "ack", "action": "sync_text"}


def test_get_clipboard_returns_literal_content(tmp_path):
    surface = FakeSurface()
    _, replies = _run(surface, str(tmp_path), [("c1", {"type": "get_clipboard"})])
    assert replies[0]["type"] == "clipboard_content"
    assert replies[0]["content"] == ""
    assert isinstance(replies[0]["timestamp"], int)


def test_get_current_line_trims_copied_line(tmp_path):
    surface = FakeSurface(line="  git status  \n")
    _, replies = _run(surface, str(tmp_path), [("c1", {"type": "get_current_line"})])
    assert replies[0]["type"] == "current_line_content"
    assert replies[0]["content"] == "git status"


def test_get_current_line_not_available_in_editor_variant(tmp_path):
    surface = FakeSurface(line="ls")
    _, replies = _run(surface, str(tmp_path), [("c1", {"type": "get_current_line"})], variant="editor")
    assert replies[0]["type"] == "error"
    assert surface.calls == []


def test_replace_line_clears_then_pastes(tmp_path):
    surface = FakeSurface()
    _, replies = _run(surface, str(tmp_path), [("c1", {"type": "replace_line"})])
    assert replies[0] == {"type": "ack", "action": "replace_line"}
    assert surface.names() == ["clear_line", "paste"]


def test_legacy_text_acks_with_timestamp(tmp_path):
    reset_dedup()
    surface = FakeSurface()
    _, replies = _run(surface, str(tmp_path), [("c1", {"type": "text", "content": "hello"})])
    assert replies[0]["type"] == "ack"
    assert replies[0]["action"] == "text"
    assert isinstance(replies[0]["timestamp"], int)
    assert surface.clipboard == "hello"


def test_ai_reply_from_a_client_is_rebroadcast(tmp_path):
    relay = FakeRelay()
    surface = FakeSurface()
    _, replies = _run(surface, str(tmp_path), [
        ("cli", {"type": "ai_reply", "summary": "done", "content": "all done"}),
        ("cli", {"type": "ai_reply"}),
    ], relay=relay)

    assert replies[0] is None
    assert replies[1]["type"] == "error"
    assert relay.replies == [("done", "all done")]


def test_paste_only_after_live_apply_replaces_draft(tmp_path):
    surface = FakeSurface()
    d, replies = _run(surface, str(tmp_path), [
        ("c1", "connect"),
        ("c1", {"type": "sync_text", "content": "draft"}),
        ("c1", "idle"),
        ("c1", {"type": "paste_only"}),
    ])

    assert replies[-1] == {"type": "ack", "action": "paste_only"}
    keys = [n for n in surface.names() if n in ("select_all", "paste")]
    assert keys == ["paste", "select_all", "paste"]
    assert surface.clipboard == "draft"


def test_paste_only_without_live_sync_is_a_fresh_paste(tmp_path):
    surface = FakeSurface()
    _run(surface, str(tmp_path), [
        ("c1", "connect"),
        ("c1", {"type": "sync_text", "content": "draft"}),
        ("c1", {"type": "paste_only"}),
        ("c1", {"type": "paste_only"}),
    ], live=False)

    keys = [n for n in surface.names() if n in ("select_all", "paste")]
    assert keys == ["paste", "paste"]


def test_paste_only_with_summary_request(tmp_path):
    surface = FakeSurface()
    d, replies = _run(surface, str(tmp_path), [
        ("c1", "connect"),
        ("c1", {"type": "sync_text", "content": "fix bug"}),
        ("c1", {"type": "paste_only", "needAiReply": True}),
    ])

    assert replies[-1] == {"type": "ack", "action": "paste_only"}
    assert surface.clipboard == "fix bug" + INLINE_SUFFIX
    assert d.registry.get("c1").staged.text == "fix bug"


def test_summary_request_comes_before_images(tmp_path):
    image = "![image](.cursor/voice-images/img_a1.png)"
    for command in ("paste_only", "submit"):
        surface = FakeSurface()
        _run(surface, str(tmp_path), [
            ("c1", "connect"),
            ("c1", {"type": "sync_text", "content": "fix bug"}),
            ("c1", {"type": "sync_image_add", "id": "a1", "base64": PNG_B64, "mimeType": "image/png"}),
            ("c1", {"type": command, "needAiReply": True}),
        ])
        assert surface.clipboard == "fix bug" + INLINE_SUFFIX + "\n" + image


def test_image_added_and_removed_within_one_debounce_window(tmp_path):
    surface = FakeSurface()
    d, replies = _run(surface, str(tmp_path), [
        ("c1", "connect"),
        ("c1", {"type": "sync_text", "content": "hi"}),
        ("c1", {"type": "sync_image_add", "id": "a1", "base64": PNG_B64, "mimeType": "image/png"}),
        ("c1", {"type": "sync_image_remove", "id": "a1"}),
    ], debounce=0.2)

    assert [r["type"] for r in replies] == ["ack", "ack", "ack"]
    assert surface.names().count("paste") == 1
    assert surface.clipboard == "hi"
    assert d.registry.get("c1").staged.render() == "hi"
    assert not (tmp_path / ".cursor" / "voice-images" / "img_a1.png").exists()
