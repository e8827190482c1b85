import pytest

from session_state import SessionClaimError, SessionRegistry, StagedContent, image_markdown


def test_render_text_then_images_in_insertion_order():
    staged = StagedContent()
    staged.apply_text("look at these")
    staged.add_image("b", ".cursor/voice-images/img_b.jpg")
    staged.add_image("a", ".cursor/voice-images/img_a.png")

    assert staged.render() == (
        "look at these\n"
        "![image](.cursor/voice-images/img_b.jpg)\n"
        "![image](.cursor/voice-images/img_a.png)"
    )


def test_render_images_only_and_empty():
    staged = StagedContent()
    assert staged.render() == ""
    assert staged.is_empty()

    staged.add_image("x", "ref.png")
    assert staged.render() == image_markdown("ref.png")


def test_render_override_text_keeps_staged_text():
    staged = StagedContent()
    staged.apply_text("fix bug")
    assert staged.render("fix bug!") == "fix bug!"
    assert staged.text == "fix bug"


def test_apply_text_replaces_wholesale():
    staged = StagedContent()
    staged.apply_text("h")
    staged.apply_text("hello")
    assert staged.text == "hello"
    staged.apply_text(None)
    assert staged.text == ""


def test_remove_unknown_image_is_silent():
    staged = StagedContent()
    staged.add_image("a", "a.png")
    assert staged.remove_image("zzz") is None
    assert staged.remove_image("a") == "a.png"
    assert staged.images == {}


def test_readding_an_id_overwrites_in_place():
    staged = StagedContent()
    staged.add_image("a", "one.png")
    staged.add_image("b", "two.png")
    staged.add_image("a", "three.png")
    assert list(staged.images.items()) == [("a", "three.png"), ("b", "two.png")]


def test_reset_restores_first_sync():
    staged = StagedContent()
    staged.apply_text("x")
    staged.add_image("a", "a.png")
    staged.first_sync = False

    staged.reset()

    assert staged.is_empty()
    assert staged.first_sync is True


def test_registry_claim_is_single_writer():
    registry = SessionRegistry()
    registry.open("a")
    registry.open("b")
    assert len(registry) == 2

    registry.claim("a")
    assert registry.holder == "a"
    assert registry.claim("a").connection_id == "a"
    with pytest.raises(SessionClaimError):
        registry.claim("b")

    registry.close("a")
    assert registry.holder is None
    assert "a" not in registry
    assert registry.claim("b").connection_id == "b"
    assert registry.active().connection_id == "b"


def test_claim_unknown_connection_raises():
    with pytest.raises(KeyError):
        SessionRegistry().claim("ghost")
