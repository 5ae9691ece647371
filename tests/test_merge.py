from __future__ import annotations

from merge import PromptBuffer, merge_fragment


def test_merge_into_empty_buffer() -> None:
    assert merge_fragment("", "hello") == "hello"


def test_merge_inserts_single_space() -> None:
    assert merge_fragment("hello", "world") == "hello world"


def test_merge_does_not_double_space() -> None:
    assert merge_fragment("hello ", "world") == "hello world"


def test_merge_respects_other_trailing_whitespace() -> None:
    assert merge_fragment("hello\n", "world") == "hello\nworld"
    assert merge_fragment("hello\t", "world") == "hello\tworld"


def test_merge_empty_fragment_keeps_buffer() -> None:
    assert merge_fragment("hello", "") == "hello"


def test_prompt_buffer_appends_in_arrival_order() -> None:
    prompt = PromptBuffer()
    for fragment in ("turn", "the", "sky blue"):
        prompt.append_fragment(fragment)

    assert prompt.text == "turn the sky blue"


def test_manual_edits_survive_between_fragments() -> None:
    prompt = PromptBuffer()
    prompt.append_fragment("draw a cat")
    prompt.set_text("draw a fat cat ")
    prompt.append_fragment("wearing a hat")

    assert prompt.text == "draw a fat cat wearing a hat"


def test_on_change_fires_only_for_real_changes() -> None:
    seen: list[str] = []
    prompt = PromptBuffer(on_change=seen.append)

    prompt.set_text("abc")
    prompt.set_text("abc")
    prompt.append_fragment("")
    prompt.append_fragment("def")
    prompt.clear()

    assert seen == ["abc", "abc def", ""]
