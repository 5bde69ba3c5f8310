from __future__ import annotations

import pytest

from buddy.grammar import MARKERS
from buddy.sanitize import sanitize_response


def _has_marker(text: str) -> bool:
    lowered = text.lower()
    return any(m in lowered for m in MARKERS.values())


def test_leaked_system_and_user_blocks_are_removed():
    raw = "<|system|>leak<|assistant|>Hello there<|user|>ignored"
    assert sanitize_response(raw) == "Hello there"


def test_plain_text_is_only_trimmed():
    assert sanitize_response("  Use `ls -la` to list files.\n") == "Use `ls -la` to list files."


def test_leading_assistant_marker_is_dropped():
    assert sanitize_response("<|assistant|>\nRun `pwd`.") == "Run `pwd`."


def test_echoed_user_turn_runs_to_end_of_text():
    raw = "Try `df -h`.\n<|user|>\nand what about inodes?\n"
    assert sanitize_response(raw) == "Try `df -h`."


def test_user_block_ends_at_assistant_marker():
    raw = "<|user|>\nhow do I grep?\n<|assistant|>\nUse `grep -r pattern .`"
    assert sanitize_response(raw) == "Use `grep -r pattern .`"


def test_system_block_spans_lines():
    raw = "<|system|>\nYou are a helpful\nCLI assistant.\n<|assistant|>\nSure."
    assert sanitize_response(raw) == "Sure."


def test_markers_match_case_insensitively():
    assert sanitize_response("<|SYSTEM|>secret<|Assistant|>ok") == "ok"


def test_marker_spliced_by_removal_is_also_removed():
    # Dropping the inner assistant marker joins "<|sys" and "tem|>".
    assert sanitize_response("a <|sys<|assistant|>tem|> b") == "a  b"
    assert sanitize_response("<|sys<|sys<|assistant|>tem|>tem|>") == ""


def test_output_of_only_markers_is_empty():
    assert sanitize_response("<|assistant|>  <|assistant|>\n") == ""
    assert sanitize_response("") == ""


SAMPLES = [
    "",
    "hello",
    "  padded  ",
    "<|system|>leak<|assistant|>Hello there<|user|>ignored",
    "<|user|>",
    "text <|user|> more <|system|> tail",
    "<|assistant|><|assistant|>x<|ASSISTANT|>",
    "<|sys<|user|>tem|>",
    "a <|sys<|assistant|>tem|> b",
    "<|system|>\n\n<|user|>\n<|assistant|>\n  reply\n\n",
    "nested <|us<|us<|assistant|>er|>er|> end",
    "<|user|>q1<|system|>s<|assistant|>a1<|user|>q2",
]


@pytest.mark.parametrize("raw", SAMPLES)
def test_sanitize_is_idempotent(raw):
    once = sanitize_response(raw)
    assert sanitize_response(once) == once


@pytest.mark.parametrize("raw", SAMPLES)
def test_output_never_contains_markers(raw):
    assert not _has_marker(sanitize_response(raw))
