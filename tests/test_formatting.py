"""Tests for :mod:`gptrelay.core.formatting`."""

from gptrelay.core.formatting import (
    MARKDOWN_V2_RESERVED,
    Dialect,
    escape_markdown_v2,
    format_reply,
)


def test_code_fence_becomes_pre_block():
    text = "Try this:\n```python\nprint('hi')\n```\nand this ```x = 1```."
    out = format_reply(text, Dialect.HTML)
    assert "```" not in out
    assert out == "Try this:\n<pre>python\nprint('hi')\n</pre>\nand this <pre>x = 1</pre>."


def test_html_leaves_plain_text_alone():
    text = "no code here, just *stars* and 1 < 2"
    assert format_reply(text, Dialect.HTML) == text


def test_unterminated_fence_is_left_as_is():
    assert format_reply("```oops", Dialect.HTML) == "```oops"


def test_every_reserved_character_is_escaped_once():
    out = escape_markdown_v2(MARKDOWN_V2_RESERVED)
    expected = "".join("\\" + ch for ch in MARKDOWN_V2_RESERVED)
    assert out == expected


def test_markdown_v2_keeps_other_characters():
    text = "Hello, world: 2 * 3 = 6!"
    assert format_reply(text, Dialect.MARKDOWN_V2) == "Hello, world: 2 \\* 3 \\= 6\\!"


def test_plain_dialect_is_identity():
    assert format_reply("a_b.c", Dialect.PLAIN) == "a_b.c"


def test_format_is_total():
    assert format_reply(None, Dialect.HTML) == ""
    assert format_reply("", Dialect.MARKDOWN_V2) == ""
