# gptrelay/core/formatting.py

import re
from enum import Enum


class Dialect(str, Enum):
    """
    Rendering dialect of an outbound message.

    HTML        : loose HTML-like tags; fenced code becomes <pre>.
    MARKDOWN_V2 : strict markup; every reserved character must be escaped.
    PLAIN       : no markup at all (sent without a parse mode).
    """
    HTML = "html"
    MARKDOWN_V2 = "markdown_v2"
    PLAIN = "plain"


CODE_FENCE_RE = re.compile(r"```(.*?)```", re.DOTALL)

# Characters the strict dialect treats as syntax.
MARKDOWN_V2_RESERVED = "_*[]()~`>#+-=|{}.!"
_MARKDOWN_V2_RE = re.compile("([" + re.escape(MARKDOWN_V2_RESERVED) + "])")


def format_code_blocks_html(text: str) -> str:
    return CODE_FENCE_RE.sub(lambda m: "<pre>" + m.group(1) + "</pre>", text)


def escape_markdown_v2(text: str) -> str:
    return _MARKDOWN_V2_RE.sub(r"\\\1", text)


def format_reply(text: str, dialect: Dialect) -> str:
    """
    Render raw model output for the given dialect. Pure and total.
    """
    text = text or ""
    if dialect == Dialect.HTML:
        return format_code_blocks_html(text)
    if dialect == Dialect.MARKDOWN_V2:
        return escape_markdown_v2(text)
    return text
