# gptrelay/core/channels.py

from dataclasses import dataclass
from typing import List, Optional

from gptrelay.core.formatting import Dialect

Keyboard = List[List[str]]   # rows of button labels


@dataclass(frozen=True)
class InboundMessage:
    chat_id: int
    text: str
    reply_to_text: Optional[str] = None


@dataclass
class OutboundMessage:
    chat_id: int
    text: str
    dialect: Dialect = Dialect.PLAIN
    keyboard: Optional[Keyboard] = None
    force_reply: bool = False
