# gptrelay/memory/models.py

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

ISO_FMT = "%Y-%m-%dT%H:%M:%S"


def now_iso() -> str:
    return datetime.now(timezone.utc).strftime(ISO_FMT)


@dataclass
class StoredState:
    key: int
    model: Optional[str]
    mode: Optional[str]
    target: Optional[int]


@dataclass
class ChatHistoryEntry:
    id: Optional[int]
    key: int
    message: str
    timestamp: str


@dataclass
class ChatName:
    key: int
    name: str
