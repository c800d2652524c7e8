# gptrelay/core/commands.py
"""
Single parse step from inbound text to a command variant.

Order matters: a reply to the chat-naming prompt is checked first, so a
chat name that happens to look like a button ("Model: x", "💬 Chats") is
still taken as a name. Then exact button labels and slash aliases, then
prefixed buttons, and finally plain conversation.
"""

import re
from dataclasses import dataclass
from typing import Optional, Union

# Button labels
START = "🚀 Start"
HELP = "ℹ️ Help"
STATUS = "📊 Status"
SETTINGS = "⚙️ Settings"
CHATS = "💬 Chats"
CREATE_CHAT = "🆕 Create Chat"
DELETE_CHAT = "❌ Delete Chat"
BACK = "🔙 Back"

# Prefixed buttons
SWITCH_CHAT_PREFIX = "Chat ID: "
DELETE_CHAT_PREFIX = "Delete Chat ID: "
MODEL_PREFIX = "Model: "
MODE_PREFIX = "Mode: "

CHAT_NAME_PROMPT = "Please provide a name for the new chat:"

# "Chat ID: 42" or "Chat ID: 42 (Project X)"
_CHAT_ID_RE = re.compile(r"^(-?\d+)(?:\s+\(.*\))?$", re.DOTALL)


@dataclass(frozen=True)
class Start:
    pass


@dataclass(frozen=True)
class Help:
    pass


@dataclass(frozen=True)
class Status:
    pass


@dataclass(frozen=True)
class Settings:
    pass


@dataclass(frozen=True)
class ListChats:
    pass


@dataclass(frozen=True)
class CreateChat:
    pass


@dataclass(frozen=True)
class DeleteChatMenu:
    pass


@dataclass(frozen=True)
class SwitchChat:
    target: int


@dataclass(frozen=True)
class DeleteChat:
    target: int


@dataclass(frozen=True)
class SetModel:
    model_id: str


@dataclass(frozen=True)
class SetMode:
    mode_id: str


@dataclass(frozen=True)
class NameChat:
    name: str


@dataclass(frozen=True)
class Converse:
    text: str


@dataclass(frozen=True)
class Ignore:
    reason: str


Command = Union[
    Start, Help, Status, Settings, ListChats, CreateChat, DeleteChatMenu,
    SwitchChat, DeleteChat, SetModel, SetMode, NameChat, Converse, Ignore,
]

EXACT_COMMANDS = {
    START: Start,
    "/start": Start,
    BACK: Start,
    HELP: Help,
    "/help": Help,
    STATUS: Status,
    "/status": Status,
    SETTINGS: Settings,
    "/settings": Settings,
    CHATS: ListChats,
    "/chats": ListChats,
    CREATE_CHAT: CreateChat,
    DELETE_CHAT: DeleteChatMenu,
}


def parse_chat_id(raw: str) -> Optional[int]:
    match = _CHAT_ID_RE.match(raw.strip())
    if not match:
        return None
    return int(match.group(1))


def parse_command(text: str, reply_to_text: Optional[str] = None) -> Command:
    text = text or ""

    if reply_to_text is not None and reply_to_text.strip() == CHAT_NAME_PROMPT:
        name = text.strip()
        if not name:
            return Ignore("empty chat name")
        return NameChat(name)

    stripped = text.strip()
    exact = EXACT_COMMANDS.get(stripped)
    if exact is not None:
        return exact()

    if stripped.startswith(DELETE_CHAT_PREFIX):
        raw = stripped[len(DELETE_CHAT_PREFIX):]
        target = parse_chat_id(raw)
        if target is None:
            return Ignore(f"unparseable chat id {raw!r}")
        return DeleteChat(target)

    if stripped.startswith(SWITCH_CHAT_PREFIX):
        raw = stripped[len(SWITCH_CHAT_PREFIX):]
        target = parse_chat_id(raw)
        if target is None:
            return Ignore(f"unparseable chat id {raw!r}")
        return SwitchChat(target)

    if stripped.startswith(MODEL_PREFIX):
        return SetModel(stripped[len(MODEL_PREFIX):].strip())

    if stripped.startswith(MODE_PREFIX):
        return SetMode(stripped[len(MODE_PREFIX):].strip())

    if not stripped:
        return Ignore("empty message")

    return Converse(text)
