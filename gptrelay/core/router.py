# gptrelay/core/router.py

import threading
from enum import Enum
from typing import Callable, Dict, List, Mapping

from gptrelay.core import commands as cmd
from gptrelay.core.channels import InboundMessage, Keyboard, OutboundMessage
from gptrelay.core.chat import CompletionDispatcher
from gptrelay.core.errors import ConversationNotFound, InvalidMode, InvalidModel, PersistenceError
from gptrelay.core.formatting import Dialect
from gptrelay.core.models import ModelDescriptor
from gptrelay.core.modes import ModeDescriptor
from gptrelay.core.state import StateStore
from gptrelay.utils.logging import get_logger

logger = get_logger(__name__)

WELCOME_TEXT = "👋 Welcome! I am your ChatGPT bot. You can use the following commands:"
HELP_TEXT = (
    "ℹ️ Here is a list of commands you can use:\n"
    f"{cmd.START}: show the main menu\n"
    f"{cmd.STATUS}: current model, mode and chat\n"
    f"{cmd.SETTINGS}: choose a model or a mode\n"
    f"{cmd.CHATS}: list, create, switch or delete chats\n"
    "Anything else is sent to the model."
)


class Intent(str, Enum):
    IDLE = "idle"
    AWAITING_CHAT_NAME = "awaiting_chat_name"


def main_menu_keyboard() -> Keyboard:
    return [
        [cmd.START, cmd.HELP],
        [cmd.STATUS, cmd.SETTINGS],
        [cmd.CHATS],
    ]


def _pairs(labels: List[str]) -> Keyboard:
    return [labels[i:i + 2] for i in range(0, len(labels), 2)]


class CommandRouter:
    """
    Routes inbound messages to state-store operations or to the dispatcher,
    and owns the per-user pending intent (Idle / AwaitingChatName).
    """

    def __init__(
        self,
        store: StateStore,
        dispatcher: CompletionDispatcher,
        models: Mapping[str, ModelDescriptor],
        modes: Mapping[str, ModeDescriptor],
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.models = models
        self.modes = modes
        self._intents: Dict[int, Intent] = {}
        self._intents_lock = threading.Lock()
        self._handlers: Dict[type, Callable] = {
            cmd.Start: self._start,
            cmd.Help: self._help,
            cmd.Status: self._status,
            cmd.Settings: self._settings,
            cmd.ListChats: self._list_chats,
            cmd.CreateChat: self._ask_chat_name,
            cmd.DeleteChatMenu: self._delete_menu,
            cmd.SwitchChat: self._switch_chat,
            cmd.DeleteChat: self._delete_chat,
            cmd.SetModel: self._set_model,
            cmd.SetMode: self._set_mode,
            cmd.NameChat: self._name_chat,
            cmd.Converse: self._converse,
            cmd.Ignore: self._ignore,
        }

    # ---------- pending intent ----------

    def intent(self, chat_id: int) -> Intent:
        with self._intents_lock:
            return self._intents.get(chat_id, Intent.IDLE)

    def _set_intent(self, chat_id: int, intent: Intent) -> None:
        with self._intents_lock:
            if intent == Intent.IDLE:
                self._intents.pop(chat_id, None)
            else:
                self._intents[chat_id] = intent

    # ---------- entry point ----------

    def handle(self, message: InboundMessage) -> List[OutboundMessage]:
        command = cmd.parse_command(message.text, message.reply_to_text)
        intent = self.intent(message.chat_id)
        # A chat name is only accepted right after the naming prompt.
        if isinstance(command, cmd.NameChat) and intent != Intent.AWAITING_CHAT_NAME:
            command = cmd.parse_command(message.text)
        # The pending intent is single-use: whatever comes next consumes it.
        if intent != Intent.IDLE:
            self._set_intent(message.chat_id, Intent.IDLE)
        handler = self._handlers[type(command)]
        return handler(message.chat_id, command)

    def _say(self, chat_id: int, text: str, keyboard: Keyboard = None, **kwargs) -> List[OutboundMessage]:
        return [OutboundMessage(chat_id=chat_id, text=text, dialect=Dialect.PLAIN, keyboard=keyboard, **kwargs)]

    # ---------- menus ----------

    def _start(self, chat_id: int, command: cmd.Start) -> List[OutboundMessage]:
        return self._say(chat_id, WELCOME_TEXT, keyboard=main_menu_keyboard())

    def _help(self, chat_id: int, command: cmd.Help) -> List[OutboundMessage]:
        return self._say(chat_id, HELP_TEXT)

    def _status(self, chat_id: int, command: cmd.Status) -> List[OutboundMessage]:
        state = self.store.get_state(chat_id)
        mode = self.modes.get(state.active_mode)
        lines = [
            "📊 All systems are operational.",
            f"Current model: {state.active_model}",
            f"Current mode: {mode.name if mode else state.active_mode}",
            f"Active chat: {state.resolved_target()}",
        ]
        return self._say(chat_id, "\n".join(lines))

    def _settings(self, chat_id: int, command: cmd.Settings) -> List[OutboundMessage]:
        keyboard = _pairs([cmd.MODEL_PREFIX + model_id for model_id in self.models])
        keyboard += _pairs([cmd.MODE_PREFIX + mode_id for mode_id in self.modes])
        keyboard.append([cmd.BACK])
        return self._say(chat_id, "⚙️ Select a model or a mode:", keyboard=keyboard)

    def _chat_buttons(self, prefix: str) -> List[str]:
        return [f"{prefix}{chat.key} ({chat.name})" for chat in self.store.list_conversations()]

    def _list_chats(self, chat_id: int, command: cmd.ListChats) -> List[OutboundMessage]:
        try:
            buttons = self._chat_buttons(cmd.SWITCH_CHAT_PREFIX)
        except PersistenceError as e:
            logger.error("Error fetching chat list: %s", e)
            return self._say(chat_id, "❌ Error fetching chat list.")
        keyboard = _pairs(buttons)
        keyboard.append([cmd.CREATE_CHAT, cmd.DELETE_CHAT])
        keyboard.append([cmd.BACK])
        text = "💬 Active chats:" if buttons else "📭 No chats found."
        return self._say(chat_id, text, keyboard=keyboard)

    def _delete_menu(self, chat_id: int, command: cmd.DeleteChatMenu) -> List[OutboundMessage]:
        try:
            buttons = self._chat_buttons(cmd.DELETE_CHAT_PREFIX)
        except PersistenceError as e:
            logger.error("Error fetching chat list for deletion: %s", e)
            return self._say(chat_id, "❌ Error fetching chat list.")
        if not buttons:
            return self._say(chat_id, "📭 No chats found.")
        keyboard = _pairs(buttons)
        keyboard.append([cmd.BACK])
        return self._say(chat_id, "❌ Select a chat to delete:", keyboard=keyboard)

    # ---------- chat management ----------

    def _ask_chat_name(self, chat_id: int, command: cmd.CreateChat) -> List[OutboundMessage]:
        self._set_intent(chat_id, Intent.AWAITING_CHAT_NAME)
        return self._say(chat_id, cmd.CHAT_NAME_PROMPT, force_reply=True)

    def _name_chat(self, chat_id: int, command: cmd.NameChat) -> List[OutboundMessage]:
        try:
            self.store.name_conversation(chat_id, command.name)
        except PersistenceError as e:
            logger.error("Error creating new chat for %d: %s", chat_id, e)
            return self._say(chat_id, "Failed to create new chat.")
        return self._say(chat_id, f"New chat created with ID: {chat_id} and name: {command.name}")

    def _switch_chat(self, chat_id: int, command: cmd.SwitchChat) -> List[OutboundMessage]:
        try:
            self.store.set_target(chat_id, command.target)
        except PersistenceError as e:
            logger.error("Error switching chat %d to %d: %s", chat_id, command.target, e)
            return self._say(chat_id, f"Failed to switch chat: {e}")
        return self._say(chat_id, f"Switched to chat {command.target}")

    def _delete_chat(self, chat_id: int, command: cmd.DeleteChat) -> List[OutboundMessage]:
        try:
            self.store.delete_conversation(command.target)
        except (ConversationNotFound, PersistenceError) as e:
            return self._say(chat_id, f"Failed to delete chat: {e}")
        return self._say(chat_id, f"Chat {command.target} deleted successfully.")

    # ---------- preferences ----------

    def _set_model(self, chat_id: int, command: cmd.SetModel) -> List[OutboundMessage]:
        try:
            self.store.set_model(chat_id, command.model_id)
        except (InvalidModel, PersistenceError) as e:
            return self._say(chat_id, f"Failed to set model: {e}")
        return self._say(chat_id, f"Model set to {command.model_id}")

    def _set_mode(self, chat_id: int, command: cmd.SetMode) -> List[OutboundMessage]:
        try:
            self.store.set_mode(chat_id, command.mode_id)
        except (InvalidMode, PersistenceError) as e:
            return self._say(chat_id, f"Failed to set mode: {e}")
        mode = self.modes[command.mode_id]
        return self._say(chat_id, mode.welcome or f"Mode set to {mode.name}")

    # ---------- conversation ----------

    def _converse(self, chat_id: int, command: cmd.Converse) -> List[OutboundMessage]:
        reply = self.dispatcher.respond(chat_id, command.text)
        return [OutboundMessage(chat_id=chat_id, text=reply.text, dialect=reply.dialect)]

    def _ignore(self, chat_id: int, command: cmd.Ignore) -> List[OutboundMessage]:
        logger.info("Dropping message from chat %d: %s", chat_id, command.reason)
        return []
