# gptrelay/core/chat.py

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Protocol

from gptrelay.core.errors import (
    BackendEmptyResponse,
    BackendQuotaExceeded,
    BackendStructuredError,
    BackendTransportError,
    PersistenceError,
    UnknownModelFamily,
)
from gptrelay.core.formatting import Dialect, format_reply
from gptrelay.core.models import ModelDescriptor
from gptrelay.core.modes import DEFAULT_MODE_ID, ModeDescriptor
from gptrelay.core.state import StateStore
from gptrelay.core.tokens import TokenAccountant
from gptrelay.memory.repository import ConversationRepository
from gptrelay.utils.logging import get_logger

logger = get_logger(__name__)

# User-visible failure messages. Transport failures and malformed responses
# share one text; the three backend outcomes below each get their own.
TRANSPORT_FAILURE_MESSAGE = "An error occurred while processing your request."
QUOTA_EXCEEDED_MESSAGE = "❌ You exceeded your current quota. Please check your plan and billing details."
BACKEND_ERROR_MESSAGE = "❌ An error occurred while processing your request."
EMPTY_RESPONSE_MESSAGE = "❌ I couldn't process your request."


class CompletionBackend(Protocol):
    def create_chat_completion(self, model: str, messages: List[Dict[str, str]]) -> str:
        ...


@dataclass(frozen=True)
class Reply:
    text: str
    dialect: Dialect
    ok: bool = True


class CompletionDispatcher:
    """
    Turns one user message into one reply.

    Each request carries only the mode's system prompt and the latest user
    message; stored history is never sent back to the backend.
    """

    def __init__(
        self,
        store: StateStore,
        backend: CompletionBackend,
        accountant: TokenAccountant,
        models: Mapping[str, ModelDescriptor],
        modes: Mapping[str, ModeDescriptor],
        history: Optional[ConversationRepository] = None,
    ) -> None:
        self.store = store
        self.backend = backend
        self.accountant = accountant
        self.models = models
        self.modes = modes
        self.history = history   # None disables history persistence

    def build_messages(self, mode: ModeDescriptor, user_text: str) -> List[Dict[str, str]]:
        messages: List[Dict[str, str]] = []
        if mode.prompt:
            messages.append({"role": "system", "content": mode.prompt})
        messages.append({"role": "user", "content": user_text})
        return messages

    def _count_input(self, messages: List[Dict[str, str]], model: str) -> Optional[int]:
        try:
            input_tokens, _ = self.accountant.count_tokens(messages, model)
            return input_tokens
        except UnknownModelFamily as e:
            logger.warning("Token accounting skipped: %s", e)
            return None
        except Exception as e:
            logger.error("Token accounting failed for model=%s: %s", model, e)
            return None

    def _count_output(self, answer: str, model: str) -> Optional[int]:
        try:
            return self.accountant.count_answer_tokens(answer, model)
        except UnknownModelFamily as e:
            logger.warning("Token accounting skipped: %s", e)
            return None
        except Exception as e:
            logger.error("Token accounting failed for model=%s: %s", model, e)
            return None

    def _record_history(self, key: int, user_text: str) -> None:
        if self.history is None:
            return
        try:
            self.history.append_history(key, user_text)
        except PersistenceError as e:
            logger.error("Failed to save chat history for chat %d: %s", key, e)

    def respond(self, key: int, user_text: str) -> Reply:
        state = self.store.get_state(key)
        mode = self.modes.get(state.active_mode) or self.modes[DEFAULT_MODE_ID]
        model = state.active_model

        messages = self.build_messages(mode, user_text)
        input_tokens = self._count_input(messages, model)
        logger.info("Dispatching chat=%d model=%s mode=%s input_tokens=%s",
                    key, model, mode.id, input_tokens)

        try:
            content = self.backend.create_chat_completion(model, messages)
        except BackendQuotaExceeded as e:
            logger.warning("Quota exceeded for chat=%d model=%s: %s", key, model, e)
            return Reply(QUOTA_EXCEEDED_MESSAGE, Dialect.PLAIN, ok=False)
        except BackendStructuredError as e:
            logger.error("Backend error for chat=%d model=%s status=%s type=%s param=%s code=%s: %s",
                         key, model, e.status, e.type, e.param, e.code, e.message)
            return Reply(BACKEND_ERROR_MESSAGE, Dialect.PLAIN, ok=False)
        except BackendEmptyResponse as e:
            logger.warning("Empty response for chat=%d model=%s: %s", key, model, e)
            return Reply(EMPTY_RESPONSE_MESSAGE, Dialect.PLAIN, ok=False)
        except BackendTransportError as e:
            logger.error("Backend unreachable or malformed for chat=%d model=%s: %s", key, model, e)
            return Reply(TRANSPORT_FAILURE_MESSAGE, Dialect.PLAIN, ok=False)

        output_tokens = self._count_output(content, model)
        descriptor = self.models.get(model)
        if descriptor is not None and input_tokens is not None and output_tokens is not None:
            logger.info("Exchange chat=%d model=%s input_tokens=%d output_tokens=%d est_cost_usd=%.6f",
                        key, model, input_tokens, output_tokens,
                        descriptor.estimate_cost(input_tokens, output_tokens))

        self._record_history(state.resolved_target(), user_text)

        return Reply(format_reply(content, mode.dialect), mode.dialect)
