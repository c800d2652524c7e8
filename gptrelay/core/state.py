# gptrelay/core/state.py

import threading
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from gptrelay.core.errors import ConversationNotFound, InvalidMode, InvalidModel, PersistenceError
from gptrelay.core.models import DEFAULT_MODEL_ID
from gptrelay.core.modes import DEFAULT_MODE_ID
from gptrelay.memory.models import ChatName, StoredState
from gptrelay.memory.repository import ConversationRepository
from gptrelay.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ConversationState:
    key: int
    active_model: str = DEFAULT_MODEL_ID
    active_mode: str = DEFAULT_MODE_ID
    active_target: Optional[int] = None   # None: messages and history stay on `key`

    def resolved_target(self) -> int:
        return self.active_target if self.active_target is not None else self.key

    def to_stored(self) -> StoredState:
        return StoredState(
            key=self.key,
            model=self.active_model,
            mode=self.active_mode,
            target=self.active_target,
        )


class StateStore:
    """
    Maps a conversation key to its ConversationState.

    States are materialized lazily (from the repository, or with defaults)
    and cached, so repeated lookups of a key return the same instance.
    Mutations are serialized per key; the lock is never held across a
    backend call. Cached states and per-key locks live until the
    conversation is deleted, so both grow with the number of active chats.
    """

    def __init__(
        self,
        repository: ConversationRepository,
        model_ids: Mapping[str, object],
        mode_ids: Mapping[str, object],
    ) -> None:
        self._repo = repository
        self._model_ids = frozenset(model_ids)
        self._mode_ids = frozenset(mode_ids)
        self._states: Dict[int, ConversationState] = {}
        self._locks: Dict[int, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: int) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _materialize(self, key: int) -> ConversationState:
        stored = self._repo.load_state(key)
        state = ConversationState(key=key)
        if stored is None:
            return state
        # Values that are no longer in the catalogs fall back to defaults.
        if stored.model in self._model_ids:
            state.active_model = stored.model
        elif stored.model:
            logger.warning("Stored model %r for chat %d is not configured; using %s.",
                           stored.model, key, DEFAULT_MODEL_ID)
        if stored.mode in self._mode_ids:
            state.active_mode = stored.mode
        elif stored.mode:
            logger.warning("Stored mode %r for chat %d is not configured; using %s.",
                           stored.mode, key, DEFAULT_MODE_ID)
        state.active_target = stored.target
        return state

    def _get_locked(self, key: int) -> ConversationState:
        state = self._states.get(key)
        if state is None:
            state = self._materialize(key)
            self._states[key] = state
        return state

    def get_state(self, key: int) -> ConversationState:
        """
        Return the state for `key`, creating a default one on first access.
        Never fails: if the repository cannot be read, an uncached default
        state is returned.
        """
        with self._lock_for(key):
            try:
                return self._get_locked(key)
            except PersistenceError as e:
                logger.error("Failed to load state for chat %d, using defaults: %s", key, e)
                return ConversationState(key=key)

    def _update(self, key: int, **changes) -> ConversationState:
        with self._lock_for(key):
            state = self._get_locked(key)
            candidate = ConversationState(
                key=key,
                active_model=changes.get("active_model", state.active_model),
                active_mode=changes.get("active_mode", state.active_mode),
                active_target=changes.get("active_target", state.active_target),
            )
            # Persist first so a failed write leaves the cached state untouched.
            self._repo.save_state(candidate.to_stored())
            state.active_model = candidate.active_model
            state.active_mode = candidate.active_mode
            state.active_target = candidate.active_target
            return state

    def set_model(self, key: int, model_id: str) -> ConversationState:
        if model_id not in self._model_ids:
            raise InvalidModel(model_id)
        state = self._update(key, active_model=model_id)
        logger.info("Chat %d switched to model %s.", key, model_id)
        return state

    def set_mode(self, key: int, mode_id: str) -> ConversationState:
        if mode_id not in self._mode_ids:
            raise InvalidMode(mode_id)
        state = self._update(key, active_mode=mode_id)
        logger.info("Chat %d switched to mode %s.", key, mode_id)
        return state

    def set_target(self, key: int, target: int) -> ConversationState:
        state = self._update(key, active_target=target)
        logger.info("Chat %d now targets chat %d.", key, target)
        return state

    def delete_conversation(self, key: int) -> None:
        """
        Remove state, history and chat name for `key`. Raises
        ConversationNotFound only when nothing at all was removed.
        """
        with self._lock_for(key):
            try:
                removed = self._repo.delete_conversation(key)
            finally:
                self._states.pop(key, None)
        with self._registry_lock:
            self._locks.pop(key, None)
        if removed == 0:
            raise ConversationNotFound(key)
        logger.info("Deleted chat %d (%d rows).", key, removed)

    def name_conversation(self, key: int, name: str) -> None:
        with self._lock_for(key):
            self._repo.save_chat_name(key, name)

    def list_conversations(self) -> List[ChatName]:
        return self._repo.list_chat_names()
