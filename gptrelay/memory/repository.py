# gptrelay/memory/repository.py

import sqlite3
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from gptrelay.core.errors import PersistenceError
from gptrelay.memory.db import get_connection, init_db
from gptrelay.memory.models import ChatHistoryEntry, ChatName, StoredState, now_iso


class ConversationRepository(ABC):
    """
    Storage for per-chat state, message history and chat names.

    Every delete_* method returns the number of rows removed. Backend
    failures are raised as PersistenceError.
    """

    @abstractmethod
    def load_state(self, key: int) -> Optional[StoredState]:
        ...

    @abstractmethod
    def save_state(self, state: StoredState) -> None:
        ...

    @abstractmethod
    def delete_state(self, key: int) -> int:
        ...

    @abstractmethod
    def append_history(self, key: int, message: str) -> int:
        ...

    @abstractmethod
    def list_history(self, key: int) -> List[ChatHistoryEntry]:
        ...

    @abstractmethod
    def delete_history(self, key: int) -> int:
        ...

    @abstractmethod
    def save_chat_name(self, key: int, name: str) -> None:
        ...

    @abstractmethod
    def list_chat_names(self) -> List[ChatName]:
        ...

    @abstractmethod
    def delete_chat_name(self, key: int) -> int:
        ...

    @abstractmethod
    def delete_conversation(self, key: int) -> int:
        """Remove state, history and chat name for `key` atomically; return rows removed."""
        ...


class InMemoryConversationRepository(ConversationRepository):
    """Process-local repository, used for tests and GPTRELAY_STORAGE=memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._states: Dict[int, StoredState] = {}
        self._history: List[ChatHistoryEntry] = []
        self._names: Dict[int, str] = {}
        self._next_id = 1

    def load_state(self, key: int) -> Optional[StoredState]:
        with self._lock:
            stored = self._states.get(key)
            if stored is None:
                return None
            return StoredState(key=stored.key, model=stored.model, mode=stored.mode, target=stored.target)

    def save_state(self, state: StoredState) -> None:
        with self._lock:
            self._states[state.key] = StoredState(
                key=state.key, model=state.model, mode=state.mode, target=state.target
            )

    def delete_state(self, key: int) -> int:
        with self._lock:
            return 1 if self._states.pop(key, None) is not None else 0

    def append_history(self, key: int, message: str) -> int:
        with self._lock:
            entry = ChatHistoryEntry(id=self._next_id, key=key, message=message, timestamp=now_iso())
            self._next_id += 1
            self._history.append(entry)
            return entry.id

    def list_history(self, key: int) -> List[ChatHistoryEntry]:
        with self._lock:
            return [e for e in self._history if e.key == key]

    def delete_history(self, key: int) -> int:
        with self._lock:
            kept = [e for e in self._history if e.key != key]
            removed = len(self._history) - len(kept)
            self._history = kept
            return removed

    def save_chat_name(self, key: int, name: str) -> None:
        with self._lock:
            self._names[key] = name

    def list_chat_names(self) -> List[ChatName]:
        with self._lock:
            return [ChatName(key=k, name=v) for k, v in sorted(self._names.items())]

    def delete_chat_name(self, key: int) -> int:
        with self._lock:
            return 1 if self._names.pop(key, None) is not None else 0

    def delete_conversation(self, key: int) -> int:
        with self._lock:
            kept = [e for e in self._history if e.key != key]
            removed = len(self._history) - len(kept)
            self._history = kept
            removed += 1 if self._names.pop(key, None) is not None else 0
            removed += 1 if self._states.pop(key, None) is not None else 0
            return removed


class SqliteConversationRepository(ConversationRepository):
    """
    SQLite-backed repository. Opens one connection per call, so it can be
    shared between worker threads.
    """

    def __init__(self, db_path: Union[str, Path]) -> None:
        self.db_path = str(db_path)

    def initialize(self) -> None:
        """
        Initialize DB schema. Call once at startup.
        """
        try:
            init_db(self.db_path)
        except sqlite3.Error as e:
            raise PersistenceError(f"failed to initialize database at {self.db_path}: {e}") from e

    def _write(self, sql: str, params: tuple) -> Tuple[int, Optional[int]]:
        """Run one statement; return (rowcount, lastrowid)."""
        try:
            conn = get_connection(self.db_path)
        except sqlite3.Error as e:
            raise PersistenceError(f"cannot open database: {e}") from e
        try:
            cur = conn.cursor()
            cur.execute(sql, params)
            conn.commit()
            return cur.rowcount, cur.lastrowid
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()

    def _read(self, sql: str, params: tuple) -> List[sqlite3.Row]:
        try:
            conn = get_connection(self.db_path)
        except sqlite3.Error as e:
            raise PersistenceError(f"cannot open database: {e}") from e
        try:
            cur = conn.cursor()
            cur.execute(sql, params)
            return cur.fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()

    # ---------- state ----------

    def load_state(self, key: int) -> Optional[StoredState]:
        rows = self._read(
            "SELECT key, model, mode, target FROM conversation_state WHERE key = ?",
            (key,),
        )
        if not rows:
            return None
        row = rows[0]
        return StoredState(key=row["key"], model=row["model"], mode=row["mode"], target=row["target"])

    def save_state(self, state: StoredState) -> None:
        self._write(
            """
            INSERT INTO conversation_state (key, model, mode, target)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (key) DO UPDATE SET
                model = excluded.model,
                mode = excluded.mode,
                target = excluded.target
            """,
            (state.key, state.model, state.mode, state.target),
        )

    def delete_state(self, key: int) -> int:
        return self._write("DELETE FROM conversation_state WHERE key = ?", (key,))[0]

    # ---------- history ----------

    def append_history(self, key: int, message: str) -> int:
        _, row_id = self._write(
            """
            INSERT INTO chat_history (key, message, timestamp)
            VALUES (?, ?, ?)
            """,
            (key, message, now_iso()),
        )
        return row_id

    def list_history(self, key: int) -> List[ChatHistoryEntry]:
        rows = self._read(
            """
            SELECT id, key, message, timestamp
            FROM chat_history
            WHERE key = ?
            ORDER BY id
            """,
            (key,),
        )
        return [
            ChatHistoryEntry(
                id=row["id"],
                key=row["key"],
                message=row["message"],
                timestamp=row["timestamp"],
            )
            for row in rows
        ]

    def delete_history(self, key: int) -> int:
        return self._write("DELETE FROM chat_history WHERE key = ?", (key,))[0]

    # ---------- chat names ----------

    def save_chat_name(self, key: int, name: str) -> None:
        self._write(
            """
            INSERT INTO chat_names (key, name)
            VALUES (?, ?)
            ON CONFLICT (key) DO UPDATE SET name = excluded.name
            """,
            (key, name),
        )

    def list_chat_names(self) -> List[ChatName]:
        rows = self._read("SELECT key, name FROM chat_names ORDER BY key", ())
        return [ChatName(key=row["key"], name=row["name"]) for row in rows]

    def delete_chat_name(self, key: int) -> int:
        return self._write("DELETE FROM chat_names WHERE key = ?", (key,))[0]

    # ---------- conversation ----------

    def delete_conversation(self, key: int) -> int:
        try:
            conn = get_connection(self.db_path)
        except sqlite3.Error as e:
            raise PersistenceError(f"cannot open database: {e}") from e
        try:
            cur = conn.cursor()
            removed = 0
            for table in ("chat_history", "chat_names", "conversation_state"):
                cur.execute(f"DELETE FROM {table} WHERE key = ?", (key,))
                removed += cur.rowcount
            conn.commit()
            return removed
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()
