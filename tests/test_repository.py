"""Tests for :mod:`gptrelay.memory.repository` (SQLite backend)."""

import sqlite3

import pytest

from gptrelay.core.errors import PersistenceError
from gptrelay.core.state import StateStore
from gptrelay.memory.models import StoredState
from gptrelay.memory.repository import SqliteConversationRepository


@pytest.fixture
def sqlite_repo(tmp_path):
    repo = SqliteConversationRepository(tmp_path / "relay.db")
    repo.initialize()
    return repo


def test_initialize_is_idempotent(sqlite_repo):
    sqlite_repo.initialize()
    assert sqlite_repo.load_state(1) is None


def test_state_upsert_round_trip(sqlite_repo):
    sqlite_repo.save_state(StoredState(key=1, model="gpt-4", mode="assistant", target=None))
    sqlite_repo.save_state(StoredState(key=1, model="gpt-4", mode="strict", target=2))
    assert sqlite_repo.load_state(1) == StoredState(key=1, model="gpt-4", mode="strict", target=2)
    assert sqlite_repo.delete_state(1) == 1
    assert sqlite_repo.delete_state(1) == 0


def test_history_is_append_only_and_ordered(sqlite_repo):
    first = sqlite_repo.append_history(1, "one")
    second = sqlite_repo.append_history(1, "two")
    sqlite_repo.append_history(2, "elsewhere")
    assert second > first
    assert [e.message for e in sqlite_repo.list_history(1)] == ["one", "two"]
    assert sqlite_repo.delete_history(1) == 2
    assert [e.message for e in sqlite_repo.list_history(2)] == ["elsewhere"]


def test_chat_names(sqlite_repo):
    sqlite_repo.save_chat_name(5, "Project X")
    sqlite_repo.save_chat_name(5, "Project Y")
    sqlite_repo.save_chat_name(3, "Notes")
    assert [(c.key, c.name) for c in sqlite_repo.list_chat_names()] == [(3, "Notes"), (5, "Project Y")]
    assert sqlite_repo.delete_chat_name(5) == 1


def test_store_survives_restart(sqlite_repo, models, modes):
    StateStore(sqlite_repo, models, modes).set_model(8, "gpt-4")
    assert StateStore(sqlite_repo, models, modes).get_state(8).active_model == "gpt-4"


def test_missing_schema_raises_persistence_error(tmp_path):
    repo = SqliteConversationRepository(tmp_path / "empty.db")
    with pytest.raises(PersistenceError):
        repo.append_history(1, "no tables yet")


def test_delete_conversation_counts_all_tables(sqlite_repo):
    sqlite_repo.save_state(StoredState(key=9, model="gpt-4", mode="assistant", target=None))
    sqlite_repo.append_history(9, "hello")
    sqlite_repo.save_chat_name(9, "Project X")
    assert sqlite_repo.delete_conversation(9) == 3
    assert sqlite_repo.delete_conversation(9) == 0


def test_failed_delete_rolls_back_history(sqlite_repo):
    sqlite_repo.append_history(9, "hello")
    conn = sqlite3.connect(sqlite_repo.db_path)
    conn.execute("DROP TABLE chat_names")
    conn.commit()
    conn.close()

    with pytest.raises(PersistenceError):
        sqlite_repo.delete_conversation(9)

    assert [e.message for e in sqlite_repo.list_history(9)] == ["hello"]
