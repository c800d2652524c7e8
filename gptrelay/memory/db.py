# gptrelay/memory/db.py

import sqlite3
from pathlib import Path
from typing import Union


def get_connection(db_path: Union[str, Path]) -> sqlite3.Connection:
    """
    Return a SQLite connection.
    Uses Row factory to allow dict-like access.
    Caller is responsible for closing.
    """
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Union[str, Path]) -> None:
    """
    Initialize the database schema if it does not exist.
    Safe to call multiple times.
    """
    conn = get_connection(db_path)
    try:
        cur = conn.cursor()

        # conversation_state: per-chat preferences; NULL means "use the default"
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS conversation_state (
                key INTEGER PRIMARY KEY,
                model TEXT,
                mode TEXT,
                target INTEGER
            )
            """
        )

        # chat_history: append-only log of user messages per chat
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS chat_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                key INTEGER NOT NULL,
                message TEXT NOT NULL,
                timestamp TEXT NOT NULL
            )
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_chat_history_key ON chat_history (key)")

        # chat_names: display names of named chats
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS chat_names (
                key INTEGER PRIMARY KEY,
                name TEXT NOT NULL
            )
            """
        )

        conn.commit()
    finally:
        conn.close()
