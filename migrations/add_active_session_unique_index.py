"""
Migration script for the chat uniqueness indexes:

- at most one active chat session per (user, lesson)
- one message per (session, seq)

Existing duplicates are resolved first (older active sessions closed, message seqs renumbered
in their stored order), so it can run against databases written before the indexes existed.
"""

import os
import sqlite3

INDEX_NAME = "uq_chat_sessions_active_pair"
SEQ_INDEX_NAME = "uq_chat_messages_session_seq"


def _index_exists(cursor, name):
    cursor.execute("SELECT name FROM sqlite_master WHERE type='index' AND name=?", (name,))
    return cursor.fetchone() is not None


def _add_active_session_index(cursor):
    if _index_exists(cursor, INDEX_NAME):
        print(f"{INDEX_NAME} already exists. Skipping.")
        return

    # keep the most recently active session of each duplicated pair
    cursor.execute(
        """
        UPDATE chat_sessions
        SET status = 'closed', closed_at = CURRENT_TIMESTAMP
        WHERE status = 'active'
          AND id NOT IN (
            SELECT id FROM (
              SELECT id, ROW_NUMBER() OVER (
                PARTITION BY user_id, lesson_id ORDER BY last_activity_at DESC, created_at DESC
              ) AS rn
              FROM chat_sessions
              WHERE status = 'active'
            ) WHERE rn = 1
          )
        """
    )
    print(f"Closed {cursor.rowcount} duplicate active sessions.")
    cursor.execute(
        f"CREATE UNIQUE INDEX {INDEX_NAME} ON chat_sessions(user_id, lesson_id) WHERE status = 'active'"
    )


def _add_message_seq_index(cursor):
    cursor.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='chat_messages'")
    if not cursor.fetchone():
        print("chat_messages table does not exist. Skipping.")
        return
    if _index_exists(cursor, SEQ_INDEX_NAME):
        print(f"{SEQ_INDEX_NAME} already exists. Skipping.")
        return

    cursor.execute(
        """
        UPDATE chat_messages
        SET seq = (
          SELECT rn FROM (
            SELECT id, ROW_NUMBER() OVER (
              PARTITION BY session_id ORDER BY seq, created_at, id
            ) AS rn
            FROM chat_messages
          ) ordered
          WHERE ordered.id = chat_messages.id
        )
        """
    )
    print(f"Renumbered {cursor.rowcount} chat messages.")
    cursor.execute(f"CREATE UNIQUE INDEX {SEQ_INDEX_NAME} ON chat_messages(session_id, seq)")


def run_migration():
    db_path = os.getenv("DATABASE_URL", "sqlite:///./genii.db").replace("sqlite:///", "")
    conn = None
    try:
        conn = sqlite3.connect(db_path)
        cursor = conn.cursor()

        cursor.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='chat_sessions'")
        if not cursor.fetchone():
            print("chat_sessions table does not exist. Skipping migration.")
            return

        _add_active_session_index(cursor)
        _add_message_seq_index(cursor)
        conn.commit()
        print("Migration completed successfully!")

    except sqlite3.Error as e:
        print(f"Error during migration: {e}")
        if conn:
            conn.rollback()
    finally:
        if conn:
            conn.close()


if __name__ == "__main__":
    run_migration()
