"""
Schema Registry

Exposes the uploaded tables (and their columns) registered for a
conversation. Reads go through a read-only connection.
"""

import json
import logging
import os
import re
import sqlite3
from contextlib import closing
from typing import List, Optional

from pydantic import ValidationError

from data_agent.utils.state import SchemaEntry

logger = logging.getLogger(__name__)

MANIFEST_TABLE = "uploaded_tables"


def connect_readonly(db_path: str) -> sqlite3.Connection:
    """Open a read-only connection to the table store."""
    conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
    conn.row_factory = sqlite3.Row
    # Double-quoted names are identifiers only, never string literals (Python 3.12+)
    if hasattr(conn, "setconfig") and hasattr(sqlite3, "SQLITE_DBCONFIG_DQS_DML"):
        conn.setconfig(sqlite3.SQLITE_DBCONFIG_DQS_DML, False)
    return conn


def ensure_schema_store(db_path: str) -> None:
    """Create the manifest table that links uploaded tables to conversations."""
    with closing(sqlite3.connect(db_path)) as conn:
        with conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {MANIFEST_TABLE} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    topic_id TEXT,
                    table_name TEXT,
                    original_name TEXT,
                    schema_json TEXT,
                    created_at DATETIME DEFAULT (datetime('now'))
                )
            """)


class SchemaRegistry:
    """Per-conversation view over the uploaded table manifest."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def lookup(self, conversation_id: str) -> List[SchemaEntry]:
        """
        Return the schema entries for a conversation, most recently ingested first.

        An empty list means nothing was uploaded yet; it is not an error.
        """
        if not os.path.exists(self.db_path):
            return []

        try:
            with closing(connect_readonly(self.db_path)) as conn:
                rows = conn.execute(
                    f"SELECT table_name, schema_json FROM {MANIFEST_TABLE} "
                    "WHERE topic_id = ? ORDER BY created_at DESC, id DESC",
                    (conversation_id,),
                ).fetchall()
        except sqlite3.OperationalError as e:
            if "no such table" in str(e).lower():
                return []
            raise

        entries = []
        for row in rows:
            try:
                columns = json.loads(row["schema_json"] or "[]")
                entries.append(SchemaEntry(table=row["table_name"], columns=columns))
            except (ValueError, ValidationError) as e:
                logger.warning(
                    "Skipping manifest row for table %r in conversation %r: %s",
                    row["table_name"], conversation_id, e,
                )
        return entries

    def register(
        self,
        conversation_id: str,
        table: str,
        columns: List[str],
        original_name: Optional[str] = None,
    ) -> SchemaEntry:
        """Record a freshly ingested table for a conversation."""
        entry = SchemaEntry(table=table, columns=columns)
        ensure_schema_store(self.db_path)
        with closing(sqlite3.connect(self.db_path)) as conn:
            with conn:
                conn.execute(
                    f"INSERT INTO {MANIFEST_TABLE} (topic_id, table_name, original_name, schema_json) "
                    "VALUES (?, ?, ?, ?)",
                    (conversation_id, entry.table, original_name or entry.table, json.dumps(entry.columns)),
                )
        logger.info("Registered table %s (%d columns) for conversation %s",
                    entry.table, len(entry.columns), conversation_id)
        return entry


def suggest_columns(columns: List[str], question: Optional[str]) -> List[str]:
    """
    Pick columns that look relevant to a question.

    A column matches when a question token equals the lowercased column
    name, or when a token of three or more characters contains it or is
    contained in it. Falls back to every column.
    """
    if not columns:
        return []
    if not question:
        return list(columns)

    tokens = [t for t in re.sub(r"[^a-z0-9\s]", " ", question.lower()).split() if t]
    if not tokens:
        return list(columns)

    picked = []
    for column in columns:
        lc = column.lower()
        if any(lc == t or (len(t) >= 3 and (lc in t or t in lc)) for t in tokens):
            picked.append(column)
    return picked or list(columns)
