"""
Data Setup

Loads an uploaded CSV file into its own table and registers that table's
schema for the conversation it was uploaded to.
"""

import logging
import pathlib
import re
import sqlite3
import time
from contextlib import closing
from typing import List, Optional

import pandas as pd

from data_agent.utils.schema_registry import SchemaRegistry
from data_agent.utils.state import SchemaEntry

logger = logging.getLogger(__name__)


def sanitize_identifier(name, fallback: str) -> str:
    """Make a safe SQL identifier: [A-Za-z0-9_] only, never starting with a digit."""
    if name is None:
        return fallback
    s = re.sub(r"[^A-Za-z0-9_]", "_", str(name))
    if re.match(r"^[0-9]", s):
        s = f"c_{s}"
    return s or fallback


def sanitize_columns(headers: List) -> List[str]:
    """Sanitize header names and make them unique (case-insensitively, as SQLite does)."""
    columns = []
    seen = set()
    for i, header in enumerate(headers):
        base = sanitize_identifier(header, f"col_{i}")
        column, n = base, 1
        while column.lower() in seen:
            n += 1
            column = f"{base}_{n}"
        seen.add(column.lower())
        columns.append(column)
    return columns


def ingest_csv(
    db_path: str,
    csv_path: str,
    conversation_id: str,
    original_name: Optional[str] = None,
) -> Optional[SchemaEntry]:
    """
    Load a CSV file into a new table and register it for a conversation.

    Returns:
        The registered SchemaEntry, or None when the file has no rows.
    """
    path = pathlib.Path(csv_path)
    try:
        df = pd.read_csv(path)
    except pd.errors.EmptyDataError:
        df = pd.DataFrame()
    if df.empty:
        logger.info("Skipping %s: no rows", path.name)
        return None

    df.columns = sanitize_columns(list(df.columns))
    table = sanitize_identifier(f"doc_{path.stem}_{int(time.time() * 1000)}", "doc_uploaded")

    with closing(sqlite3.connect(db_path)) as conn:
        df.to_sql(table, conn, index=False, if_exists="fail")
        conn.commit()
    logger.info("Loaded %d rows from %s into %s", len(df), path.name, table)

    return SchemaRegistry(db_path).register(
        conversation_id,
        table,
        list(df.columns),
        original_name=original_name or path.stem,
    )
