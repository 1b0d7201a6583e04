"""
Executor - The Technician

Turns a validated plan into a single parameterized SELECT and runs it
against the table store over a read-only connection.
"""

import logging
import sqlite3
from contextlib import closing
from typing import List, Tuple

from data_agent.utils.errors import ExecutionError
from data_agent.utils.plan_validator import safe_identifier
from data_agent.utils.schema_registry import connect_readonly
from data_agent.utils.state import AggregateSpec, NormalizedPlan, QueryResult

logger = logging.getLogger(__name__)


def quote(name: str) -> str:
    return f'"{safe_identifier(name)}"'


def _select_item(item) -> str:
    if isinstance(item, AggregateSpec):
        target = "*" if item.column == "*" else quote(item.column)
        return f"{item.agg}({target}) AS {quote(item.alias)}"
    return quote(item)


class QueryExecutor:
    """Read-only SQL execution for validated plans."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def build_query(self, plan: NormalizedPlan) -> Tuple[str, list]:
        """
        Assemble the SQL text and its bound parameters.

        Only SELECT statements are ever produced. Predicate values are
        always placeholders.
        """
        parts = [
            "SELECT " + ", ".join(_select_item(item) for item in plan.select),
            f"FROM {quote(plan.table)}",
        ]
        if plan.where:
            parts.append("WHERE " + " AND ".join(
                f"{quote(p.column)} {p.op} ?" for p in plan.where
            ))
        if plan.group_by:
            parts.append("GROUP BY " + ", ".join(quote(c) for c in plan.group_by))
        parts.append(f"LIMIT {int(plan.limit)}")
        return " ".join(parts), plan.params

    def execute(self, plan: NormalizedPlan) -> QueryResult:
        """
        Run the plan and return its rows as ordered column->value mappings.

        Raises:
            ExecutionError: the storage layer rejected the query, or the
                table no longer has a column the plan references.
        """
        sql, params = self.build_query(plan)
        logger.debug("Executing SQL: %s params=%s", sql, params)

        try:
            with closing(connect_readonly(self.db_path)) as conn:
                missing = _missing_columns(conn, plan)
                if missing:
                    raise ExecutionError(f"Query failed: {missing}", sql=sql, params=params)
                cursor = conn.execute(sql, params)
                columns = [d[0] for d in cursor.description] if cursor.description else []
                rows = [
                    dict(zip(columns, _sanitize_row(tuple(row))))
                    for row in cursor.fetchall()
                ]
        except ExecutionError as e:
            logger.warning("Query failed: %s | sql=%s params=%s", e, sql, params)
            raise
        except (sqlite3.Error, OverflowError, ValueError) as e:
            # OverflowError: int outside 64 bits; ValueError covers unencodable strings
            logger.warning("Query failed: %s | sql=%s params=%s", e, sql, params)
            raise ExecutionError(f"Query failed: {e}", sql=sql, params=params) from e

        return QueryResult(sql=sql, params=params, columns=columns, rows=rows)


def _missing_columns(conn: sqlite3.Connection, plan: NormalizedPlan) -> str:
    """Describe the first table or column of the plan absent from the live database."""
    existing = {
        row["name"].lower()
        for row in conn.execute(f"PRAGMA table_info({quote(plan.table)})")
    }
    if not existing:
        return f"no such table: {plan.table}"

    referenced = [
        item.column if isinstance(item, AggregateSpec) else item
        for item in plan.select
    ]
    referenced += [p.column for p in plan.where] + list(plan.group_by)
    for column in referenced:
        if column != "*" and safe_identifier(column).lower() not in existing:
            return f"no such column: {column}"
    return ""


def _sanitize_row(row: tuple) -> List:
    """
    Sanitize values for LLM consumption.
    - bytes/blobs become a placeholder string
    - other non-scalar types become strings
    """
    sanitized = []
    for value in row:
        if value is None or isinstance(value, (int, float, str)):
            sanitized.append(value)
        elif isinstance(value, bytes):
            sanitized.append("[Binary Data]")
        else:
            sanitized.append(str(value))
    return sanitized
