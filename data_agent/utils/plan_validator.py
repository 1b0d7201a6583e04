"""
Plan Validator

Checks a query plan proposed by the reasoning component against the live
schema of a conversation. Plans come from an LLM and are treated as
untrusted input: anything ambiguous is rejected, every default is explicit.
"""

import re
from typing import Any, Dict, List, Optional

from data_agent.utils.errors import (
    InvalidPlan,
    UnknownColumn,
    UnknownTable,
    UnsupportedAggregate,
    UnsupportedOperator,
)
from data_agent.utils.state import (
    SUPPORTED_AGGREGATES,
    SUPPORTED_OPERATORS,
    AggregateSpec,
    NormalizedPlan,
    Predicate,
    SchemaEntry,
    is_identifier,
)

PLAN_KEYS = ("table", "select", "where", "group_by", "limit")
DEFAULT_LIMIT = 100

SQLITE_INT_MIN = -(2 ** 63)
SQLITE_INT_MAX = 2 ** 63 - 1


def safe_identifier(name: str) -> str:
    """Collapse anything outside [A-Za-z0-9_] to an underscore."""
    return re.sub(r"[^A-Za-z0-9_]", "_", str(name))


def _encodable(value: str) -> bool:
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def _output_name(item) -> str:
    return item.alias if isinstance(item, AggregateSpec) else item


def _as_list(plan: Dict[str, Any], key: str) -> list:
    value = plan.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise InvalidPlan(f"'{key}' must be a list, got {type(value).__name__}")
    return value


class PlanValidator:
    """Validates and normalizes query plans."""

    def __init__(self, default_limit: int = DEFAULT_LIMIT):
        self.default_limit = default_limit

    def validate(self, plan: Any, schema: List[SchemaEntry]) -> NormalizedPlan:
        """
        Validate a raw plan against the schema entries of a conversation.

        Rules are applied in order: shape, table, columns, aggregates,
        operators, select/limit defaults, then distinct output names.

        Raises:
            PlanValidationError subclass describing the first violation.
        """
        table, select, where, group_by = self._check_shape(plan)

        # Rule 1: table
        entry = next((e for e in schema if e.table == table), None)
        if entry is None:
            raise UnknownTable(table, [e.table for e in schema])
        columns = entry.columns

        # Rule 2: every column reference
        def require(column: str) -> None:
            if column not in columns:
                raise UnknownColumn(column, table, columns)

        for item in select:
            if isinstance(item, str):
                if item != "*":
                    require(item)
            elif item["column"] == "*":
                if str(item.get("agg", "")).upper() != "COUNT":
                    raise UnknownColumn("*", table, columns)
            else:
                require(item["column"])
        for predicate in where:
            require(predicate["column"])
        for column in group_by:
            require(column)

        # Rule 3: aggregates
        for item in select:
            if isinstance(item, dict):
                agg = item.get("agg")
                if not isinstance(agg, str) or agg.upper() not in SUPPORTED_AGGREGATES:
                    raise UnsupportedAggregate(agg, SUPPORTED_AGGREGATES)

        # Rule 4: operators
        for predicate in where:
            op = predicate.get("op")
            if not isinstance(op, str) or op.strip().upper() not in SUPPORTED_OPERATORS:
                raise UnsupportedOperator(op, SUPPORTED_OPERATORS)

        # Rule 5: empty select means every column, in schema order
        normalized_select = []
        for item in select:
            if isinstance(item, str):
                if item == "*":
                    normalized_select.extend(columns)
                else:
                    normalized_select.append(item)
            else:
                normalized_select.append(self._aggregate(item))
        if not normalized_select:
            normalized_select = list(columns)
        normalized_select = [
            safe_identifier(s) if isinstance(s, str) else s
            for s in normalized_select
        ]

        # Rule 6: every output column needs its own name
        seen = set()
        for item in normalized_select:
            name = _output_name(item)
            if name.lower() in seen:
                raise InvalidPlan(
                    f"Output column '{name}' appears more than once. "
                    "Select each column once and give aggregates distinct aliases."
                )
            seen.add(name.lower())

        return NormalizedPlan(
            table=safe_identifier(table),
            select=normalized_select,
            where=[
                Predicate(
                    column=safe_identifier(p["column"]),
                    op=p["op"].strip().upper(),
                    value=p["value"],
                )
                for p in where
            ],
            group_by=[safe_identifier(c) for c in group_by],
            limit=self.normalize_limit(plan.get("limit")),
        )

    def normalize_limit(self, value: Any) -> int:
        """
        Resolve the row limit.

        Absent, non-numeric (including numeric strings and booleans),
        non-integral or non-positive values fall back to the ceiling.
        Larger values are clamped to it.
        """
        if value is None or isinstance(value, bool):
            return self.default_limit
        if isinstance(value, float):
            if not value.is_integer():
                return self.default_limit
            value = int(value)
        if not isinstance(value, int) or value <= 0:
            return self.default_limit
        return min(value, self.default_limit)

    # ------------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------------

    def _check_shape(self, plan: Any):
        if not isinstance(plan, dict):
            raise InvalidPlan("A plan must be a JSON object")

        extra = sorted(k for k in plan if k not in PLAN_KEYS)
        if extra:
            raise InvalidPlan(
                f"Unsupported plan keys: {', '.join(map(str, extra))}. "
                f"Supported keys: {', '.join(PLAN_KEYS)}"
            )

        table = plan.get("table")
        if not isinstance(table, str) or not table:
            raise InvalidPlan("'table' must be a non-empty string")

        select = _as_list(plan, "select")
        for item in select:
            if isinstance(item, str):
                continue
            if not isinstance(item, dict):
                raise InvalidPlan(f"select entries must be column names or aggregate objects, got {item!r}")
            if not isinstance(item.get("column"), str):
                raise InvalidPlan(f"aggregate is missing a 'column': {item!r}")
            if "agg" not in item:
                raise InvalidPlan(f"aggregate is missing 'agg': {item!r}")
            alias = item.get("alias")
            if alias is not None and not is_identifier(alias):
                raise InvalidPlan(f"aggregate alias must match [A-Za-z0-9_]+, got {alias!r}")

        where = _as_list(plan, "where")
        for predicate in where:
            if not isinstance(predicate, dict):
                raise InvalidPlan(f"where entries must be objects, got {predicate!r}")
            if not isinstance(predicate.get("column"), str):
                raise InvalidPlan(f"predicate is missing a 'column': {predicate!r}")
            value = predicate.get("value")
            if isinstance(value, bool) or not isinstance(value, (str, int, float)):
                raise InvalidPlan(f"predicate values must be a string or a number, got {value!r}")
            if isinstance(value, int) and not SQLITE_INT_MIN <= value <= SQLITE_INT_MAX:
                raise InvalidPlan(f"integer value out of range for a 64-bit column: {value!r}")
            if isinstance(value, str) and not _encodable(value):
                raise InvalidPlan(f"string value is not valid UTF-8 text: {value!r}")

        group_by = _as_list(plan, "group_by")
        for column in group_by:
            if not isinstance(column, str):
                raise InvalidPlan(f"group_by entries must be column names, got {column!r}")

        return table, select, where, group_by

    @staticmethod
    def _aggregate(item: Dict[str, Any]) -> AggregateSpec:
        agg = item["agg"].upper()
        column = item["column"]
        alias: Optional[str] = item.get("alias")
        if alias is None:
            alias = "count_all" if column == "*" else f"{agg.lower()}_{column}"
        return AggregateSpec(
            agg=agg,
            column=column if column == "*" else safe_identifier(column),
            alias=safe_identifier(alias),
        )
