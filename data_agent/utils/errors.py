"""
Error taxonomy for the data agent.

Validation, tool and execution errors are fed back to the reasoning
component as tool results. Only ReasoningComponentError ends a run.
"""

from typing import Any, List, Optional


class DataAgentError(Exception):
    """Base class for all data agent errors."""

    @property
    def code(self) -> str:
        return type(self).__name__


# ============================================================================
# Plan validation
# ============================================================================

class PlanValidationError(DataAgentError):
    """A proposed query plan was rejected."""


class InvalidPlan(PlanValidationError):
    """The plan is not shaped like a query plan at all."""


class UnknownTable(PlanValidationError):
    def __init__(self, table: str, available: List[str]):
        self.table = table
        self.available = available
        listing = ", ".join(available) if available else "none"
        super().__init__(f"Unknown table '{table}'. Available tables: {listing}")


class UnknownColumn(PlanValidationError):
    def __init__(self, column: str, table: str, available: List[str]):
        self.column = column
        self.table = table
        self.available = available
        super().__init__(
            f"Unknown column '{column}' in table '{table}'. "
            f"Available columns: {', '.join(available)}"
        )


class UnsupportedAggregate(PlanValidationError):
    def __init__(self, agg: Any, supported: List[str]):
        self.agg = agg
        super().__init__(
            f"Unsupported aggregate '{agg}'. Use one of: {', '.join(supported)}"
        )


class UnsupportedOperator(PlanValidationError):
    def __init__(self, op: Any, supported: List[str]):
        self.op = op
        super().__init__(
            f"Unsupported operator '{op}'. Use one of: {', '.join(supported)}"
        )


# ============================================================================
# Tools, execution and the reasoning component
# ============================================================================

class UnknownTool(DataAgentError):
    def __init__(self, name: str, available: List[str]):
        self.name = name
        super().__init__(
            f"Unknown tool: {name}. Available tools: {', '.join(available)}"
        )


class ExecutionError(DataAgentError):
    """A validated query failed at the storage layer."""

    def __init__(self, message: str, sql: Optional[str] = None, params: Optional[list] = None):
        self.sql = sql
        self.params = list(params or [])
        super().__init__(message)


class PlannerProtocolError(DataAgentError):
    """The reasoning component answered without ever requesting a tool."""


class ReasoningComponentError(DataAgentError):
    """Invoking the reasoning component itself failed."""
