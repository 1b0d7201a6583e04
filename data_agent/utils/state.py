"""
State definitions for the data agent.
Plan models are shared by the validator, the executor and the tools.
"""

import operator
import re
from typing import Annotated, Any, Dict, List, Literal, Optional, TypedDict, Union

from langchain_core.messages import AnyMessage
from langgraph.graph.message import add_messages
from pydantic import BaseModel, ConfigDict, Field, field_validator

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")

SUPPORTED_AGGREGATES = ["COUNT", "SUM", "AVG", "MIN", "MAX"]
SUPPORTED_OPERATORS = ["=", ">", "<", ">=", "<=", "LIKE"]


def is_identifier(value: Any) -> bool:
    return isinstance(value, str) and bool(IDENTIFIER_PATTERN.match(value))


# ============================================================================
# Schema
# ============================================================================

class SchemaEntry(BaseModel):
    """An uploaded table and its ordered columns."""
    model_config = ConfigDict(frozen=True)

    table: str
    columns: List[str]

    @field_validator("table")
    @classmethod
    def _check_table(cls, value: str) -> str:
        if not is_identifier(value):
            raise ValueError(f"invalid table identifier: {value!r}")
        return value

    @field_validator("columns")
    @classmethod
    def _check_columns(cls, value: List[str]) -> List[str]:
        bad = [c for c in value if not is_identifier(c)]
        if bad:
            raise ValueError(f"invalid column identifiers: {bad}")
        return value


# ============================================================================
# Query plans
# ============================================================================

class AggregateSpec(BaseModel):
    agg: str = Field(description="One of COUNT, SUM, AVG, MIN, MAX")
    column: str = Field(description="Column to aggregate ('*' is allowed for COUNT)")
    alias: str = Field(description="Output column name")


class Predicate(BaseModel):
    column: str
    op: str = Field(description="One of =, >, <, >=, <=, LIKE")
    value: Union[int, float, str]


class NormalizedPlan(BaseModel):
    """A validated plan, ready for SQL assembly."""
    table: str
    select: List[Union[str, AggregateSpec]]
    where: List[Predicate] = Field(default_factory=list)
    group_by: List[str] = Field(default_factory=list)
    limit: int

    @property
    def params(self) -> list:
        """Predicate values in WHERE order, bound as query parameters."""
        return [p.value for p in self.where]


class QueryResult(BaseModel):
    """Result from the Executor."""
    sql: str
    params: List[Any]
    columns: List[str] = Field(default_factory=list)
    rows: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


# ============================================================================
# Agent run state
# ============================================================================

RunStatus = Literal["running", "answered", "budget_exhausted", "timed_out"]


class AgentState(TypedDict):
    """State owned by a single planning loop run."""

    messages: Annotated[List[AnyMessage], add_messages]
    conversation_id: str
    question: str

    llm_calls: int
    tool_calls: int                               # AwaitModel -> AwaitTool transitions
    trace: Annotated[List[str], operator.add]     # server-side diagnostics only
    status: RunStatus
    deadline: float                               # time.monotonic() based


class AgentRun(BaseModel):
    """Outcome of answering one question."""
    answer: str
    status: str
    trace: List[str] = Field(default_factory=list)
    llm_calls: int = 0
    tool_calls: int = 0
    fallback_used: bool = False
    error: Optional[str] = None
