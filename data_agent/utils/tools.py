"""
Tools for the data agent.

The reasoning component can call exactly two tools, `get_schema` and
`execute_query`. The conversation scope is injected by the loop, never
taken from model output.
"""

import logging
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Union

from langchain_core.tools import BaseTool, InjectedToolArg, tool
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from data_agent.agents.executor import QueryExecutor
from data_agent.utils.errors import InvalidPlan, UnknownTool
from data_agent.utils.plan_validator import PlanValidator
from data_agent.utils.schema_registry import SchemaRegistry, suggest_columns

logger = logging.getLogger(__name__)


class ToolName(str, Enum):
    GET_SCHEMA = "get_schema"
    EXECUTE_QUERY = "execute_query"


# ============================================================================
# Argument schemas
# ============================================================================

class GetSchemaArgs(BaseModel):
    conversation_id: Annotated[str, InjectedToolArg]
    question: Annotated[Optional[str], InjectedToolArg] = None


class ExecuteQueryArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    table: str = Field(description="Name of one uploaded table")
    select: Optional[List[Union[str, Dict[str, Any]]]] = Field(
        default=None,
        description='Column names and/or aggregates like {"agg": "SUM", "column": "revenue", "alias": "total_revenue"}',
    )
    where: Optional[List[Dict[str, Any]]] = Field(
        default=None,
        description='Filters like {"column": "region", "op": "=", "value": "EU"}; ops: =, >, <, >=, <=, LIKE',
    )
    group_by: Optional[List[str]] = Field(default=None, description="Columns to group by")
    # Passed through as given; the validator owns the fallback rules
    limit: Any = Field(default=None, description="Maximum rows to return (a positive integer)")
    conversation_id: Annotated[str, InjectedToolArg]


# ============================================================================
# Tool implementations
# ============================================================================

class DataTools:
    """Schema discovery and plan execution, scoped per call to one conversation."""

    def __init__(self, registry: SchemaRegistry, validator: PlanValidator, executor: QueryExecutor):
        self.registry = registry
        self.validator = validator
        self.executor = executor

    def describe_schema(self, conversation_id: str, question: Optional[str] = None) -> dict:
        """Schema payload shared by the get_schema tool and the fallback run."""
        entries = self.registry.lookup(conversation_id)
        if not entries:
            return {"tables": [], "message": "No tables have been uploaded for this conversation."}
        return {
            "tables": [
                {
                    "table": e.table,
                    "columns": e.columns,
                    "relevant_columns": suggest_columns(e.columns, question),
                }
                for e in entries
            ]
        }

    def run_plan(self, plan: Dict[str, Any], conversation_id: str) -> dict:
        """Validate a plan against the conversation's schema, then execute it."""
        normalized = self.validator.validate(plan, self.registry.lookup(conversation_id))
        result = self.executor.execute(normalized)
        logger.info("execute_query on %s returned %d rows", normalized.table, result.row_count)
        return {
            "sql": result.sql,
            "params": result.params,
            "columns": result.columns,
            "row_count": result.row_count,
            "rows": result.rows,
        }


def create_tools(data_tools: DataTools) -> Dict[ToolName, BaseTool]:
    """Wrap DataTools as LangChain tools the reasoning component can bind."""

    @tool(ToolName.GET_SCHEMA.value, args_schema=GetSchemaArgs)
    def get_schema(conversation_id: str, question: Optional[str] = None) -> dict:
        """Return the uploaded tables and their columns for this conversation."""
        return data_tools.describe_schema(conversation_id, question)

    @tool(ToolName.EXECUTE_QUERY.value, args_schema=ExecuteQueryArgs)
    def execute_query(
        table: str,
        conversation_id: str,
        select: Optional[list] = None,
        where: Optional[list] = None,
        group_by: Optional[list] = None,
        limit: Any = None,
    ) -> dict:
        """Validate a query plan against one uploaded table, execute it read-only and return the rows."""
        plan = {"table": table, "select": select, "where": where, "group_by": group_by, "limit": limit}
        return data_tools.run_plan(plan, conversation_id)

    return {
        ToolName.GET_SCHEMA: get_schema,
        ToolName.EXECUTE_QUERY: execute_query,
    }


# ============================================================================
# Dispatcher
# ============================================================================

class ToolRegistry:
    """Closed set of tools, checked for completeness at construction."""

    def __init__(self, tools: Dict[ToolName, BaseTool]):
        missing = [name.value for name in ToolName if name not in tools]
        if missing:
            raise ValueError(f"Missing tool implementations: {', '.join(missing)}")
        for name, impl in tools.items():
            if impl.name != name.value:
                raise ValueError(f"Tool registered as {name.value} is named {impl.name}")
        self._tools = dict(tools)

    @property
    def tools(self) -> List[BaseTool]:
        return [self._tools[name] for name in ToolName]

    def resolve(self, name: str) -> ToolName:
        try:
            return ToolName(name)
        except ValueError:
            raise UnknownTool(str(name), [n.value for n in ToolName])

    def dispatch(self, name: str, args: Any, conversation_id: str, question: Optional[str] = None) -> dict:
        """
        Invoke a tool by name with model-supplied arguments.

        Raises:
            UnknownTool: no tool has that name.
            InvalidPlan: the arguments do not match the tool's schema.
            DataAgentError: whatever the tool itself raises.
        """
        tool_name = self.resolve(name)
        if args is None:
            args = {}
        if not isinstance(args, dict):
            raise InvalidPlan(f"Arguments for {tool_name.value} must be a JSON object")

        payload = dict(args)
        payload["conversation_id"] = conversation_id
        if tool_name is ToolName.GET_SCHEMA:
            payload["question"] = question

        try:
            return self._tools[tool_name].invoke(payload)
        except ValidationError as e:
            raise InvalidPlan(f"Invalid arguments for {tool_name.value}: {e}") from e
