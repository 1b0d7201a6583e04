"""
Planner Node - The Strategist

Invokes the reasoning component with the conversation so far and decides
whether it asked for a tool or produced its final answer.
"""

import json
import logging
import time
import uuid
from typing import List, Literal

from langchain_core.messages import AIMessage, BaseMessage, SystemMessage
from langgraph.graph import END
from langgraph.types import Command

from data_agent.config import AgentSettings
from data_agent.utils.errors import ReasoningComponentError
from data_agent.utils.state import SUPPORTED_AGGREGATES, SUPPORTED_OPERATORS, AgentState
from data_agent.utils.tools import ToolRegistry

logger = logging.getLogger(__name__)

EXAMPLE_PLAN = {
    "table": "sales_2025",
    "select": [{"agg": "SUM", "column": "revenue", "alias": "total_revenue"}],
    "where": [],
    "group_by": ["region"],
    "limit": 50,
}

PLANNER_INSTRUCTIONS = f"""You are a data agent answering questions about tables the user uploaded.
You can call two tools:
1) get_schema() -> the uploaded tables and their columns for this conversation.
2) execute_query(table, select, where, group_by, limit) -> runs a validated query plan against ONE uploaded table and returns rows.

## Required behavior
- First call get_schema to discover the available tables and columns.
- Then build a plan and call execute_query with it.
- After execute_query returns, answer the question concisely in plain language.

## Plan rules
- select: column names, or aggregates {{"agg": "{'|'.join(SUPPORTED_AGGREGATES)}", "column": "col", "alias": "name"}}. Empty select means every column.
- where: list of {{"column": "col", "op": "...", "value": ...}} with op one of {', '.join(SUPPORTED_OPERATORS)}. Values are plain strings or numbers.
- group_by: list of column names.
- limit: a positive integer.
- Use only tables and columns returned by get_schema. Never write raw SQL and never call other tools.
- If a tool returns an error, fix the plan and try again.
- If you cannot build a valid plan, explain why in a short answer without calling execute_query.

Example execute_query arguments:
{json.dumps(EXAMPLE_PLAN, indent=2)}

Never include tool payloads, SQL or raw rows in your final answer."""


def scope_message(conversation_id: str) -> SystemMessage:
    """System note naming the conversation whose tables are in scope."""
    return SystemMessage(
        f"Conversation topic id: {conversation_id}. "
        "Only tables uploaded to this conversation are available; get_schema lists them."
    )


def with_call_ids(message: AIMessage) -> AIMessage:
    """Copy of the message where every tool call has an id its result can answer."""
    calls = [
        {**call, "id": call.get("id") or f"call_{uuid.uuid4().hex[:12]}"}
        for call in message.tool_calls
    ]
    return message.model_copy(update={"tool_calls": calls})


def create_planner_node(llm, tool_registry: ToolRegistry, settings: AgentSettings):
    """Factory function to create the planner node with the tools bound to the model."""

    model = llm.bind_tools(tool_registry.tools)
    max_tool_calls = settings.max_tool_calls

    def call_model(state: AgentState) -> Command[Literal["tools", "__end__"]]:
        """
        AwaitModel: ask the reasoning component for its next step.
        Routes to the tool node, or ends the run.
        """
        trace = ["node:planner:start"]

        if time.monotonic() >= state["deadline"]:
            logger.warning("Deadline passed before model call %d", state["llm_calls"] + 1)
            return Command(
                update={"status": "timed_out", "trace": trace + ["terminal:timed_out"]},
                goto=END,
            )

        try:
            result = model.invoke([SystemMessage(PLANNER_INSTRUCTIONS)] + list(state["messages"]))
        except Exception as e:
            raise ReasoningComponentError(f"Reasoning component failed: {e}") from e

        messages: List[BaseMessage] = result if isinstance(result, list) else [result]
        trace.append(f"node:planner:done:messages={len(messages)}")
        llm_calls = state["llm_calls"] + 1

        last_ai = next((m for m in reversed(messages) if isinstance(m, AIMessage)), None)
        if last_ai is not None and any(not c.get("id") for c in last_ai.tool_calls):
            with_ids = with_call_ids(last_ai)
            messages = [with_ids if m is last_ai else m for m in messages]
            last_ai = with_ids
        tool_calls = last_ai.tool_calls if last_ai is not None else []
        logger.debug("Model call %d returned %d tool call(s)", llm_calls, len(tool_calls))

        # No tool request: the text is the final answer
        if not tool_calls:
            return Command(
                update={
                    "messages": messages,
                    "llm_calls": llm_calls,
                    "status": "answered",
                    "trace": trace + ["route:end"],
                },
                goto=END,
            )

        if state["tool_calls"] >= max_tool_calls:
            logger.warning("Tool call budget of %d exhausted", max_tool_calls)
            return Command(
                update={
                    "messages": messages,
                    "llm_calls": llm_calls,
                    "status": "budget_exhausted",
                    "trace": trace + ["terminal:budget_exhausted"],
                },
                goto=END,
            )

        return Command(
            update={
                "messages": messages,
                "llm_calls": llm_calls,
                "tool_calls": state["tool_calls"] + 1,
                "trace": trace + [f"route:tools:{tool_calls[0]['name']}"],
            },
            goto="tools",
        )

    return call_model
