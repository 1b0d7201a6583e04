"""
Controller Node - The Supervisor

Runs the tool the reasoning component asked for and feeds the result, or
the error, back into the conversation. Validation and tool errors never
end the loop: the model gets a chance to correct itself.
"""

import json
import logging
from typing import Literal

from langchain_core.messages import AIMessage, ToolMessage
from langgraph.types import Command

from data_agent.utils.errors import DataAgentError, ExecutionError
from data_agent.utils.state import AgentState
from data_agent.utils.tools import ToolRegistry

logger = logging.getLogger(__name__)


def _to_content(payload) -> str:
    return json.dumps(payload, default=str)


def create_tool_node(tool_registry: ToolRegistry):
    """Factory function to create the tool node."""

    def run_tool(state: AgentState) -> Command[Literal["planner"]]:
        """
        AwaitTool: execute the first tool call of the latest assistant message.
        Any further calls in the same message are answered as skipped.
        """
        last = state["messages"][-1] if state["messages"] else None
        if not isinstance(last, AIMessage) or not last.tool_calls:
            return Command(update={"trace": ["node:tools:no_call"]}, goto="planner")

        call, *extra = last.tool_calls
        name = call["name"]
        call_id = call["id"]
        trace = [f"node:tools:start:{name}"]

        try:
            payload = tool_registry.dispatch(
                name,
                call.get("args"),
                conversation_id=state["conversation_id"],
                question=state["question"],
            )
            status = "success"
            trace.append(f"node:tools:done:{name}")
        except DataAgentError as e:
            if isinstance(e, ExecutionError):
                logger.warning("Tool %s failed: %s | sql=%s params=%s", name, e, e.sql, e.params)
            else:
                logger.warning("Tool %s rejected: %s: %s", name, e.code, e)
            payload = {"error": e.code, "message": str(e)}
            status = "error"
            trace.append(f"node:tools:error:{name}:{e.code}")

        messages = [ToolMessage(content=_to_content(payload), tool_call_id=call_id, name=name, status=status)]
        for skipped in extra:
            messages.append(ToolMessage(
                content=_to_content({
                    "error": "Skipped",
                    "message": "Only one tool call per turn is executed. Call it again if still needed.",
                }),
                tool_call_id=skipped["id"],
                name=skipped["name"],
                status="error",
            ))

        return Command(update={"messages": messages, "trace": trace}, goto="planner")

    return run_tool
