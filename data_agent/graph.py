"""
Main Graph Definition - Data Agent Pipeline

Assembles the planner and tool nodes into a LangGraph loop and wraps it
with the per-question protocol: empty-schema fast path, step budget,
deadline, and the single fallback run.
"""

import json
import logging
import time
from typing import List, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langgraph.errors import GraphRecursionError
from langgraph.graph import START, StateGraph

from data_agent.agents.controller import create_tool_node
from data_agent.agents.executor import QueryExecutor
from data_agent.agents.planner import create_planner_node, scope_message
from data_agent.agents.synthesizer import FAILURE_ANSWER, NO_DATA_ANSWER, synthesize_answer
from data_agent.config import AgentSettings
from data_agent.utils.errors import PlannerProtocolError, ReasoningComponentError
from data_agent.utils.plan_validator import PlanValidator
from data_agent.utils.schema_registry import SchemaRegistry
from data_agent.utils.state import AgentRun, AgentState
from data_agent.utils.tools import DataTools, ToolName, ToolRegistry, create_tools

logger = logging.getLogger(__name__)

PRELOADED_CALL_ID = "preloaded_get_schema"


def create_agent_graph(llm, tool_registry: ToolRegistry, settings: AgentSettings):
    """Compile the AwaitModel <-> AwaitTool loop."""
    workflow = StateGraph(AgentState)

    workflow.add_node("planner", create_planner_node(llm, tool_registry, settings))
    workflow.add_node("tools", create_tool_node(tool_registry))

    # Both nodes route with Command, so only the entry edge is declared.
    workflow.add_edge(START, "planner")

    return workflow.compile()


def get_initial_state(
    conversation_id: str,
    question: str,
    deadline: float,
    messages: Optional[List[BaseMessage]] = None,
    trace: Optional[List[str]] = None,
) -> AgentState:
    """Create initial state for a new run."""
    return {
        "messages": messages if messages is not None else [
            scope_message(conversation_id),
            HumanMessage(question),
        ],
        "conversation_id": conversation_id,
        "question": question,
        "llm_calls": 0,
        "tool_calls": 0,
        "trace": list(trace or []),
        "status": "running",
        "deadline": deadline,
    }


class DataAgent:
    """Answers questions about the tables uploaded to a conversation."""

    def __init__(self, llm, data_tools: DataTools, settings: AgentSettings):
        self.data_tools = data_tools
        self.settings = settings
        self.tool_registry = ToolRegistry(create_tools(data_tools))
        self.graph = create_agent_graph(llm, self.tool_registry, settings)

    def run_agent(self, conversation_id: str, question: str) -> dict:
        """Entry point for the rest of the system. Only the answer leaves the core."""
        return {"answer": self.run(conversation_id, question).answer}

    def run(self, conversation_id: str, question: str) -> AgentRun:
        """Answer one question, with diagnostics."""
        deadline = time.monotonic() + self.settings.timeout_seconds
        logger.info("Answering question for conversation %s", conversation_id)

        if not self.data_tools.registry.lookup(conversation_id):
            logger.info("No tables for conversation %s; skipping the model", conversation_id)
            return AgentRun(answer=NO_DATA_ANSWER, status="no_data", trace=["fastpath:no_schema"])

        fallback_used = False
        try:
            final = self._invoke(get_initial_state(conversation_id, question, deadline))
            try:
                self._check_protocol(final)
            except PlannerProtocolError as e:
                logger.info("%s; running fallback with preloaded schema", e)
                self._log_trace(final["trace"], "first run")
                fallback_used = True
                final = self._invoke(self._fallback_state(conversation_id, question, deadline))
        except ReasoningComponentError as e:
            logger.exception("Run failed for conversation %s", conversation_id)
            return AgentRun(
                answer=FAILURE_ANSWER,
                status="failed",
                trace=["terminal:reasoning_error"],
                fallback_used=fallback_used,
                error=str(e),
            )
        except Exception as e:
            # Only a fixed answer ever leaves run_agent
            logger.exception("Unexpected error for conversation %s", conversation_id)
            return AgentRun(
                answer=FAILURE_ANSWER,
                status="failed",
                trace=["terminal:internal_error"],
                fallback_used=fallback_used,
                error=f"{type(e).__name__}: {e}",
            )

        self._log_trace(final["trace"], "fallback run" if fallback_used else "run")
        return AgentRun(
            answer=synthesize_answer(final),
            status=final["status"],
            trace=final["trace"],
            llm_calls=final.get("llm_calls", 0),
            tool_calls=final.get("tool_calls", 0),
            fallback_used=fallback_used,
        )

    # ------------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------------

    def _invoke(self, state: AgentState) -> dict:
        # planner + tools per tool call, one final planner step, some slack
        config = {"recursion_limit": 2 * self.settings.max_tool_calls + 4}
        try:
            return self.graph.invoke(state, config)
        except GraphRecursionError:
            logger.warning("Recursion limit reached for conversation %s", state["conversation_id"])
            return {
                **state,
                "status": "budget_exhausted",
                "trace": state["trace"] + ["terminal:recursion_limit"],
            }

    @staticmethod
    def _check_protocol(final: dict) -> None:
        if final["status"] == "answered" and final.get("tool_calls", 0) == 0:
            raise PlannerProtocolError("Reasoning component answered without requesting any tool")

    def _fallback_state(self, conversation_id: str, question: str, deadline: float) -> AgentState:
        """Fresh conversation with the schema supplied as if get_schema had been called."""
        schema = self.data_tools.describe_schema(conversation_id, question)
        messages = [
            scope_message(conversation_id),
            HumanMessage(question),
            SystemMessage(
                f"Preloaded schema for topic {conversation_id}. "
                "Use it to build a plan and call execute_query."
            ),
            AIMessage(
                content="",
                tool_calls=[{
                    "name": ToolName.GET_SCHEMA.value,
                    "args": {},
                    "id": PRELOADED_CALL_ID,
                    "type": "tool_call",
                }],
            ),
            ToolMessage(
                content=json.dumps(schema),
                tool_call_id=PRELOADED_CALL_ID,
                name=ToolName.GET_SCHEMA.value,
            ),
        ]
        return get_initial_state(
            conversation_id, question, deadline,
            messages=messages, trace=["fallback:schema_injected"],
        )

    @staticmethod
    def _log_trace(trace: List[str], label: str) -> None:
        if trace:
            logger.info("Execution trace (%s):\n  %s", label, "\n  ".join(trace))


def get_chat_model(settings: AgentSettings):
    """Build the reasoning component selected by the settings."""
    if settings.provider == "openai":
        from langchain_openai import ChatOpenAI
        return ChatOpenAI(
            model=settings.openai_model,
            temperature=0,
            timeout=settings.timeout_seconds,
        )

    # torch/transformers/peft are only needed for the local model
    from data_agent.utils.models import get_qwen_model
    return get_qwen_model(model_name=settings.base_model, lora_path=settings.lora_path)


def create_data_agent(settings: Optional[AgentSettings] = None, llm=None) -> DataAgent:
    """
    Create the complete data agent.

    Args:
        settings: Runtime settings (read from the environment if omitted)
        llm: Chat model with bind_tools(); built from settings if omitted

    Returns:
        DataAgent ready to answer questions
    """
    settings = settings or AgentSettings.from_env()

    if llm is None:
        llm = get_chat_model(settings)

    data_tools = DataTools(
        registry=SchemaRegistry(settings.db_path),
        validator=PlanValidator(default_limit=settings.default_limit),
        executor=QueryExecutor(settings.db_path),
    )
    return DataAgent(llm, data_tools, settings)
