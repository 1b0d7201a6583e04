# Agent modules
from data_agent.agents.planner import create_planner_node
from data_agent.agents.controller import create_tool_node
from data_agent.agents.executor import QueryExecutor
from data_agent.agents.synthesizer import synthesize_answer

__all__ = [
    "create_planner_node",
    "create_tool_node",
    "QueryExecutor",
    "synthesize_answer",
]
