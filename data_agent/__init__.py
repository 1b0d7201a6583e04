# Data Agent - Question answering over uploaded tables
"""
A LangGraph-based agent that answers natural-language questions about
tabular data uploaded to a conversation.

Components:
- Planner: asks the reasoning component for its next step
- Controller: runs the requested tool and feeds results back
- Executor: safe, read-only SQL for validated plans
- Synthesizer: turns the final conversation into the user-facing answer
"""

from data_agent.graph import DataAgent, create_data_agent

__all__ = ["DataAgent", "create_data_agent"]
