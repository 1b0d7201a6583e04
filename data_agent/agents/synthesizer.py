"""
Answer Synthesizer - The Spokesperson

Reduces the final conversation state to the single string shown to the
user. Tool payloads, SQL and raw rows never leave through here.
"""

import re
from typing import Iterable, Optional

from langchain_core.messages import AIMessage, BaseMessage, ToolMessage

NO_DATA_ANSWER = (
    "No data is available for this conversation yet. "
    "Upload a CSV file and ask your question again."
)
BUDGET_EXHAUSTED_ANSWER = (
    "I couldn't finish answering within the allowed number of steps. "
    "Try asking a narrower question."
)
TIMED_OUT_ANSWER = (
    "Answering your question took too long, so I stopped. "
    "Try asking a simpler question."
)
FAILURE_ANSWER = "Sorry, something went wrong while answering your question. Please try again."

_TOOL_CALL_BLOCK = re.compile(r"<tool_call>.*?(</tool_call>|$)", re.DOTALL)
_PAYLOAD_FENCE = re.compile(r"```(?:sql|json)\b.*?(```|$)", re.DOTALL | re.IGNORECASE)


def message_text(message: BaseMessage) -> str:
    """Text of a message whose content is a string or a list of content blocks."""
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def strip_tool_payloads(text: str) -> str:
    """Remove tool-call markup and fenced SQL/JSON blocks from model text."""
    text = _TOOL_CALL_BLOCK.sub("", text)
    text = _PAYLOAD_FENCE.sub("", text)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def latest_answer(messages: Iterable[BaseMessage]) -> Optional[str]:
    """Most recent assistant text that is not a tool request, cleaned."""
    for message in reversed(list(messages)):
        if not isinstance(message, AIMessage) or message.tool_calls:
            continue
        text = strip_tool_payloads(message_text(message))
        if text:
            return text
    return None


def structural_summary(messages: Iterable[BaseMessage]) -> str:
    """Describe the conversation shape when the model produced no usable answer."""
    messages = list(messages)
    tool_results = sum(isinstance(m, ToolMessage) for m in messages)
    failed = sum(isinstance(m, ToolMessage) and m.status == "error" for m in messages)
    summary = (
        f"I wasn't able to produce an answer. The conversation had {len(messages)} messages, "
        f"including {tool_results} tool result(s)"
    )
    if failed:
        summary += f", {failed} of which failed"
    return summary + ". Please try rephrasing your question."


def synthesize_answer(state: dict) -> str:
    """Final user-facing answer for a finished run."""
    status = state.get("status")
    if status == "budget_exhausted":
        return BUDGET_EXHAUSTED_ANSWER
    if status == "timed_out":
        return TIMED_OUT_ANSWER

    messages = state.get("messages") or []
    return latest_answer(messages) or structural_summary(messages)
