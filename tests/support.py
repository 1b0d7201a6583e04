"""Shared helpers for data agent tests."""

import itertools

from langchain_core.messages import AIMessage

CONVERSATION = "conv-1"
OTHER_CONVERSATION = "conv-2"

_ids = itertools.count(1)


def tool_call(name: str, args: dict = None, call_id: str = None) -> AIMessage:
    """An assistant message requesting one tool."""
    return AIMessage(
        content="",
        tool_calls=[{
            "name": name,
            "args": args or {},
            "id": call_id or f"call_{next(_ids)}",
            "type": "tool_call",
        }],
    )


class ScriptedChatModel:
    """
    Stand-in for the reasoning component.

    Returns the scripted responses in order. A response may be a message,
    a list of messages, an exception to raise, or a callable taking the
    messages and returning one of those.
    """

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []
        self.bound_tools = None

    def bind_tools(self, tools):
        self.bound_tools = [t.name for t in tools]
        return self

    def invoke(self, messages):
        self.calls.append(list(messages))
        if not self.responses:
            raise AssertionError("Model called more times than scripted")
        response = self.responses.pop(0)
        if callable(response) and not isinstance(response, Exception):
            response = response(messages)
        if isinstance(response, Exception):
            raise response
        return response
