"""Unit tests for turning a finished run into the user-facing answer."""

from langchain_core.messages import AIMessage, HumanMessage, ToolMessage

from data_agent.agents.synthesizer import (
    BUDGET_EXHAUSTED_ANSWER,
    TIMED_OUT_ANSWER,
    latest_answer,
    strip_tool_payloads,
    synthesize_answer,
)

from tests.support import tool_call


class TestStripToolPayloads:

    def test_removes_tool_call_markup(self):
        text = 'Let me check.\n<tool_call>{"name": "get_schema", "arguments": {}}</tool_call>'
        assert strip_tool_payloads(text) == "Let me check."

    def test_removes_unterminated_tool_call(self):
        assert strip_tool_payloads('Total is 5. <tool_call>{"name": "execute') == "Total is 5."

    def test_removes_sql_and_json_fences(self):
        text = "EU leads.\n```sql\nSELECT * FROM sales\n```\n\n\n\n```json\n{\"rows\": []}\n```\nThanks."
        assert strip_tool_payloads(text) == "EU leads.\n\nThanks."

    def test_plain_text_is_untouched(self):
        assert strip_tool_payloads("  Revenue was 250.  ") == "Revenue was 250."


class TestLatestAnswer:

    def test_skips_tool_requests(self):
        messages = [AIMessage("Final answer."), tool_call("get_schema")]
        assert latest_answer(messages) == "Final answer."

    def test_content_blocks(self):
        message = AIMessage(content=[{"type": "text", "text": "Part one. "}, {"type": "text", "text": "Part two."}])
        assert latest_answer([message]) == "Part one. Part two."

    def test_no_assistant_text(self):
        assert latest_answer([HumanMessage("hi"), AIMessage("```sql\nSELECT 1\n```")]) is None


class TestSynthesizeAnswer:

    def test_uses_latest_answer(self):
        state = {"status": "answered", "messages": [HumanMessage("q"), AIMessage("Four rows.")]}
        assert synthesize_answer(state) == "Four rows."

    def test_terminal_statuses(self):
        messages = [AIMessage("partial")]
        assert synthesize_answer({"status": "budget_exhausted", "messages": messages}) == BUDGET_EXHAUSTED_ANSWER
        assert synthesize_answer({"status": "timed_out", "messages": messages}) == TIMED_OUT_ANSWER

    def test_structural_summary_without_answer(self):
        messages = [
            HumanMessage("q"),
            tool_call("execute_query", call_id="a"),
            ToolMessage('{"error": "UnknownTable"}', tool_call_id="a", status="error"),
            AIMessage(""),
        ]
        answer = synthesize_answer({"status": "answered", "messages": messages})
        assert "4 messages" in answer
        assert "1 tool result(s), 1 of which failed" in answer
        assert "UnknownTable" not in answer
