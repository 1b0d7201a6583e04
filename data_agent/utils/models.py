"""
Model utilities for the reasoning component.
Local Qwen model (optionally with a LoRA adapter) with a LangChain-style chat interface.
"""

import json
import logging
import re
import uuid
from typing import List, Optional, Sequence

import torch
from langchain_core.messages import AIMessage, BaseMessage, SystemMessage, ToolMessage
from langchain_core.utils.function_calling import convert_to_openai_tool
from peft import PeftModel
from transformers import AutoModelForCausalLM, AutoTokenizer

logger = logging.getLogger(__name__)

_TOOL_CALL_PATTERN = re.compile(r"<tool_call>\s*(.*?)\s*</tool_call>", re.DOTALL)


def parse_tool_calls(text: str):
    """
    Split Qwen output into plain content and tool calls.

    Qwen2.5 emits calls as <tool_call>{"name": ..., "arguments": {...}}</tool_call>.
    Blocks that are not valid JSON are left in the content.
    """
    tool_calls = []
    for block in _TOOL_CALL_PATTERN.findall(text):
        try:
            data = json.loads(block)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed tool call block: %s", block[:200])
            continue
        if not isinstance(data, dict) or not isinstance(data.get("name"), str):
            continue
        args = data.get("arguments", data.get("args", {}))
        if isinstance(args, str):
            try:
                args = json.loads(args)
            except json.JSONDecodeError:
                args = {}
        tool_calls.append({
            "name": data["name"],
            "args": args if isinstance(args, dict) else {},
            "id": f"call_{uuid.uuid4().hex[:12]}",
            "type": "tool_call",
        })

    content = _TOOL_CALL_PATTERN.sub("", text).strip() if tool_calls else text.strip()
    return content, tool_calls


def to_chat_template(messages: Sequence[BaseMessage]) -> List[dict]:
    """Convert LangChain messages to the dicts expected by apply_chat_template."""
    converted = []
    for message in messages:
        if isinstance(message, SystemMessage):
            converted.append({"role": "system", "content": message.content})
        elif isinstance(message, ToolMessage):
            converted.append({"role": "tool", "content": message.content})
        elif isinstance(message, AIMessage):
            entry = {"role": "assistant", "content": message.content or ""}
            if message.tool_calls:
                entry["tool_calls"] = [
                    {"type": "function", "function": {"name": c["name"], "arguments": c["args"]}}
                    for c in message.tool_calls
                ]
            converted.append(entry)
        else:
            converted.append({"role": "user", "content": message.content})
    return converted


class QwenModel:
    """Wrapper for Qwen model with a LangChain-style chat interface."""

    def __init__(
        self,
        model_name: str = "Qwen/Qwen2.5-Coder-7B-Instruct",
        lora_path: Optional[str] = None,
        device_map: str = "auto",
        torch_dtype: str = "auto"
    ):
        """
        Initialize Qwen model.

        Args:
            model_name: Base model name/path
            lora_path: Path to LoRA adapter weights (optional)
            device_map: Device mapping strategy
            torch_dtype: Torch dtype for model
        """
        self.model_name = model_name
        self.lora_path = lora_path

        self.tokenizer = AutoTokenizer.from_pretrained(model_name)
        self.model = AutoModelForCausalLM.from_pretrained(
            model_name,
            torch_dtype=torch_dtype,
            device_map=device_map,
            trust_remote_code=True
        )

        if lora_path:
            logger.info("Loading LoRA adapter from %s", lora_path)
            self.model = PeftModel.from_pretrained(self.model, lora_path)
            self.model = self.model.merge_and_unload()  # Merge for faster inference

        self.model.eval()

    def invoke(
        self,
        messages: Sequence[BaseMessage],
        tools: Optional[List[dict]] = None,
        max_new_tokens: int = 1024,
    ) -> AIMessage:
        """
        Generate the next assistant message.

        Args:
            messages: Conversation so far
            tools: OpenAI-format tool schemas rendered into the chat template
            max_new_tokens: Maximum tokens to generate

        Returns:
            AIMessage, with tool_calls when the model requested a tool
        """
        text = self.tokenizer.apply_chat_template(
            to_chat_template(messages),
            tools=tools,
            tokenize=False,
            add_generation_prompt=True
        )

        model_inputs = self.tokenizer([text], return_tensors="pt").to(self.model.device)

        with torch.no_grad():
            generated_ids = self.model.generate(
                **model_inputs,
                max_new_tokens=max_new_tokens,
                do_sample=False,  # Deterministic planning
                pad_token_id=self.tokenizer.eos_token_id
            )

        # Extract only the generated part
        generated_ids = [
            output_ids[len(input_ids):]
            for input_ids, output_ids in zip(model_inputs.input_ids, generated_ids)
        ]
        response = self.tokenizer.batch_decode(generated_ids, skip_special_tokens=True)[0]

        content, tool_calls = parse_tool_calls(response)
        return AIMessage(content=content, tool_calls=tool_calls)

    def bind_tools(self, tools) -> "ToolBoundQwenModel":
        """Return a wrapper that always offers these tools to the model."""
        return ToolBoundQwenModel(self, [convert_to_openai_tool(t) for t in tools])


class ToolBoundQwenModel:
    """QwenModel with a fixed tool list."""

    def __init__(self, model: QwenModel, tools: List[dict]):
        self.model = model
        self.tools = tools

    def invoke(self, messages: Sequence[BaseMessage]) -> AIMessage:
        return self.model.invoke(messages, tools=self.tools)


# Global model cache to avoid reloading
_model_cache = {}


def get_qwen_model(
    model_name: str = "Qwen/Qwen2.5-Coder-7B-Instruct",
    lora_path: Optional[str] = None,
    use_cache: bool = True
) -> QwenModel:
    """Get or create a Qwen model instance."""
    cache_key = f"{model_name}:{lora_path or 'base'}"

    if use_cache and cache_key in _model_cache:
        return _model_cache[cache_key]

    model = QwenModel(model_name=model_name, lora_path=lora_path)

    if use_cache:
        _model_cache[cache_key] = model

    return model
