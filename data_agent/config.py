"""Agent configuration helpers."""

import logging
import os
from typing import Literal, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_BASE_MODEL = "Qwen/Qwen2.5-Coder-7B-Instruct"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


def get_env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    """Get an environment variable as a string."""
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value


def get_env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    """Get an environment variable as an integer."""
    value = get_env_str(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable '{name}' must be an integer, got '{value}'.")


def get_env_float(name: str, default: Optional[float] = None) -> Optional[float]:
    """Get an environment variable as a float."""
    value = get_env_str(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable '{name}' must be a float, got '{value}'.")


class AgentSettings(BaseModel):
    """Runtime settings for the planning loop and its backends."""

    db_path: str = "data_agent.sqlite"
    provider: Literal["qwen", "openai"] = "qwen"
    base_model: str = DEFAULT_BASE_MODEL
    lora_path: Optional[str] = None
    openai_model: str = DEFAULT_OPENAI_MODEL

    # Loop bounds
    max_tool_calls: int = Field(default=8, ge=1)
    timeout_seconds: float = Field(default=60.0, gt=0)

    # Row ceiling applied when a plan has no usable limit
    default_limit: int = Field(default=100, ge=1)

    @classmethod
    def from_env(cls, **overrides) -> "AgentSettings":
        """Build settings from DATA_AGENT_* variables; explicit overrides win."""
        values = {
            "db_path": get_env_str("DATA_AGENT_DB_PATH"),
            "provider": get_env_str("DATA_AGENT_PROVIDER"),
            "base_model": get_env_str("DATA_AGENT_BASE_MODEL"),
            "lora_path": get_env_str("DATA_AGENT_LORA_PATH"),
            "openai_model": get_env_str("DATA_AGENT_OPENAI_MODEL"),
            "max_tool_calls": get_env_int("DATA_AGENT_MAX_TOOL_CALLS"),
            "timeout_seconds": get_env_float("DATA_AGENT_TIMEOUT_SECONDS"),
            "default_limit": get_env_int("DATA_AGENT_DEFAULT_LIMIT"),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        settings = cls(**{k: v for k, v in values.items() if v is not None})
        logger.debug("Loaded agent settings: %s", settings.model_dump())
        return settings
