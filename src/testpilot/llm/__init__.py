"""LLM access for test generation."""

from testpilot.llm.chat_model import ChatModel, RateLimitConfig, RetryConfig, create_model
from testpilot.llm.engine import (
    CompletionModel,
    LLMAuthError,
    LLMConnectionError,
    LLMError,
    LLMRateLimitError,
)

__all__ = [
    "ChatModel",
    "CompletionModel",
    "LLMAuthError",
    "LLMConnectionError",
    "LLMError",
    "LLMRateLimitError",
    "RateLimitConfig",
    "RetryConfig",
    "create_model",
]
