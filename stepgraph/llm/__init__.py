"""LLM provider abstraction."""

from stepgraph.llm.litellm import LiteLLMProvider
from stepgraph.llm.mock import MockLLMProvider
from stepgraph.llm.provider import LLMProvider, LLMResponse

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "LiteLLMProvider",
    "MockLLMProvider",
]
