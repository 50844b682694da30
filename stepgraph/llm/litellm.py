"""LiteLLM provider - one interface to OpenAI, Anthropic, Gemini and the rest."""

import logging
from typing import Any

import litellm

from stepgraph.config import DEFAULT_MODEL
from stepgraph.llm.provider import LLMProvider, LLMResponse

logger = logging.getLogger(__name__)


class LiteLLMProvider(LLMProvider):
    """
    LLM provider backed by litellm.

    The model string selects the backend, e.g. "gpt-5-nano",
    "anthropic/claude-haiku-4-5-20251001" or "gemini/gemini-2.0-flash".

    Example:
        llm = LiteLLMProvider(model="gpt-5-nano")
        response = llm.complete([{"role": "user", "content": "Hello"}])
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: str | None = None,
        api_base: str | None = None,
        temperature: float | None = None,
        timeout: float = 60.0,
        **kwargs: Any,
    ):
        """
        Initialize the provider.

        Args:
            model: litellm model string
            api_key: Explicit API key (otherwise litellm reads the usual env vars)
            api_base: Custom endpoint (proxies, self-hosted models)
            temperature: Sampling temperature; None leaves the backend default
            timeout: Request timeout in seconds
            **kwargs: Extra arguments passed through to litellm
        """
        self.model = model
        self.api_key = api_key
        self.api_base = api_base
        self.temperature = temperature
        self.timeout = timeout
        self.extra_kwargs = kwargs

    def _build_request(
        self,
        messages: list[dict[str, Any]],
        system: str,
        max_tokens: int,
        json_mode: bool,
    ) -> dict[str, Any]:
        full_messages = []
        if system:
            full_messages.append({"role": "system", "content": system})
        full_messages.extend(messages)

        request: dict[str, Any] = {
            "model": self.model,
            "messages": full_messages,
            "max_tokens": max_tokens,
            "timeout": self.timeout,
            **self.extra_kwargs,
        }
        if self.api_key:
            request["api_key"] = self.api_key
        if self.api_base:
            request["api_base"] = self.api_base
        if self.temperature is not None:
            request["temperature"] = self.temperature
        if json_mode:
            request["response_format"] = {"type": "json_object"}
        return request

    def _to_response(self, response: Any) -> LLMResponse:
        choice = response.choices[0]
        usage = getattr(response, "usage", None)
        return LLMResponse(
            content=choice.message.content or "",
            model=getattr(response, "model", None) or self.model,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            stop_reason=choice.finish_reason or "",
            raw_response=response,
        )

    def complete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Generate a completion via ``litellm.completion``."""
        request = self._build_request(messages, system, max_tokens, json_mode)
        logger.debug(f"LLM request to {self.model} ({len(request['messages'])} messages)")
        return self._to_response(litellm.completion(**request))

    async def acomplete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Generate a completion via ``litellm.acompletion``."""
        request = self._build_request(messages, system, max_tokens, json_mode)
        logger.debug(f"LLM request to {self.model} ({len(request['messages'])} messages)")
        return self._to_response(await litellm.acompletion(**request))
