"""Mock LLM provider for tests and offline (--mock) runs."""

from typing import Any

from stepgraph.llm.provider import LLMProvider, LLMResponse


class MockLLMProvider(LLMProvider):
    """
    Mock LLM that plays back a list of canned responses.

    Each call pops the next response. Once the list is exhausted the
    ``default`` text is returned (``default_json`` in json mode). A response
    that is an Exception instance is raised instead of returned.

    Every call is recorded in ``calls`` for assertions.
    """

    def __init__(
        self,
        responses: list[str | Exception] | None = None,
        default: str = "Thank you for reaching out. We are looking into your request.",
        default_json: str = "{}",
    ):
        self._responses: list[str | Exception] = list(responses or [])
        self.default = default
        self.default_json = default_json
        self.calls: list[dict[str, Any]] = []
        self.model = "mock"

    def complete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> LLMResponse:
        self.calls.append(
            {
                "messages": messages,
                "system": system,
                "max_tokens": max_tokens,
                "json_mode": json_mode,
            }
        )

        if self._responses:
            response = self._responses.pop(0)
            if isinstance(response, Exception):
                raise response
            content = response
        else:
            content = self.default_json if json_mode else self.default

        return LLMResponse(
            content=content,
            model=self.model,
            input_tokens=10,
            output_tokens=10,
            stop_reason="stop",
        )

    async def acomplete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> LLMResponse:
        return self.complete(messages, system=system, max_tokens=max_tokens, json_mode=json_mode)
