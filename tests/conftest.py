"""Shared fixtures and fakes for the test suite."""

from typing import Any, Dict, List, Optional

import pytest

from defi_copilot.providers.llm.base import LLMMessage, LLMProvider, LLMResponse


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedLLM(LLMProvider):
    """LLM provider that replays canned completions in order."""

    def __init__(self, *contents: Any):
        super().__init__(api_key="test-key", model="test-model")
        self.contents: List[Any] = list(contents)
        self.calls: List[Dict[str, Any]] = []

    def _setup_client(self, **kwargs) -> None:
        pass

    async def generate_response(
        self,
        messages: List[LLMMessage],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        json_mode: bool = False,
        **kwargs
    ) -> LLMResponse:
        self.calls.append({
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "json_mode": json_mode,
        })
        content = self.contents.pop(0) if self.contents else None
        if isinstance(content, Exception):
            raise content
        return self._create_response(content)

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy", "provider": "scripted", "model": self.model}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scripted_llm():
    """Factory for ``ScriptedLLM`` instances."""
    return ScriptedLLM
