import time
from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from .base import (
    LLMMessage,
    LLMProvider,
    LLMProviderAPIError,
    LLMProviderAuthError,
    LLMProviderError,
    LLMProviderRateLimitError,
    LLMProviderTimeoutError,
    LLMResponse,
)


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions provider with JSON object mode"""

    supports_json_mode: bool = True

    def __init__(self, api_key: str, model: Optional[str] = None, **kwargs):
        if not model:
            raise ValueError("OpenAIProvider requires a model to be specified")

        super().__init__(api_key, model, **kwargs)

    def _setup_client(self, **kwargs) -> None:
        """Initialize the OpenAI client (no SDK-level retries)"""
        try:
            client_kwargs: Dict[str, Any] = {"api_key": self.api_key, "max_retries": 0}
            if self.timeout:
                client_kwargs["timeout"] = self.timeout
            if kwargs.get("base_url"):
                client_kwargs["base_url"] = kwargs["base_url"]
            self.client = AsyncOpenAI(**client_kwargs)
        except Exception as e:
            self.logger.error(f"Failed to initialize OpenAI client: {e}")
            raise LLMProviderAuthError(f"Failed to initialize OpenAI client: {e}")

    async def generate_response(
        self,
        messages: List[LLMMessage],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        json_mode: bool = False,
        **kwargs
    ) -> LLMResponse:
        start_time = time.time()

        request_params: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": msg.role, "content": msg.content} for msg in messages],
        }
        if max_tokens:
            request_params["max_tokens"] = max_tokens
        if temperature is not None:
            request_params["temperature"] = temperature
        if json_mode:
            request_params["response_format"] = {"type": "json_object"}
        request_params.update(kwargs)

        try:
            response = await self.client.chat.completions.create(**request_params)
        except openai.APITimeoutError as e:
            await self._handle_error(LLMProviderTimeoutError(f"Request timed out: {e}"), "generate_response")
        except openai.AuthenticationError as e:
            await self._handle_error(LLMProviderAuthError(f"Authentication failed: {e}"), "generate_response")
        except openai.RateLimitError as e:
            await self._handle_error(LLMProviderRateLimitError(f"Rate limit exceeded: {e}"), "generate_response")
        except openai.APIError as e:
            await self._handle_error(LLMProviderAPIError(f"API error: {e}"), "generate_response")

        if not response.choices:
            raise LLMProviderError("OpenAI response missing choices")

        choice = response.choices[0]
        usage = getattr(response, "usage", None)
        return self._create_response(
            content=choice.message.content,
            tokens_used=usage.total_tokens if usage else None,
            finish_reason=choice.finish_reason,
            response_time_ms=self._measure_time(start_time),
        )

    async def health_check(self) -> Dict[str, Any]:
        """Check if the OpenAI API is reachable with our key"""
        try:
            start_time = time.time()
            await self.client.models.retrieve(self.model)
            return {
                "status": "healthy",
                "provider": "openai",
                "model": self.model,
                "response_time_ms": self._measure_time(start_time),
            }
        except Exception as e:
            return {
                "status": "error",
                "provider": "openai",
                "model": self.model,
                "error": str(e),
            }
