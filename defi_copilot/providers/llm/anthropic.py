import time
from typing import Any, Dict, List, Optional

import anthropic
from anthropic import AsyncAnthropic

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


JSON_ONLY_SUFFIX = "\n\nRespond with a single JSON object and nothing else."


class AnthropicProvider(LLMProvider):
    """Anthropic Claude LLM Provider implementation"""

    def __init__(self, api_key: str, model: Optional[str] = None, **kwargs):
        if not model:
            raise ValueError("AnthropicProvider requires a model to be specified")

        super().__init__(api_key, model, **kwargs)

    def _setup_client(self, **kwargs) -> None:
        """Initialize the Anthropic client"""
        try:
            client_kwargs: Dict[str, Any] = {"api_key": self.api_key, "max_retries": 0}
            if self.timeout:
                client_kwargs["timeout"] = self.timeout
            self.client = AsyncAnthropic(**client_kwargs)
        except Exception as e:
            self.logger.error(f"Failed to initialize Anthropic client: {e}")
            raise LLMProviderAuthError(f"Failed to initialize Anthropic client: {e}")

    async def generate_response(
        self,
        messages: List[LLMMessage],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        json_mode: bool = False,
        **kwargs
    ) -> LLMResponse:
        """Generate a response from Claude"""
        start_time = time.time()

        # System messages are passed separately
        system_parts = [msg.content for msg in messages if msg.role == "system"]
        anthropic_messages = [
            {"role": msg.role, "content": msg.content}
            for msg in messages
            if msg.role != "system"
        ]

        system_message = "\n\n".join(system_parts)
        if json_mode:
            # No native JSON mode; constrain through the instruction
            system_message += JSON_ONLY_SUFFIX

        request_params: Dict[str, Any] = {
            "model": self.model,
            "messages": anthropic_messages,
            "max_tokens": max_tokens or 4000,
        }
        if system_message:
            request_params["system"] = system_message
        if temperature is not None:
            request_params["temperature"] = temperature
        request_params.update(kwargs)

        try:
            response = await self.client.messages.create(**request_params)
        except anthropic.APITimeoutError as e:
            await self._handle_error(LLMProviderTimeoutError(f"Request timed out: {e}"), "generate_response")
        except anthropic.AuthenticationError as e:
            await self._handle_error(LLMProviderAuthError(f"Authentication failed: {e}"), "generate_response")
        except anthropic.RateLimitError as e:
            await self._handle_error(LLMProviderRateLimitError(f"Rate limit exceeded: {e}"), "generate_response")
        except anthropic.APIError as e:
            await self._handle_error(LLMProviderAPIError(f"API error: {e}"), "generate_response")

        content = ""
        for block in response.content or []:
            if hasattr(block, 'text'):
                content += block.text

        if not content and not response.content:
            raise LLMProviderError("Anthropic response contained no content")

        return self._create_response(
            content=content or None,
            tokens_used=response.usage.output_tokens if hasattr(response, 'usage') else None,
            finish_reason=getattr(response, 'stop_reason', None),
            response_time_ms=self._measure_time(start_time),
        )

    async def health_check(self) -> Dict[str, Any]:
        """Check if Anthropic API is healthy"""
        try:
            start_time = time.time()
            response = await self.generate_response(
                messages=[LLMMessage(role="user", content="Hello")],
                max_tokens=10,
                temperature=0,
            )
            return {
                "status": "healthy",
                "provider": "anthropic",
                "model": self.model,
                "response_time_ms": self._measure_time(start_time),
                "test_response_length": len(response.content or ""),
            }
        except LLMProviderAuthError:
            return {
                "status": "error",
                "provider": "anthropic",
                "model": self.model,
                "error": "Authentication failed"
            }
        except Exception as e:
            return {
                "status": "error",
                "provider": "anthropic",
                "model": self.model,
                "error": str(e)
            }
