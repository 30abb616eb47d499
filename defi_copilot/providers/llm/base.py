import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from ...errors import DeFiCopilotError, UpstreamTimeout


# =============================================================================
# Message Models
# =============================================================================

class LLMMessage(BaseModel):
    """Standardized message format for LLM communication"""
    role: str  # "system", "user", "assistant"
    content: str


class LLMResponse(BaseModel):
    """Standardized response from LLM providers"""
    content: Optional[str] = None
    tokens_used: Optional[int] = None
    model: Optional[str] = None
    finish_reason: Optional[str] = None
    response_time_ms: Optional[float] = None


class LLMProvider(ABC):
    """Abstract base class for LLM providers"""

    # Whether the provider can be forced to emit a JSON object natively
    supports_json_mode: bool = False

    def __init__(self, api_key: str, model: str, *, timeout: Optional[float] = None, **kwargs):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.logger = logging.getLogger(f"{self.__class__.__name__}")
        self._setup_client(**kwargs)

    @abstractmethod
    def _setup_client(self, **kwargs) -> None:
        """Initialize the provider-specific client"""
        pass

    @abstractmethod
    async def generate_response(
        self,
        messages: List[LLMMessage],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        json_mode: bool = False,
        **kwargs
    ) -> LLMResponse:
        """Generate a response from the LLM

        Args:
            messages: List of messages in the conversation
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature
            json_mode: Constrain the output to a single JSON object
            **kwargs: Additional provider-specific parameters
        """
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Check if the provider is healthy and responding"""
        pass

    async def complete(
        self,
        messages: List[LLMMessage],
        *,
        deadline: Optional[float] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """``generate_response`` bounded by an overall deadline in seconds."""
        deadline = deadline if deadline is not None else self.timeout
        if not deadline:
            return await self.generate_response(messages, **kwargs)
        try:
            return await asyncio.wait_for(self.generate_response(messages, **kwargs), timeout=deadline)
        except asyncio.TimeoutError as exc:
            raise LLMProviderTimeoutError(
                f"Language model did not answer within {deadline:g}s",
                details={"provider": self.__class__.__name__, "model": self.model},
            ) from exc

    def _create_response(self, content: Optional[str], **metadata) -> LLMResponse:
        """Helper method to create standardized responses"""
        return LLMResponse(
            content=content,
            model=self.model,
            **metadata
        )

    def _measure_time(self, start_time: float) -> float:
        """Helper to measure response time in milliseconds"""
        return (time.time() - start_time) * 1000

    async def _handle_error(self, error: Exception, context: str = "") -> None:
        """Standardized error handling and logging"""
        self.logger.error(f"LLM Provider error in {context}: {str(error)}")
        raise error


class LLMProviderError(DeFiCopilotError):
    """Base exception for LLM provider errors"""
    code = "LLM_ERROR"
    status_code = 502


class LLMProviderRateLimitError(LLMProviderError):
    """Raised when hitting rate limits"""
    code = "LLM_RATE_LIMITED"
    status_code = 429


class LLMProviderAuthError(LLMProviderError):
    """Raised when authentication fails"""
    code = "LLM_UNAUTHORIZED"


class LLMProviderAPIError(LLMProviderError):
    """Raised when API request fails"""
    pass


class LLMProviderTimeoutError(LLMProviderError, UpstreamTimeout):
    """Raised when a call exceeds its deadline"""
    code = "TIMEOUT"
    status_code = 504
