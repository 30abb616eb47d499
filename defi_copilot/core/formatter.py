"""
Response formatting.

Turns an orchestrated result (or its failure) into user-facing markdown with
one language-model call per message. The markdown layout is fixed by the
system instructions below; the client renders it verbatim.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from ..config import settings
from ..providers.llm import LLMMessage, LLMProvider
from .intent import Intent

logger = logging.getLogger(__name__)

DEFAULT_RESPONSE = "Unable to process request. Please try again."
DEFAULT_ERROR_EXPLANATION = "An error occurred. Please try again."

RESPONSE_SYSTEM_PROMPT = """You are an advanced DeFi AI assistant providing detailed insights for on-chain operations and market data.
Format your response using this markdown structure:

### [Title based on the action type]

#### Transaction Status
- **Timestamp**: [Current UTC time]
- **Action**: [Operation type]
- **Status**: [Success/Error/Pending]
- **Network**: [Chain name]

#### Transaction Details
- **Type**: [Transaction type]
- **Amount**: [Transaction amount if applicable]
- **Gas Cost**: [Estimated/actual gas cost]
- **Contract**: [Contract address if applicable]

#### Market Context
- **Price Impact**: [If applicable]
- **Market Conditions**: [Current state]
- **Risk Level**: [Low/Medium/High with explanation]

#### Next Steps & Recommendations
- **Immediate Actions**: [User next steps]
- **Monitoring**: [What to watch]
- **Risk Management**: [Safety tips]

Status rules:
- Use "Success" when a result is present and there is no error
- Use "Error" when an error is present, and explain it in plain words
- If the error mentions a retry delay, tell the user how long to wait before trying again

Style Requirements:
- Keep responses concise and actionable
- Focus on relevant information
- Include specific values where available
- Maintain professional tone"""

ERROR_SYSTEM_PROMPT = """You are a DeFi support specialist helping users with failed assistant requests.
Format error responses using this structure:

### [Error Title]

#### Error Details
- **Type**: [Error category]
- **Component**: [Affected system part]
- **Impact**: [User impact]
- **Status**: [Current state]

#### Analysis
- **Cause**: [Root cause]
- **Context**: [Relevant conditions]
- **Severity**: [Impact level]

#### Resolution
- **Immediate Steps**: [What to do now]
- **Prevention**: [How to avoid]
- **Alternatives**: [Other options]

Requirements:
- Clear, actionable language
- Specific steps
- Focus on resolution
- Professional tone"""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ResponseFormatter:
    """Render agent results and errors as markdown via the language model."""

    def __init__(
        self,
        llm: LLMProvider,
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        deadline: Optional[float] = None,
    ):
        self.llm = llm
        self.temperature = settings.response_temperature if temperature is None else temperature
        self.max_tokens = settings.max_tokens if max_tokens is None else max_tokens
        self.deadline = settings.llm_timeout_seconds if deadline is None else deadline

    async def format_response(
        self,
        intent: Intent,
        result: Any = None,
        error: Optional[str] = None,
    ) -> str:
        context = {"intent": intent.model_dump(), "timestamp": _utc_now()}
        if result is not None:
            context["result"] = result
        if error is not None:
            context["error"] = error
        return await self._render(RESPONSE_SYSTEM_PROMPT, context, DEFAULT_RESPONSE)

    async def explain_error(self, error: BaseException, context: str) -> str:
        payload = {
            "error": getattr(error, "message", None) or str(error),
            "context": context,
            "timestamp": _utc_now(),
        }
        return await self._render(ERROR_SYSTEM_PROMPT, payload, DEFAULT_ERROR_EXPLANATION)

    async def _render(self, system_prompt: str, payload: dict, default: str) -> str:
        response = await self.llm.complete(
            [
                LLMMessage(role="system", content=system_prompt),
                LLMMessage(role="user", content=json.dumps(payload, default=str)),
            ],
            deadline=self.deadline,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        content = (response.content or "").strip()
        if not content:
            logger.warning("Language model returned empty content, using default text")
            return default
        return content


__all__ = [
    "ResponseFormatter",
    "RESPONSE_SYSTEM_PROMPT",
    "ERROR_SYSTEM_PROMPT",
    "DEFAULT_RESPONSE",
    "DEFAULT_ERROR_EXPLANATION",
]
