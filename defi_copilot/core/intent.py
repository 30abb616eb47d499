"""
Intent classification.

A user message is turned into a tagged ``Intent`` (one model per agent,
discriminated on ``agent``) by a single language-model call constrained to
emit a JSON object.
"""

import json
import logging
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ..config import settings
from ..errors import IntentParseError
from ..providers.llm import LLMMessage, LLMProvider

logger = logging.getLogger(__name__)


class _IntentBase(BaseModel):
    action: str = Field(min_length=1)
    parameters: Dict[str, Any] = Field(default_factory=dict)

    def param(self, name: str, default: Any = None) -> Any:
        value = self.parameters.get(name)
        return default if value in (None, "") else value


class MarketIntent(_IntentBase):
    agent: Literal["market"] = "market"


class DefiIntent(_IntentBase):
    agent: Literal["defi"] = "defi"


class ToolsIntent(_IntentBase):
    agent: Literal["tools"] = "tools"


class BridgeIntent(_IntentBase):
    agent: Literal["bridge"] = "bridge"


class AnalyticsIntent(_IntentBase):
    agent: Literal["analytics"] = "analytics"


class SystemIntent(_IntentBase):
    agent: Literal["system"] = "system"


Intent = Annotated[
    Union[MarketIntent, DefiIntent, ToolsIntent, BridgeIntent, AnalyticsIntent, SystemIntent],
    Field(discriminator="agent"),
]

AGENT_TYPES = ("market", "defi", "tools", "bridge", "analytics", "system")

_intent_adapter: TypeAdapter = TypeAdapter(Intent)


def fallback_intent() -> SystemIntent:
    return SystemIntent(action="help")


def parse_intent(raw: Any) -> Intent:
    """Validate a decoded or raw JSON payload into an ``Intent``.

    Raises:
        IntentParseError: the payload is not JSON, not an object, names an
            unknown agent, or lacks an action.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise IntentParseError("Intent is not valid JSON", details={"error": str(exc)}) from exc

    if not isinstance(raw, dict):
        raise IntentParseError("Intent must be a JSON object")

    if raw.get("parameters") is None:
        raw = {**raw, "parameters": {}}

    try:
        return _intent_adapter.validate_python(raw)
    except ValidationError as exc:
        raise IntentParseError(
            "Intent does not match the expected schema",
            details={"errors": exc.errors(include_url=False)},
        ) from exc


INTENT_SYSTEM_PROMPT = """You are an advanced DeFi AI agent specializing in cross-chain operations, market data, blockchain analytics, and knowledge graph analysis.
Analyze the user's intent and respond with a JSON object containing the following fields:
- agent: The type of agent to handle the request ("market", "defi", "tools", "bridge", "analytics", "system")
- action: The specific action to perform
- parameters: Optional parameters for the action

Categories:

1. Market Data (agent: "market")
   - price: Current price, 24h change and volume of an asset (parameters.tokenId is a Coingecko id)
   - chart: Historical price chart (parameters.tokenId, parameters.days)
   - trending: Currently trending assets
   - info: Project description, links and market data of an asset (parameters.tokenId)
   Example: { "agent": "market", "action": "price", "parameters": { "tokenId": "avalanche-2" } }

2. DeFi Operations (agent: "defi")
   - swap: Token swaps
   - transfer: Token transfers
   - position: Manage DeFi positions
   - analyze: Protocol analysis
   Example: { "agent": "defi", "action": "swap", "parameters": { "token1": "AVAX", "token2": "USDC", "amount": "1", "chain": "avalanche" } }

3. Tools (agent: "tools")
   - simulate: Transaction simulation
   - gas: Gas estimation
   - risk: Risk analysis
   - parameters: Parameter extraction
   Example: { "agent": "tools", "action": "parameters", "parameters": { "prompt": "swap 1 AVAX for USDC" } }

4. Bridging (agent: "bridge")
   - bridge: Move assets across chains
   Example: { "agent": "bridge", "action": "bridge", "parameters": { "token": "USDC", "amount": "10", "from": "avalanche", "to": "ethereum" } }

5. Knowledge Graph Analytics (agent: "analytics")
   - query: General knowledge graph queries
   - analyze: Detailed entity analysis (parameters.entityId)
   - patterns: Pattern detection in timeframes
   - relations: Entity relationship exploration (parameters.entityId, parameters.depth)
   Example: { "agent": "analytics", "action": "patterns", "parameters": { "timeframe": "24h" } }

6. System & Help (agent: "system")
   - help: Get capabilities
   - networks: List supported networks
   - actions: List available actions
   Example: { "agent": "system", "action": "networks" }

For unclear queries, return: { "agent": "system", "action": "clarify" }

Always return a valid JSON object matching the above structure."""


class IntentClassifier:
    """Turn free text into a typed ``Intent`` with one LLM call."""

    def __init__(self, llm: LLMProvider, *, temperature: Optional[float] = None, deadline: Optional[float] = None):
        self.llm = llm
        self.temperature = settings.intent_temperature if temperature is None else temperature
        self.deadline = settings.llm_timeout_seconds if deadline is None else deadline

    async def classify(self, message: str) -> Intent:
        """Classify ``message``.

        Falls back to ``system/help`` when the model output cannot be parsed;
        transport failures of the model call propagate.
        """
        response = await self.llm.complete(
            [
                LLMMessage(role="system", content=INTENT_SYSTEM_PROMPT),
                LLMMessage(role="user", content=message),
            ],
            deadline=self.deadline,
            temperature=self.temperature,
            json_mode=True,
        )

        if not response.content:
            return fallback_intent()

        try:
            intent = parse_intent(_strip_code_fence(response.content))
        except IntentParseError as exc:
            logger.warning("Intent parse failed, falling back to help: %s", exc.message)
            return fallback_intent()

        logger.info("Classified intent agent=%s action=%s", intent.agent, intent.action)
        return intent


def _strip_code_fence(content: str) -> str:
    text = content.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    return text.strip()


__all__ = [
    "Intent",
    "MarketIntent",
    "DefiIntent",
    "ToolsIntent",
    "BridgeIntent",
    "AnalyticsIntent",
    "SystemIntent",
    "AGENT_TYPES",
    "IntentClassifier",
    "INTENT_SYSTEM_PROMPT",
    "fallback_intent",
    "parse_intent",
]
