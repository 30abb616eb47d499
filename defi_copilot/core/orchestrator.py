"""
Agent Orchestrator

Runs one chat message through the pipeline:
1. Classify the message into a typed intent
2. Resolve the acting chain address
3. Dispatch the intent to exactly one collaborator (or a static payload)
4. Have the formatter render the result or the failure as markdown
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from eth_account import Account
from pydantic import BaseModel, Field

from ..config import settings
from ..db.users import UserStore
from ..errors import ConfigurationError, UnsupportedOperation
from ..providers.base import MarketDataProvider
from ..providers.brian import BrianProvider
from .formatter import ResponseFormatter
from .intent import Intent, IntentClassifier

logger = logging.getLogger(__name__)

PROCESSING_ERROR_FALLBACK = (
    "Sorry, something went wrong while processing your request. Please try again in a moment."
)

HELP_PAYLOAD: Dict[str, Any] = {
    "capabilities": {
        "market": ["price", "chart", "trending", "info"],
        "defi": ["swap", "transfer", "position", "analyze"],
        "tools": ["simulate", "gas", "risk", "parameters"],
        "bridge": ["bridge"],
        "analytics": ["query", "analyze", "relations", "patterns"],
        "system": ["help", "networks", "actions"],
    },
    "examples": [
        "What is the price of AVAX?",
        "Show me the 30 day chart for bitcoin",
        "Swap 1 AVAX for USDC",
        "Show supported networks",
    ],
}

CLARIFY_PAYLOAD: Dict[str, Any] = {
    "clarification_needed": True,
    "message": "Could you rephrase your request? Try asking for a token price, a swap, or the supported networks.",
}


class AgentResult(BaseModel):
    """Outcome of one processed chat message"""

    response: str = Field(description="Markdown answer shown to the user")
    agentType: str = Field(description="Agent that handled the message, or 'error'")
    subType: str = Field(description="Action within the agent, or 'processing_error'")
    details: Optional[Any] = Field(default=None, description="Raw collaborator payload")


Handler = Callable[[Intent, str, str], Awaitable[Any]]


def derive_platform_address(private_key: Optional[str]) -> Optional[str]:
    """Address of the platform account, or None when no key is configured."""
    if not private_key:
        return None
    key = private_key if private_key.startswith("0x") else f"0x{private_key}"
    if len(key) != 66:
        raise ConfigurationError("PLATFORM_PRIVATE_KEY must be 32 bytes (64 hex characters)")
    try:
        return Account.from_key(key).address
    except (ValueError, TypeError) as exc:
        raise ConfigurationError(f"Failed to create account from private key: {exc}") from exc


class AgentOrchestrator:
    """Classify, dispatch and format a chat message."""

    def __init__(
        self,
        classifier: IntentClassifier,
        formatter: ResponseFormatter,
        market: MarketDataProvider,
        brian: BrianProvider,
        users: Optional[UserStore] = None,
        platform_address: Optional[str] = None,
        *,
        chain_id: Optional[int] = None,
    ):
        self.classifier = classifier
        self.formatter = formatter
        self.market = market
        self.brian = brian
        self.users = users
        self.platform_address = platform_address
        self.chain_id = settings.chain_id if chain_id is None else chain_id

        self._actions: Dict[Tuple[str, str], Handler] = {
            ("market", "price"): self._market_price,
            ("market", "chart"): self._market_chart,
            ("market", "trending"): self._market_trending,
            ("market", "info"): self._market_info,
            ("tools", "parameters"): self._extract_parameters,
            ("tools", "simulate"): self._transact,
            ("tools", "gas"): self._transact,
            ("tools", "risk"): self._transact,
            ("analytics", "query"): self._graph_query,
            ("analytics", "analyze"): self._graph_analyze,
            ("analytics", "relations"): self._graph_relations,
            ("analytics", "patterns"): self._graph_patterns,
            ("system", "networks"): self._system_networks,
            ("system", "actions"): self._system_actions,
            ("system", "help"): self._system_help,
            ("system", "clarify"): self._system_clarify,
        }
        # Every action of these agents is a natural-language transaction
        self._agents: Dict[str, Handler] = {
            "defi": self._transact,
            "bridge": self._transact,
        }

    async def process_message(self, message: str, user_id: Optional[int] = None) -> AgentResult:
        try:
            intent = await self.classifier.classify(message)
            result: Any = None
            error: Optional[str] = None

            try:
                result = await self.execute(intent, message, user_id)
            except Exception as exc:
                error = f"{intent.agent} action failed: {exc}"
                logger.warning("Action execution error: %s", error)

            response = await self.formatter.format_response(intent, result=result, error=error)
            return AgentResult(
                response=response,
                agentType=intent.agent,
                subType=intent.action,
                details=result,
            )
        except Exception as exc:
            logger.error("Agent processing error: %s", exc, exc_info=True)
            return AgentResult(
                response=await self._explain(exc),
                agentType="error",
                subType="processing_error",
            )

    async def execute(self, intent: Intent, message: str, user_id: Optional[int] = None) -> Any:
        """Run the collaborator call for ``intent``; errors propagate."""
        handler = self._actions.get((intent.agent, intent.action)) or self._agents.get(intent.agent)
        if handler is None:
            raise UnsupportedOperation(
                f"Unsupported {intent.agent} action",
                details={"agent": intent.agent, "action": intent.action},
            )
        address = await self.resolve_address(user_id)
        return await handler(intent, message, address)

    async def resolve_address(self, user_id: Optional[int]) -> Optional[str]:
        """User's stored chain address when present, else the platform account."""
        if user_id is not None and self.users is not None:
            user = await self.users.get_user(user_id)
            if user is not None and user.avalanche_address:
                return user.avalanche_address
            logger.info("User %s has no stored address, acting as the platform account", user_id)
        return self.platform_address

    async def _explain(self, exc: Exception) -> str:
        try:
            return await self.formatter.explain_error(exc, "Failed to process request")
        except Exception as explain_exc:
            logger.error("Error explanation failed: %s", explain_exc)
            return PROCESSING_ERROR_FALLBACK

    # Market

    async def _market_price(self, intent: Intent, message: str, address: Optional[str]) -> Any:
        return await self.market.get_token_price(intent.param("tokenId", settings.default_asset_id))

    async def _market_chart(self, intent: Intent, message: str, address: Optional[str]) -> Any:
        return await self.market.get_market_chart(
            intent.param("tokenId", settings.default_asset_id),
            int(intent.param("days", 7)),
        )

    async def _market_trending(self, intent: Intent, message: str, address: Optional[str]) -> Any:
        return await self.market.get_trending_tokens()

    async def _market_info(self, intent: Intent, message: str, address: Optional[str]) -> Any:
        return await self.market.get_token_metadata(intent.param("tokenId", settings.default_asset_id))

    # Transactions

    async def _transact(self, intent: Intent, message: str, address: Optional[str]) -> Any:
        if not address:
            raise ConfigurationError("No acting address available; set PLATFORM_PRIVATE_KEY or a wallet address")
        return await self.brian.transact(message, address, chain_id=self.chain_id)

    async def _extract_parameters(self, intent: Intent, message: str, address: Optional[str]) -> Any:
        return await self.brian.extract_parameters(intent.param("prompt", message))

    # Knowledge graph

    async def _graph_query(self, intent: Intent, message: str, address: Optional[str]) -> Any:
        return await self.brian.query_knowledge_graph(intent.param("query", message))

    async def _graph_analyze(self, intent: Intent, message: str, address: Optional[str]) -> Any:
        return await self.brian.analyze_entity(self._entity_id(intent))

    async def _graph_relations(self, intent: Intent, message: str, address: Optional[str]) -> Any:
        return await self.brian.get_entity_relations(self._entity_id(intent), int(intent.param("depth", 1)))

    async def _graph_patterns(self, intent: Intent, message: str, address: Optional[str]) -> Any:
        return await self.brian.detect_patterns(intent.param("timeframe", "24h"))

    @staticmethod
    def _entity_id(intent: Intent) -> str:
        entity_id = intent.param("entityId")
        if not entity_id:
            raise UnsupportedOperation(f"{intent.action} requires an entityId")
        return str(entity_id)

    # System

    async def _system_networks(self, intent: Intent, message: str, address: Optional[str]) -> Any:
        return await self.brian.get_supported_networks()

    async def _system_actions(self, intent: Intent, message: str, address: Optional[str]) -> Any:
        return await self.brian.get_supported_actions()

    async def _system_help(self, intent: Intent, message: str, address: Optional[str]) -> Any:
        return HELP_PAYLOAD

    async def _system_clarify(self, intent: Intent, message: str, address: Optional[str]) -> Any:
        return CLARIFY_PAYLOAD


__all__ = [
    "AgentOrchestrator",
    "AgentResult",
    "derive_platform_address",
    "HELP_PAYLOAD",
    "CLARIFY_PAYLOAD",
    "PROCESSING_ERROR_FALLBACK",
]
