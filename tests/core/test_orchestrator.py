"""
Tests for the agent orchestrator.

Collaborators are AsyncMocks unless the test is about the whole chain.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest

from defi_copilot.cache import TTLCache
from defi_copilot.core.formatter import ResponseFormatter
from defi_copilot.core.intent import (
    AnalyticsIntent,
    BridgeIntent,
    DefiIntent,
    IntentClassifier,
    MarketIntent,
    SystemIntent,
    ToolsIntent,
)
from defi_copilot.core.orchestrator import (
    CLARIFY_PAYLOAD,
    HELP_PAYLOAD,
    PROCESSING_ERROR_FALLBACK,
    AgentOrchestrator,
    derive_platform_address,
)
from defi_copilot.errors import ConfigurationError
from defi_copilot.providers.coingecko import CoingeckoProvider
from defi_copilot.rate_limit import SlidingWindowRateLimiter

PLATFORM_ADDRESS = "0x19E7E376E7C213B7E7e7e46cc70A5dD086DAff2A"
USER_ADDRESS = "0x8ba1f109551bD432803012645Ac136ddd64DBA72"


def make_orchestrator(intent, *, market=None, brian=None, users=None, formatted="formatted"):
    classifier = AsyncMock()
    classifier.classify.return_value = intent
    formatter = AsyncMock()
    formatter.format_response.return_value = formatted
    formatter.explain_error.return_value = "explained"
    return AgentOrchestrator(
        classifier,
        formatter,
        market or AsyncMock(),
        brian or AsyncMock(),
        users,
        PLATFORM_ADDRESS,
        chain_id=43113,
    )


class TestDispatch:
    """Each intent reaches exactly one collaborator call."""

    @pytest.mark.asyncio
    async def test_market_price_defaults_to_avalanche(self):
        orchestrator = make_orchestrator(MarketIntent(action="price"))
        orchestrator.market.get_token_price.return_value = {"price": 35.0}

        result = await orchestrator.process_message("price of avax")

        orchestrator.market.get_token_price.assert_awaited_once_with("avalanche-2")
        assert result.agentType == "market"
        assert result.subType == "price"
        assert result.details == {"price": 35.0}
        assert result.response == "formatted"

    @pytest.mark.asyncio
    async def test_market_chart_parameters(self):
        orchestrator = make_orchestrator(MarketIntent(action="chart", parameters={"tokenId": "bitcoin", "days": "30"}))

        await orchestrator.process_message("30 day btc chart")

        orchestrator.market.get_market_chart.assert_awaited_once_with("bitcoin", 30)

    @pytest.mark.asyncio
    async def test_market_trending(self):
        orchestrator = make_orchestrator(MarketIntent(action="trending"))

        await orchestrator.process_message("what's trending")

        orchestrator.market.get_trending_tokens.assert_awaited_once_with()

    @pytest.mark.asyncio
    async def test_market_info_uses_token_metadata(self):
        orchestrator = make_orchestrator(MarketIntent(action="info", parameters={"tokenId": "bitcoin"}))
        orchestrator.market.get_token_metadata.return_value = {"name": "Bitcoin"}

        result = await orchestrator.process_message("tell me about bitcoin")

        orchestrator.market.get_token_metadata.assert_awaited_once_with("bitcoin")
        assert result.details == {"name": "Bitcoin"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("intent", [
        DefiIntent(action="swap"),
        DefiIntent(action="anything"),
        BridgeIntent(action="bridge"),
        ToolsIntent(action="gas"),
        ToolsIntent(action="simulate"),
        ToolsIntent(action="risk"),
    ])
    async def test_transaction_intents_use_transact(self, intent):
        orchestrator = make_orchestrator(intent)

        await orchestrator.process_message("swap 1 AVAX for USDC")

        orchestrator.brian.transact.assert_awaited_once_with(
            "swap 1 AVAX for USDC", PLATFORM_ADDRESS, chain_id=43113
        )

    @pytest.mark.asyncio
    async def test_tools_parameters_extraction(self):
        orchestrator = make_orchestrator(ToolsIntent(action="parameters"))

        await orchestrator.process_message("swap 1 AVAX for USDC")

        orchestrator.brian.extract_parameters.assert_awaited_once_with("swap 1 AVAX for USDC")
        orchestrator.brian.transact.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_analytics_relations_default_depth(self):
        orchestrator = make_orchestrator(AnalyticsIntent(action="relations", parameters={"entityId": "aave"}))

        await orchestrator.process_message("how is aave connected")

        orchestrator.brian.get_entity_relations.assert_awaited_once_with("aave", 1)

    @pytest.mark.asyncio
    async def test_analytics_patterns_default_timeframe(self):
        orchestrator = make_orchestrator(AnalyticsIntent(action="patterns"))

        await orchestrator.process_message("any patterns?")

        orchestrator.brian.detect_patterns.assert_awaited_once_with("24h")

    @pytest.mark.asyncio
    async def test_system_networks_never_touches_market(self):
        orchestrator = make_orchestrator(SystemIntent(action="networks"))
        orchestrator.brian.get_supported_networks.return_value = [{"name": "Avalanche"}]

        result = await orchestrator.process_message("Show supported networks")

        orchestrator.brian.get_supported_networks.assert_awaited_once_with()
        assert orchestrator.market.method_calls == []
        assert result.details == [{"name": "Avalanche"}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action, payload", [("help", HELP_PAYLOAD), ("clarify", CLARIFY_PAYLOAD)])
    async def test_static_system_actions(self, action, payload):
        orchestrator = make_orchestrator(SystemIntent(action=action))

        result = await orchestrator.process_message("???")

        assert result.details == payload
        assert orchestrator.market.method_calls == []
        assert orchestrator.brian.method_calls == []


class TestErrors:

    @pytest.mark.asyncio
    async def test_unsupported_action_becomes_error_text(self):
        orchestrator = make_orchestrator(MarketIntent(action="predict"))

        result = await orchestrator.process_message("predict the price")

        kwargs = orchestrator.formatter.format_response.await_args.kwargs
        assert kwargs["result"] is None
        assert kwargs["error"] == "market action failed: Unsupported market action"
        assert result.agentType == "market"
        assert result.details is None

    @pytest.mark.asyncio
    async def test_collaborator_failure_is_formatted_not_raised(self):
        brian = AsyncMock()
        brian.get_supported_networks.side_effect = RuntimeError("Brian API request failed: Unauthorized")
        orchestrator = make_orchestrator(SystemIntent(action="networks"), brian=brian)

        result = await orchestrator.process_message("Show supported networks")

        error = orchestrator.formatter.format_response.await_args.kwargs["error"]
        assert error == "system action failed: Brian API request failed: Unauthorized"
        assert result.response == "formatted"

    @pytest.mark.asyncio
    async def test_classifier_failure_is_explained(self):
        orchestrator = make_orchestrator(None)
        orchestrator.classifier.classify.side_effect = RuntimeError("model unavailable")

        result = await orchestrator.process_message("hello")

        assert result.agentType == "error"
        assert result.subType == "processing_error"
        assert result.response == "explained"
        orchestrator.formatter.explain_error.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_explanation_failure_uses_fixed_sentence(self):
        orchestrator = make_orchestrator(None)
        orchestrator.classifier.classify.side_effect = RuntimeError("model unavailable")
        orchestrator.formatter.explain_error.side_effect = RuntimeError("still unavailable")

        result = await orchestrator.process_message("hello")

        assert result.response == PROCESSING_ERROR_FALLBACK
        assert result.agentType == "error"

    @pytest.mark.asyncio
    async def test_upstream_rate_limit_mentions_wait(self, clock, scripted_llm):
        """A 429 with Retry-After: 42 surfaces as an apology that mentions the wait."""
        market = CoingeckoProvider(
            base_url="https://api.coingecko.test/api/v3",
            rate_limiter=SlidingWindowRateLimiter(10, 60, clock=clock),
            cache=TTLCache(clock=clock),
            transport=httpx.MockTransport(
                lambda request: httpx.Response(429, headers={"Retry-After": "42"})
            ),
        )
        llm = scripted_llm(
            '{"agent": "market", "action": "price", "parameters": {"tokenId": "avalanche-2"}}',
            "### Price Lookup\n- **Status**: Error\nSorry, the price service is busy. Please wait 42 seconds and try again.",
        )
        orchestrator = AgentOrchestrator(
            IntentClassifier(llm), ResponseFormatter(llm), market, AsyncMock(), None, PLATFORM_ADDRESS
        )

        result = await orchestrator.process_message("price of avax")

        formatter_context = llm.calls[1]["messages"][1].content
        assert "retry after 42s" in formatter_context
        assert "42 seconds" in result.response
        assert result.agentType == "market"


class TestActingAddress:

    @pytest.mark.asyncio
    async def test_user_address_overrides_platform(self):
        users = AsyncMock()
        users.get_user.return_value = SimpleNamespace(id=7, avalanche_address=USER_ADDRESS)
        orchestrator = make_orchestrator(DefiIntent(action="swap"), users=users)

        await orchestrator.process_message("swap 1 AVAX for USDC", user_id=7)

        users.get_user.assert_awaited_once_with(7)
        assert orchestrator.brian.transact.await_args.args[1] == USER_ADDRESS

    @pytest.mark.asyncio
    async def test_user_without_address_uses_platform(self):
        users = AsyncMock()
        users.get_user.return_value = SimpleNamespace(id=7, avalanche_address=None)
        orchestrator = make_orchestrator(DefiIntent(action="swap"), users=users)

        await orchestrator.process_message("swap 1 AVAX for USDC", user_id=7)

        assert orchestrator.brian.transact.await_args.args[1] == PLATFORM_ADDRESS

    def test_derive_platform_address(self):
        # Well-known key from the eth-account documentation
        key = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"

        assert derive_platform_address(key) == "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"
        assert derive_platform_address(key[2:]) == "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"
        assert derive_platform_address("") is None

    def test_malformed_platform_key(self):
        with pytest.raises(ConfigurationError):
            derive_platform_address("0x1234")
