"""
Tests for the Coingecko market data gateway.

Upstream HTTP is replaced with ``httpx.MockTransport``; the limiter and the
cache run on a fake clock.
"""

from typing import Callable, List

import httpx
import pytest

from defi_copilot.cache import TTLCache
from defi_copilot.errors import (
    RateLimitExceeded,
    ResponseValidationError,
    UpstreamAPIError,
    UpstreamTimeout,
    UpstreamUnauthorized,
)
from defi_copilot.providers.coingecko import CoingeckoProvider
from defi_copilot.rate_limit import SlidingWindowRateLimiter

PRICE_BODY = {
    "avalanche-2": {
        "usd": 35.12,
        "usd_24h_change": -2.5,
        "usd_24h_vol": 412000000.0,
    }
}

CHART_BODY = {
    "prices": [[1700000000000, 35.0], [1700003600000, 35.5]],
    "market_caps": [[1700000000000, 1.2e10], [1700003600000, 1.25e10]],
    "total_volumes": [[1700000000000, 4.0e8], [1700003600000, 4.1e8]],
}

TRENDING_BODY = {
    "coins": [
        {
            "item": {
                "id": "pepe",
                "coin_id": 29850,
                "name": "Pepe",
                "symbol": "PEPE",
                "market_cap_rank": 30,
                "thumb": "https://assets.coingecko.com/coins/images/29850/thumb/pepe.png",
                "score": 0,
            }
        }
    ]
}


METADATA_BODY = {
    "id": "avalanche-2",
    "symbol": "avax",
    "name": "Avalanche",
    "categories": ["Layer 1 (L1)", None],
    "description": {"en": "Avalanche is a smart contracts platform."},
    "links": {"homepage": ["https://www.avax.network/", "", ""]},
    "image": {"large": "https://assets.coingecko.com/coins/images/12559/large/avax.png"},
    "market_cap_rank": 12,
    "market_data": {
        "current_price": {"usd": 35.12},
        "market_cap": {"usd": 1.4e10},
        "total_volume": {"usd": 4.12e8},
        "price_change_percentage_24h": -2.5,
        "circulating_supply": 400000000.0,
        "total_supply": 450000000.0,
    },
}


class Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]):
        self.respond = respond
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)


def make_provider(handler, clock, *, api_key="") -> CoingeckoProvider:
    return CoingeckoProvider(
        api_key=api_key,
        base_url="https://api.coingecko.test/api/v3",
        timeout_s=10,
        rate_limiter=SlidingWindowRateLimiter(10, 60, clock=clock),
        cache=TTLCache(clock=clock),
        price_ttl=30,
        chart_ttl=300,
        transport=httpx.MockTransport(handler),
    )


class TestTokenPrice:

    @pytest.mark.asyncio
    async def test_price_shape(self, clock):
        handler = Recorder(lambda request: httpx.Response(200, json=PRICE_BODY))
        provider = make_provider(handler, clock)

        quote = await provider.get_token_price("avalanche-2")

        assert quote["asset_id"] == "avalanche-2"
        assert quote["vs_currency"] == "usd"
        assert quote["price"] == 35.12
        assert quote["change_24h"] == -2.5
        assert quote["volume_24h"] == 412000000.0

        request = handler.requests[0]
        assert request.url.path == "/api/v3/simple/price"
        assert request.url.params["ids"] == "avalanche-2"
        assert request.url.params["vs_currencies"] == "usd"
        assert request.url.params["include_24hr_change"] == "true"

    @pytest.mark.asyncio
    async def test_cached_price_is_identical_and_skips_upstream(self, clock):
        """A second lookup within 30s returns the same object with no network call."""
        handler = Recorder(lambda request: httpx.Response(200, json=PRICE_BODY))
        provider = make_provider(handler, clock)

        first = await provider.get_token_price("avalanche-2")
        clock.advance(29)
        second = await provider.get_token_price("avalanche-2")

        assert second is first
        assert len(handler.requests) == 1
        assert provider.rate_limiter.remaining() == 9

    @pytest.mark.asyncio
    async def test_price_refetched_after_ttl(self, clock):
        handler = Recorder(lambda request: httpx.Response(200, json=PRICE_BODY))
        provider = make_provider(handler, clock)

        await provider.get_token_price("avalanche-2")
        clock.advance(31)
        await provider.get_token_price("avalanche-2")

        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    async def test_eleventh_distinct_call_is_rate_limited_before_network(self, clock):
        handler = Recorder(lambda request: httpx.Response(200, json={
            request.url.params["ids"]: {"usd": 1.0}
        }))
        provider = make_provider(handler, clock)

        for i in range(10):
            await provider.get_token_price(f"asset-{i}")

        with pytest.raises(RateLimitExceeded) as exc_info:
            await provider.get_token_price("asset-10")

        assert exc_info.value.retry_after <= 60
        assert len(handler.requests) == 10

    @pytest.mark.asyncio
    async def test_demo_api_key_header(self, clock):
        handler = Recorder(lambda request: httpx.Response(200, json=PRICE_BODY))
        provider = make_provider(handler, clock, api_key="cg-demo")

        await provider.get_token_price("avalanche-2")

        assert handler.requests[0].headers["x-cg-demo-api-key"] == "cg-demo"

    @pytest.mark.asyncio
    async def test_unknown_asset_is_invalid_response(self, clock):
        handler = Recorder(lambda request: httpx.Response(200, json={}))
        provider = make_provider(handler, clock)

        with pytest.raises(ResponseValidationError) as exc_info:
            await provider.get_token_price("does-not-exist")

        assert exc_info.value.code == "INVALID_RESPONSE"


class TestChartAndTrending:

    @pytest.mark.asyncio
    async def test_market_chart(self, clock):
        handler = Recorder(lambda request: httpx.Response(200, json=CHART_BODY))
        provider = make_provider(handler, clock)

        chart = await provider.get_market_chart("avalanche-2", days=30)

        assert handler.requests[0].url.path == "/api/v3/coins/avalanche-2/market_chart"
        assert handler.requests[0].url.params["days"] == "30"
        assert chart["prices"] == [[1700000000000, 35.0], [1700003600000, 35.5]]
        assert chart["volumes"][1] == [1700003600000, 4.1e8]
        assert len(chart["market_caps"]) == 2

    @pytest.mark.asyncio
    async def test_chart_cached_for_five_minutes(self, clock):
        handler = Recorder(lambda request: httpx.Response(200, json=CHART_BODY))
        provider = make_provider(handler, clock)

        await provider.get_market_chart("avalanche-2")
        clock.advance(299)
        await provider.get_market_chart("avalanche-2")

        assert len(handler.requests) == 1

    @pytest.mark.asyncio
    async def test_trending(self, clock):
        handler = Recorder(lambda request: httpx.Response(200, json=TRENDING_BODY))
        provider = make_provider(handler, clock)

        trending = await provider.get_trending_tokens()

        item = trending["coins"][0]["item"]
        assert item["id"] == "pepe"
        assert item["market_cap_rank"] == 30

    @pytest.mark.asyncio
    async def test_chart_schema_mismatch(self, clock):
        handler = Recorder(lambda request: httpx.Response(200, json={"prices": "nope"}))
        provider = make_provider(handler, clock)

        with pytest.raises(ResponseValidationError):
            await provider.get_market_chart("avalanche-2")


class TestTokenMetadata:

    @pytest.mark.asyncio
    async def test_metadata_shape_and_query(self, clock):
        handler = Recorder(lambda request: httpx.Response(200, json=METADATA_BODY))
        provider = make_provider(handler, clock)

        meta = await provider.get_token_metadata("avalanche-2")

        request = handler.requests[0]
        assert request.url.path == "/api/v3/coins/avalanche-2"
        assert request.url.params["market_data"] == "true"
        assert request.url.params["tickers"] == "false"
        assert meta["name"] == "Avalanche"
        assert meta["symbol"] == "avax"
        assert meta["homepage"] == "https://www.avax.network/"
        assert meta["categories"] == ["Layer 1 (L1)"]
        assert meta["market_data"]["price_usd"] == 35.12
        assert meta["market_data"]["change_24h"] == -2.5

    @pytest.mark.asyncio
    async def test_metadata_cached_for_five_minutes(self, clock):
        handler = Recorder(lambda request: httpx.Response(200, json=METADATA_BODY))
        provider = make_provider(handler, clock)

        first = await provider.get_token_metadata("avalanche-2")
        clock.advance(299)
        second = await provider.get_token_metadata("avalanche-2")
        clock.advance(2)
        await provider.get_token_metadata("avalanche-2")

        assert first is second
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    async def test_metadata_counts_against_rate_limit(self, clock):
        handler = Recorder(lambda request: httpx.Response(200, json=METADATA_BODY))
        provider = make_provider(handler, clock)
        for _ in range(10):
            provider.cache.clear()
            await provider.get_token_metadata("avalanche-2")

        provider.cache.clear()
        with pytest.raises(RateLimitExceeded):
            await provider.get_token_metadata("avalanche-2")
        assert len(handler.requests) == 10

    @pytest.mark.asyncio
    async def test_metadata_schema_mismatch(self, clock):
        handler = Recorder(lambda request: httpx.Response(200, json={"id": "avalanche-2"}))
        provider = make_provider(handler, clock)

        with pytest.raises(ResponseValidationError):
            await provider.get_token_metadata("avalanche-2")


class TestUpstreamErrors:

    @pytest.mark.asyncio
    async def test_429_carries_retry_after_header(self, clock):
        handler = Recorder(lambda request: httpx.Response(
            429, headers={"Retry-After": "42"}, json={"status": {"error_code": 429}}
        ))
        provider = make_provider(handler, clock)

        with pytest.raises(RateLimitExceeded) as exc_info:
            await provider.get_token_price("avalanche-2")

        assert exc_info.value.retry_after == 42

    @pytest.mark.asyncio
    async def test_429_without_header_defaults_to_sixty(self, clock):
        handler = Recorder(lambda request: httpx.Response(429))
        provider = make_provider(handler, clock)

        with pytest.raises(RateLimitExceeded) as exc_info:
            await provider.get_trending_tokens()

        assert exc_info.value.retry_after == 60

    @pytest.mark.asyncio
    async def test_403_is_unauthorized(self, clock):
        handler = Recorder(lambda request: httpx.Response(
            403, json={"status": {"error_message": "Pro key required"}}
        ))
        provider = make_provider(handler, clock)

        with pytest.raises(UpstreamUnauthorized) as exc_info:
            await provider.get_token_price("avalanche-2")

        assert exc_info.value.message == "API key required for this endpoint"
        assert exc_info.value.details["upstream"] == {"status": {"error_message": "Pro key required"}}
        assert exc_info.value.details["endpoint"] == "/simple/price"

    @pytest.mark.asyncio
    async def test_other_status_is_api_error(self, clock):
        handler = Recorder(lambda request: httpx.Response(500, json={"message": "upstream broke"}))
        provider = make_provider(handler, clock)

        with pytest.raises(UpstreamAPIError) as exc_info:
            await provider.get_token_price("avalanche-2")

        assert exc_info.value.upstream_status == 500
        assert exc_info.value.message == "upstream broke"
        assert exc_info.value.body == {"message": "upstream broke"}

    @pytest.mark.asyncio
    async def test_timeout(self, clock):
        def respond(request):
            raise httpx.ReadTimeout("timed out", request=request)

        provider = make_provider(Recorder(respond), clock)

        with pytest.raises(UpstreamTimeout) as exc_info:
            await provider.get_token_price("avalanche-2")

        assert exc_info.value.message == "Request timeout"

    @pytest.mark.asyncio
    async def test_transport_error_is_request_failed(self, clock):
        def respond(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = make_provider(Recorder(respond), clock)

        with pytest.raises(UpstreamAPIError) as exc_info:
            await provider.get_token_price("avalanche-2")

        assert exc_info.value.code == "REQUEST_FAILED"
        assert exc_info.value.upstream_status == 500
