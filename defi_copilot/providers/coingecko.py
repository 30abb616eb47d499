import logging
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

import httpx
from pydantic import BaseModel, RootModel, ValidationError as PydanticValidationError

from ..cache import TTLCache, cache_key
from ..config import settings
from ..errors import (
    RateLimitExceeded,
    ResponseValidationError,
    UpstreamAPIError,
    UpstreamTimeout,
    UpstreamUnauthorized,
)
from ..rate_limit import SlidingWindowRateLimiter
from .base import MarketDataProvider

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

DEFAULT_RETRY_AFTER = 60


# =============================================================================
# Response schemas
# =============================================================================


class SimplePriceMap(RootModel[Dict[str, Dict[str, Optional[float]]]]):
    """/simple/price body: asset id -> {<cur>, <cur>_24h_change, <cur>_24h_vol}."""


class MarketChart(BaseModel):
    prices: List[Tuple[float, float]]
    market_caps: List[Tuple[float, float]]
    total_volumes: List[Tuple[float, float]]


class TrendingItem(BaseModel):
    id: str
    coin_id: int
    name: str
    symbol: str
    market_cap_rank: Optional[int] = None
    thumb: str
    score: int


class TrendingCoin(BaseModel):
    item: TrendingItem


class TrendingResponse(BaseModel):
    coins: List[TrendingCoin]


class CoinMarketData(BaseModel):
    current_price: Dict[str, Optional[float]] = {}
    market_cap: Dict[str, Optional[float]] = {}
    total_volume: Dict[str, Optional[float]] = {}
    price_change_percentage_24h: Optional[float] = None
    circulating_supply: Optional[float] = None
    total_supply: Optional[float] = None


class CoinMetadata(BaseModel):
    """/coins/{id} body, reduced to the fields we surface."""

    id: str
    symbol: str
    name: str
    categories: List[Optional[str]] = []
    description: Dict[str, Optional[str]] = {}
    links: Dict[str, Any] = {}
    image: Dict[str, Optional[str]] = {}
    market_cap_rank: Optional[int] = None
    market_data: Optional[CoinMarketData] = None


class CoingeckoProvider(MarketDataProvider):
    """Rate-limited, cached Coingecko client.

    Every upstream call goes through one shared sliding-window limiter; cache
    hits bypass both the limiter and the network. Upstream failures are
    mapped onto the application error taxonomy.
    """

    name = "coingecko"

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        cache: Optional[TTLCache] = None,
        price_ttl: Optional[float] = None,
        chart_ttl: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = settings.coingecko_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.coingecko_base_url).rstrip("/")
        self.timeout_s = timeout_s or settings.market_timeout_seconds
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            settings.market_rate_limit,
            settings.market_rate_window_seconds,
            name=self.name,
        )
        self.cache = cache or TTLCache(max_size=settings.max_cache_size)
        self.price_ttl = price_ttl if price_ttl is not None else settings.price_cache_ttl_seconds
        self.chart_ttl = chart_ttl if chart_ttl is not None else settings.chart_cache_ttl_seconds
        self._transport = transport

    def _build_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {"Accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._build_headers(),
            timeout=self.timeout_s,
            transport=self._transport,
        )

    async def ready(self) -> bool:
        return True  # API key is optional for the public tier

    async def health_check(self) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.get("/ping")
                response.raise_for_status()
                return {
                    "status": "healthy",
                    "latency_ms": int(response.elapsed.total_seconds() * 1000),
                    "rate_limit": self.rate_limiter.snapshot(),
                    "cache": self.cache.stats(),
                }
        except Exception as e:
            return {"status": "error", "reason": str(e)}

    async def _request(self, endpoint: str, params: Dict[str, Any], schema: Type[ModelT]) -> ModelT:
        self.rate_limiter.acquire()

        try:
            async with self._client() as client:
                response = await client.get(endpoint, params=params)
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(
                "Request timeout",
                details={"endpoint": endpoint, "timeout_s": self.timeout_s},
            ) from exc
        except httpx.RequestError as exc:
            raise UpstreamAPIError(
                f"Request failed: {exc}",
                code="REQUEST_FAILED",
                upstream_status=500,
                details={"endpoint": endpoint},
            ) from exc

        if response.status_code == 429:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            logger.warning("Coingecko rate limited endpoint=%s retry_after=%s", endpoint, retry_after)
            raise RateLimitExceeded(
                "Rate limit exceeded",
                retry_after=retry_after,
                details={"endpoint": endpoint, "upstream": _safe_json(response)},
            )

        if response.status_code == 403:
            raise UpstreamUnauthorized(
                "API key required for this endpoint",
                details={"endpoint": endpoint, "upstream": _safe_json(response)},
            )

        if response.is_error:
            body = _safe_json(response)
            message = body.get("message") if isinstance(body, dict) else None
            raise UpstreamAPIError(
                message or "API request failed",
                upstream_status=response.status_code,
                body=body,
                details={"endpoint": endpoint},
            )

        try:
            return schema.model_validate(response.json())
        except (ValueError, PydanticValidationError) as exc:
            errors = exc.errors(include_url=False) if isinstance(exc, PydanticValidationError) else str(exc)
            raise ResponseValidationError(
                "Invalid API response format",
                details={"endpoint": endpoint, "errors": errors},
            ) from exc

    async def get_token_price(self, asset_id: str, vs_currency: str = "usd") -> Dict[str, Any]:
        """Spot price with 24h change and volume for one asset."""
        key = cache_key("/simple/price", {"ids": asset_id, "vs_currency": vs_currency})
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        params = {
            "ids": asset_id,
            "vs_currencies": vs_currency,
            "include_24hr_vol": "true",
            "include_24hr_change": "true",
        }
        payload = await self._request("/simple/price", params, SimplePriceMap)
        quote = payload.root.get(asset_id)
        if quote is None or quote.get(vs_currency) is None:
            raise ResponseValidationError(
                "Invalid API response format",
                details={"endpoint": "/simple/price", "asset_id": asset_id, "missing": vs_currency},
            )

        data = {
            "asset_id": asset_id,
            "vs_currency": vs_currency,
            "price": quote[vs_currency],
            "change_24h": quote.get(f"{vs_currency}_24h_change"),
            "volume_24h": quote.get(f"{vs_currency}_24h_vol"),
            "_source": {"name": "coingecko", "url": "https://coingecko.com"},
        }
        self.cache.set(key, data, ttl=self.price_ttl)
        return data

    async def get_market_chart(self, asset_id: str, days: int = 7) -> Dict[str, Any]:
        """Historical series over ``days`` days."""
        key = cache_key("/market_chart", {"id": asset_id, "days": days})
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        chart = await self._request(
            f"/coins/{asset_id}/market_chart",
            {"vs_currency": "usd", "days": days},
            MarketChart,
        )
        data = {
            "asset_id": asset_id,
            "days": days,
            "prices": [list(point) for point in chart.prices],
            "market_caps": [list(point) for point in chart.market_caps],
            "volumes": [list(point) for point in chart.total_volumes],
        }
        self.cache.set(key, data, ttl=self.chart_ttl)
        return data

    async def get_trending_tokens(self) -> Dict[str, Any]:
        key = cache_key("/search/trending")
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        trending = await self._request("/search/trending", {}, TrendingResponse)
        data = trending.model_dump()
        self.cache.set(key, data, ttl=self.chart_ttl)
        return data

    async def get_token_metadata(self, asset_id: str) -> Dict[str, Any]:
        """Descriptive data (name, links, categories, market data) for one asset."""
        key = cache_key("/coins", {"id": asset_id})
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        params = {
            "localization": "false",
            "tickers": "false",
            "market_data": "true",
            "community_data": "false",
            "developer_data": "false",
        }
        coin = await self._request(f"/coins/{asset_id}", params, CoinMetadata)
        homepage = [url for url in coin.links.get("homepage") or [] if url]
        market = coin.market_data
        data = {
            "asset_id": coin.id,
            "symbol": coin.symbol,
            "name": coin.name,
            "description": coin.description.get("en") or "",
            "categories": [c for c in coin.categories if c],
            "homepage": homepage[0] if homepage else None,
            "image": coin.image.get("large") or coin.image.get("small"),
            "market_cap_rank": coin.market_cap_rank,
            "market_data": {
                "price_usd": market.current_price.get("usd"),
                "market_cap_usd": market.market_cap.get("usd"),
                "volume_24h_usd": market.total_volume.get("usd"),
                "change_24h": market.price_change_percentage_24h,
                "circulating_supply": market.circulating_supply,
                "total_supply": market.total_supply,
            } if market else None,
        }
        self.cache.set(key, data, ttl=self.chart_ttl)
        return data


def _parse_retry_after(value: Optional[str]) -> int:
    if not value:
        return DEFAULT_RETRY_AFTER
    try:
        return max(0, int(float(value)))
    except ValueError:
        return DEFAULT_RETRY_AFTER


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"text": response.text}


__all__ = [
    "CoingeckoProvider",
    "SimplePriceMap",
    "MarketChart",
    "TrendingResponse",
    "CoinMetadata",
]
