from abc import ABC, abstractmethod
from typing import Any, Dict


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: float = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


class MarketDataProvider(Provider):
    """Provider for spot prices, charts and trending assets"""

    @abstractmethod
    async def get_token_price(self, asset_id: str, vs_currency: str = "usd") -> Dict[str, Any]:
        """Spot price, 24h change and 24h volume for one asset"""
        pass

    @abstractmethod
    async def get_market_chart(self, asset_id: str, days: int = 7) -> Dict[str, Any]:
        """Historical price, market cap and volume series"""
        pass

    @abstractmethod
    async def get_trending_tokens(self) -> Dict[str, Any]:
        """Globally trending assets"""
        pass

    @abstractmethod
    async def get_token_metadata(self, asset_id: str) -> Dict[str, Any]:
        """Name, description, links and market data for one asset"""
        pass
