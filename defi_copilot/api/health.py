import asyncio
from typing import Any, Dict

from fastapi import APIRouter, Request

from ..config import settings

router = APIRouter()


@router.get("/healthz")
async def health_check(request: Request) -> Dict[str, Any]:
    """Health check endpoint that verifies provider status"""

    state = request.app.state
    providers = {"coingecko": state.market, "brian": state.brian}
    if settings.enable_llm_health_check:
        providers["llm"] = state.llm

    results = await asyncio.gather(*(provider.health_check() for provider in providers.values()))
    provider_status = dict(zip(providers.keys(), results))

    available_providers = sum(
        1 for status in provider_status.values()
        if status.get("status") == "healthy"
    )

    return {
        "status": "healthy" if available_providers == len(provider_status) else "degraded",
        "providers": provider_status,
        "available_providers": available_providers,
        "total_providers": len(provider_status),
        "market_data_tier": "demo" if settings.has_coingecko_key else "public",
        "connections": len(state.connections),
        "price_subscriptions": state.price_feed.active_subscriptions(),
    }
