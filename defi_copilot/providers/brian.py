"""Async client for the Brian intent-to-transaction API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..errors import ConfigurationError, UpstreamAPIError, UpstreamTimeout

logger = logging.getLogger(__name__)


class BrianProvider:
    """Thin wrapper around https://api.brianknows.org endpoints.

    Every call carries the ``X-Brian-Api-Key`` header and is bounded by a
    single deadline. There is no retry logic; failures propagate to the
    caller.
    """

    name = "brian"

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = settings.brian_api_key if api_key is None else api_key
        if not self.api_key:
            raise ConfigurationError("Brian API key is required")
        self.base_url = (base_url or settings.brian_base_url).rstrip("/")
        self.timeout_s = timeout_s or settings.brian_timeout_seconds
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Brian-Api-Key": self.api_key,
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                timeout=self.timeout_s,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(
                f"Brian API request timed out after {self.timeout_s}s",
                details={"path": path},
            ) from exc
        except httpx.RequestError as exc:
            raise UpstreamAPIError(
                f"Brian API request failed: {exc}",
                code="REQUEST_FAILED",
                details={"path": path},
            ) from exc

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = {"error": response.reason_phrase}
            reason = body.get("error") if isinstance(body, dict) else None
            logger.warning("Brian API error path=%s status=%s", path, response.status_code)
            raise UpstreamAPIError(
                f"Brian API request failed: {reason or response.reason_phrase}",
                upstream_status=response.status_code,
                body=body,
                details={"path": path},
            )

        return response.json()

    async def transact(
        self,
        prompt: str,
        address: str,
        *,
        chain_id: Optional[int] = None,
        messages: Optional[List[Dict[str, str]]] = None,
    ) -> List[Any]:
        """Translate a natural-language prompt into transaction descriptors."""

        payload = await self._request(
            "POST",
            "/agent",
            json={
                "prompt": prompt,
                "address": address,
                "chainId": chain_id if chain_id is not None else settings.chain_id,
                "messages": messages or [],
            },
        )
        result = payload.get("result")
        return result if isinstance(result, list) else [result]

    async def extract_parameters(self, prompt: str) -> Any:
        payload = await self._request("POST", "/agent/parameters-extraction", json={"prompt": prompt})
        return payload.get("result")

    async def generate_smart_contract(
        self,
        prompt: str,
        *,
        compile: bool = False,
        messages: Optional[List[Dict[str, str]]] = None,
    ) -> Any:
        payload = await self._request(
            "POST",
            "/agent/smart-contract",
            json={"prompt": prompt, "compile": compile, "messages": messages or []},
        )
        return payload.get("result")

    async def get_supported_networks(self) -> List[Dict[str, Any]]:
        payload = await self._request("GET", "/utils/networks")
        return payload.get("result") or []

    async def get_supported_actions(self) -> List[Dict[str, Any]]:
        payload = await self._request("GET", "/utils/actions")
        return payload.get("result") or []

    # Knowledge graph analytics

    async def query_knowledge_graph(self, query: str) -> Dict[str, Any]:
        payload = await self._request("POST", "/graph/query", json={"query": query, "includeMetadata": True})
        return payload.get("result") or {}

    async def analyze_entity(self, entity_id: str) -> Dict[str, Any]:
        payload = await self._request("POST", f"/graph/analytics/{entity_id}")
        return payload.get("result") or {}

    async def get_entity_relations(self, entity_id: str, depth: int = 1) -> Dict[str, Any]:
        payload = await self._request(
            "POST",
            f"/graph/relations/{entity_id}",
            json={"depth": depth, "includeProperties": True},
        )
        return payload.get("result") or {}

    async def detect_patterns(self, timeframe: str) -> Dict[str, Any]:
        payload = await self._request(
            "POST",
            "/graph/patterns",
            json={"timeframe": timeframe, "minConfidence": 0.7},
        )
        return payload.get("result") or {}

    async def health_check(self) -> Dict[str, Any]:
        try:
            networks = await self.get_supported_networks()
            return {"status": "healthy", "networks": len(networks)}
        except Exception as e:
            return {"status": "error", "reason": str(e)}


__all__ = ["BrianProvider"]
