"""x402 endpoint client — the endpoint-call collaborator used by the dispatcher.

Ordinary failures (HTTP errors, timeouts, network errors) never raise: they
come back as ``success=False`` results with a descriptive error.

Payment settlement is the HTTP client's job.  Pass an
:class:`httpx.AsyncClient` whose transport signs and settles x402 payment
challenges; the default client sends plain requests.

With ``MOCK_MODE=true`` canned payloads are returned without any network
traffic or spend.
"""

from __future__ import annotations

import asyncio
import logging
import os
import random
import time
from typing import Any, Mapping, Protocol

import httpx

from parallax.models import Endpoint, EndpointResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 10.0
#: Deep-research endpoints (Einstein AI etc.) routinely take a minute
EXPENSIVE_TIMEOUT_S = 90.0
EXPENSIVE_PRICE_USD = 0.10


class EndpointCaller(Protocol):
    """Anything that can execute one endpoint call."""

    async def call(
        self,
        endpoint: Endpoint,
        capability: str,
        params: Mapping[str, str] | None = None,
    ) -> EndpointResult: ...


def timeout_for(endpoint: Endpoint) -> float:
    """Per-call timeout in seconds; pricey endpoints get the long one."""
    if endpoint.cost_per_call >= EXPENSIVE_PRICE_USD:
        return EXPENSIVE_TIMEOUT_S
    return DEFAULT_TIMEOUT_S


def build_params(endpoint: Endpoint, params: Mapping[str, str] | None) -> dict[str, str]:
    """Merge endpoint defaults with sub-task params (sub-task wins).

    The free-text ``query`` param is renamed to the endpoint's
    ``query_param_name`` when it has one (Neynar wants ``q``).
    """
    merged: dict[str, str] = {**(endpoint.default_params or {}), **(params or {})}
    name = endpoint.query_param_name
    if name and name != "query" and "query" in merged:
        merged[name] = merged.pop("query")
    return merged


def log_endpoint_call(
    endpoint: Endpoint,
    latency_ms: float,
    cost_usd: float,
    success: bool,
    error: str | None = None,
) -> None:
    status = "OK" if success else "FAIL"
    suffix = f" | error={error}" if error else ""
    logger.info(
        "[x402] %s | endpoint=%s | latency=%dms | cost=$%s%s",
        status, endpoint.id, latency_ms, cost_usd, suffix,
    )


class EndpointClient:
    """Calls x402 endpoints over a shared :class:`httpx.AsyncClient`.

    Args:
        http_client: Client to send requests with (e.g. one wrapped with an
                     x402 payment transport).  A plain client is created
                     when omitted.
        mock_mode:   Return canned payloads instead of calling out.
                     Defaults to ``MOCK_MODE`` from the environment.
        mock_latency_ms: Range of simulated latency in mock mode.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        mock_mode: bool | None = None,
        mock_latency_ms: tuple[int, int] = (50, 250),
    ) -> None:
        if mock_mode is None:
            mock_mode = os.environ.get("MOCK_MODE", "").lower() == "true"
        self.mock_mode = mock_mode
        self.mock_latency_ms = mock_latency_ms
        self._client = http_client or httpx.AsyncClient(follow_redirects=True)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "EndpointClient":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def call(
        self,
        endpoint: Endpoint,
        capability: str,
        params: Mapping[str, str] | None = None,
    ) -> EndpointResult:
        if self.mock_mode:
            return await self._mock_call(endpoint, capability)

        timeout = timeout_for(endpoint)
        merged = build_params(endpoint, params)
        start = time.monotonic()
        try:
            # httpx timeouts are per read; wait_for bounds the whole call
            response = await asyncio.wait_for(self._send(endpoint, merged, timeout), timeout)
        except (httpx.TimeoutException, asyncio.TimeoutError):
            return self._failed(endpoint, capability, start, f"Timeout after {int(timeout * 1000)}ms")
        except httpx.HTTPError as exc:
            return self._failed(endpoint, capability, start, str(exc) or type(exc).__name__)

        latency_ms = _elapsed_ms(start)
        if not response.is_success:
            error = f"HTTP {response.status_code}: {response.text or 'Unknown error'}"
            log_endpoint_call(endpoint, latency_ms, endpoint.cost_per_call, False, error)
            return EndpointResult.failure(
                endpoint_id=endpoint.id,
                endpoint_name=endpoint.name,
                capability=capability,
                error=error,
                latency_ms=latency_ms,
                cost_usd=endpoint.cost_per_call,
            )

        try:
            data: Any = response.json()
        except ValueError:
            data = response.text
        log_endpoint_call(endpoint, latency_ms, endpoint.cost_per_call, True)
        return EndpointResult(
            endpoint_id=endpoint.id,
            endpoint_name=endpoint.name,
            capability=capability,
            success=True,
            data=data,
            latency_ms=latency_ms,
            cost_usd=endpoint.cost_per_call,
        )

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _send(
        self,
        endpoint: Endpoint,
        params: dict[str, str],
        timeout: float,
    ) -> httpx.Response:
        if endpoint.method == "POST":
            return await self._client.post(endpoint.url, json=params, timeout=timeout)
        return await self._client.get(endpoint.url, params=params, timeout=timeout)

    def _failed(
        self,
        endpoint: Endpoint,
        capability: str,
        start: float,
        error: str,
    ) -> EndpointResult:
        latency_ms = _elapsed_ms(start)
        log_endpoint_call(endpoint, latency_ms, 0.0, False, error)
        return EndpointResult.failure(
            endpoint_id=endpoint.id,
            endpoint_name=endpoint.name,
            capability=capability,
            error=error,
            latency_ms=latency_ms,
        )

    async def _mock_call(self, endpoint: Endpoint, capability: str) -> EndpointResult:
        low, high = self.mock_latency_ms
        latency_ms = random.randint(low, high)
        await asyncio.sleep(latency_ms / 1000)
        data = MOCK_RESPONSES.get(
            capability,
            {"data": {"message": "Mock data unavailable for this capability"}},
        )
        log_endpoint_call(endpoint, latency_ms, 0.0, True)
        return EndpointResult(
            endpoint_id=endpoint.id,
            endpoint_name=endpoint.name,
            capability=capability,
            success=True,
            data=data,
            latency_ms=latency_ms,
            cost_usd=0.0,
        )


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


# ──────────────────────────────────────────────────────────────────
# Canned payloads for MOCK_MODE
# ──────────────────────────────────────────────────────────────────

MOCK_RESPONSES: dict[str, Any] = {
    "blockchain_intelligence": {
        "data": {"topHolders": ["0xabc...1", "0xdef...2"], "holderCount": 15423, "whaleActivity": "increasing"},
    },
    "whale_tracking": {
        "data": {"recentWhaleTransactions": 12, "netFlow": "+2.3M USDC", "sentiment": "accumulating"},
    },
    "token_analysis": {
        "data": {"marketCap": "45M", "volume24h": "8.2M", "priceChange7d": "+12.5%", "liquidity": "strong"},
    },
    "crypto_news": {
        "data": {"articles": [{"title": "Token gains momentum", "sentiment": "positive"}], "overallSentiment": 0.72},
    },
    "market_sentiment": {
        "data": {"fearGreedIndex": 65, "socialVolume": "high", "trendingScore": 8.2},
    },
    "regulatory_updates": {
        "data": {"relevantRegulations": [], "riskLevel": "low"},
    },
    "social_data": {
        "data": {"farcasterMentions": 342, "twitterMentions": 1205, "communityGrowth": "+5.3%"},
    },
    "farcaster_trends": {
        "data": {"trendingCasts": 45, "topChannels": ["defi", "base"], "engagementRate": 0.034},
    },
    "community_sentiment": {
        "data": {"sentiment": "bullish", "activeUsers": 8923, "growthRate": "+8.1%"},
    },
    "smart_money": {
        "data": {"smartMoneyFlow": "+1.2M", "topWallets": 5, "conviction": "high"},
    },
    "wallet_tracking": {
        "data": {"trackedWallets": 23, "avgPosition": "$45K", "recentActivity": "buying"},
    },
    "dex_flow": {
        "data": {"buyVolume": "4.1M", "sellVolume": "2.8M", "netFlow": "+1.3M", "topDex": "Aerodrome"},
    },
    "risk_intelligence": {
        "data": {"riskScore": 35, "contractAudit": "verified", "rugPullRisk": "low"},
    },
    "black_swan_events": {
        "data": {"alerts": [], "systemicRisk": "low", "correlationRisk": "medium"},
    },
    "market_risk": {
        "data": {"volatility": "moderate", "maxDrawdown30d": "-18%", "sharpeRatio": 1.2},
    },
    "defi_portfolio": {
        "data": {"protocols": ["Aerodrome", "Aave", "Compound"], "totalTvl": "2.1B"},
    },
    "yield_data": {
        "data": {"bestYield": "12.5% APY on Aerodrome", "alternatives": ["Aave: 4.2%", "Compound: 3.8%"]},
    },
    "apy_comparison": {
        "data": {"protocols": [{"name": "Aerodrome", "apy": 12.5}, {"name": "Aave", "apy": 4.2}]},
    },
    "tvl_tracking": {
        "data": {"totalTvl": "2.1B", "change24h": "+3.2%", "topPool": "AERO/USDC"},
    },
    "web_search": {
        "data": {"results": [{"title": "Base L2 ecosystem report", "url": "https://example.com/base",
                              "snippet": "Base network TVL reaches $10B..."}]},
    },
    "token_search": {
        "data": {"tokens": [{"symbol": "AERO", "name": "Aerodrome Finance",
                             "address": "0x940181a94A35A4569E4529A3CDfB74e38FD98631", "chain": "base"}]},
    },
    "token_price": {
        "data": {"symbol": "AERO", "price": 1.42, "change24h": "+5.2%", "volume24h": "12.3M", "marketCap": "580M"},
    },
    "wallet_analysis": {
        "data": {"totalValue": "$245K", "topHoldings": ["USDC", "WETH", "AERO"], "riskScore": 42,
                 "diversification": "moderate"},
    },
    "yield_suggestions": {
        "data": {"opportunities": [{"protocol": "Aerodrome", "pool": "AERO/USDC", "apy": 18.5, "risk": "medium"}]},
    },
    "gas_data": {
        "data": {"baseFee": "0.005 Gwei", "estimatedSwapCost": "$0.003", "network": "base"},
    },
    "new_token_launches": {
        "data": {"tokens": [{"symbol": "NEW1", "launchDate": "2026-02-08", "liquidity": "$500K", "chain": "base"}]},
    },
    "smart_money_leaderboard": {
        "data": {"topTraders": [{"address": "0xabc...", "pnl30d": "+$2.1M", "winRate": "72%", "topHolding": "AERO"}]},
    },
}
