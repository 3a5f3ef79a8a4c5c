"""pytest configuration and shared fakes for Parallax tests."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Mapping

import pytest

from parallax.models import Endpoint, EndpointResult
from parallax.providers.base import Completion, LLMProvider, TokenUsage
from parallax.registry import EndpointRegistry


# Configure asyncio mode for pytest-asyncio
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


def make_endpoint(
    id: str,
    capabilities: list[str],
    reliability: float = 0.9,
    tier: str = "standard",
    cost: float = 0.01,
    **extra: Any,
) -> Endpoint:
    return Endpoint.model_validate({
        "id": id,
        "name": extra.pop("name", id.replace("-", " ").title()),
        "url": extra.pop("url", f"https://x402.test/{id}"),
        "capabilities": capabilities,
        "costPerCall": cost,
        "reliability": reliability,
        "description": extra.pop("description", f"{id} data"),
        "tier": tier,
        **extra,
    })


class FakeProvider(LLMProvider):
    """Scripted LLM: returns queued replies in order and records prompts."""

    default_model = "claude-sonnet-4-5-20250929"

    def __init__(self, *replies: str | Exception, usage: TokenUsage | None = None) -> None:
        self.replies = list(replies)
        self.usage = usage
        self.prompts: list[str] = []
        self.calls: list[dict[str, Any]] = []

    async def complete(self, prompt, max_output_tokens=1024, temperature=0.7, model=None):
        self.prompts.append(prompt)
        self.calls.append({"max_output_tokens": max_output_tokens, "temperature": temperature})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return Completion(text=reply, usage=self.usage, model=self.default_model)

    async def health(self) -> bool:
        return True


class FakeCaller:
    """Endpoint caller returning per-capability payloads.

    ``behaviour`` maps capability → payload, an Exception to raise, or a
    callable ``(endpoint) -> EndpointResult``.  ``delays`` maps capability →
    seconds to sleep before answering.
    """

    def __init__(
        self,
        behaviour: Mapping[str, Any] | None = None,
        delays: Mapping[str, float] | None = None,
    ) -> None:
        self.behaviour = dict(behaviour or {})
        self.delays = dict(delays or {})
        self.calls: list[tuple[str, str, dict[str, str]]] = []
        self.completed: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def call(self, endpoint, capability, params=None):
        self.calls.append((endpoint.id, capability, dict(params or {})))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(capability, 0))
            outcome = self.behaviour.get(capability, {"value": capability})
            if isinstance(outcome, Exception):
                raise outcome
            if callable(outcome):
                return outcome(endpoint)
            return EndpointResult(
                endpoint_id=endpoint.id,
                endpoint_name=endpoint.name,
                capability=capability,
                success=True,
                data=outcome,
                latency_ms=5,
                cost_usd=endpoint.cost_per_call,
            )
        finally:
            self.in_flight -= 1
            self.completed.append(capability)


def decomposition_json(*sub_tasks: tuple[str, int] | dict[str, Any], reasoning: str = "test") -> str:
    tasks = []
    for st in sub_tasks:
        if isinstance(st, dict):
            tasks.append(st)
        else:
            capability, priority = st
            tasks.append({
                "task": f"fetch {capability}",
                "requiredCapability": capability,
                "priority": priority,
            })
    return json.dumps({"subTasks": tasks, "reasoning": reasoning})


@pytest.fixture
def endpoint_factory() -> Callable[..., Endpoint]:
    return make_endpoint


@pytest.fixture
def registry() -> EndpointRegistry:
    return EndpointRegistry([
        make_endpoint("price-feed", ["token_price", "token_analysis"], reliability=0.9),
        make_endpoint("whale-a", ["whale_tracking"], reliability=0.6),
        make_endpoint("whale-b", ["whale_tracking", "smart_money"], reliability=0.95),
        make_endpoint("social", ["social_data"], reliability=0.8, paramHints="query: search text"),
        make_endpoint("deep", ["blockchain_intelligence", "token_price"], reliability=0.99,
                      tier="premium", cost=0.25),
    ])
