"""Tests for the concurrent dispatcher."""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeCaller, make_endpoint
from parallax.billing import CostLedger
from parallax.dispatcher import NO_ENDPOINT_ID, Dispatcher
from parallax.models import EndpointResult, SubTask
from parallax.registry import EndpointRegistry


def _task(capability: str, priority: int = 1, **params: str) -> SubTask:
    return SubTask(
        task=f"fetch {capability}",
        required_capability=capability,
        priority=priority,
        params=params or None,
    )


class TestResolution:
    @pytest.mark.asyncio
    async def test_single_capability_resolves(self):
        registry = EndpointRegistry([make_endpoint("prices", ["token_price"], reliability=0.9)])
        caller = FakeCaller()
        results = await Dispatcher(registry, caller).dispatch([_task("token_price")], "standard")
        assert len(results) == 1
        assert results[0].success is True
        assert results[0].endpoint_id == "prices"

    @pytest.mark.asyncio
    async def test_unresolved_capability_makes_no_call(self, registry):
        caller = FakeCaller()
        results = await Dispatcher(registry, caller).dispatch(
            [_task("nonexistent_capability")], "standard"
        )
        assert caller.calls == []
        r = results[0]
        assert r.success is False
        assert r.endpoint_id == NO_ENDPOINT_ID
        assert r.cost_usd == 0
        assert r.latency_ms == 0
        assert "nonexistent_capability" in r.error

    @pytest.mark.asyncio
    async def test_picks_most_reliable(self, registry):
        caller = FakeCaller()
        results = await Dispatcher(registry, caller).dispatch([_task("whale_tracking")], "standard")
        assert results[0].endpoint_id == "whale-b"

    @pytest.mark.asyncio
    async def test_sub_task_params_forwarded(self, registry):
        caller = FakeCaller()
        await Dispatcher(registry, caller).dispatch(
            [_task("social_data", query="$AERO", limit="5")], "standard"
        )
        assert caller.calls == [("social", "social_data", {"query": "$AERO", "limit": "5"})]


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_raising_caller_becomes_failed_result(self, registry):
        caller = FakeCaller({"token_price": RuntimeError("wallet locked")})
        results = await Dispatcher(registry, caller).dispatch(
            [_task("token_price"), _task("social_data")], "standard"
        )
        assert results[0].success is False
        assert "wallet locked" in results[0].error
        assert results[0].endpoint_id == "price-feed"
        assert results[1].success is True

    @pytest.mark.asyncio
    async def test_failure_does_not_cancel_slow_sibling(self, registry):
        caller = FakeCaller(
            {"token_price": ValueError("bad")},
            delays={"social_data": 0.05},
        )
        results = await Dispatcher(registry, caller).dispatch(
            [_task("token_price"), _task("social_data")], "standard"
        )
        assert results[1].success is True
        assert "social_data" in caller.completed

    @pytest.mark.asyncio
    async def test_structured_failure_passed_through(self, registry):
        def http_error(endpoint):
            return EndpointResult.failure(endpoint.id, endpoint.name, "token_price", "HTTP 503: down")

        caller = FakeCaller({"token_price": http_error})
        results = await Dispatcher(registry, caller).dispatch([_task("token_price")], "standard")
        assert results[0].error == "HTTP 503: down"

    @pytest.mark.asyncio
    async def test_output_length_matches_input(self, registry):
        caller = FakeCaller({"smart_money": RuntimeError("x")})
        tasks = [
            _task("token_price", 3),
            _task("nope", 1),
            _task("smart_money", 2),
            _task("social_data", 5),
            _task("blockchain_intelligence", 4),  # premium only
        ]
        results = await Dispatcher(registry, caller).dispatch(tasks, "standard")
        assert [r.capability for r in results] == [t.required_capability for t in tasks]
        assert [r.success for r in results] == [True, False, False, True, False]


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_calls_run_concurrently(self, registry):
        caller = FakeCaller(delays={"token_price": 0.05, "social_data": 0.05, "smart_money": 0.05})
        await Dispatcher(registry, caller).dispatch(
            [_task("token_price"), _task("social_data"), _task("smart_money")], "standard"
        )
        assert caller.max_in_flight == 3

    @pytest.mark.asyncio
    async def test_results_in_input_order_not_completion_order(self, registry):
        caller = FakeCaller(delays={"token_price": 0.08, "social_data": 0.0})
        results = await Dispatcher(registry, caller).dispatch(
            [_task("token_price"), _task("social_data")], "standard"
        )
        assert caller.completed == ["social_data", "token_price"]
        assert [r.capability for r in results] == ["token_price", "social_data"]

    @pytest.mark.asyncio
    async def test_calls_issued_in_priority_order(self, registry):
        caller = FakeCaller()
        await Dispatcher(registry, caller).dispatch(
            [_task("social_data", 4), _task("token_price", 1), _task("smart_money", 2)],
            "standard",
        )
        assert [c[1] for c in caller.calls] == ["token_price", "smart_money", "social_data"]

    @pytest.mark.asyncio
    async def test_empty_batch(self, registry):
        assert await Dispatcher(registry, FakeCaller()).dispatch([], "standard") == []


class TestLedgerAndHooks:
    @pytest.mark.asyncio
    async def test_successful_paid_calls_recorded(self, registry):
        ledger = CostLedger()
        caller = FakeCaller({"social_data": RuntimeError("x")})
        await Dispatcher(registry, caller).dispatch(
            [_task("token_price"), _task("social_data"), _task("nope")], "standard", ledger
        )
        assert [e.type for e in ledger.entries] == ["x402"]
        assert ledger.entries[0].description == "Price Feed (token_price)"
        assert ledger.totals().x402_total == pytest.approx(0.01)

    @pytest.mark.asyncio
    async def test_free_calls_not_recorded(self, registry):
        def free(endpoint):
            return EndpointResult(endpoint.id, endpoint.name, "token_price", True, data={}, cost_usd=0)

        ledger = CostLedger()
        await Dispatcher(registry, FakeCaller({"token_price": free})).dispatch(
            [_task("token_price")], "standard", ledger
        )
        assert len(ledger) == 0

    @pytest.mark.asyncio
    async def test_result_hook_sees_real_calls_only(self, registry):
        seen: list[str] = []
        dispatcher = Dispatcher(registry, FakeCaller(), on_result=lambda r: seen.append(r.endpoint_id))
        await dispatcher.dispatch([_task("token_price"), _task("nope")], "standard")
        assert seen == ["price-feed"]

    @pytest.mark.asyncio
    async def test_broken_hook_does_not_fail_batch(self, registry):
        def boom(_):
            raise RuntimeError("db gone")

        results = await Dispatcher(registry, FakeCaller(), on_result=boom).dispatch(
            [_task("token_price")], "standard"
        )
        assert results[0].success is True
