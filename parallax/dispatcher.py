"""Dispatcher — resolves sub-tasks to endpoints and runs the calls.

Every resolved call is launched at once and the batch waits for all of them
to settle.  One slow or broken provider never cancels its siblings; each
sub-task yields exactly one :class:`EndpointResult`, in input order.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Sequence

from parallax.billing import CostLedger
from parallax.endpoints.client import EndpointCaller
from parallax.models import Endpoint, EndpointResult, QueryTier, SubTask
from parallax.registry import EndpointRegistry

logger = logging.getLogger(__name__)

NO_ENDPOINT_ID = "none"
NO_ENDPOINT_NAME = "No endpoint available"

ResultHook = Callable[[EndpointResult], None]


def unresolved_result(capability: str) -> EndpointResult:
    """Failed result for a capability no endpoint offers on the tier."""
    return EndpointResult.failure(
        endpoint_id=NO_ENDPOINT_ID,
        endpoint_name=NO_ENDPOINT_NAME,
        capability=capability,
        error=f"No endpoint for capability: {capability}",
    )


class Dispatcher:
    """Fan sub-tasks out to endpoints concurrently.

    Args:
        registry: Capability → endpoint matcher.
        caller:   Endpoint-call collaborator (normally
                  :class:`~parallax.endpoints.EndpointClient`).
        on_result: Optional hook called with each settled result from a
                   real call (used for reliability tracking).
    """

    def __init__(
        self,
        registry: EndpointRegistry,
        caller: EndpointCaller,
        on_result: ResultHook | None = None,
    ) -> None:
        self._registry = registry
        self._caller = caller
        self._on_result = on_result

    async def dispatch(
        self,
        sub_tasks: Sequence[SubTask],
        tier: QueryTier | str = QueryTier.STANDARD,
        ledger: CostLedger | None = None,
    ) -> list[EndpointResult]:
        """Execute *sub_tasks* and return one result per sub-task, in order."""
        results: list[EndpointResult | None] = [None] * len(sub_tasks)
        pending: list[asyncio.Future[EndpointResult]] = []
        slots: list[int] = []

        # Attribute in priority order; sorted() is stable so equal
        # priorities keep their decomposition order.
        by_priority = sorted(range(len(sub_tasks)), key=lambda i: sub_tasks[i].priority)
        for i in by_priority:
            sub_task = sub_tasks[i]
            capability = sub_task.required_capability
            endpoint = self._registry.find_by_capability(capability, tier)
            if endpoint is None:
                logger.info("No endpoint for: %s — skipping", capability)
                results[i] = unresolved_result(capability)
                continue

            logger.info("[P%d] Calling %s for: %s", sub_task.priority, endpoint.name, sub_task.task)
            pending.append(asyncio.ensure_future(
                self._call(endpoint, sub_task, ledger)
            ))
            slots.append(i)

        settled = await asyncio.gather(*pending, return_exceptions=True)
        for i, outcome in zip(slots, settled):
            if isinstance(outcome, BaseException):
                # _call already folds exceptions; this only catches cancellation
                capability = sub_tasks[i].required_capability
                endpoint = self._registry.find_by_capability(capability, tier)
                results[i] = EndpointResult.failure(
                    endpoint_id=endpoint.id if endpoint else NO_ENDPOINT_ID,
                    endpoint_name=endpoint.name if endpoint else NO_ENDPOINT_NAME,
                    capability=capability,
                    error=_describe(outcome),
                )
            else:
                results[i] = outcome

        final = [r for r in results if r is not None]
        succeeded = sum(1 for r in final if r.success)
        logger.info(
            "Execution complete: %d/%d succeeded | x402 cost: $%.4f",
            succeeded, len(final), sum(r.cost_usd for r in final if r.success),
        )
        return final

    async def _call(
        self,
        endpoint: Endpoint,
        sub_task: SubTask,
        ledger: CostLedger | None,
    ) -> EndpointResult:
        capability = sub_task.required_capability
        params = dict(sub_task.params or {})
        try:
            result = await self._caller.call(endpoint, capability, params)
        except Exception as exc:
            logger.error("Endpoint call %s raised: %s", endpoint.id, exc)
            result = EndpointResult.failure(
                endpoint_id=endpoint.id,
                endpoint_name=endpoint.name,
                capability=capability,
                error=_describe(exc),
            )

        if ledger is not None and result.success and result.cost_usd > 0:
            ledger.add("x402", f"{endpoint.name} ({capability})", result.cost_usd)

        if self._on_result is not None:
            try:
                self._on_result(result)
            except Exception as exc:
                logger.debug("result hook failed: %s", exc)
        return result


def _describe(exc: BaseException) -> str:
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__
