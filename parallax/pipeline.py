"""Parallax pipeline orchestration.

Exports :func:`run_pipeline`, which sequences the three stages of a query:

  decompose (LLM) → execute (x402 endpoints, concurrent) → synthesize (LLM)

and returns the report together with the run's full cost breakdown.

Stages::

    idle → decomposing → executing → synthesizing → complete
                 └──────────┴─────────────┴──→ error

Only two failures are fatal: a decomposition answer that is not a valid
sub-task list, and a failed synthesis call.  Endpoint misses and endpoint
errors are carried through to the report as data gaps.
"""

from __future__ import annotations

import enum
import json
import logging
import time
from typing import Callable

from pydantic import ValidationError

from parallax.billing import (
    DECOMPOSITION_COST_ESTIMATE,
    SYNTHESIS_COST_ESTIMATE,
    CostLedger,
    llm_cost_usd,
)
from parallax.dispatcher import Dispatcher
from parallax.endpoints.client import EndpointCaller, EndpointClient
from parallax.errors import DecompositionError, SynthesisError
from parallax.memory import QueryMemory
from parallax.models import Decomposition, EndpointResult, PipelineResult, QueryTier
from parallax.prompts import build_decomposition_prompt, build_synthesis_prompt, strip_code_fence
from parallax.providers import LLMProvider, get_provider
from parallax.reducer import reduce_results
from parallax.registry import EndpointRegistry, default_registry

logger = logging.getLogger(__name__)

DECOMPOSITION_MAX_TOKENS = 1024
DECOMPOSITION_TEMPERATURE = 0.3
SYNTHESIS_MAX_TOKENS = 4096
SYNTHESIS_TEMPERATURE = 0.5


class PipelineStage(str, enum.Enum):
    IDLE = "idle"
    DECOMPOSING = "decomposing"
    EXECUTING = "executing"
    SYNTHESIZING = "synthesizing"
    COMPLETE = "complete"
    ERROR = "error"


StageHook = Callable[[PipelineStage], None]


def parse_decomposition(text: str) -> Decomposition:
    """Parse the decomposition LLM answer, tolerating a ```json fence."""
    raw = strip_code_fence(text)
    try:
        return Decomposition.model_validate(json.loads(raw))
    except json.JSONDecodeError as exc:
        raise DecompositionError(f"Decomposition is not valid JSON: {exc}") from exc
    except ValidationError as exc:
        raise DecompositionError(f"Decomposition has the wrong shape: {exc}") from exc


class _RunState:
    """Stage tracking for one run; never shared between runs."""

    def __init__(self, on_stage: StageHook | None) -> None:
        self.stage = PipelineStage.IDLE
        self._on_stage = on_stage

    def advance(self, stage: PipelineStage) -> None:
        self.stage = stage
        logger.debug("pipeline stage → %s", stage.value)
        if self._on_stage is not None:
            self._on_stage(stage)


class Pipeline:
    """Holds the long-lived collaborators; each :meth:`run` owns its own state.

    Args:
        provider: LLM used for decomposition and synthesis.
        caller:   Endpoint-call collaborator.
        registry: Endpoint catalog.
        memory:   Optional persistence for finished runs and endpoint stats.
        model:    Model override passed to the provider.
    """

    def __init__(
        self,
        provider: LLMProvider,
        caller: EndpointCaller,
        registry: EndpointRegistry,
        memory: QueryMemory | None = None,
        model: str | None = None,
    ) -> None:
        self.provider = provider
        self.registry = registry
        self.memory = memory
        self.model = model
        self.dispatcher = Dispatcher(
            registry,
            caller,
            on_result=memory.record_result if memory is not None else None,
        )

    async def run(
        self,
        query: str,
        tier: QueryTier | str = QueryTier.STANDARD,
        on_stage: StageHook | None = None,
    ) -> PipelineResult:
        """Run one query end to end.  Raises on fatal failure."""
        tier = QueryTier(tier)
        state = _RunState(on_stage)
        ledger = CostLedger()
        start = time.monotonic()
        logger.info("Tier: %s", tier.value.upper())

        try:
            state.advance(PipelineStage.DECOMPOSING)
            logger.info("=== Step 1: Query Decomposition ===")
            decomposition = await self._decompose(query, tier, ledger)

            state.advance(PipelineStage.EXECUTING)
            logger.info("=== Step 2: Endpoint Execution ===")
            results = await self.dispatcher.dispatch(decomposition.sub_tasks, tier, ledger)

            state.advance(PipelineStage.SYNTHESIZING)
            logger.info("=== Step 3: Report Synthesis ===")
            report = await self._synthesize(query, results, ledger)
        except Exception as exc:
            state.advance(PipelineStage.ERROR)
            logger.error("Pipeline failed: %s", exc)
            raise

        total_latency_ms = int((time.monotonic() - start) * 1000)
        totals = ledger.totals()
        succeeded = sum(1 for r in results if r.success)
        result = PipelineResult(
            report=report,
            cost_entries=list(ledger.entries),
            total_cost_usd=totals.total,
            x402_cost_usd=totals.x402_total,
            llm_cost_usd=totals.llm_total,
            total_latency_ms=total_latency_ms,
            sub_task_count=len(decomposition.sub_tasks),
            endpoint_calls_succeeded=succeeded,
            endpoint_calls_failed=len(results) - succeeded,
            endpoint_results=results,
        )
        if self.memory is not None:
            try:
                self.memory.save_query(query, tier, result)
            except Exception as exc:
                logger.warning("Saving query to memory failed: %s", exc)

        state.advance(PipelineStage.COMPLETE)
        logger.info("=== Pipeline Complete ===")
        logger.info("Total cost: $%.4f | Total time: %dms", totals.total, total_latency_ms)
        return result

    # ------------------------------------------------------------------ #
    # Stages
    # ------------------------------------------------------------------ #

    async def _decompose(
        self,
        query: str,
        tier: QueryTier,
        ledger: CostLedger,
    ) -> Decomposition:
        capabilities = self.registry.capabilities_for_tier(tier)
        prompt = build_decomposition_prompt(query, capabilities)
        completion = await self.provider.complete(
            prompt,
            max_output_tokens=DECOMPOSITION_MAX_TOKENS,
            temperature=DECOMPOSITION_TEMPERATURE,
            model=self.model,
        )
        decomposition = parse_decomposition(completion.text)

        model = completion.model or self.model or self.provider.default_model or "LLM"
        ledger.add(
            "llm",
            f"Query decomposition ({model})",
            llm_cost_usd(completion.usage, model, DECOMPOSITION_COST_ESTIMATE),
        )
        logger.info("Decomposed into %d sub-tasks", len(decomposition.sub_tasks))
        for st in decomposition.sub_tasks:
            logger.info("  [P%d] %s: %s", st.priority, st.required_capability, st.task)
        return decomposition

    async def _synthesize(
        self,
        query: str,
        results: list[EndpointResult],
        ledger: CostLedger,
    ) -> str:
        reduced = reduce_results(results)
        prompt = build_synthesis_prompt(query, results, reduced)
        try:
            completion = await self.provider.complete(
                prompt,
                max_output_tokens=SYNTHESIS_MAX_TOKENS,
                temperature=SYNTHESIS_TEMPERATURE,
                model=self.model,
            )
        except Exception as exc:
            raise SynthesisError(f"Report synthesis failed: {exc}") from exc

        model = completion.model or self.model or self.provider.default_model or "LLM"
        ledger.add(
            "llm",
            f"Report synthesis ({model})",
            llm_cost_usd(completion.usage, model, SYNTHESIS_COST_ESTIMATE),
        )
        report = completion.text.strip()
        logger.info("Report synthesized: %d chars", len(report))
        return report


async def run_pipeline(
    query: str,
    tier: QueryTier | str = QueryTier.STANDARD,
    provider: LLMProvider | None = None,
    caller: EndpointCaller | None = None,
    registry: EndpointRegistry | None = None,
    memory: QueryMemory | None = None,
) -> PipelineResult:
    """Run the full Parallax pipeline for a single query.

    Collaborators not passed in are built from the environment (see
    :func:`parallax.providers.get_provider`, ``MOCK_MODE``,
    ``PARALLAX_REGISTRY_PATH``) and closed again before returning.
    """
    own_provider = provider is None
    own_caller = caller is None
    provider = provider or get_provider()
    endpoint_client = EndpointClient() if own_caller else None
    pipeline = Pipeline(
        provider=provider,
        caller=caller or endpoint_client,
        registry=registry or default_registry(),
        memory=memory,
    )
    try:
        return await pipeline.run(query, tier)
    finally:
        if endpoint_client is not None:
            await endpoint_client.aclose()
        if own_provider:
            await provider.aclose()
