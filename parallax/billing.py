"""Cost accounting for a single pipeline run.

All money rules live here: the per-run :class:`CostLedger` and the one
function that turns LLM token usage into dollars.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Literal

from parallax.models import CostEntry
from parallax.providers.base import TokenUsage

logger = logging.getLogger(__name__)

#: USD per million tokens: (input, output, cached input)
LLM_PRICES: dict[str, tuple[float, float, float]] = {
    "claude-sonnet-4-5": (3.00, 15.00, 0.30),
    "claude-sonnet-4": (3.00, 15.00, 0.30),
    "claude-haiku-4-5": (1.00, 5.00, 0.10),
    "claude-3-5-haiku": (0.80, 4.00, 0.08),
    "claude-opus-4-1": (15.00, 75.00, 1.50),
    "gpt-4o-mini": (0.15, 0.60, 0.075),
    "gpt-4o": (2.50, 10.00, 1.25),
}
DEFAULT_PRICE_KEY = "claude-sonnet-4-5"

# Flat estimates used when the provider reports no usage
DECOMPOSITION_COST_ESTIMATE = 0.003
SYNTHESIS_COST_ESTIMATE = 0.008


def _price_for(model: str | None) -> tuple[float, float, float]:
    if model:
        # Longest prefix first so "gpt-4o-mini" is not priced as "gpt-4o"
        for key in sorted(LLM_PRICES, key=len, reverse=True):
            if model.startswith(key):
                return LLM_PRICES[key]
        logger.debug("No price entry for model %s, using %s", model, DEFAULT_PRICE_KEY)
    return LLM_PRICES[DEFAULT_PRICE_KEY]


def llm_cost_usd(
    usage: TokenUsage | None,
    model: str | None = None,
    fallback: float = 0.0,
) -> float:
    """Dollar cost of one LLM call.

    Cached input tokens are billed at the cached rate and are not charged
    again at the full input rate.  Returns *fallback* when *usage* is
    ``None``.
    """
    if usage is None:
        return fallback
    input_price, output_price, cached_price = _price_for(model)
    cached = min(usage.cached_input_tokens, usage.input_tokens)
    uncached = usage.input_tokens - cached
    return (
        uncached * input_price
        + cached * cached_price
        + usage.output_tokens * output_price
    ) / 1_000_000


@dataclass(frozen=True)
class CostTotals:
    total: float
    x402_total: float
    llm_total: float


class CostLedger:
    """Append-only list of cost entries for one run."""

    def __init__(self) -> None:
        self._entries: list[CostEntry] = []

    def record(self, entry: CostEntry) -> CostEntry:
        self._entries.append(entry)
        logger.debug("cost %s %.6f — %s", entry.type, entry.cost_usd, entry.description)
        return entry

    def add(
        self,
        type: Literal["x402", "llm"],
        description: str,
        cost_usd: float,
    ) -> CostEntry:
        """Build a timestamped entry and :meth:`record` it."""
        return self.record(CostEntry(
            type=type,
            description=description,
            cost_usd=cost_usd,
            timestamp=int(time.time() * 1000),
        ))

    @property
    def entries(self) -> tuple[CostEntry, ...]:
        return tuple(self._entries)

    def totals(self) -> CostTotals:
        x402 = sum(e.cost_usd for e in self._entries if e.type == "x402")
        llm = sum(e.cost_usd for e in self._entries if e.type == "llm")
        return CostTotals(total=x402 + llm, x402_total=x402, llm_total=llm)

    def __len__(self) -> int:
        return len(self._entries)
