"""Data reducer — bounds endpoint payload size before synthesis.

Verbose providers return hundreds of casts, pools or transfers per call.
Fed verbatim into the synthesis prompt they push input past 40K tokens, so
every successful payload is shrunk before prompt assembly:

  1. arrays keep their first few items, the rest collapse into one
     ``{"_omitted": "<n> more items"}`` sentinel (biggest win)
  2. compact JSON, no indentation
  3. a hard character cap per result, ending in an explicit marker

Reduction is structural only: nothing is reordered or reinterpreted.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Sequence

from parallax.models import EndpointResult

logger = logging.getLogger(__name__)

#: ~4K tokens of endpoint data in total
MAX_DATA_CHARS_TOTAL = 16_000
MAX_ARRAY_ITEMS = 3
#: Nesting levels walked; anything deeper passes through untouched
MAX_DEPTH = 2
TRUNCATION_MARKER = "…(truncated)"
OMITTED_KEY = "_omitted"
NO_DATA = "(no data collected)"

_OMITTED_RE = re.compile(r"^(\d+) more items$")


def _omitted_count(item: Any) -> int | None:
    """Return *n* if *item* is an omission sentinel, else ``None``."""
    if isinstance(item, dict) and len(item) == 1 and isinstance(item.get(OMITTED_KEY), str):
        m = _OMITTED_RE.match(item[OMITTED_KEY])
        if m:
            return int(m.group(1))
    return None


def trim_arrays(value: Any, max_items: int = MAX_ARRAY_ITEMS, depth: int = 0) -> Any:
    """Keep the first *max_items* of every array down to :data:`MAX_DEPTH`.

    A trailing sentinel left by an earlier pass is folded into the new
    count, so ``trim_arrays(trim_arrays(x)) == trim_arrays(x)``.
    """
    if isinstance(value, list):
        items = value
        already_omitted = 0
        if items:
            prior = _omitted_count(items[-1])
            if prior is not None:
                items = items[:-1]
                already_omitted = prior
        kept = [
            trim_arrays(item, max_items, depth + 1) if depth < MAX_DEPTH else item
            for item in items[:max_items]
        ]
        omitted = len(items) - len(kept) + already_omitted
        if omitted > 0:
            kept.append({OMITTED_KEY: f"{omitted} more items"})
        return kept

    if isinstance(value, dict) and depth < MAX_DEPTH:
        return {k: trim_arrays(v, max_items, depth + 1) for k, v in value.items()}

    return value


def _dumps(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def truncate_payload(
    data: Any,
    max_chars: int,
    max_items: int = MAX_ARRAY_ITEMS,
) -> str:
    """Render *data* as compact text no longer than *max_chars* + marker.

    The result is never longer than the compact rendering of the untouched
    data.  Text payloads are passed through as-is, so feeding the output
    back in yields the same string.
    """
    raw = _dumps(data)
    trimmed = _dumps(trim_arrays(data, max_items))
    text = trimmed if len(trimmed) < len(raw) else raw

    if len(text) <= max_chars:
        return text
    cut = text[:max_chars] + TRUNCATION_MARKER
    # Cutting a payload that is barely over budget would make it longer
    return cut if len(cut) < len(text) else text


@dataclass
class ReducedPayload:
    endpoint_name: str
    capability: str
    text: str
    raw_chars: int
    reduced_chars: int


@dataclass
class ReducedData:
    """Prompt-ready data section plus size accounting."""

    sections: str
    raw_chars: int = 0
    reduced_chars: int = 0
    per_result_budget: int = 0
    payloads: list[ReducedPayload] = field(default_factory=list)


def reduce_results(
    results: Sequence[EndpointResult],
    total_budget: int = MAX_DATA_CHARS_TOTAL,
    max_items: int = MAX_ARRAY_ITEMS,
) -> ReducedData:
    """Reduce every successful result and format the synthesis data section.

    The total budget is split evenly across successful results; failed
    results are ignored here (they become data gaps).
    """
    successful = [r for r in results if r.success]
    if not successful:
        return ReducedData(sections=NO_DATA)

    budget = total_budget // len(successful)
    payloads: list[ReducedPayload] = []
    for r in successful:
        raw_chars = len(_dumps(r.data))
        text = truncate_payload(r.data, budget, max_items)
        payloads.append(ReducedPayload(
            endpoint_name=r.endpoint_name,
            capability=r.capability,
            text=text,
            raw_chars=raw_chars,
            reduced_chars=len(text),
        ))

    reduced = ReducedData(
        sections="\n\n".join(
            f"### {p.endpoint_name} ({p.capability})\n{p.text}" for p in payloads
        ),
        raw_chars=sum(p.raw_chars for p in payloads),
        reduced_chars=sum(p.reduced_chars for p in payloads),
        per_result_budget=budget,
        payloads=payloads,
    )
    logger.info(
        "Endpoint data reduced: %d → %d chars (budget %d per result)",
        reduced.raw_chars, reduced.reduced_chars, budget,
    )
    return reduced
