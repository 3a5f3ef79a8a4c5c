"""Prompt builders for the decomposition and synthesis LLM calls."""

from __future__ import annotations

import re
from typing import Sequence

from parallax.models import EndpointResult
from parallax.reducer import ReducedData, reduce_results
from parallax.registry import CapabilityInfo

_FENCE_OPEN_RE = re.compile(r"^```(?:json)?[ \t]*\n?", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\n?```\s*$")


def strip_code_fence(text: str) -> str:
    """Remove a markdown code fence wrapped around an LLM's JSON answer."""
    text = text.strip()
    text = _FENCE_OPEN_RE.sub("", text, count=1)
    text = _FENCE_CLOSE_RE.sub("", text, count=1)
    return text.strip()


# ──────────────────────────────────────────────────────────────────
# Decomposition
# ──────────────────────────────────────────────────────────────────

def _capability_line(cap: CapabilityInfo) -> str:
    line = f"- {cap.name}: {cap.description} (${cap.cost_per_call:.3f}/call)"
    if cap.param_hints:
        line += f"\n    params: {cap.param_hints}"
    return line


def build_decomposition_prompt(query: str, capabilities: Sequence[CapabilityInfo]) -> str:
    """Ask the LLM to split *query* into capability-tagged sub-tasks."""
    capability_list = "\n".join(_capability_line(c) for c in capabilities)
    return f"""You are Parallax, an intelligence orchestration agent. You break complex questions into sub-tasks that paid x402 data endpoints can answer.

Split the user's query below into concrete sub-tasks. Each sub-task maps to exactly ONE capability from the list.

## Available Capabilities
{capability_list}

## Rules
1. "requiredCapability" must exactly match a capability name from the list above
2. "priority" runs from 1 (critical to the answer) to 5 (nice to have)
3. Use 2-6 sub-tasks: enough to answer the query well, no duplicates
4. Leave out capabilities the query does not need; every call costs money
5. "task" is a specific description of the data to retrieve
6. "params" holds string key/value request parameters following the capability's params hints; use "query" for free-text search terms

## User Query
{query}

## Response Format
Respond with valid JSON only. No markdown, no code fences, no commentary.

{{
  "subTasks": [
    {{
      "task": "specific description of what data to retrieve",
      "requiredCapability": "capability_name_from_list",
      "priority": 1,
      "params": {{"query": "AERO"}}
    }}
  ],
  "reasoning": "brief explanation of why these sub-tasks were chosen"
}}"""


# ──────────────────────────────────────────────────────────────────
# Synthesis
# ──────────────────────────────────────────────────────────────────

def format_data_gaps(results: Sequence[EndpointResult]) -> str:
    """Markdown list of capabilities that could not be fulfilled."""
    failed = [r for r in results if not r.success]
    if not failed:
        return ""
    lines = "\n".join(f"- {r.capability}: {r.error}" for r in failed)
    return f"## Data Gaps\nThe following data sources were unavailable:\n{lines}"


def build_synthesis_prompt(
    query: str,
    results: Sequence[EndpointResult],
    reduced: ReducedData | None = None,
) -> str:
    """Ask the LLM to turn the (reduced) endpoint data into a report."""
    if reduced is None:
        reduced = reduce_results(results)
    gaps = format_data_gaps(results)
    gaps_section = f"\n{gaps}\n" if gaps else ""

    return f"""You are Parallax, an intelligence synthesis agent. You collected data from several x402-paid endpoints to answer the user's query. Turn it into a clear, actionable intelligence report.

## User's Original Query
{query}

## Data Collected
{reduced.sections}
{gaps_section}
## Report Requirements
Write a structured markdown report that:
1. Answers the question directly in the opening summary
2. Cites the data source behind each claim (endpoint name in parentheses)
3. Separates what the data shows from what you infer
4. Ranks the data gaps by how much they matter for this query
5. Gives a confidence score (0-100) based on data completeness and source agreement
6. Lists the key risks
7. Ends with concrete next steps

## Tone
Write like a sharp analyst briefing a trader: direct, specific, opinionated when the data supports it. Skip filler phrases. If the data is genuinely mixed, say so plainly.

## Response Format
Plain markdown with these sections:
- **Summary**: 2-3 sentences answering the question
- **Analysis**: findings grouped by theme, with sources
- **Data Gaps**: ranked by impact on the analysis
- **Confidence Score**: 0-100 with a one-line justification
- **Key Risks**: bullet points
- **What To Do Next**: 2-4 concrete steps

Do NOT wrap the response in code fences."""
