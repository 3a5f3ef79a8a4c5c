"""Core data types for the Parallax pipeline.

Input that crosses a trust boundary (the endpoint catalog file and the
decomposition JSON produced by the LLM) is validated with pydantic.  Records
produced by the pipeline itself are plain dataclasses.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class QueryTier(str, enum.Enum):
    """Access level gating which endpoints may be matched."""

    STANDARD = "standard"
    PREMIUM = "premium"


# ──────────────────────────────────────────────────────────────────
# Validated input
# ──────────────────────────────────────────────────────────────────

class Endpoint(BaseModel):
    """A paid data endpoint from the catalog.  Immutable once loaded."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    url: str
    capabilities: tuple[str, ...]
    cost_per_call: float = Field(alias="costPerCall", gt=0)
    reliability: float = Field(ge=0.0, le=1.0)
    description: str
    tier: QueryTier = QueryTier.STANDARD
    default_params: dict[str, str] | None = Field(default=None, alias="defaultParams")
    #: Name of the parameter that carries the free-text query (default ``query``)
    query_param_name: str | None = Field(default=None, alias="queryParamName")
    #: Human-readable parameter guidance shown to the decomposer
    param_hints: str | None = Field(default=None, alias="paramHints")
    method: Literal["GET", "POST"] = "GET"

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"endpoint url must be http(s): {value!r}")
        return value


class SubTask(BaseModel):
    """One unit of decomposed work requiring exactly one capability."""

    model_config = ConfigDict(populate_by_name=True)

    task: str
    required_capability: str = Field(alias="requiredCapability")
    priority: int = Field(ge=1, le=5)
    params: dict[str, str] | None = None

    @field_validator("params", mode="before")
    @classmethod
    def _stringify_params(cls, value: Any) -> Any:
        # LLMs like to emit numbers, booleans and lists for things like "limit";
        # lists and objects go out as compact JSON
        if not isinstance(value, dict):
            return value
        params: dict[str, str] = {}
        for key, val in value.items():
            if val is None:
                continue
            if isinstance(val, bool):
                val = "true" if val else "false"
            elif isinstance(val, (list, dict)):
                val = json.dumps(val, separators=(",", ":"), ensure_ascii=False)
            params[str(key)] = val if isinstance(val, str) else str(val)
        return params


class Decomposition(BaseModel):
    """Structured output of the decomposition LLM call."""

    model_config = ConfigDict(populate_by_name=True)

    sub_tasks: list[SubTask] = Field(alias="subTasks")
    reasoning: str


# ──────────────────────────────────────────────────────────────────
# Pipeline records
# ──────────────────────────────────────────────────────────────────

@dataclass
class EndpointResult:
    """Outcome of one sub-task: exactly one per sub-task, success or not."""

    endpoint_id: str
    endpoint_name: str
    capability: str
    success: bool
    data: Any = None
    error: str | None = None
    latency_ms: float = 0.0
    cost_usd: float = 0.0

    def __post_init__(self) -> None:
        if self.success and self.error is not None:
            raise ValueError("successful EndpointResult cannot carry an error")
        if not self.success and self.data is not None:
            raise ValueError("failed EndpointResult cannot carry data")
        if self.latency_ms < 0 or self.cost_usd < 0:
            raise ValueError("latency_ms and cost_usd must be >= 0")

    @classmethod
    def failure(
        cls,
        endpoint_id: str,
        endpoint_name: str,
        capability: str,
        error: str,
        latency_ms: float = 0.0,
        cost_usd: float = 0.0,
    ) -> EndpointResult:
        return cls(
            endpoint_id=endpoint_id,
            endpoint_name=endpoint_name,
            capability=capability,
            success=False,
            error=error,
            latency_ms=latency_ms,
            cost_usd=cost_usd,
        )


@dataclass(frozen=True)
class CostEntry:
    """A single cost line: an x402 endpoint payment or an LLM call."""

    type: Literal["x402", "llm"]
    description: str
    cost_usd: float
    timestamp: int  # ms since epoch

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "description": self.description,
            "costUsd": self.cost_usd,
            "timestamp": self.timestamp,
        }


@dataclass
class PipelineResult:
    """Everything a caller gets back from one pipeline run."""

    report: str
    cost_entries: list[CostEntry]
    total_cost_usd: float
    x402_cost_usd: float
    llm_cost_usd: float
    total_latency_ms: int
    sub_task_count: int
    endpoint_calls_succeeded: int
    endpoint_calls_failed: int
    endpoint_results: list[EndpointResult] = field(default_factory=list)

    @property
    def endpoint_calls(self) -> int:
        return self.endpoint_calls_succeeded + self.endpoint_calls_failed

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready summary (camelCase keys, no raw endpoint data)."""
        return {
            "report": self.report,
            "costEntries": [e.to_dict() for e in self.cost_entries],
            "totalCostUsd": self.total_cost_usd,
            "x402CostUsd": self.x402_cost_usd,
            "llmCostUsd": self.llm_cost_usd,
            "totalLatencyMs": self.total_latency_ms,
            "subTaskCount": self.sub_task_count,
            "endpointCallsSucceeded": self.endpoint_calls_succeeded,
            "endpointCallsFailed": self.endpoint_calls_failed,
        }
