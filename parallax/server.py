"""Parallax — HTTP front end.

Exposes:
  GET  /health                                          — liveness check
  GET  /entrypoints                                     — invokable reports and prices
  GET  /.well-known/agent-card.json                     — agent card (skills, prices, payee)
  GET  /capabilities?tier=standard                      — capabilities on a tier
  POST /entrypoints/intelligence-report/invoke          — standard pipeline
  POST /entrypoints/deep-intelligence-report/invoke     — premium pipeline

Start with::

    python -m parallax.server
    # or
    uvicorn parallax.server:app --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import logging
import os
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from parallax import __version__
from parallax.endpoints.client import EndpointClient
from parallax.models import QueryTier
from parallax.pipeline import Pipeline
from parallax.providers import get_provider
from parallax.registry import default_registry

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────────
# FastAPI app
# ──────────────────────────────────────────────────────────────────

app = FastAPI(title="Parallax", version=__version__)

_pipeline: Pipeline | None = None


def _get_pipeline() -> Pipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = Pipeline(
            provider=get_provider(),
            caller=EndpointClient(),
            registry=default_registry(),
        )
    return _pipeline


def _io_schema(example: str, report_kind: str) -> dict[str, Any]:
    return {
        "input": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": f"The intelligence query, e.g. '{example}'"},
            },
            "required": ["query"],
        },
        "output": {
            "type": "object",
            "properties": {
                "report": {"type": "string", "description": f"Markdown-formatted {report_kind}"},
                "costUsd": {"type": "number", "description": "Total pipeline cost in USD"},
                "endpointsCalled": {"type": "number", "description": "Number of x402 endpoints called"},
                "endpointsSucceeded": {"type": "number", "description": "Number of successful endpoint calls"},
            },
        },
    }


ENTRYPOINTS: list[dict[str, Any]] = [
    {
        "key": "intelligence-report",
        "description": (
            "Standard intelligence report: fast analysis from core DeFi and "
            "market data endpoints, synthesized into markdown."
        ),
        "price": {"invoke": "0.25", "currency": "USDC"},
        "tier": QueryTier.STANDARD,
        **_io_schema("Should I invest in $AERO on Base?", "intelligence report"),
    },
    {
        "key": "deep-intelligence-report",
        "description": (
            "Premium deep intelligence report: every endpoint, including deep "
            "research queries, web search and risk analysis."
        ),
        "price": {"invoke": "3.00", "currency": "USDC"},
        "tier": QueryTier.PREMIUM,
        **_io_schema("Full risk assessment of $AERO on Base", "deep intelligence report"),
    },
]


# ──────────────────────────────────────────────────────────────────
# Request / Response models
# ──────────────────────────────────────────────────────────────────

class InvokeRequest(BaseModel):
    query: str | None = None


# ──────────────────────────────────────────────────────────────────
# Endpoints
# ──────────────────────────────────────────────────────────────────

@app.get("/health")
async def health():
    return {"status": "ok", "agent": "parallax", "version": __version__}


@app.get("/entrypoints")
async def list_entrypoints():
    return [
        {"key": ep["key"], "description": ep["description"], "price": ep["price"]}
        for ep in ENTRYPOINTS
    ]


@app.get("/.well-known/agent-card.json")
async def agent_card():
    port = os.environ.get("PORT", "3000")
    return {
        "name": "parallax",
        "version": __version__,
        "description": (
            "x402 intelligence orchestration: chains multiple x402-paid endpoints "
            "into compound intelligence reports"
        ),
        "url": os.environ.get("AGENT_URL") or f"http://localhost:{port}",
        "capabilities": {"invoke": True, "stream": False, "payments": True},
        "skills": [
            {
                "id": ep["key"],
                "description": ep["description"],
                "input": ep["input"],
                "output": ep["output"],
                "price": ep["price"],
            }
            for ep in ENTRYPOINTS
        ],
        "payments": {
            "address": os.environ.get("AGENT_WALLET", ""),
            "network": "base",
            "currency": "USDC",
        },
    }


@app.get("/capabilities")
async def list_capabilities(tier: QueryTier = QueryTier.STANDARD):
    registry = _get_pipeline().registry
    return [
        {
            "name": cap.name,
            "description": cap.description,
            "costPerCall": cap.cost_per_call,
            "paramHints": cap.param_hints,
        }
        for cap in registry.capabilities_for_tier(tier)
    ]


@app.post("/entrypoints/intelligence-report/invoke")
async def invoke_standard(request: InvokeRequest):
    return await _invoke(request, QueryTier.STANDARD)


@app.post("/entrypoints/deep-intelligence-report/invoke")
async def invoke_premium(request: InvokeRequest):
    return await _invoke(request, QueryTier.PREMIUM)


async def _invoke(request: InvokeRequest, tier: QueryTier) -> dict[str, Any]:
    query = (request.query or "").strip()
    if not query:
        raise HTTPException(status_code=400, detail="Missing required field: query (string)")

    logger.info('[%s] Processing query: "%s"', tier.value.capitalize(), query)
    try:
        result = await _get_pipeline().run(query, tier)
    except Exception as exc:
        logger.error("%s pipeline failed: %s", tier.value.capitalize(), exc)
        raise HTTPException(status_code=500, detail=str(exc) or "Pipeline failed") from exc

    return {
        "output": {
            "report": result.report,
            "costUsd": result.total_cost_usd,
            "endpointsCalled": result.endpoint_calls,
            "endpointsSucceeded": result.endpoint_calls_succeeded,
        }
    }


def main() -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="[%(name)s] %(levelname)s: %(message)s")
    port = int(os.environ.get("PORT", "3000"))
    logger.info("Mock mode: %s", "ON" if os.environ.get("MOCK_MODE", "").lower() == "true" else "OFF")
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
