"""Parallax — x402 intelligence orchestration.

Decomposes a question into capability-tagged sub-tasks, buys the data from
paid x402 endpoints concurrently and synthesizes one report, tracking LLM
and endpoint spend along the way.

Quickstart::

    from parallax.pipeline import run_pipeline

    result = await run_pipeline("Should I buy $AERO on Base?", tier="standard")
    print(result.report)
    print(f"${result.total_cost_usd:.4f} in {result.total_latency_ms}ms")
"""

__version__ = "1.0.0"
