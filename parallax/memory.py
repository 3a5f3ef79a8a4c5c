"""Persistent memory — past queries and observed endpoint reliability.

The pipeline itself is stateless between runs.  When a :class:`QueryMemory`
is injected, completed runs and per-endpoint outcomes are written here.
Writes are best-effort: a broken database never fails a query.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any

from parallax.models import EndpointResult, PipelineResult, QueryTier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EndpointStats:
    endpoint_id: str
    successes: int
    failures: int

    @property
    def reliability(self) -> float | None:
        """Observed success ratio, ``None`` before the first call."""
        total = self.successes + self.failures
        return self.successes / total if total else None


class QueryMemory:
    """CRUD wrapper around ``query_history``, ``query_costs`` and ``endpoint_stats``.

    Args:
        conn: An open :class:`sqlite3.Connection` with the schema from
              :func:`parallax.db.init_db`.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # ------------------------------------------------------------------ #
    # Queries                                                              #
    # ------------------------------------------------------------------ #

    def save_query(self, query: str, tier: QueryTier | str, result: PipelineResult) -> int:
        """Persist a completed run and its cost entries.

        Returns:
            The ``id`` of the new ``query_history`` row.
        """
        cur = self._conn.execute(
            """
            INSERT INTO query_history
                (query, tier, total_cost_usd, x402_cost_usd, llm_cost_usd,
                 total_latency_ms, sub_task_count, calls_succeeded, calls_failed)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                query,
                QueryTier(tier).value,
                result.total_cost_usd,
                result.x402_cost_usd,
                result.llm_cost_usd,
                result.total_latency_ms,
                result.sub_task_count,
                result.endpoint_calls_succeeded,
                result.endpoint_calls_failed,
            ),
        )
        query_id = int(cur.lastrowid)
        self._conn.executemany(
            """
            INSERT INTO query_costs (query_id, cost_type, description, cost_usd, timestamp_ms)
            VALUES (?, ?, ?, ?, ?)
            """,
            [
                (query_id, e.type, e.description, e.cost_usd, e.timestamp)
                for e in result.cost_entries
            ],
        )
        self._conn.commit()
        logger.info("Saved query to memory (id=%d)", query_id)
        return query_id

    def past_queries(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Return past queries, oldest first; *limit* keeps only the newest N."""
        if limit:
            cur = self._conn.execute(
                "SELECT * FROM (SELECT * FROM query_history ORDER BY id DESC LIMIT ?) ORDER BY id",
                (limit,),
            )
        else:
            cur = self._conn.execute("SELECT * FROM query_history ORDER BY id")
        return [dict(row) for row in cur.fetchall()]

    def query_costs(self, query_id: int) -> list[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT cost_type, description, cost_usd, timestamp_ms FROM query_costs"
            " WHERE query_id = ? ORDER BY id",
            (query_id,),
        )
        return [dict(row) for row in cur.fetchall()]

    # ------------------------------------------------------------------ #
    # Endpoint reliability                                                 #
    # ------------------------------------------------------------------ #

    def record_endpoint_outcome(self, endpoint_id: str, success: bool) -> EndpointStats:
        """Count one call outcome for *endpoint_id* and return the new totals."""
        self._conn.execute(
            """
            INSERT INTO endpoint_stats (endpoint_id, successes, failures, updated_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(endpoint_id) DO UPDATE SET
                successes  = successes + excluded.successes,
                failures   = failures + excluded.failures,
                updated_at = CURRENT_TIMESTAMP
            """,
            (endpoint_id, int(success), int(not success)),
        )
        self._conn.commit()
        return self.endpoint_stats(endpoint_id)

    def endpoint_stats(self, endpoint_id: str) -> EndpointStats:
        row = self._conn.execute(
            "SELECT successes, failures FROM endpoint_stats WHERE endpoint_id = ?",
            (endpoint_id,),
        ).fetchone()
        if row is None:
            return EndpointStats(endpoint_id, 0, 0)
        return EndpointStats(endpoint_id, int(row[0]), int(row[1]))

    def endpoint_reliability(self, endpoint_id: str) -> float | None:
        return self.endpoint_stats(endpoint_id).reliability

    def record_result(self, result: EndpointResult) -> None:
        """Dispatcher hook: track every real endpoint call, never raise."""
        if result.endpoint_id == "none":
            return
        try:
            self.record_endpoint_outcome(result.endpoint_id, result.success)
        except sqlite3.Error as exc:
            logger.warning("Endpoint stats update failed: %s", exc)
