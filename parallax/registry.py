"""Endpoint registry — the immutable catalog of x402 data endpoints.

The catalog is loaded once (usually from ``endpoints/registry.json``) and
handed to :class:`EndpointRegistry`, which pre-computes a capability lookup
table per tier.  Nothing mutates the registry afterwards, so a single
instance is shared by every pipeline run in the process.

Usage::

    from parallax.registry import default_registry
    registry = default_registry()
    endpoint = registry.find_by_capability("whale_tracking", QueryTier.STANDARD)
    if endpoint is None:
        ...  # no endpoint offers this capability on this tier
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from parallax.errors import CatalogError
from parallax.models import Endpoint, QueryTier

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / "endpoints" / "registry.json"


@dataclass(frozen=True)
class CapabilityInfo:
    """Prompt-facing description of one capability."""

    name: str
    description: str
    cost_per_call: float
    param_hints: str | None = None


class EndpointRegistry:
    """Read-only capability → endpoint matcher.

    Args:
        endpoints: The full catalog, in catalog order.  Order matters: when
                   two endpoints share a capability and a reliability score,
                   the one listed first wins.
    """

    def __init__(self, endpoints: Iterable[Endpoint]) -> None:
        self._endpoints: tuple[Endpoint, ...] = tuple(endpoints)
        self._by_tier: dict[QueryTier, tuple[Endpoint, ...]] = {
            QueryTier.PREMIUM: self._endpoints,
            QueryTier.STANDARD: tuple(
                ep for ep in self._endpoints if ep.tier == QueryTier.STANDARD
            ),
        }
        self._index: dict[QueryTier, dict[str, tuple[Endpoint, ...]]] = {
            tier: _build_index(eps) for tier, eps in self._by_tier.items()
        }
        logger.debug(
            "registry loaded: %d endpoints (%d standard), %d capabilities",
            len(self._endpoints),
            len(self._by_tier[QueryTier.STANDARD]),
            len(self._index[QueryTier.PREMIUM]),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> EndpointRegistry:
        return cls(load_catalog(path))

    @property
    def endpoints(self) -> tuple[Endpoint, ...]:
        return self._endpoints

    def endpoints_for_tier(self, tier: QueryTier | str) -> tuple[Endpoint, ...]:
        """Premium sees the whole catalog; standard only standard endpoints."""
        return self._by_tier[QueryTier(tier)]

    def capabilities_for_tier(self, tier: QueryTier | str) -> list[CapabilityInfo]:
        """Every capability available on *tier*, once each, in catalog order.

        Description, price and parameter hints come from the first endpoint
        that lists the capability.
        """
        seen: dict[str, CapabilityInfo] = {}
        for ep in self.endpoints_for_tier(tier):
            for cap in ep.capabilities:
                if cap not in seen:
                    seen[cap] = CapabilityInfo(
                        name=cap,
                        description=ep.description,
                        cost_per_call=ep.cost_per_call,
                        param_hints=ep.param_hints,
                    )
        return list(seen.values())

    def find_by_capability(
        self,
        capability: str,
        tier: QueryTier | str = QueryTier.STANDARD,
    ) -> Endpoint | None:
        """Return the most reliable endpoint offering *capability*, or ``None``."""
        candidates = self._index[QueryTier(tier)].get(capability)
        return candidates[0] if candidates else None


def _build_index(endpoints: tuple[Endpoint, ...]) -> dict[str, tuple[Endpoint, ...]]:
    """Map capability → endpoints, best first.

    ``sorted`` is stable, so equal reliabilities keep catalog order.
    """
    buckets: dict[str, list[Endpoint]] = {}
    for ep in endpoints:
        for cap in ep.capabilities:
            buckets.setdefault(cap, []).append(ep)
    return {
        cap: tuple(sorted(eps, key=lambda e: e.reliability, reverse=True))
        for cap, eps in buckets.items()
    }


# ──────────────────────────────────────────────────────────────────
# Catalog loading
# ──────────────────────────────────────────────────────────────────

def parse_catalog(entries: Any) -> list[Endpoint]:
    """Validate raw catalog JSON (a list of endpoint objects)."""
    if not isinstance(entries, list):
        raise CatalogError("endpoint catalog must be a JSON array")
    endpoints: list[Endpoint] = []
    ids: set[str] = set()
    for i, raw in enumerate(entries):
        try:
            ep = Endpoint.model_validate(raw)
        except ValidationError as exc:
            raise CatalogError(f"invalid endpoint at index {i}: {exc}") from exc
        if ep.id in ids:
            raise CatalogError(f"duplicate endpoint id: {ep.id}")
        ids.add(ep.id)
        endpoints.append(ep)
    return endpoints


def load_catalog(path: str | Path) -> list[Endpoint]:
    """Read and validate the catalog at *path*."""
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise CatalogError(f"cannot read endpoint catalog {path}: {exc}") from exc
    endpoints = parse_catalog(raw)
    logger.info("Loaded %d endpoints from %s", len(endpoints), path)
    return endpoints


_DEFAULT_REGISTRY: EndpointRegistry | None = None


def default_registry(env: Mapping[str, str] | None = None) -> EndpointRegistry:
    """Process-wide registry, built on first use.

    The catalog path comes from ``PARALLAX_REGISTRY_PATH`` (default: the
    catalog shipped with the package).
    """
    global _DEFAULT_REGISTRY
    if _DEFAULT_REGISTRY is None:
        env = os.environ if env is None else env
        path = env.get("PARALLAX_REGISTRY_PATH") or DEFAULT_CATALOG_PATH
        _DEFAULT_REGISTRY = EndpointRegistry.from_file(path)
    return _DEFAULT_REGISTRY
