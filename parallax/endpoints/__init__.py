"""x402 endpoint access: the packaged catalog and the HTTP call client."""

from __future__ import annotations

from .client import EndpointCaller, EndpointClient

__all__ = ["EndpointCaller", "EndpointClient"]
