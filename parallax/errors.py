"""Exception hierarchy for Parallax.

Only fatal conditions are exceptions.  A capability with no endpoint, an
HTTP error or a timeout is reported as a failed
:class:`~parallax.models.EndpointResult` instead.
"""

from __future__ import annotations


class ParallaxError(Exception):
    """Base error for all Parallax failures."""


class CatalogError(ParallaxError):
    """Raised when the endpoint catalog cannot be read or validated."""


class ProviderError(ParallaxError):
    """Raised when the LLM backend is unreachable or returns garbage."""


class DecompositionError(ParallaxError):
    """Raised when the decomposition response is not a valid sub-task list."""


class SynthesisError(ParallaxError):
    """Raised when the report synthesis call fails."""
