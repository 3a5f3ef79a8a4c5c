"""Anthropic Messages API provider for Parallax."""

from __future__ import annotations

from typing import Any

import httpx

from parallax.errors import ProviderError

from .base import Completion, LLMProvider, TokenUsage

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


class AnthropicProvider(LLMProvider):
    """Talks to ``POST /v1/messages``."""

    def __init__(
        self,
        base_url: str = "https://api.anthropic.com",
        api_key: str = "",
        model: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.default_model = model or DEFAULT_MODEL
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            timeout=120.0,
        )

    # ------------------------------------------------------------------
    # LLMProvider interface
    # ------------------------------------------------------------------

    async def complete(
        self,
        prompt: str,
        max_output_tokens: int = 1024,
        temperature: float = 0.7,
        model: str | None = None,
    ) -> Completion:
        payload: dict[str, Any] = {
            "model": model or self.default_model,
            "max_tokens": max_output_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        try:
            resp = await self._client.post("/v1/messages", json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                f"Anthropic returned {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderError(f"Anthropic request failed: {exc}") from exc

        text = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        return Completion(
            text=text,
            usage=_parse_usage(data.get("usage")),
            model=data.get("model", payload["model"]),
        )

    async def health(self) -> bool:
        try:
            resp = await self._client.get("/v1/models", timeout=5.0)
            return resp.status_code == 200
        except Exception:
            return False

    async def aclose(self) -> None:
        await self._client.aclose()


def _parse_usage(usage: dict[str, Any] | None) -> TokenUsage | None:
    if not usage:
        return None
    # Anthropic reports cache reads and cache writes separately from
    # input_tokens; writes are billed as full-price input
    cached = int(usage.get("cache_read_input_tokens") or 0)
    written = int(usage.get("cache_creation_input_tokens") or 0)
    return TokenUsage(
        input_tokens=int(usage.get("input_tokens") or 0) + cached + written,
        output_tokens=int(usage.get("output_tokens") or 0),
        cached_input_tokens=cached,
    )
