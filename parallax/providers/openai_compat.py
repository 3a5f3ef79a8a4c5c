"""OpenAI-compatible provider for Parallax.

Works with OpenAI, vLLM, LocalAI, LM Studio, llama.cpp server, etc.
"""

from __future__ import annotations

from typing import Any

import httpx

from parallax.errors import ProviderError

from .base import Completion, LLMProvider, TokenUsage


class OpenAICompatibleProvider(LLMProvider):
    """Speaks the OpenAI /v1/chat/completions API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        api_key: str = "sk-no-key",
        model: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.default_model = model
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
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
            "model": model or self.default_model or "default",
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_output_tokens,
            "temperature": temperature,
            "stream": False,
        }
        try:
            resp = await self._client.post("/v1/chat/completions", json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                f"LLM backend returned {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderError(f"LLM request failed: {exc}") from exc

        content = data.get("choices", [{}])[0].get("message", {}).get("content") or ""
        usage = data.get("usage")
        token_usage = None
        if usage:
            details = usage.get("prompt_tokens_details") or {}
            token_usage = TokenUsage(
                input_tokens=int(usage.get("prompt_tokens") or 0),
                output_tokens=int(usage.get("completion_tokens") or 0),
                cached_input_tokens=int(details.get("cached_tokens") or 0),
            )
        return Completion(
            text=content,
            usage=token_usage,
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
