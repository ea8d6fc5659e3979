"""OpenAI-compatible chat completions client used as the congress text generator."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .config import Settings, settings
from .errors import GenerationError

logger = logging.getLogger(__name__)


def _extract_text(payload: Any) -> str:
    if not isinstance(payload, dict):
        return ""
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    return content.strip() if isinstance(content, str) else ""


class ChatCompletionsClient:
    """Async client for OpenAI-compatible `/chat/completions` servers.

    Instances are callable with the `Generator` signature, so they can be
    handed straight to the orchestrator.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        model_aliases: dict[str, str] | None = None,
        timeout_seconds: float = 120.0,
        config: Settings = settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or config.llm_base_url).rstrip("/")
        self._aliases = dict(config.model_aliases if model_aliases is None else model_aliases)
        key = api_key if api_key is not None else config.llm_api_key
        headers = {"Authorization": f"Bearer {key}"} if key else {}
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    def resolve_model(self, model_id: str) -> str:
        return self._aliases.get(model_id, model_id)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ChatCompletionsClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def __call__(
        self,
        model_id: str,
        system_prompt: str,
        user_prompt: str,
        params: dict[str, Any],
    ) -> str:
        body: dict[str, Any] = {
            "model": self.resolve_model(model_id),
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            **params,
        }
        try:
            resp = await self._client.post("/chat/completions", json=body)
            resp.raise_for_status()
        except httpx.RequestError as e:
            raise GenerationError(f"Generation request failed ({model_id}): {e}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise GenerationError(
                f"Generation API error {status} ({model_id}): {e.response.text}"
            ) from e

        text = _extract_text(resp.json())
        if not text:
            raise GenerationError(f"Empty completion from {model_id}")
        logger.debug("Generated %d chars with %s", len(text), model_id)
        return text
