from __future__ import annotations

import time
from typing import Any

import httpx

from mailsight.core.config import settings
from mailsight.core.logging import get_logger, log_event, monotonic_ms

logger = get_logger(__name__)

_RETRYABLE_STATUS: set[int] = {408, 409, 429, 500, 502, 503, 504}


class LLMError(RuntimeError):
    pass


class CompletionClient:
    """Chat model that answers with a single JSON object rendered as text."""

    name = "base"

    def complete_json(
        self,
        *,
        system: str,
        prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> str:  # pragma: no cover
        raise NotImplementedError


class OpenAIChatClient(CompletionClient):
    name = "openai"

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str,
        model: str,
        timeout_seconds: float,
        max_retries: int,
        http: httpx.Client | None = None,
    ) -> None:
        self.model = model
        self._api_key = api_key
        self._url = base_url.rstrip("/") + "/chat/completions"
        self._timeout = timeout_seconds
        self._max_retries = max(0, max_retries)
        self._http = http

    def _retry_delay_s(self, attempt: int) -> float:
        return min(8.0, 0.5 * (2 ** (attempt - 1)))

    def _post(self, payload: dict[str, Any]) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        if self._http is not None:
            return self._http.post(self._url, headers=headers, json=payload, timeout=self._timeout)
        return httpx.post(
            self._url,
            headers=headers,
            json=payload,
            timeout=self._timeout,
            follow_redirects=True,
        )

    def complete_json(
        self,
        *,
        system: str,
        prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        if not self._api_key:
            raise LLMError("OPENAI_API_KEY is not configured")

        payload = {
            "model": self.model,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
        }

        start = time.monotonic()
        attempts = self._max_retries + 1
        resp: httpx.Response | None = None
        for attempt in range(1, attempts + 1):
            try:
                resp = self._post(payload)
                resp.raise_for_status()
                break
            except (httpx.TimeoutException, httpx.TransportError, httpx.HTTPStatusError) as e:
                status_code = e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None
                retryable = status_code is None or status_code in _RETRYABLE_STATUS
                if attempt < attempts and retryable:
                    delay_s = self._retry_delay_s(attempt)
                    log_event(
                        logger,
                        "llm.request.retry",
                        provider=self.name,
                        model=self.model,
                        attempt=attempt,
                        delay_s=delay_s,
                        status_code=status_code,
                        error_type=type(e).__name__,
                    )
                    time.sleep(delay_s)
                    continue
                raise LLMError(f"OpenAI request failed: {e}") from e

        try:
            raw = resp.json()
            choice = raw["choices"][0]
            msg = choice["message"]
        except Exception as e:  # noqa: BLE001
            raise LLMError("Unexpected OpenAI response shape") from e

        if isinstance(msg, dict) and msg.get("refusal"):
            raise LLMError("Model refused the request")
        content = msg.get("content") if isinstance(msg, dict) else None

        usage = raw.get("usage") or {}
        log_event(
            logger,
            "llm.request.finish",
            provider=self.name,
            model=raw.get("model") or self.model,
            finish_reason=choice.get("finish_reason"),
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
            duration_ms=monotonic_ms(start),
        )

        if not isinstance(content, str) or not content.strip():
            raise LLMError("No content in OpenAI response")
        return content


def build_openai_client() -> OpenAIChatClient:
    return OpenAIChatClient(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        model=settings.openai_model,
        timeout_seconds=settings.openai_timeout_seconds,
        max_retries=settings.openai_max_retries,
    )
