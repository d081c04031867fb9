import os
import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from orchestrator.errors import ConfigurationError
from state.models import ProviderId
from .base import Completion, ProviderAdapter, ProviderRateLimitError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash"


class GeminiAdapter(ProviderAdapter):
    """Google Gemini adapter over the Generative Language REST API.

    Authentication:
    - Requires GEMINI_API_KEY environment variable (or ``api_key``)
    """

    provider_id = ProviderId.GEMINI

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        model: str = DEFAULT_MODEL,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> None:
        self._api_key = api_key or os.getenv("GEMINI_API_KEY", "").strip()
        if not self._api_key:
            logger.warning("GEMINI_API_KEY is not set; calls will fail until configured.")
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client  # may be injected for tests
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._last_headers: Dict[str, str] = {}

    @property
    def model(self) -> str:
        return self._model

    def _headers(self) -> Dict[str, str]:
        return {
            "x-goog-api-key": self._api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def call(self, prompt: str) -> str:
        return (await self.complete(prompt)).text

    async def complete(self, prompt: str) -> Completion:
        """Run generateContent for ``prompt``.

        - Requests application/json output so the reply parses directly
        - Surfaces 429s as ProviderRateLimitError with headers
        """
        if not self._api_key:
            raise ConfigurationError(self.provider_id, "GEMINI_API_KEY is not configured")

        client = self._get_client()

        generation_config: Dict[str, Any] = {"responseMimeType": "application/json"}
        if self._temperature is not None:
            generation_config["temperature"] = self._temperature
        if self._max_tokens is not None:
            generation_config["maxOutputTokens"] = self._max_tokens

        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }

        try:
            resp = await client.post(
                f"/models/{self._model}:generateContent",
                headers=self._headers(),
                content=json.dumps(payload),
            )
            self._last_headers = dict(resp.headers)
            if resp.status_code == 429:
                raise ProviderRateLimitError("Rate limited by Gemini API", 429, dict(resp.headers))
            resp.raise_for_status()
        except ProviderRateLimitError:
            raise
        except httpx.HTTPStatusError as e:
            body = e.response.text if e.response is not None else str(e)
            logger.error("Gemini API error (%s): %s", e.response.status_code if e.response else "?", body)
            raise
        except Exception as e:
            logger.exception("Unexpected error calling Gemini: %s", e)
            raise

        data = resp.json()
        text = _extract_text(data)
        if not text:
            reason = (data.get("promptFeedback") or {}).get("blockReason")
            raise ValueError(f"No content generated from Gemini{f' (blocked: {reason})' if reason else ''}")

        usage = data.get("usageMetadata") or {}
        total = usage.get("totalTokenCount")
        return Completion(text=text, total_tokens=int(total) if total else None)


def _extract_text(data: Dict[str, Any]) -> str:
    candidates: List[Dict[str, Any]] = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict))
