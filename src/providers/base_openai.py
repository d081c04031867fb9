import json
import logging
import os
from typing import Any, Dict, List, Optional

import httpx

from orchestrator.errors import ConfigurationError
from state.models import ProviderId
from .base import Completion, ProviderAdapter, ProviderRateLimitError

logger = logging.getLogger(__name__)


class BaseOpenAIAdapter(ProviderAdapter):
    """Base adapter for OpenAI-compatible chat completions providers.

    Subclasses provide the provider id, base_url, api_key_env and default model.
    The prompt is sent as a single user message with JSON mode enabled.
    """

    def __init__(
        self,
        provider_id: ProviderId,
        api_key_env: str,
        base_url: str,
        model: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        api_key: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = True,
    ) -> None:
        self.provider_id = provider_id
        self._api_key_env = api_key_env
        self._api_key = api_key or os.getenv(api_key_env, "").strip()
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout = timeout
        self._client = client
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._json_mode = json_mode
        self._last_headers: Dict[str, str] = {}
        if not self._api_key:
            logger.warning("%s not set; calls will fail until configured.", api_key_env)

    @property
    def model(self) -> str:
        return self._model

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
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
        if not self._api_key:
            raise ConfigurationError(self.provider_id, f"{self._api_key_env} is not configured")

        client = self._get_client()
        messages: List[Dict[str, Any]] = [{"role": "user", "content": prompt}]
        payload: Dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "stream": False,
        }
        if self._json_mode:
            payload["response_format"] = {"type": "json_object"}
        if self._temperature is not None:
            payload["temperature"] = self._temperature
        if self._max_tokens is not None:
            payload["max_tokens"] = self._max_tokens

        try:
            resp = await client.post("/chat/completions", headers=self._headers(), content=json.dumps(payload))
            self._last_headers = dict(resp.headers)
            if resp.status_code == 429:
                raise ProviderRateLimitError(f"Rate limited by {self.name}", resp.status_code, dict(resp.headers))
            resp.raise_for_status()
        except ProviderRateLimitError:
            raise
        except httpx.HTTPStatusError as e:
            logger.error("%s API error (%s): %s", self.name, e.response.status_code if e.response else "?", e)
            raise
        except Exception as e:
            logger.exception("Unexpected error calling %s chat: %s", self.name, e)
            raise

        data = resp.json()
        choices = data.get("choices") or []
        content = (choices[0].get("message") or {}).get("content") if choices else None
        if not content:
            raise ValueError(f"No content generated from {self.name}")

        usage = data.get("usage") or {}
        total = _to_int(usage.get("total_tokens"))
        return Completion(text=content, total_tokens=total or None)


def _to_int(value: Optional[Any]) -> Optional[int]:
    try:
        if value is None:
            return None
        return int(value)
    except Exception:
        return None
