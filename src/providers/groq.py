import logging
from typing import Optional

import httpx

from state.models import ProviderId
from .base_openai import BaseOpenAIAdapter

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "llama-3.1-8b-instant"


class GroqAdapter(BaseOpenAIAdapter):
    """Groq provider adapter (OpenAI-compatible)."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "https://api.groq.com/openai/v1",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        model: str = DEFAULT_MODEL,
        temperature: Optional[float] = 0.5,
        max_tokens: Optional[int] = 1200,
    ) -> None:
        super().__init__(
            provider_id=ProviderId.GROQ,
            api_key_env="GROQ_API_KEY",
            base_url=base_url,
            model=model,
            client=client,
            timeout=timeout,
            api_key=api_key,
            temperature=temperature,
            max_tokens=max_tokens,
        )
