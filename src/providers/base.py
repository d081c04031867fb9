from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

from state.models import ProviderId


@dataclass
class Completion:
    text: str
    total_tokens: Optional[int] = None  # as reported by the backend, when it reports one


class ProviderRateLimitError(Exception):
    def __init__(self, message: str, status_code: int, headers: Dict[str, str]):
        super().__init__(message)
        self.status_code = status_code
        self.headers = headers
        self.retry_after = headers.get("retry-after") or headers.get("Retry-After")

    def __str__(self) -> str:
        return f"ProviderRateLimitError(status_code={self.status_code}, retry_after={self.retry_after})"


class ProviderAdapter(ABC):
    """Abstract base class for provider adapters.

    Implementations should be side-effect free constructors. ``call`` takes a
    fully built prompt and returns the model's raw text, raising on any
    network, auth or quota problem at the backend. Adapters whose backend
    reports token usage should override ``complete`` as well.
    """

    provider_id: ProviderId

    @property
    def name(self) -> str:
        return self.provider_id.value

    @abstractmethod
    async def call(self, prompt: str) -> str:
        """Send ``prompt`` to the backend and return the raw completion text."""

    async def complete(self, prompt: str) -> Completion:
        return Completion(text=await self.call(prompt))

    async def aclose(self) -> None:
        return None
