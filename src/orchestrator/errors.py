from typing import List, Optional, Sequence

from state.models import ProviderId


class OrchestratorError(Exception):
    """Base class for errors raised by the orchestration layer."""


class ProviderUnavailable(OrchestratorError):
    """Internal selector signal: a provider was skipped."""

    def __init__(self, provider: ProviderId, message: str) -> None:
        super().__init__(message)
        self.provider = provider


class QuotaExceeded(ProviderUnavailable):
    pass


class RateLimited(ProviderUnavailable):
    pass


class Unhealthy(ProviderUnavailable):
    pass


class ProviderError(OrchestratorError):
    """A single call against one provider failed.

    ``provider`` may be left unset by collaborators that do not know which
    provider produced the failure; the orchestrator fills it in.
    """

    def __init__(self, provider: Optional[ProviderId], message: str) -> None:
        super().__init__(message)
        self.provider = provider


class ConfigurationError(ProviderError):
    """Provider has no usable credentials or no adapter; no call was made."""


class AdapterError(ProviderError):
    def __init__(self, provider: Optional[ProviderId], message: str, status_code: Optional[int] = None) -> None:
        super().__init__(provider, message)
        self.status_code = status_code


class ParseError(AdapterError):
    """Adapter returned text that is not a valid log entry."""


class GenerationFailed(OrchestratorError):
    """Terminal error for a generate() call, naming the provider that failed last."""

    def __init__(self, provider: ProviderId, cause: ProviderError, attempted: Sequence[ProviderId]) -> None:
        super().__init__(f"{provider.value}: {cause}")
        self.provider = provider
        self.cause = cause
        self.attempted: List[ProviderId] = list(attempted)

    @property
    def status_code(self) -> Optional[int]:
        return getattr(self.cause, "status_code", None)


def extract_status_code(exc: BaseException) -> Optional[int]:
    # Common patterns: custom exc.status_code, httpx.HTTPStatusError.response.status_code
    code = getattr(exc, "status_code", None)
    if isinstance(code, int):
        return code
    resp = getattr(exc, "response", None)
    if resp is not None:
        sc = getattr(resp, "status_code", None)
        if isinstance(sc, int):
            return sc
    return None


def as_provider_error(provider: ProviderId, exc: Exception) -> ProviderError:
    """Normalize any adapter/parser exception into a ProviderError for ``provider``."""
    if isinstance(exc, ProviderError):
        exc.provider = provider
        return exc
    message = str(exc) or exc.__class__.__name__
    return AdapterError(provider, message, status_code=extract_status_code(exc))
