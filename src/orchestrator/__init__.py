from .errors import (
    AdapterError,
    ConfigurationError,
    GenerationFailed,
    OrchestratorError,
    ParseError,
    ProviderError,
    QuotaExceeded,
    RateLimited,
)

__all__ = [
    "AdapterError",
    "ConfigurationError",
    "GenerationFailed",
    "OrchestratorError",
    "ParseError",
    "ProviderError",
    "QuotaExceeded",
    "RateLimited",
]
