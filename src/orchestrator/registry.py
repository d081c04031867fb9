import logging
import os
from typing import Any, Dict, List, Optional

import yaml

from providers.base import ProviderAdapter
from state.models import ProviderId

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Registry for provider adapters.

    - Holds instantiated adapters keyed by ProviderId
    - On init, registers the built-in adapters with settings from
      provider_models.yaml. Adapters are registered even without an API key
      so that selecting them fails with ConfigurationError instead of
      silently disappearing.
    """

    def __init__(self, auto_register: bool = True, models_config: Optional[Dict[str, Any]] = None) -> None:
        self._providers: Dict[ProviderId, ProviderAdapter] = {}
        if auto_register:
            self._auto_register(models_config)

    def register_provider(self, provider: ProviderAdapter) -> None:
        self._providers[provider.provider_id] = provider
        logger.info("Registered provider: %s", provider.name)

    def get_providers(self) -> List[ProviderAdapter]:
        return list(self._providers.values())

    def get_provider(self, provider_id: ProviderId) -> Optional[ProviderAdapter]:
        return self._providers.get(provider_id)

    def adapters(self) -> Dict[ProviderId, ProviderAdapter]:
        return dict(self._providers)

    async def aclose(self) -> None:
        for provider in self._providers.values():
            try:
                await provider.aclose()
            except Exception as e:  # pragma: no cover
                logger.warning("Failed to close provider %s: %s", provider.name, e)

    def _auto_register(self, models_cfg: Optional[Dict[str, Any]] = None) -> None:
        if models_cfg is None:
            models_cfg = load_provider_models()

        from providers.gemini import GeminiAdapter  # local import
        from providers.groq import GroqAdapter  # local import

        self.register_provider(GeminiAdapter(**_adapter_kwargs(models_cfg.get("gemini"))))
        self.register_provider(GroqAdapter(**_adapter_kwargs(models_cfg.get("groq"))))


def load_provider_models(path: Optional[str] = None) -> Dict[str, Any]:
    if not path:
        path = os.getenv(
            "PROVIDER_MODELS_PATH",
            os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "config", "provider_models.yaml"),
        )
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.info("Provider models config not found at %s; using adapter defaults", path)
        return {}
    except Exception as e:
        logger.warning("Failed to load provider models config: %s", e)
        return {}


def _adapter_kwargs(cfg: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not isinstance(cfg, dict):
        return {}
    allowed = ("model", "base_url", "timeout", "temperature", "max_tokens")
    return {k: cfg[k] for k in allowed if cfg.get(k) is not None}
