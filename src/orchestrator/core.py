import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional

from logbook.models import GenerationRequest, LogContent
from logbook.parsing import parse_log_content
from logbook.prompt import build_prompt
from providers.base import ProviderAdapter
from state.health import HealthMonitor
from state.models import HealthState, Preference, ProviderId, ProviderLimits, UsageStats, utcnow
from state.usage import UsageTracker, estimate_tokens
from .errors import ConfigurationError, GenerationFailed, ProviderError, as_provider_error
from .selector import ProviderSelector, priority_order

logger = logging.getLogger(__name__)


class Orchestrator:
    """Runs log generation against one provider, with a single fallback.

    Owns the usage tracker and health monitor for every provider. Quota checks
    and usage recording are not atomic across concurrent requests, so two
    requests may both pass a rate check before either is recorded. Pass
    ``serialize=True`` to run requests one at a time when exact limits matter.
    """

    def __init__(
        self,
        adapters: Mapping[ProviderId, ProviderAdapter],
        primary: Optional[ProviderId] = None,
        limits: Optional[Mapping[ProviderId, ProviderLimits]] = None,
        preference: Preference = Preference.AUTO,
        prompt_builder: Callable[[GenerationRequest], str] = build_prompt,
        parser: Callable[[str], LogContent] = parse_log_content,
        clock: Callable[[], datetime] = utcnow,
        serialize: bool = False,
    ) -> None:
        self._adapters: Dict[ProviderId, ProviderAdapter] = dict(adapters)
        self._selector = ProviderSelector(priority_order(primary))
        providers = self._selector.priority
        self._usage = UsageTracker(providers, limits=limits, clock=clock)
        self._health = HealthMonitor(providers, clock=clock)
        self._preference = preference
        self._build_prompt = prompt_builder
        self._parse = parser
        self._serialize = serialize
        # Bound to the serving loop on first use
        self._lock: Optional[asyncio.Lock] = None

    @property
    def primary(self) -> ProviderId:
        return self._selector.primary

    @property
    def priority(self) -> List[ProviderId]:
        return self._selector.priority

    def set_preference(self, preference: Preference) -> None:
        self._preference = Preference(preference)
        logger.info("Provider preference set to %s", self._preference.value)

    def get_preference(self) -> Preference:
        return self._preference

    def get_health_snapshot(self) -> Dict[ProviderId, HealthState]:
        return self._health.snapshot()

    def get_usage_snapshot(self) -> Dict[ProviderId, UsageStats]:
        return self._usage.snapshot()

    def get_limits(self) -> Dict[ProviderId, ProviderLimits]:
        return self._usage.limits

    async def generate(self, request: GenerationRequest) -> LogContent:
        if not self._serialize:
            return await self._generate(request)
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            return await self._generate(request)

    async def _generate(self, request: GenerationRequest) -> LogContent:
        prompt = self._build_prompt(request)
        chosen = self._selector.select(self._preference, self._usage, self._health)
        logger.info("Using provider %s for week %s", chosen.value, request.week_number)

        try:
            return await self._attempt(chosen, prompt)
        except ProviderError as first_error:
            alternate = self._selector.alternate(chosen, self._health)
            if alternate is None:
                logger.error("Provider %s failed and no alternate is usable: %s", chosen.value, first_error)
                raise GenerationFailed(chosen, first_error, attempted=[chosen]) from first_error

            logger.info("Falling back from %s to %s", chosen.value, alternate.value)
            try:
                return await self._attempt(alternate, prompt)
            except ProviderError as fallback_error:
                logger.error("Fallback provider %s also failed: %s", alternate.value, fallback_error)
                raise GenerationFailed(alternate, fallback_error, attempted=[chosen, alternate]) from fallback_error

    async def _attempt(self, provider: ProviderId, prompt: str) -> LogContent:
        """One call against ``provider``. Health is always updated, usage only on success."""
        start = time.perf_counter()
        try:
            adapter = self._adapters.get(provider)
            if adapter is None:
                raise ConfigurationError(provider, f"No adapter registered for {provider.value}")
            completion = await adapter.complete(prompt)
            content = self._parse(completion.text)
        except Exception as e:
            self._health.record_outcome(provider, False, _elapsed_ms(start))
            error = as_provider_error(provider, e)
            logger.warning("Provider %s failed: %s", provider.value, error)
            if error is e:
                raise
            raise error from e

        self._health.record_outcome(provider, True, _elapsed_ms(start))
        if completion.total_tokens:
            tokens = completion.total_tokens
        else:
            # Approximation from the serialized result, not a billed count
            tokens = estimate_tokens(content.model_dump_json(by_alias=True))
        self._usage.record(provider, tokens)
        return content


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)
