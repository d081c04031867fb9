import logging
from typing import List, Optional, Sequence

from state.health import HealthMonitor
from state.models import Preference, ProviderId
from state.usage import UsageTracker
from .errors import ProviderUnavailable, QuotaExceeded, RateLimited, Unhealthy

logger = logging.getLogger(__name__)


def priority_order(primary: Optional[ProviderId] = None) -> List[ProviderId]:
    """Providers in fallback order: ``primary`` first, the rest in declaration order."""
    order = list(ProviderId)
    if primary is not None and primary in order:
        order.remove(primary)
        order.insert(0, primary)
    return order


class ProviderSelector:
    """Chooses the provider to try first for a request.

    1. the preferred provider, if it has quota, rate headroom and is usable;
    2. otherwise the first provider in priority order passing the same checks;
    3. otherwise the primary, so the caller gets a concrete call error.
    """

    def __init__(self, priority: Sequence[ProviderId]) -> None:
        if not priority:
            raise ValueError("ProviderSelector requires at least one provider")
        self._priority = list(priority)

    @property
    def priority(self) -> List[ProviderId]:
        return list(self._priority)

    @property
    def primary(self) -> ProviderId:
        return self._priority[0]

    def select(self, preference: Preference, usage: UsageTracker, health: HealthMonitor) -> ProviderId:
        preferred = preference.provider()
        if preferred is not None and preferred in self._priority:
            if self._available(preferred, usage, health):
                return preferred

        for provider in self._priority:
            if provider == preferred:
                continue
            if self._available(provider, usage, health):
                return provider

        logger.warning("No provider passed availability checks; falling through to %s", self.primary.value)
        return self.primary

    def alternate(self, chosen: ProviderId, health: HealthMonitor) -> Optional[ProviderId]:
        """First provider other than ``chosen`` that is not unhealthy."""
        for provider in self._priority:
            if provider != chosen and health.is_usable(provider):
                return provider
        return None

    def _available(self, provider: ProviderId, usage: UsageTracker, health: HealthMonitor) -> bool:
        try:
            self._check(provider, usage, health)
        except ProviderUnavailable as e:
            logger.info("Skipping provider %s: %s", provider.value, e)
            return False
        return True

    @staticmethod
    def _check(provider: ProviderId, usage: UsageTracker, health: HealthMonitor) -> None:
        if not usage.can_use_under_daily_quota(provider):
            raise QuotaExceeded(provider, f"{provider.value} daily token limit exceeded")
        if not usage.can_use_under_rate_limit(provider):
            raise RateLimited(provider, f"{provider.value} rate limit exceeded")
        if not health.is_usable(provider):
            raise Unhealthy(provider, f"{provider.value} is unhealthy")
