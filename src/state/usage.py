import os
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import yaml

from .models import ProviderId, ProviderLimits, RequestHistoryEntry, UsageStats, utcnow

logger = logging.getLogger(__name__)

RATE_WINDOW = timedelta(seconds=60)
HISTORY_RETENTION = timedelta(minutes=60)

DEFAULT_LIMITS: Dict[ProviderId, ProviderLimits] = {
    ProviderId.GEMINI: ProviderLimits(rpm=15, tpd=1_000_000),
    ProviderId.GROQ: ProviderLimits(rpm=30, tpd=None),
}


def load_provider_limits(limits_path: Optional[str] = None) -> Dict[ProviderId, ProviderLimits]:
    """Built-in limits overlaid with values from provider_limits.yaml.

    Keys missing from the file keep their defaults; an explicit ``null``
    removes the cap.
    """
    if not limits_path:
        limits_path = os.getenv(
            "PROVIDER_LIMITS_PATH",
            os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "config", "provider_limits.yaml"),
        )
    try:
        with open(limits_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Provider limits file not found at %s; using built-in limits", limits_path)
        raw = {}
    except Exception as e:
        logger.warning("Failed to load provider limits: %s", e)
        raw = {}
    return merge_limits(raw)


def merge_limits(raw: Mapping[str, Any]) -> Dict[ProviderId, ProviderLimits]:
    limits = {pid: lim.model_copy() for pid, lim in DEFAULT_LIMITS.items()}
    for name, values in (raw or {}).items():
        try:
            pid = ProviderId(name)
        except ValueError:
            logger.warning("Ignoring limits for unknown provider %s", name)
            continue
        if not isinstance(values, dict):
            continue
        limits[pid] = limits[pid].model_copy(update={k: values[k] for k in ("rpm", "tpd") if k in values})
    return limits


class UsageTracker:
    """Per-provider daily counters plus a rolling request log for rpm checks.

    Counters live in memory only and restart at zero with the process.
    """

    def __init__(
        self,
        providers: Iterable[ProviderId],
        limits: Optional[Mapping[ProviderId, ProviderLimits]] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._clock = clock
        self._limits: Dict[ProviderId, ProviderLimits] = dict(DEFAULT_LIMITS)
        if limits:
            self._limits.update(limits)
        now = self._clock()
        self._stats: Dict[ProviderId, UsageStats] = {pid: UsageStats(last_reset=now) for pid in providers}
        self._history: List[RequestHistoryEntry] = []

    @property
    def limits(self) -> Dict[ProviderId, ProviderLimits]:
        return {pid: lim.model_copy() for pid, lim in self._limits.items()}

    def reset_if_new_day(self) -> bool:
        now = self._clock()
        if all(s.last_reset.date() == now.date() for s in self._stats.values()):
            return False
        for pid in self._stats:
            self._stats[pid] = UsageStats(last_reset=now)
        self._history = []
        logger.info("Daily usage counters reset for %s", now.date().isoformat())
        return True

    def can_use_under_daily_quota(self, provider: ProviderId) -> bool:
        self.reset_if_new_day()
        tpd = self._limits.get(provider, ProviderLimits()).tpd
        if tpd is None:
            return True
        return self._stats[provider].tokens_today < tpd

    def can_use_under_rate_limit(self, provider: ProviderId) -> bool:
        self.reset_if_new_day()
        rpm = self._limits.get(provider, ProviderLimits()).rpm
        if rpm is None:
            return True
        return self.recent_requests(provider) < rpm

    def recent_requests(self, provider: ProviderId, window: timedelta = RATE_WINDOW) -> int:
        cutoff = self._clock() - window
        return sum(1 for e in self._history if e.provider == provider and e.timestamp > cutoff)

    def record(self, provider: ProviderId, tokens: int) -> None:
        # A call that started before midnight counts toward the day it finished in
        self.reset_if_new_day()
        now = self._clock()
        stats = self._stats[provider]
        stats.requests_today += 1
        stats.tokens_today += int(tokens)
        self._history.append(RequestHistoryEntry(provider=provider, timestamp=now, tokens=int(tokens)))

        cutoff = now - HISTORY_RETENTION
        self._history = [e for e in self._history if e.timestamp > cutoff]

    def snapshot(self) -> Dict[ProviderId, UsageStats]:
        return {pid: stats.model_copy() for pid, stats in self._stats.items()}


def estimate_tokens(text: str) -> int:
    # Very rough heuristic: ~4 characters per token
    return max(1, round(len(text) / 4))
