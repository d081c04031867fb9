import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional

from .models import HealthState, HealthStatus, ProviderId, utcnow

logger = logging.getLogger(__name__)

DEGRADED_THRESHOLD = 3
UNHEALTHY_THRESHOLD = 5


def next_status(current: HealthStatus, error_count: int, success: bool) -> HealthStatus:
    """Status after an outcome, given the already-updated error count.

    Successes forgive one error at a time; failures escalate. Counts that fall
    between thresholds leave the current status in place.
    """
    if success:
        if error_count == 0:
            return HealthStatus.HEALTHY
        if error_count < DEGRADED_THRESHOLD:
            return HealthStatus.DEGRADED
        return current
    if error_count >= UNHEALTHY_THRESHOLD:
        return HealthStatus.UNHEALTHY
    if error_count >= DEGRADED_THRESHOLD:
        return HealthStatus.DEGRADED
    return current


class HealthMonitor:
    def __init__(self, providers: Iterable[ProviderId], clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        now = self._clock()
        self._states: Dict[ProviderId, HealthState] = {pid: HealthState(last_checked=now) for pid in providers}

    def record_outcome(self, provider: ProviderId, success: bool, response_time_ms: Optional[int] = None) -> HealthState:
        state = self._states[provider]
        previous = state.status

        if success:
            state.error_count = max(0, state.error_count - 1)
        else:
            state.error_count += 1
        state.status = next_status(previous, state.error_count, success)
        state.last_checked = self._clock()
        state.last_response_time_ms = int(response_time_ms) if response_time_ms is not None else None

        if state.status != previous:
            logger.warning(
                "Provider %s health %s -> %s (errors=%d)",
                provider.value,
                previous.value,
                state.status.value,
                state.error_count,
            )
        return state.model_copy()

    def is_usable(self, provider: ProviderId) -> bool:
        return self._states[provider].status != HealthStatus.UNHEALTHY

    def get(self, provider: ProviderId) -> HealthState:
        return self._states[provider].model_copy()

    def snapshot(self) -> Dict[ProviderId, HealthState]:
        return {pid: state.model_copy() for pid, state in self._states.items()}
