import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

import pytest

# Ensure import path includes src
import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from logbook.models import GenerationRequest
from orchestrator.core import Orchestrator
from orchestrator.errors import AdapterError, ConfigurationError, GenerationFailed, ParseError
from providers.base import Completion, ProviderAdapter
from state.models import HealthStatus, Preference, ProviderId, ProviderLimits
from state.usage import estimate_tokens


def _log(summary: str = "A productive week") -> str:
    return json.dumps(
        {
            "weekSummary": summary,
            "dailyActivities": [
                {"day": d, "date": "", "activities": f"Work on {d}"}
                for d in ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")
            ],
            "skillsDeveloped": ["Soldering"],
            "challengesFaced": "Tight deadlines",
            "learningOutcomes": "Better planning",
        }
    )


class HTTPExc(Exception):
    def __init__(self, status_code: int):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class MockAdapter(ProviderAdapter):
    def __init__(self, provider_id: ProviderId, behavior: Optional[List[Any]] = None):
        self.provider_id = provider_id
        self.calls = 0
        self.prompts: List[str] = []
        self.behavior: List[Any] = list(behavior or [])  # sequence of texts or exceptions

    async def call(self, prompt: str) -> str:
        self.calls += 1
        self.prompts.append(prompt)
        act = self.behavior.pop(0) if self.behavior else HTTPExc(500)
        if isinstance(act, Exception):
            raise act
        return act


class UsageReportingAdapter(MockAdapter):
    async def complete(self, prompt: str) -> Completion:
        return Completion(text=await self.call(prompt), total_tokens=321)


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 6, 3, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


REQ = GenerationRequest(week_number=3, start_date="2024-06-03", end_date="2024-06-07", activities="Maintained PLCs")


def _orch(gemini: MockAdapter, groq: MockAdapter, **kwargs) -> Orchestrator:
    kwargs.setdefault("clock", FakeClock())
    return Orchestrator({ProviderId.GEMINI: gemini, ProviderId.GROQ: groq}, **kwargs)


@pytest.mark.asyncio
async def test_healthy_primary_used_without_fallback():
    gemini = MockAdapter(ProviderId.GEMINI, [_log("from gemini")])
    groq = MockAdapter(ProviderId.GROQ, [_log("from groq")])
    orch = _orch(gemini, groq)

    result = await orch.generate(REQ)
    assert result.week_summary == "from gemini"
    assert gemini.calls == 1 and groq.calls == 0
    assert "Week Number: 3" in gemini.prompts[0]

    usage = orch.get_usage_snapshot()
    assert usage[ProviderId.GEMINI].requests_today == 1
    assert usage[ProviderId.GEMINI].tokens_today == estimate_tokens(result.model_dump_json(by_alias=True))
    assert usage[ProviderId.GROQ].requests_today == 0


@pytest.mark.asyncio
async def test_preference_calls_only_preferred_provider():
    gemini = MockAdapter(ProviderId.GEMINI, [_log("from gemini")])
    groq = MockAdapter(ProviderId.GROQ, [_log("from groq")])
    orch = _orch(gemini, groq)
    orch.set_preference(Preference.GROQ)

    result = await orch.generate(REQ)
    assert orch.get_preference() == Preference.GROQ
    assert result.week_summary == "from groq"
    assert groq.calls == 1 and gemini.calls == 0
    assert orch.get_usage_snapshot()[ProviderId.GROQ].requests_today == 1


@pytest.mark.asyncio
async def test_failover_to_secondary_once():
    gemini = MockAdapter(ProviderId.GEMINI, [HTTPExc(503)])
    groq = MockAdapter(ProviderId.GROQ, [_log("from groq")])
    orch = _orch(gemini, groq)

    result = await orch.generate(REQ)
    assert result.week_summary == "from groq"
    assert gemini.calls == 1 and groq.calls == 1

    health = orch.get_health_snapshot()
    assert health[ProviderId.GEMINI].error_count == 1
    assert health[ProviderId.GROQ].error_count == 0
    assert health[ProviderId.GROQ].status == HealthStatus.HEALTHY

    usage = orch.get_usage_snapshot()
    assert usage[ProviderId.GEMINI].requests_today == 0
    assert usage[ProviderId.GROQ].requests_today == 1


@pytest.mark.asyncio
async def test_both_failing_raises_second_error():
    first = HTTPExc(503)
    second = HTTPExc(401)
    gemini = MockAdapter(ProviderId.GEMINI, [first])
    groq = MockAdapter(ProviderId.GROQ, [second])
    orch = _orch(gemini, groq)

    with pytest.raises(GenerationFailed) as exc:
        await orch.generate(REQ)

    err = exc.value
    assert err.provider == ProviderId.GROQ
    assert err.attempted == [ProviderId.GEMINI, ProviderId.GROQ]
    assert isinstance(err.cause, AdapterError)
    assert err.cause.status_code == 401
    assert err.status_code == 401
    assert err.cause.__cause__ is second
    assert gemini.calls == 1 and groq.calls == 1

    health = orch.get_health_snapshot()
    assert health[ProviderId.GEMINI].error_count == 1
    assert health[ProviderId.GROQ].error_count == 1


@pytest.mark.asyncio
async def test_parse_failure_counts_as_failure_and_falls_back():
    gemini = MockAdapter(ProviderId.GEMINI, ["Sure! Here is your log: not json"])
    groq = MockAdapter(ProviderId.GROQ, [_log("from groq")])
    orch = _orch(gemini, groq)

    result = await orch.generate(REQ)
    assert result.week_summary == "from groq"
    health = orch.get_health_snapshot()
    assert health[ProviderId.GEMINI].error_count == 1
    assert orch.get_usage_snapshot()[ProviderId.GEMINI].requests_today == 0


@pytest.mark.asyncio
async def test_parse_error_is_tagged_with_provider():
    gemini = MockAdapter(ProviderId.GEMINI, ['{"dailyActivities": "see attached"}'])
    groq = MockAdapter(ProviderId.GROQ, ["[]"])
    orch = _orch(gemini, groq)

    with pytest.raises(GenerationFailed) as exc:
        await orch.generate(REQ)
    assert isinstance(exc.value.cause, ParseError)
    assert exc.value.cause.provider == ProviderId.GROQ


@pytest.mark.asyncio
async def test_five_failures_make_preferred_provider_skipped():
    gemini = MockAdapter(ProviderId.GEMINI, [HTTPExc(500)] * 5)
    groq = MockAdapter(ProviderId.GROQ, [_log("from groq")] * 6)
    orch = _orch(gemini, groq)
    orch.set_preference(Preference.GEMINI)

    # each request fails on gemini and falls back to groq
    for _ in range(5):
        await orch.generate(REQ)
    assert gemini.calls == 5
    assert orch.get_health_snapshot()[ProviderId.GEMINI].status == HealthStatus.UNHEALTHY

    result = await orch.generate(REQ)
    assert result.week_summary == "from groq"
    assert gemini.calls == 5
    assert groq.calls == 6


@pytest.mark.asyncio
async def test_no_fallback_when_alternate_unhealthy():
    gemini = MockAdapter(ProviderId.GEMINI, [_log()] * 5 + [HTTPExc(502)])
    groq = MockAdapter(ProviderId.GROQ, [HTTPExc(500)] * 5)
    orch = _orch(gemini, groq)

    orch.set_preference(Preference.GROQ)
    for _ in range(5):
        await orch.generate(REQ)  # groq fails, gemini answers
    assert orch.get_health_snapshot()[ProviderId.GROQ].status == HealthStatus.UNHEALTHY

    groq_calls = groq.calls
    with pytest.raises(GenerationFailed) as exc:
        await orch.generate(REQ)
    assert exc.value.provider == ProviderId.GEMINI
    assert exc.value.attempted == [ProviderId.GEMINI]
    assert groq.calls == groq_calls


@pytest.mark.asyncio
async def test_all_unavailable_still_attempts_primary():
    gemini = MockAdapter(ProviderId.GEMINI, [_log("from gemini")])
    groq = MockAdapter(ProviderId.GROQ)
    limits = {
        ProviderId.GEMINI: ProviderLimits(rpm=0, tpd=None),
        ProviderId.GROQ: ProviderLimits(rpm=0, tpd=None),
    }
    orch = _orch(gemini, groq, limits=limits)

    result = await orch.generate(REQ)
    assert result.week_summary == "from gemini"
    assert gemini.calls == 1 and groq.calls == 0


@pytest.mark.asyncio
async def test_rate_limit_moves_traffic_to_secondary():
    gemini = MockAdapter(ProviderId.GEMINI, [_log("g1"), _log("g2")])
    groq = MockAdapter(ProviderId.GROQ, [_log("q1")])
    clock = FakeClock()
    orch = _orch(gemini, groq, clock=clock, limits={ProviderId.GEMINI: ProviderLimits(rpm=1, tpd=None)})

    assert (await orch.generate(REQ)).week_summary == "g1"
    assert (await orch.generate(REQ)).week_summary == "q1"

    clock.now += timedelta(seconds=61)
    assert (await orch.generate(REQ)).week_summary == "g2"


@pytest.mark.asyncio
async def test_missing_adapter_is_configuration_error():
    groq = MockAdapter(ProviderId.GROQ, [_log("from groq")])
    orch = Orchestrator({ProviderId.GROQ: groq}, clock=FakeClock())

    result = await orch.generate(REQ)
    assert result.week_summary == "from groq"
    assert orch.get_health_snapshot()[ProviderId.GEMINI].error_count == 1


@pytest.mark.asyncio
async def test_configuration_error_surfaces_with_provider():
    gemini = MockAdapter(ProviderId.GEMINI, [ConfigurationError(ProviderId.GEMINI, "GEMINI_API_KEY is not configured")])
    groq = MockAdapter(ProviderId.GROQ, [ConfigurationError(ProviderId.GROQ, "GROQ_API_KEY is not configured")])
    orch = _orch(gemini, groq)

    with pytest.raises(GenerationFailed) as exc:
        await orch.generate(REQ)
    assert isinstance(exc.value.cause, ConfigurationError)
    assert "GROQ_API_KEY" in str(exc.value)


@pytest.mark.asyncio
async def test_reported_token_count_preferred_over_estimate():
    gemini = UsageReportingAdapter(ProviderId.GEMINI, [_log()])
    groq = MockAdapter(ProviderId.GROQ)
    orch = _orch(gemini, groq)

    await orch.generate(REQ)
    assert orch.get_usage_snapshot()[ProviderId.GEMINI].tokens_today == 321


@pytest.mark.asyncio
async def test_configured_primary_goes_first():
    gemini = MockAdapter(ProviderId.GEMINI, [_log("from gemini")])
    groq = MockAdapter(ProviderId.GROQ, [_log("from groq")])
    orch = _orch(gemini, groq, primary=ProviderId.GROQ)

    assert orch.primary == ProviderId.GROQ
    assert (await orch.generate(REQ)).week_summary == "from groq"


@pytest.mark.asyncio
async def test_health_snapshot_idempotent_and_detached():
    gemini = MockAdapter(ProviderId.GEMINI, [HTTPExc(500)])
    groq = MockAdapter(ProviderId.GROQ, [_log()])
    orch = _orch(gemini, groq)
    await orch.generate(REQ)

    first = orch.get_health_snapshot()
    second = orch.get_health_snapshot()
    assert first == second

    first[ProviderId.GEMINI].error_count = 42
    assert orch.get_health_snapshot()[ProviderId.GEMINI].error_count == 1


@pytest.mark.asyncio
async def test_serialized_mode_enforces_rate_limit_under_concurrency():
    class SlowAdapter(MockAdapter):
        async def call(self, prompt: str) -> str:
            await asyncio.sleep(0)
            return await super().call(prompt)

    gemini = SlowAdapter(ProviderId.GEMINI, [_log("g")] * 3)
    groq = SlowAdapter(ProviderId.GROQ, [_log("q")] * 3)
    orch = _orch(gemini, groq, serialize=True, limits={ProviderId.GEMINI: ProviderLimits(rpm=1, tpd=None)})

    results = await asyncio.gather(*(orch.generate(REQ) for _ in range(3)))
    assert [r.week_summary for r in results].count("g") == 1
    assert gemini.calls == 1 and groq.calls == 2


def test_serialized_orchestrator_built_outside_event_loop():
    gemini = MockAdapter(ProviderId.GEMINI, [_log("g")] * 2)
    groq = MockAdapter(ProviderId.GROQ, [_log("q")] * 2)
    orch = _orch(gemini, groq, serialize=True)

    async def run_many():
        return await asyncio.gather(*(orch.generate(REQ) for _ in range(2)))

    results = asyncio.run(run_many())
    assert [r.week_summary for r in results] == ["g", "g"]
    assert gemini.calls == 2 and groq.calls == 0


@pytest.mark.asyncio
async def test_reply_with_null_fields_is_not_a_failure():
    reply = json.dumps({"weekSummary": "from gemini", "dailyActivities": None, "challengesFaced": None})
    gemini = MockAdapter(ProviderId.GEMINI, [reply])
    groq = MockAdapter(ProviderId.GROQ, [_log("from groq")])
    orch = _orch(gemini, groq)

    result = await orch.generate(REQ)
    assert result.week_summary == "from gemini"
    assert result.daily_activities == []
    assert groq.calls == 0
    assert orch.get_health_snapshot()[ProviderId.GEMINI].error_count == 0
