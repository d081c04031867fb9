from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProviderId(str, Enum):
    GEMINI = "gemini"
    GROQ = "groq"


class Preference(str, Enum):
    GEMINI = "gemini"
    GROQ = "groq"
    AUTO = "auto"

    def provider(self) -> Optional[ProviderId]:
        if self is Preference.AUTO:
            return None
        return ProviderId(self.value)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class UsageStats(BaseModel):
    requests_today: int = 0
    tokens_today: int = 0
    last_reset: datetime = Field(default_factory=utcnow)


class HealthState(BaseModel):
    status: HealthStatus = HealthStatus.HEALTHY
    error_count: int = 0
    last_checked: datetime = Field(default_factory=utcnow)
    last_response_time_ms: Optional[int] = None


class RequestHistoryEntry(BaseModel):
    provider: ProviderId
    timestamp: datetime
    tokens: int = 0


class ProviderLimits(BaseModel):
    rpm: Optional[int] = None  # requests per minute
    tpd: Optional[int] = None  # tokens per calendar day
