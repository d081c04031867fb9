from typing import Dict, Optional

from pydantic import BaseModel

from logbook.models import DailyActivity, GenerationRequest, LogContent, UserProfile
from state.models import HealthState, Preference, ProviderLimits, UsageStats

__all__ = [
    "DailyActivity",
    "ErrorResponse",
    "GenerateResponse",
    "GenerationRequest",
    "LogContent",
    "PreferenceBody",
    "ProviderState",
    "RouterStateResponse",
    "UserProfile",
]


class GenerateResponse(BaseModel):
    success: bool = True
    data: LogContent


class ErrorResponse(BaseModel):
    error: str
    provider: Optional[str] = None
    details: Optional[str] = None


class PreferenceBody(BaseModel):
    preference: Preference


class ProviderState(BaseModel):
    health: HealthState
    usage: UsageStats
    limits: ProviderLimits


class RouterStateResponse(BaseModel):
    preference: Preference
    primary: str
    providers: Dict[str, ProviderState]
