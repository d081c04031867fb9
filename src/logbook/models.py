from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserProfile(BaseModel):
    full_name: Optional[str] = None
    course: Optional[str] = None
    institution: Optional[str] = None
    company_name: Optional[str] = None
    department: Optional[str] = None
    industry_type: Optional[str] = None


class GenerationRequest(_CamelModel):
    week_number: int = Field(gt=0)
    start_date: str = Field(min_length=1)
    end_date: str = Field(min_length=1)
    activities: str = Field(min_length=1, description="Free-text summary of the week's activities")
    user_profile: Optional[UserProfile] = None


def _none_to_empty(value: Any) -> Any:
    return "" if value is None else value


class DailyActivity(BaseModel):
    day: str
    date: str = ""
    activities: str = ""

    blank_nulls = field_validator("date", "activities", mode="before")(_none_to_empty)


class LogContent(_CamelModel):
    """A generated week as the model returns it.

    Models often send ``null`` or drop keys they have nothing for; those fall
    back to empty values and the gateway fills in the rest.
    """

    week_summary: str = ""
    daily_activities: List[DailyActivity] = Field(default_factory=list)
    skills_developed: List[str] = Field(default_factory=list)
    challenges_faced: str = ""
    learning_outcomes: str = ""

    blank_nulls = field_validator("week_summary", "challenges_faced", "learning_outcomes", mode="before")(
        _none_to_empty
    )

    @field_validator("daily_activities", "skills_developed", mode="before")
    @classmethod
    def null_list(cls, value: Any) -> Any:
        return [] if value is None else value
