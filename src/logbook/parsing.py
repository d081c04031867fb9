import json
import logging
import re
from datetime import date, timedelta
from typing import List

from pydantic import ValidationError

from logbook.models import DailyActivity, GenerationRequest, LogContent
from orchestrator.errors import ParseError

logger = logging.getLogger(__name__)

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]

_DEFAULT_ACTIVITIES = [
    "I worked on assigned tasks and learning objectives",
    "I continued with my assigned activities",
    "I engaged in practical work and skill development",
    "I applied my knowledge to real-world scenarios",
    "I completed weekly tasks and documented my progress",
]

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def parse_log_content(text: str) -> LogContent:
    """Parse a provider reply into LogContent.

    Markdown fences around the JSON are tolerated, as are missing or null
    fields. Anything that is not a JSON object of the expected shape raises
    ParseError.
    """
    if not text or not text.strip():
        raise ParseError(None, "Provider returned an empty response")

    cleaned = strip_code_fences(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error("Failed to parse provider response as JSON: %s", e)
        logger.debug("Unparseable content: %s", text)
        raise ParseError(None, f"Response is not valid JSON: {e.msg}") from e

    if not isinstance(data, dict):
        raise ParseError(None, f"Expected a JSON object, got {type(data).__name__}")

    try:
        return LogContent.model_validate(data)
    except ValidationError as e:
        logger.error("Provider response does not match the log shape: %s", e)
        raise ParseError(None, f"Response does not match the log shape ({e.error_count()} errors)") from e


def shape_log_content(content: LogContent, request: GenerationRequest) -> LogContent:
    """Fill the Monday-Friday scaffold and empty defaults the frontend expects."""
    days = _ensure_five_days(content.daily_activities, request.start_date)
    summary = content.week_summary.strip() or f"Week {request.week_number} focused on {request.activities.lower()}"
    return content.model_copy(update={"week_summary": summary, "daily_activities": days})


def _ensure_five_days(activities: List[DailyActivity], start_date: str) -> List[DailyActivity]:
    dates = _weekday_dates(start_date)
    by_day = {a.day.strip().lower(): a for a in activities}

    shaped: List[DailyActivity] = []
    for i, day in enumerate(WEEKDAYS):
        existing = by_day.get(day.lower())
        if existing is None and len(activities) == len(WEEKDAYS) and not by_day.keys() & {d.lower() for d in WEEKDAYS}:
            # Five entries with non-weekday labels (e.g. "Day 1"); keep their order
            existing = activities[i]
        if existing is not None:
            activities_text = existing.activities or _DEFAULT_ACTIVITIES[i]
            shaped.append(DailyActivity(day=day, date=existing.date or dates[i], activities=activities_text))
        else:
            shaped.append(DailyActivity(day=day, date=dates[i], activities=_DEFAULT_ACTIVITIES[i]))
    return shaped


def _weekday_dates(start_date: str) -> List[str]:
    try:
        start = date.fromisoformat(start_date)
    except ValueError:
        return [""] * len(WEEKDAYS)
    # Align to the Monday of the week containing start_date
    monday = start - timedelta(days=start.weekday())
    return [(monday + timedelta(days=i)).isoformat() for i in range(len(WEEKDAYS))]
