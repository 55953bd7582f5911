"""Itinerary models - the structured result handed back to clients.

Only the containers are enforced: ``days`` must be a list of objects and each
day's ``activities`` a list of objects. Text fields hold whatever JSON value
the model produced (``null``, numbers, arrays included) and are passed through
unchanged; ``schema_warnings()`` reports the ones that are not strings.
"""

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# "9:00 AM", "14:30", "9am", "9:00 AM - 11:00 AM"
HOUR_TIME_RE = re.compile(r"^\s*\d{1,2}(:\d{2})?\s*([ap]\.?\s?m\.?)?(\b|\s|$)", re.IGNORECASE)


def _not_text(where: str, value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return None
    return f"{where} is {type(value).__name__}, expected text"


class Activity(BaseModel):
    """Single timed activity in a day."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    time: Any = ""
    description: Any = ""


class Day(BaseModel):
    """Single day in the itinerary."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    title: Any = ""
    activities: list[Activity] = Field(default_factory=list)
    insider_tip: Any = Field("", alias="insiderTip")


class ResolvedItinerary(BaseModel):
    """Complete itinerary as produced by the model.

    Unknown keys (e.g. the ``type`` field of chat replies) are preserved so the
    client receives everything the model returned.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    title: Any = ""
    days: list[Day] = Field(default_factory=list)
    booking_suggestions: Any = Field("", alias="bookingSuggestions")

    def schema_warnings(self) -> list[str]:
        """List breaches of the soft itinerary invariants.

        Returns:
            Human-readable warnings; empty when every text field is a string or
            null, every day has activities and every activity carries an
            hour-based time.
        """
        checks: list[str | None] = [
            _not_text("title", self.title),
            _not_text("bookingSuggestions", self.booking_suggestions),
        ]
        for day_index, day in enumerate(self.days, start=1):
            where = f"day {day_index}"
            checks.append(_not_text(f"{where} title", day.title))
            checks.append(_not_text(f"{where} insiderTip", day.insider_tip))
            if not day.activities:
                checks.append(f"{where} has no activities")

            for activity_index, activity in enumerate(day.activities, start=1):
                slot = f"{where} activity {activity_index}"
                checks.append(_not_text(f"{slot} description", activity.description))
                time = activity.time
                if not isinstance(time, str):
                    checks.append(_not_text(f"{slot} time", time) or f"{slot} has no time")
                elif not time.strip():
                    checks.append(f"{slot} has no time")
                elif not HOUR_TIME_RE.match(time):
                    checks.append(f"{slot} time {time!r} is not hour-based")

        return [warning for warning in checks if warning]
