"""Weekly availability template, day-offs and shipping requirements."""

import datetime as dt
from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from talentbook.utils import parse_hour


def weekday_index(day: date) -> int:
    """Sunday-first weekday index (Sunday=0 ... Saturday=6)."""
    return (day.weekday() + 1) % 7


class TimeRange(BaseModel):
    """Open hours within a day, both ends inclusive as slot start hours."""

    start: int
    end: int

    @field_validator("start", "end", mode="before")
    @classmethod
    def _parse(cls, value: Any) -> int:
        return parse_hour(value)

    @model_validator(mode="after")
    def _ordered(self) -> "TimeRange":
        if self.start > self.end:
            raise ValueError(f"Range start {self.start} is after end {self.end}")
        return self

    def hours(self) -> list[int]:
        return list(range(self.start, self.end + 1))


class WeeklySchedule(BaseModel):
    """
    Recurring availability template keyed by Sunday-first weekday.

    Accepts either ``{weekday: [ranges]}`` or the stored dashboard shape
    ``{"1": {"slots": [{"start": "09:00", "end": "17:00"}]}}``.
    """

    days: dict[int, list[TimeRange]] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _accept_stored_shape(cls, data: Any) -> Any:
        if isinstance(data, dict) and "days" not in data:
            data = {"days": data}
        if isinstance(data, dict) and isinstance(data.get("days"), dict):
            days = {}
            for key, value in data["days"].items():
                if isinstance(value, dict):
                    value = value.get("slots") or []
                days[int(key)] = value
            data = {**data, "days": days}
        return data

    @field_validator("days")
    @classmethod
    def _weekday_keys(cls, value: dict[int, list[TimeRange]]) -> dict[int, list[TimeRange]]:
        bad = [k for k in value if not 0 <= k <= 6]
        if bad:
            raise ValueError(f"Weekday keys must be 0-6, got {bad}")
        return value

    def ranges_for(self, day: date) -> list[TimeRange]:
        return list(self.days.get(weekday_index(day), []))

    def has_hours(self, day: date) -> bool:
        return bool(self.ranges_for(day))


class DayOff(BaseModel):
    """A whole calendar day the streamer is unbookable."""

    streamer_id: int
    date: dt.date


class ShippingInfo(BaseModel):
    """Whether products ship to the streamer before the session, and from where."""

    required: bool = False
    client_city: Optional[str] = None
    streamer_city: Optional[str] = None

    def same_city(self) -> bool:
        if not self.client_city or not self.streamer_city:
            return False
        return self.client_city.strip().lower() == self.streamer_city.strip().lower()
