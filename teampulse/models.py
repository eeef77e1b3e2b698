"""
Shared data models for the TeamPulse service.

This module defines the core domain models used across multiple layers
of the application (aggregation, storage, CLI, API). Models serialise with
camelCase aliases, which is the shape the dashboard front-end consumes.
"""

import datetime as dt
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Sentiment(str, Enum):
    """The three sentiment values a member can report."""

    HAPPY = "HAPPY"
    NEUTRAL = "NEUTRAL"
    SAD = "SAD"

    @classmethod
    def _missing_(cls, value: object) -> "Sentiment | None":
        # Accept "happy" / "Happy" at the input boundary
        if isinstance(value, str):
            normalized = value.strip().upper()
            if normalized in cls.__members__:
                return cls[normalized]
        return None


def _coerce_sentiment(value: object) -> object:
    if isinstance(value, str):
        return Sentiment(value)
    return value


SentimentTrend = Literal["up", "down", "stable"]
SurveyFrequency = Literal["daily", "weekly", "monthly", "disabled"]


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# MARK: - Aggregation


class SentimentCounts(CamelModel):
    """Number of members in each sentiment category."""

    happy: int = Field(0, ge=0)
    neutral: int = Field(0, ge=0)
    sad: int = Field(0, ge=0)

    @property
    def total(self) -> int:
        return self.happy + self.neutral + self.sad


class SentimentDataPoint(SentimentCounts):
    """Sentiment counts observed on a single date."""

    date: dt.date
    team_id: str | None = None
    team_name: str | None = None


class SentimentClassification(CamelModel):
    """Qualitative band for a weighted average score."""

    label: str
    color: str
    score: float


class TrendResult(CamelModel):
    """Direction and size of the change between two halves of a series."""

    sentiment_trend: SentimentTrend = "stable"
    weekly_change: float = 0


class SentimentStats(CamelModel):
    """Dashboard statistics derived from a set of data points."""

    total_data_points: int
    avg_sentiment: float
    total_responses: int
    total_teams: int
    active_members: int
    sentiment_trend: SentimentTrend
    weekly_change: float
    sentiment_data: SentimentClassification


class TrendRow(CamelModel):
    """Average score per team on one date."""

    date: dt.date
    scores: dict[str, float] = Field(default_factory=dict)


# MARK: - Teams


class Member(CamelModel):
    """A member of a team and their current sentiment."""

    id: str
    team_id: str
    name: str
    email: str
    sentiment: Sentiment = Sentiment.NEUTRAL
    created_at: dt.datetime
    updated_at: dt.datetime


class Team(CamelModel):
    """A team of members."""

    id: str
    name: str
    created_at: dt.datetime


class TeamSummary(Team):
    """A team with its derived sentiment breakdown."""

    member_count: int
    counts: SentimentCounts
    sentiment_data: SentimentClassification


class TeamDetail(TeamSummary):
    """A team summary together with its members."""

    members: list[Member]


# MARK: - Settings


class AppSettings(CamelModel):
    """Admin-editable application settings."""

    notification_enabled: bool = Field(
        True, description="Send alerts when team sentiment changes significantly"
    )
    auto_survey_frequency: SurveyFrequency = Field(
        "weekly", description="How often members are surveyed"
    )
    team_size_limit: int = Field(50, ge=1, description="Maximum members per team")
    data_retention: int = Field(
        365, ge=1, description="Days of sentiment history to keep"
    )


class AppSettingsUpdate(CamelModel):
    """Partial update payload for application settings."""

    notification_enabled: bool | None = None
    auto_survey_frequency: SurveyFrequency | None = None
    team_size_limit: int | None = Field(None, ge=1)
    data_retention: int | None = Field(None, ge=1)


# MARK: - Requests


class TeamCreate(CamelModel):
    """Payload for creating a team."""

    name: str = Field(..., description="Display name of the team")


class MemberCreate(CamelModel):
    """Payload for adding a member to a team."""

    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    sentiment: Sentiment = Sentiment.NEUTRAL

    @field_validator("name", "email")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("sentiment", mode="before")
    @classmethod
    def _normalize_sentiment(cls, value: object) -> object:
        return _coerce_sentiment(value)


class MemberUpdate(CamelModel):
    """Payload for updating a member; omitted fields are left unchanged."""

    name: str | None = None
    email: str | None = None
    sentiment: Sentiment | None = None

    @field_validator("name", "email")
    @classmethod
    def _strip(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("sentiment", mode="before")
    @classmethod
    def _normalize_sentiment(cls, value: object) -> object:
        return _coerce_sentiment(value)


class LoginRequest(BaseModel):
    """Credentials posted to the login endpoint."""

    email: str = ""
    password: str = ""


class SessionUser(BaseModel):
    """The user attached to a session."""

    email: str


class AuthResult(BaseModel):
    """Outcome of looking up a session token."""

    authenticated: bool
    user: SessionUser | None = None
