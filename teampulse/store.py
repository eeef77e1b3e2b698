"""
Team storage implementation for the TeamPulse service.

This module provides an in-memory store for teams, members and application
settings. Every write records the affected team's sentiment counts as the
snapshot for the current day, which is where trend data comes from. Writers
signal subscribers through a condition variable so dashboards can stream
updates.
"""

import asyncio
import logging
import uuid
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone

from .errors import (
    DuplicateMemberError,
    InvalidTeamNameError,
    MemberNotFoundError,
    TeamFullError,
    TeamNotFoundError,
)
from .models import (
    AppSettings,
    AppSettingsUpdate,
    Member,
    Sentiment,
    SentimentCounts,
    SentimentDataPoint,
    Team,
)
from .sentiment import count_sentiments

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TeamStore:
    """
    In-memory team storage with change streaming.

    All reads and writes go through a single asyncio condition, so the store
    is safe to share between concurrent request handlers. Returned models are
    copies; mutating them does not change the store.
    """

    def __init__(
        self,
        settings: AppSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._teams: dict[str, Team] = {}
        self._members: dict[str, Member] = {}
        self._snapshots: dict[tuple[str, date], SentimentCounts] = {}
        self._settings = settings or AppSettings()
        self._clock = clock
        self._condition = asyncio.Condition()
        self._update_counter = 0

    # MARK: - Teams

    async def create_team(self, name: str) -> Team:
        """
        Create a new, empty team.

        Args:
            name: Display name; surrounding whitespace is stripped

        Returns:
            The created Team

        Raises:
            InvalidTeamNameError: If the name is blank
        """
        name = name.strip()
        if not name:
            raise InvalidTeamNameError("Team name must not be blank")

        async with self._condition:
            team = Team(id=uuid.uuid4().hex, name=name, created_at=self._clock())
            self._teams[team.id] = team
            self._notify()

        logger.info("Created team %s (%s)", team.name, team.id)
        return team.model_copy()

    async def list_teams(self) -> list[Team]:
        """Return all teams, oldest first."""
        async with self._condition:
            teams = sorted(self._teams.values(), key=lambda team: team.created_at)
            return [team.model_copy() for team in teams]

    async def get_team(self, team_id: str) -> Team:
        async with self._condition:
            return self._require_team(team_id).model_copy()

    async def delete_team(self, team_id: str) -> None:
        """Delete a team together with its members and history."""
        async with self._condition:
            self._require_team(team_id)
            del self._teams[team_id]
            self._members = {
                member_id: member
                for member_id, member in self._members.items()
                if member.team_id != team_id
            }
            self._snapshots = {
                key: counts
                for key, counts in self._snapshots.items()
                if key[0] != team_id
            }
            self._notify()

        logger.info("Deleted team %s", team_id)

    # MARK: - Members

    async def add_member(
        self,
        team_id: str,
        name: str,
        email: str,
        sentiment: Sentiment = Sentiment.NEUTRAL,
    ) -> Member:
        """
        Add a member to a team.

        Raises:
            TeamNotFoundError: If the team does not exist
            DuplicateMemberError: If the email is already used in the team
            TeamFullError: If the team has reached the size limit
        """
        async with self._condition:
            self._require_team(team_id)
            members = self._team_members(team_id)

            if any(m.email.lower() == email.lower() for m in members):
                raise DuplicateMemberError(f"{email} is already a member of this team")
            if len(members) >= self._settings.team_size_limit:
                raise TeamFullError(
                    f"Team has reached the limit of "
                    f"{self._settings.team_size_limit} members"
                )

            now = self._clock()
            member = Member(
                id=uuid.uuid4().hex,
                team_id=team_id,
                name=name,
                email=email,
                sentiment=sentiment,
                created_at=now,
                updated_at=now,
            )
            self._members[member.id] = member
            self._record_snapshot(team_id)
            self._notify()

        logger.info("Added member %s to team %s", member.id, team_id)
        return member.model_copy()

    async def list_members(self, team_id: str) -> list[Member]:
        """Return the members of a team, oldest first."""
        async with self._condition:
            self._require_team(team_id)
            return [member.model_copy() for member in self._team_members(team_id)]

    async def update_member(
        self,
        member_id: str,
        name: str | None = None,
        email: str | None = None,
        sentiment: Sentiment | None = None,
    ) -> Member:
        """
        Update a member; arguments left as None keep their current value.

        Raises:
            MemberNotFoundError: If the member does not exist
            DuplicateMemberError: If the new email clashes with a teammate
        """
        async with self._condition:
            member = self._require_member(member_id)

            if email is not None and any(
                m.email.lower() == email.lower() and m.id != member_id
                for m in self._team_members(member.team_id)
            ):
                raise DuplicateMemberError(f"{email} is already a member of this team")

            changes: dict = {"updated_at": self._clock()}
            if name is not None:
                changes["name"] = name
            if email is not None:
                changes["email"] = email
            if sentiment is not None:
                changes["sentiment"] = sentiment

            updated = member.model_copy(update=changes)
            self._members[member_id] = updated
            self._record_snapshot(updated.team_id)
            self._notify()

        logger.info("Updated member %s", member_id)
        return updated.model_copy()

    async def delete_member(self, member_id: str) -> None:
        async with self._condition:
            member = self._require_member(member_id)
            del self._members[member_id]
            self._record_snapshot(member.team_id)
            self._notify()

        logger.info("Removed member %s from team %s", member_id, member.team_id)

    async def all_members(self) -> list[Member]:
        async with self._condition:
            return [member.model_copy() for member in self._members.values()]

    # MARK: - Settings

    async def read_settings(self) -> AppSettings:
        async with self._condition:
            return self._settings.model_copy()

    async def update_settings(self, update: AppSettingsUpdate) -> AppSettings:
        """Apply the fields set in ``update`` and return the new settings."""
        changes = update.model_dump(exclude_none=True)
        async with self._condition:
            self._settings = self._settings.model_copy(update=changes)
            self._prune_snapshots()
            self._notify()
            settings = self._settings.model_copy()

        logger.info("Updated settings: %s", sorted(changes))
        return settings

    # MARK: - History

    async def data_points(self, days: int | None = None) -> list[SentimentDataPoint]:
        """
        Return recorded daily snapshots as data points.

        Args:
            days: Only include the last ``days`` days, today included

        Returns:
            Data points ordered by date, then team name
        """
        async with self._condition:
            self._prune_snapshots()
            start = None
            if days is not None:
                start = self._today() - timedelta(days=days - 1)

            points = [
                SentimentDataPoint(
                    date=day,
                    happy=counts.happy,
                    neutral=counts.neutral,
                    sad=counts.sad,
                    team_id=team_id,
                    team_name=self._teams[team_id].name,
                )
                for (team_id, day), counts in self._snapshots.items()
                if start is None or day >= start
            ]

        points.sort(key=lambda point: (point.date, point.team_name or ""))
        return points

    @asynccontextmanager
    async def stream(self) -> AsyncGenerator[AsyncGenerator[int, None], None]:
        """
        Stream change notifications to a subscriber.

        The yielded async generator produces the store's change counter once
        immediately and again after every write.

        Yields:
            An async generator of change counters
        """

        async def change_generator() -> AsyncGenerator[int, None]:
            async with self._condition:
                last_seen_counter = self._update_counter
            yield last_seen_counter

            try:
                while True:
                    async with self._condition:
                        await self._condition.wait_for(
                            lambda: self._update_counter > last_seen_counter
                        )
                        last_seen_counter = self._update_counter
                    yield last_seen_counter

            except (asyncio.CancelledError, GeneratorExit):
                return

        yield change_generator()

    # MARK: - Private Helpers

    def _today(self) -> date:
        return self._clock().date()

    def _notify(self) -> None:
        self._update_counter += 1
        self._condition.notify_all()

    def _require_team(self, team_id: str) -> Team:
        try:
            return self._teams[team_id]
        except KeyError:
            raise TeamNotFoundError(team_id) from None

    def _require_member(self, member_id: str) -> Member:
        try:
            return self._members[member_id]
        except KeyError:
            raise MemberNotFoundError(member_id) from None

    def _team_members(self, team_id: str) -> list[Member]:
        members = [m for m in self._members.values() if m.team_id == team_id]
        members.sort(key=lambda member: member.created_at)
        return members

    def _record_snapshot(self, team_id: str) -> None:
        """Store the team's current counts as today's snapshot."""
        counts = count_sentiments(m.sentiment for m in self._team_members(team_id))
        self._snapshots[(team_id, self._today())] = counts
        self._prune_snapshots()

    def _retention_cutoff(self) -> date:
        return self._today() - timedelta(days=self._settings.data_retention - 1)

    def _prune_snapshots(self) -> None:
        cutoff = self._retention_cutoff()
        expired = [key for key in self._snapshots if key[1] < cutoff]
        for key in expired:
            del self._snapshots[key]
        if expired:
            logger.debug("Pruned %d expired snapshots", len(expired))
