"""
Exceptions raised by the TeamPulse store.
"""


class TeamPulseError(Exception):
    """Base class for TeamPulse errors."""


class TeamNotFoundError(TeamPulseError):
    def __init__(self, team_id: str) -> None:
        super().__init__(f"Team not found: {team_id}")
        self.team_id = team_id


class MemberNotFoundError(TeamPulseError):
    def __init__(self, member_id: str) -> None:
        super().__init__(f"Member not found: {member_id}")
        self.member_id = member_id


class InvalidTeamNameError(TeamPulseError):
    """Raised when a team name is blank."""


class DuplicateMemberError(TeamPulseError):
    """Raised when an email is already used by another member of the team."""


class TeamFullError(TeamPulseError):
    """Raised when adding a member would exceed the team size limit."""
