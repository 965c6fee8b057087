"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to Mattermost payloads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


@dataclass(frozen=True)
class BotProfile:
    """Profile fields the bot account should carry."""

    username: str
    first_name: str
    last_name: str


@dataclass(frozen=True)
class Identity:
    """A user account, most importantly the bot's own."""

    id: str
    username: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""

    def differs_from(self, profile: BotProfile) -> bool:
        return (
            self.username != profile.username
            or self.first_name != profile.first_name
            or self.last_name != profile.last_name
        )


@dataclass(frozen=True)
class Team:
    id: str
    name: str
    display_name: str = ""


@dataclass(frozen=True)
class Channel:
    id: str
    name: str
    team_id: str
    display_name: str = ""
    type: str = "O"

    @property
    def is_public(self) -> bool:
        return self.type == "O"


@dataclass(frozen=True)
class Membership:
    """The (user, channel, role) association the enrollment engine creates."""

    user_id: str
    channel_id: str
    role: str = "member"


@dataclass(frozen=True)
class BotSession:
    """Everything resolved once at startup and read-only afterwards."""

    identity: Identity
    home_team: Team
    log_channel: Optional[Channel]
    monitored_channels: tuple[Channel, ...] = ()

    @property
    def monitored_channel_ids(self) -> frozenset[str]:
        return frozenset(channel.id for channel in self.monitored_channels)


# Events


@dataclass(frozen=True)
class PostCreated:
    post_id: str
    channel_id: str
    author_id: str
    body: str
    post_type: str = ""
    root_id: str = ""
    props: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


@dataclass(frozen=True)
class UserJoined:
    """A user joined a channel, or the server when channel_id is None."""

    user_id: str
    channel_id: Optional[str] = None
    team_id: Optional[str] = None


@dataclass(frozen=True)
class OtherEvent:
    name: str


Event = Union[PostCreated, UserJoined, OtherEvent]


# Outcomes


class StepStatus(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class StepOutcome:
    """Result of a single remote step during enrollment."""

    action: str
    target: str
    status: StepStatus
    detail: str = ""


@dataclass
class EnrollmentReport:
    """Outcomes collected while enrolling one user."""

    user_id: Optional[str]
    username: Optional[str] = None
    outcomes: list[StepOutcome] = field(default_factory=list)

    def record(self, action: str, target: str, status: StepStatus, detail: str = "") -> StepOutcome:
        outcome = StepOutcome(action=action, target=target, status=status, detail=detail)
        self.outcomes.append(outcome)
        return outcome

    @property
    def failures(self) -> list[StepOutcome]:
        return [o for o in self.outcomes if o.status is StepStatus.FAILED]

    @property
    def added_channels(self) -> list[str]:
        return [o.target for o in self.outcomes if o.action == "channel_add" and o.status is StepStatus.OK]

    @property
    def ok(self) -> bool:
        return not self.failures
