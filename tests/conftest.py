from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from core.errors import AuthError, ConnectivityError, NotFoundError, WriteError
from core.models import BotSession, Channel, EnrollmentReport, Event, Identity, Team


class FakeDirectory:
    """In-memory DirectoryPort that records every call.

    ``fail`` maps a method name to the set of keys (names or ids) that should
    raise for that method.
    """

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.teams: dict[str, Team] = {}
        self.channels: dict[tuple[str, str], Channel] = {}
        self.users: dict[str, Identity] = {}
        self.memberships: dict[tuple[str, str], set[str]] = {}
        self.posts: list[tuple[str, str, Optional[str]]] = []
        self.fail: dict[str, set[str]] = {}
        self.identity = Identity(id="bot-id", username="pillarbot", first_name="Pillar", last_name="Bot")
        self.version = "9.5.0"
        self.unreachable = False
        self.bad_credentials = False

    def add_team(self, name: str) -> Team:
        team = Team(id=f"{name}-id", name=name, display_name=name.title())
        self.teams[name] = team
        return team

    def add_channel(self, team: Team, name: str, type: str = "O") -> Channel:
        channel = Channel(id=f"{name}-id", name=name, team_id=team.id, display_name=name.title(), type=type)
        self.channels[(team.id, name)] = channel
        return channel

    def _maybe_fail(self, method: str, key: str, error=WriteError) -> None:
        if key in self.fail.get(method, set()):
            raise error(f"{method} failed for {key}", error_id="fake.error", detail=key)

    def calls_to(self, method: str) -> list[tuple]:
        return [call[1:] for call in self.calls if call[0] == method]

    async def ping(self) -> str:
        self.calls.append(("ping",))
        if self.unreachable:
            raise ConnectivityError("server unreachable", error_id="fake.unreachable")
        return self.version

    async def login(self, email: str, password: str) -> Identity:
        self.calls.append(("login", email))
        if self.bad_credentials:
            raise AuthError("bad credentials", error_id="api.user.login.invalid_credentials")
        return self.identity

    async def update_profile(self, user_id: str, username: str, first_name: str, last_name: str) -> Identity:
        self.calls.append(("update_profile", user_id, username, first_name, last_name))
        self._maybe_fail("update_profile", user_id)
        self.identity = Identity(id=user_id, username=username, first_name=first_name, last_name=last_name)
        return self.identity

    async def get_team_by_name(self, name: str) -> Team:
        self.calls.append(("get_team_by_name", name))
        self._maybe_fail("get_team_by_name", name, NotFoundError)
        if name not in self.teams:
            raise NotFoundError(f"team {name} not found")
        return self.teams[name]

    async def get_channel_by_name(self, team_id: str, name: str) -> Channel:
        self.calls.append(("get_channel_by_name", team_id, name))
        self._maybe_fail("get_channel_by_name", name, NotFoundError)
        if (team_id, name) not in self.channels:
            raise NotFoundError(f"channel {name} not found")
        return self.channels[(team_id, name)]

    async def create_channel(self, team_id: str, name: str, display_name: str, purpose: str) -> Channel:
        self.calls.append(("create_channel", team_id, name))
        self._maybe_fail("create_channel", name)
        channel = Channel(id=f"{name}-id", name=name, team_id=team_id, display_name=display_name)
        self.channels[(team_id, name)] = channel
        return channel

    async def create_post(self, channel_id: str, message: str, root_id: Optional[str] = None) -> str:
        self.calls.append(("create_post", channel_id, message, root_id))
        self._maybe_fail("create_post", channel_id)
        self.posts.append((channel_id, message, root_id))
        return f"post-{len(self.posts)}"

    async def add_team_member(self, team_id: str, user_id: str) -> None:
        self.calls.append(("add_team_member", team_id, user_id))
        self._maybe_fail("add_team_member", team_id)

    async def add_channel_member(self, channel_id: str, user_id: str, role: str = "member") -> None:
        self.calls.append(("add_channel_member", channel_id, user_id, role))
        self._maybe_fail("add_channel_member", channel_id)

    async def list_public_channels(self, team_id: str) -> list[Channel]:
        self.calls.append(("list_public_channels", team_id))
        self._maybe_fail("list_public_channels", team_id, ConnectivityError)
        return [c for (tid, _), c in self.channels.items() if tid == team_id and c.is_public]

    async def list_user_channel_ids(self, user_id: str, team_id: str) -> set[str]:
        self.calls.append(("list_user_channel_ids", user_id, team_id))
        self._maybe_fail("list_user_channel_ids", team_id, NotFoundError)
        return set(self.memberships.get((user_id, team_id), set()))

    async def get_user_by_username(self, username: str) -> Identity:
        self.calls.append(("get_user_by_username", username))
        if username not in self.users:
            raise NotFoundError(f"user {username} not found")
        return self.users[username]


class FakeReporter:
    def __init__(self) -> None:
        self.announcements: list[tuple[str, Optional[str]]] = []
        self.reports: list[tuple[EnrollmentReport, Optional[str]]] = []

    async def announce(self, message: str, reply_to: Optional[str] = None) -> None:
        self.announcements.append((message, reply_to))

    async def report_enrollment(self, report: EnrollmentReport, reply_to: Optional[str] = None) -> None:
        self.reports.append((report, reply_to))


class FakeEventSource:
    """Delivers a fixed list of events, then either ends or blocks until closed."""

    def __init__(self, events: list[Event], *, block_after: bool = False) -> None:
        self._events = list(events)
        self._block_after = block_after
        self.connected = False
        self.close_calls = 0

    async def connect(self) -> None:
        self.connected = True

    async def subscribe(self):
        for event in self._events:
            yield event
            await asyncio.sleep(0)
        if self._block_after:
            await asyncio.Event().wait()

    async def close(self) -> None:
        self.close_calls += 1


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def reporter() -> FakeReporter:
    return FakeReporter()


@pytest.fixture
def session() -> BotSession:
    home = Team(id="home-id", name="home")
    return BotSession(
        identity=Identity(id="bot-id", username="pillarbot", first_name="Pillar", last_name="Bot"),
        home_team=home,
        log_channel=Channel(id="log-id", name="pillarbot-debug", team_id=home.id),
        monitored_channels=(Channel(id="welcome-id", name="welcome", team_id=home.id),),
    )


@pytest.fixture
def event_source_factory():
    return FakeEventSource
