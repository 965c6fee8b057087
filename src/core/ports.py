"""Ports (interfaces) used by the core.

Ports define the minimal contracts for the directory, the event stream and
operator reporting so that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import AsyncIterator, Optional, Protocol

from core.models import Channel, EnrollmentReport, Event, Identity, Team


class DirectoryPort(Protocol):
    """Remote team/channel/user/post operations required by the core."""

    async def ping(self) -> str:
        ...

    async def login(self, email: str, password: str) -> Identity:
        ...

    async def update_profile(self, user_id: str, username: str, first_name: str, last_name: str) -> Identity:
        ...

    async def get_team_by_name(self, name: str) -> Team:
        ...

    async def get_channel_by_name(self, team_id: str, name: str) -> Channel:
        ...

    async def create_channel(self, team_id: str, name: str, display_name: str, purpose: str) -> Channel:
        ...

    async def create_post(self, channel_id: str, message: str, root_id: Optional[str] = None) -> str:
        ...

    async def add_team_member(self, team_id: str, user_id: str) -> None:
        ...

    async def add_channel_member(self, channel_id: str, user_id: str, role: str = "member") -> None:
        ...

    async def list_public_channels(self, team_id: str) -> list[Channel]:
        ...

    async def list_user_channel_ids(self, user_id: str, team_id: str) -> set[str]:
        ...

    async def get_user_by_username(self, username: str) -> Identity:
        ...


class EventSourcePort(Protocol):
    """Real-time event stream. Not restartable once closed."""

    async def connect(self) -> None:
        ...

    def subscribe(self) -> AsyncIterator[Event]:
        ...

    async def close(self) -> None:
        ...


class ReporterPort(Protocol):
    """Operator-visible status reporting."""

    async def announce(self, message: str, reply_to: Optional[str] = None) -> None:
        ...

    async def report_enrollment(self, report: EnrollmentReport, reply_to: Optional[str] = None) -> None:
        ...
