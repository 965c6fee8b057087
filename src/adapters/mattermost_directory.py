"""Mattermost directory adapter.

Implements the core DirectoryPort on top of mattermostdriver. The driver is
synchronous (requests), so every call runs in a worker thread and the event
loop stays responsive to signals.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

import requests
from mattermostdriver import Driver
from mattermostdriver.exceptions import (
    InvalidOrMissingParameters,
    NoAccessTokenProvided,
    NotEnoughPermissions,
    ResourceNotFound,
)

from core.errors import AuthError, BotError, ConnectivityError, NotFoundError, WriteError
from core.models import Channel, Identity, Team

LOGGER = logging.getLogger(__name__)

PUBLIC_CHANNEL_PAGE_SIZE = 200

# Channel roles as the server spells them.
CHANNEL_ROLES = {
    "member": "channel_user",
    "admin": "channel_user channel_admin",
}

_DRIVER_ERRORS = (
    requests.RequestException,
    InvalidOrMissingParameters,
    NoAccessTokenProvided,
    NotEnoughPermissions,
    ResourceNotFound,
)


def _message(exc: BaseException) -> str:
    return str(exc.args[0]) if exc.args else str(exc)


def _translate(exc: BaseException, action: str, *, write: bool = False) -> BotError:
    """Map driver/requests exceptions to the core taxonomy."""

    error_id = type(exc).__name__
    detail = _message(exc)
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return ConnectivityError(f"Could not reach the server while trying to {action}", error_id=error_id, detail=detail)
    if write:
        return WriteError(f"Failed to {action}", error_id=error_id, detail=detail)
    if isinstance(exc, ResourceNotFound):
        return NotFoundError(f"Not found while trying to {action}", error_id=error_id, detail=detail)
    if isinstance(exc, (NoAccessTokenProvided, NotEnoughPermissions)):
        return AuthError(f"Not allowed to {action}", error_id=error_id, detail=detail)
    return BotError(f"Failed to {action}", error_id=error_id, detail=detail)


def _record(data: Any, action: str, error: type[BotError] = BotError) -> dict:
    """Return ``data`` if it looks like a server object, else raise ``error``."""

    if not isinstance(data, dict) or "id" not in data:
        raise error(f"Unexpected response while trying to {action}", detail=repr(data)[:200])
    return data


def _identity(data: Any, action: str, error: type[BotError] = BotError) -> Identity:
    data = _record(data, action, error)
    return Identity(
        id=data["id"],
        username=data.get("username", ""),
        first_name=data.get("first_name", ""),
        last_name=data.get("last_name", ""),
        email=data.get("email", ""),
    )


def _team(data: Any, action: str) -> Team:
    data = _record(data, action)
    return Team(id=data["id"], name=data.get("name", ""), display_name=data.get("display_name", ""))


def _channel(data: Any, action: str, error: type[BotError] = BotError) -> Channel:
    data = _record(data, action, error)
    return Channel(
        id=data["id"],
        name=data.get("name", ""),
        team_id=data.get("team_id", ""),
        display_name=data.get("display_name", ""),
        type=data.get("type", "O"),
    )


class MattermostDirectory:
    """Thin async wrapper that satisfies the DirectoryPort contract."""

    def __init__(self, driver: Driver) -> None:
        self._driver = driver

    @property
    def auth_token(self) -> Optional[str]:
        return self._driver.client.token

    async def _call(self, action: str, func: Callable[..., Any], *args: Any, write: bool = False, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except _DRIVER_ERRORS as exc:
            raise _translate(exc, action, write=write) from exc

    async def ping(self) -> str:
        try:
            config = await self._call("ping the server", self._driver.client.get, "/config/client", params={"format": "old"})
        except BotError as exc:
            raise ConnectivityError(
                "There was a problem pinging the Mattermost server. Are you sure it's running?",
                error_id=exc.error_id,
                detail=exc.detail or exc.message,
            ) from exc
        return str(config.get("Version", "unknown")) if isinstance(config, dict) else "unknown"

    async def login(self, email: str, password: str) -> Identity:
        self._driver.options["login_id"] = email
        self._driver.options["password"] = password
        try:
            data = await self._call("log in", self._driver.login)
        except ConnectivityError:
            raise
        except BotError as exc:
            raise AuthError(
                "There was a problem logging into the Mattermost server. Check the bot credentials.",
                error_id=exc.error_id,
                detail=exc.detail or exc.message,
            ) from exc
        return _identity(data, "log in", AuthError)

    async def update_profile(self, user_id: str, username: str, first_name: str, last_name: str) -> Identity:
        options = {"username": username, "first_name": first_name, "last_name": last_name}
        data = await self._call("update the bot profile", self._driver.users.patch_user, user_id, options, write=True)
        return _identity(data, "update the bot profile", WriteError)

    async def get_team_by_name(self, name: str) -> Team:
        data = await self._call(f"get team {name}", self._driver.teams.get_team_by_name, name)
        return _team(data, f"get team {name}")

    async def get_channel_by_name(self, team_id: str, name: str) -> Channel:
        data = await self._call(f"get channel {name}", self._driver.channels.get_channel_by_name, team_id, name)
        return _channel(data, f"get channel {name}")

    async def create_channel(self, team_id: str, name: str, display_name: str, purpose: str) -> Channel:
        options = {
            "team_id": team_id,
            "name": name,
            "display_name": display_name,
            "purpose": purpose,
            "type": "O",
        }
        data = await self._call(f"create channel {name}", self._driver.channels.create_channel, options, write=True)
        return _channel(data, f"create channel {name}", WriteError)

    async def create_post(self, channel_id: str, message: str, root_id: Optional[str] = None) -> str:
        options = {"channel_id": channel_id, "message": message}
        if root_id:
            options["root_id"] = root_id
        data = await self._call("create a post", self._driver.posts.create_post, options, write=True)
        return str(data.get("id", "")) if isinstance(data, dict) else ""

    async def add_team_member(self, team_id: str, user_id: str) -> None:
        options = {"team_id": team_id, "user_id": user_id}
        await self._call("add the user to the team", self._driver.teams.add_user_to_team, team_id, options, write=True)

    async def add_channel_member(self, channel_id: str, user_id: str, role: str = "member") -> None:
        roles = CHANNEL_ROLES.get(role)
        if roles is None:
            raise WriteError(f"Unknown channel role {role}")
        await self._call(
            "add the user to the channel",
            self._driver.channels.add_user,
            channel_id,
            {"user_id": user_id},
            write=True,
        )
        if role != "member":
            await self._call(
                "set the channel role",
                self._driver.client.put,
                f"/channels/{channel_id}/members/{user_id}/roles",
                options={"roles": roles},
                write=True,
            )

    async def list_public_channels(self, team_id: str) -> list[Channel]:
        channels: list[Channel] = []
        page = 0
        while True:
            params = {"page": page, "per_page": PUBLIC_CHANNEL_PAGE_SIZE}
            batch = await self._call("list public channels", self._driver.channels.get_public_channels, team_id, params=params)
            if batch is not None and not isinstance(batch, list):
                raise BotError("Unexpected response while trying to list public channels", detail=repr(batch)[:200])
            channels.extend(_channel(item, "list public channels") for item in batch or [])
            if not batch or len(batch) < PUBLIC_CHANNEL_PAGE_SIZE:
                return channels
            page += 1

    async def list_user_channel_ids(self, user_id: str, team_id: str) -> set[str]:
        data = await self._call("list the user's channels", self._driver.channels.get_channels_for_user, user_id, team_id)
        return {item["id"] for item in data or [] if isinstance(item, dict) and "id" in item}

    async def get_user_by_username(self, username: str) -> Identity:
        data = await self._call(f"get user {username}", self._driver.users.get_user_by_username, username)
        return _identity(data, f"get user {username}")
