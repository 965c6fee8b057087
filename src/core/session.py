"""Startup resolution of the bot session.

Runs the ordered startup steps against the directory: ping, login, profile
sync, home team, log channel, monitored channels. Fatal steps raise; the
rest log and carry on with what they could resolve.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from core.errors import BotError, NotFoundError
from core.models import BotProfile, BotSession, Channel, Identity, Team
from core.ports import DirectoryPort

LOGGER = logging.getLogger(__name__)


async def _sync_profile(directory: DirectoryPort, identity: Identity, profile: BotProfile) -> Identity:
    if not identity.differs_from(profile):
        return identity
    try:
        updated = await directory.update_profile(identity.id, profile.username, profile.first_name, profile.last_name)
    except BotError as exc:
        LOGGER.error("We failed to update the bot user profile:\n%s", exc.describe())
        return identity
    LOGGER.info("Looks like this might be the first run so we've updated the bot account settings")
    return updated


async def _resolve_home_team(directory: DirectoryPort, team_name: str) -> Team:
    try:
        return await directory.get_team_by_name(team_name)
    except NotFoundError as exc:
        raise NotFoundError(
            f"We do not appear to be a member of the team '{team_name}'",
            error_id=exc.error_id,
            detail=exc.detail or exc.message,
        ) from exc


async def _resolve_log_channel(
    directory: DirectoryPort, team: Team, channel_name: str, bot_name: str
) -> Optional[Channel]:
    try:
        return await directory.get_channel_by_name(team.id, channel_name)
    except NotFoundError:
        LOGGER.info("Log channel %s not found, creating it", channel_name)
    except BotError as exc:
        LOGGER.error("We failed to get the log channel:\n%s", exc.describe())
        return None

    try:
        channel = await directory.create_channel(
            team.id,
            channel_name,
            display_name=f"Debugging For {bot_name}",
            purpose=f"This is used for logging {bot_name} debug messages",
        )
    except BotError as exc:
        LOGGER.error("We failed to create the channel %s:\n%s", channel_name, exc.describe())
        return None
    LOGGER.info("Looks like this might be the first run so we've created the channel %s", channel_name)
    return channel


async def _resolve_monitored_channels(
    directory: DirectoryPort, team: Team, identity: Identity, names: Iterable[str]
) -> tuple[Channel, ...]:
    channels: list[Channel] = []
    for name in names:
        try:
            channel = await directory.get_channel_by_name(team.id, name)
        except BotError as exc:
            LOGGER.error("We failed to get the monitored channel %s:\n%s", name, exc.describe())
            continue
        # The websocket only delivers events for channels the bot belongs to.
        try:
            await directory.add_channel_member(channel.id, identity.id)
        except BotError as exc:
            LOGGER.warning("Could not join monitored channel %s: %s", name, exc.message)
        channels.append(channel)
    return tuple(channels)


async def start_session(
    directory: DirectoryPort,
    *,
    email: str,
    password: str,
    profile: BotProfile,
    team_name: str,
    log_channel_name: str,
    monitored_channel_names: Iterable[str],
    bot_name: str,
) -> BotSession:
    """Run the startup steps and return the resolved session."""

    version = await directory.ping()
    LOGGER.info("Server detected and is running version %s", version)

    identity = await directory.login(email, password)
    LOGGER.info("Logged in as %s (%s)", identity.username, identity.id)

    identity = await _sync_profile(directory, identity, profile)
    team = await _resolve_home_team(directory, team_name)

    log_channel = await _resolve_log_channel(directory, team, log_channel_name, bot_name)
    monitored = await _resolve_monitored_channels(directory, team, identity, monitored_channel_names)
    if not monitored:
        LOGGER.warning("No monitored channel could be resolved; only server-wide joins will be handled")

    return BotSession(
        identity=identity,
        home_team=team,
        log_channel=log_channel,
        monitored_channels=monitored,
    )
