"""Auto-enrollment engine.

This module is integration-agnostic. Each join runs the whole plan on its
own: resolve the user, then walk the enrollment rules in configuration order,
adding the user to each team and its channels. Every remote step records an
outcome and a failed step never stops the steps after it.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from core.config import EnrollmentRule, StaticChannels
from core.errors import BotError
from core.models import Channel, EnrollmentReport, Membership, StepStatus, Team
from core.ports import DirectoryPort

LOGGER = logging.getLogger(__name__)


class EnrollmentEngine:
    """Drives team and channel membership creation for joining users."""

    def __init__(self, directory: DirectoryPort, rules: Iterable[EnrollmentRule], role: str = "member") -> None:
        self._directory = directory
        self._rules: Sequence[EnrollmentRule] = tuple(rules)
        self._role = role

    @property
    def rules(self) -> Sequence[EnrollmentRule]:
        return self._rules

    async def enroll(self, user_id: Optional[str], username: Optional[str] = None) -> EnrollmentReport:
        """Enroll one user into every configured team/channel."""

        report = EnrollmentReport(user_id=user_id, username=username)
        resolved = await self._resolve_user(user_id, username, report)
        if resolved is None:
            return report
        report.user_id = resolved

        for rule in self._rules:
            await self._enroll_team(resolved, rule, report)

        LOGGER.info(
            "Enrollment for %s finished: %s channel(s) added, %s failure(s)",
            resolved,
            len(report.added_channels),
            len(report.failures),
        )
        return report

    async def _resolve_user(
        self, user_id: Optional[str], username: Optional[str], report: EnrollmentReport
    ) -> Optional[str]:
        if user_id:
            return user_id
        if not username:
            report.record("user_lookup", "?", StepStatus.FAILED, "event carries neither user id nor username")
            return None
        try:
            user = await self._directory.get_user_by_username(username)
        except BotError as exc:
            LOGGER.warning("Could not resolve user %s: %s", username, exc.message)
            report.record("user_lookup", username, StepStatus.FAILED, exc.message)
            return None
        report.record("user_lookup", username, StepStatus.OK)
        return user.id

    async def _enroll_team(self, user_id: str, rule: EnrollmentRule, report: EnrollmentReport) -> None:
        try:
            team = await self._directory.get_team_by_name(rule.team)
        except BotError as exc:
            LOGGER.warning("Error getting team %s: %s", rule.team, exc.message)
            report.record("team_lookup", rule.team, StepStatus.FAILED, exc.message)
            return

        # Channel joins are pointless for a team the user could not be added to.
        try:
            await self._directory.add_team_member(team.id, user_id)
        except BotError as exc:
            LOGGER.warning("Could not add %s to team %s: %s", user_id, rule.team, exc.message)
            report.record("team_add", rule.team, StepStatus.FAILED, exc.message)
            return
        report.record("team_add", rule.team, StepStatus.OK)

        targets = await self._effective_channels(team, rule, report)
        if targets is None:
            return

        existing = await self._existing_channel_ids(user_id, team)
        for name, channel in targets:
            await self._enroll_channel(user_id, team, name, channel, existing, report)

    async def _effective_channels(
        self, team: Team, rule: EnrollmentRule, report: EnrollmentReport
    ) -> Optional[list[tuple[str, Optional[Channel]]]]:
        """Return (name, channel-if-known) pairs in the order they get processed."""

        if isinstance(rule, StaticChannels):
            return [(name, None) for name in rule.channels]

        try:
            public = await self._directory.list_public_channels(team.id)
        except BotError as exc:
            LOGGER.warning("Could not list public channels of %s: %s", team.name, exc.message)
            report.record("channel_list", team.name, StepStatus.FAILED, exc.message)
            return None

        # Excluded names are handled elsewhere, not missing.
        excluded = set(rule.excluded)
        return [(channel.name, channel) for channel in public if channel.name not in excluded]

    async def _existing_channel_ids(self, user_id: str, team: Team) -> set[str]:
        try:
            return set(await self._directory.list_user_channel_ids(user_id, team.id))
        except BotError as exc:
            LOGGER.info("Membership lookup for %s in %s failed, adding blindly: %s", user_id, team.name, exc.message)
            return set()

    async def _enroll_channel(
        self,
        user_id: str,
        team: Team,
        name: str,
        channel: Optional[Channel],
        existing: set[str],
        report: EnrollmentReport,
    ) -> None:
        if channel is None:
            try:
                channel = await self._directory.get_channel_by_name(team.id, name)
            except BotError as exc:
                LOGGER.warning("Could not get channel by name %s in %s: %s", name, team.name, exc.message)
                report.record("channel_lookup", name, StepStatus.FAILED, exc.message)
                return

        if channel.id in existing:
            report.record("channel_add", name, StepStatus.SKIPPED, "already a member")
            return

        membership = Membership(user_id=user_id, channel_id=channel.id, role=self._role)
        try:
            await self._directory.add_channel_member(membership.channel_id, membership.user_id, membership.role)
        except BotError as exc:
            LOGGER.warning("Could not join %s to channel %s: %s", user_id, name, exc.message)
            report.record("channel_add", name, StepStatus.FAILED, exc.message)
            return
        existing.add(channel.id)
        report.record("channel_add", name, StepStatus.OK)
