"""Log channel reporting adapter.

Posts status and enrollment summaries to the bot's log channel. Every send
is best-effort: failures are logged and never raised.
"""

from __future__ import annotations

import logging
from typing import Optional

from adapters.notification_formatting import format_enrollment_report
from core.errors import BotError
from core.models import BotSession, EnrollmentReport
from core.ports import DirectoryPort

LOGGER = logging.getLogger(__name__)


class LogChannelReporter:
    """ReporterPort implementation that writes into the log channel."""

    def __init__(self, directory: DirectoryPort, session: BotSession, report_successes: bool = True) -> None:
        self._directory = directory
        self._session = session
        self._report_successes = report_successes

    async def _post(self, message: str, reply_to: Optional[str]) -> None:
        channel = self._session.log_channel
        if channel is None:
            LOGGER.debug("No log channel, dropping message: %s", message)
            return
        try:
            await self._directory.create_post(channel.id, message, root_id=reply_to)
        except BotError as exc:
            LOGGER.error("We failed to send a message to the logging channel:\n%s", exc.describe())

    async def announce(self, message: str, reply_to: Optional[str] = None) -> None:
        await self._post(message, reply_to)

    async def report_enrollment(self, report: EnrollmentReport, reply_to: Optional[str] = None) -> None:
        if report.ok and not self._report_successes:
            return
        await self._post(format_enrollment_report(report), reply_to)
