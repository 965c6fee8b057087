"""Event dispatch.

Each event is classified and routed: joins go to the enrollment engine,
messages to the responder. Nothing raised here escapes to the event loop.
"""

from __future__ import annotations

import logging
from typing import Optional

from core.classifier import Classification, EventKind, classify
from core.enrollment import EnrollmentEngine
from core.errors import BotError
from core.models import BotSession, Event, PostCreated
from core.ports import DirectoryPort, ReporterPort
from core.responder import MessageResponder

LOGGER = logging.getLogger(__name__)


class EventDispatcher:
    """Routes classified events to the responder or the enrollment engine."""

    def __init__(
        self,
        session: BotSession,
        directory: DirectoryPort,
        responder: MessageResponder,
        engine: EnrollmentEngine,
        reporter: ReporterPort,
    ) -> None:
        self._session = session
        self._directory = directory
        self._responder = responder
        self._engine = engine
        self._reporter = reporter

    async def handle(self, event: Event) -> Optional[Classification]:
        """Process one event. Returns the classification, or None if handling crashed."""

        try:
            classification = classify(event, self._session)
            if classification.kind is EventKind.JOIN:
                await self._handle_join(classification)
            elif classification.kind is EventKind.MESSAGE and classification.post is not None:
                await self._handle_message(classification.post)
            else:
                LOGGER.debug("Ignoring %s: %s", type(event).__name__, classification.reason)
            return classification
        except Exception:
            LOGGER.exception("Error while handling %s", type(event).__name__)
            return None

    async def _handle_join(self, classification: Classification) -> None:
        post = classification.post
        log_channel = self._session.log_channel
        # Thread roots must live in the channel the summary goes to.
        reply_to = None
        if post is not None and log_channel is not None and post.channel_id == log_channel.id:
            reply_to = post.root_id or post.post_id
        who = classification.username or classification.user_id
        LOGGER.info("Responding to join of %s", who)

        report = await self._engine.enroll(classification.user_id, classification.username)
        for failure in report.failures:
            LOGGER.warning("Enrollment step %s %s failed: %s", failure.action, failure.target, failure.detail)
        await self._reporter.report_enrollment(report, reply_to=reply_to)

    async def _handle_message(self, post: PostCreated) -> None:
        reply = self._responder.reply_for(post.body)
        LOGGER.info("Replying to post %s (%s)", post.post_id, reply.trigger_name or "fallback")
        # Replies must hang off the thread root, not a reply inside it.
        root_id = post.root_id or post.post_id
        try:
            await self._directory.create_post(post.channel_id, reply.text, root_id=root_id)
        except BotError as exc:
            LOGGER.error("We failed to reply to post %s:\n%s", post.post_id, exc.describe())
