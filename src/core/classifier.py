"""Event classification (core domain).

Turns raw events into one of three kinds the dispatcher acts on. Unknown or
future event kinds always land in IGNORED.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from core.models import BotSession, Event, OtherEvent, PostCreated, UserJoined

JOIN_POST_TYPES = frozenset({"system_join_channel"})


class EventKind(Enum):
    JOIN = "join"
    MESSAGE = "message"
    IGNORED = "ignored"


@dataclass(frozen=True)
class Classification:
    kind: EventKind
    user_id: Optional[str] = None
    username: Optional[str] = None
    post: Optional[PostCreated] = None
    reason: str = ""


def _ignored(reason: str) -> Classification:
    return Classification(kind=EventKind.IGNORED, reason=reason)


def _event_channel(event: Event) -> Optional[str]:
    if isinstance(event, PostCreated):
        return event.channel_id
    if isinstance(event, UserJoined):
        return event.channel_id
    return None


def _event_actor(event: Event) -> Optional[str]:
    if isinstance(event, PostCreated):
        return event.author_id
    if isinstance(event, UserJoined):
        return event.user_id
    return None


def classify(event: Event, session: BotSession) -> Classification:
    """Classify one event against the monitored channels and the bot identity."""

    if isinstance(event, OtherEvent) or not isinstance(event, (PostCreated, UserJoined)):
        return _ignored("unhandled event kind")

    # Server-wide joins carry no channel and always pass this filter.
    channel_id = _event_channel(event)
    if channel_id is not None and channel_id not in session.monitored_channel_ids:
        return _ignored("channel is not monitored")

    if _event_actor(event) == session.identity.id:
        return _ignored("self-authored")

    if isinstance(event, UserJoined):
        # A channel join also arrives as a join post, which drives enrollment.
        if event.channel_id is not None:
            return _ignored("channel join is handled by its join post")
        return Classification(kind=EventKind.JOIN, user_id=event.user_id or None)

    if event.post_type in JOIN_POST_TYPES:
        username = event.props.get("username")
        return Classification(
            kind=EventKind.JOIN,
            user_id=event.author_id or None,
            username=username if isinstance(username, str) and username else None,
            post=event,
        )

    if event.post_type:
        return _ignored(f"post type {event.post_type}")

    # Attachment-only posts have no text to answer.
    if not event.body.strip():
        return _ignored("empty message")

    return Classification(kind=EventKind.MESSAGE, post=event)
