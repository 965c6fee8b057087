"""Mattermost-to-core event mapping adapter.

This keeps websocket payload details out of the core dispatcher.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from core.models import Event, OtherEvent, PostCreated, UserJoined

LOGGER = logging.getLogger(__name__)

POSTED = "posted"
NEW_USER = "new_user"
USER_ADDED = "user_added"


def _decode_post(raw: Any) -> Optional[dict]:
    # The websocket delivers the post as a JSON string inside the JSON frame.
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str):
        return None
    try:
        decoded = json.loads(raw)
    except ValueError:
        return None
    return decoded if isinstance(decoded, dict) else None


def _build_post(data: dict, broadcast: dict) -> Event:
    post = _decode_post(data.get("post"))
    if post is None:
        LOGGER.warning("Dropping posted event with unreadable post payload")
        return OtherEvent(name=POSTED)

    props = post.get("props") or {}
    return PostCreated(
        post_id=str(post.get("id") or ""),
        channel_id=str(post.get("channel_id") or broadcast.get("channel_id") or ""),
        author_id=str(post.get("user_id") or ""),
        body=str(post.get("message") or ""),
        post_type=str(post.get("type") or ""),
        root_id=str(post.get("root_id") or ""),
        props=props if isinstance(props, dict) else {},
    )


def map_event(payload: Any) -> Optional[Event]:
    """Map one decoded websocket frame to a core event.

    Returns None for frames that are not events at all, such as replies to
    the authentication challenge.
    """

    if not isinstance(payload, dict) or "event" not in payload:
        return None

    name = str(payload.get("event") or "")
    data = payload.get("data") or {}
    broadcast = payload.get("broadcast") or {}

    if name == POSTED:
        return _build_post(data, broadcast)

    if name == NEW_USER:
        user_id = data.get("user_id")
        if user_id:
            return UserJoined(user_id=str(user_id))
        return OtherEvent(name=name)

    if name == USER_ADDED:
        user_id = data.get("user_id")
        if user_id:
            return UserJoined(
                user_id=str(user_id),
                channel_id=str(broadcast.get("channel_id") or "") or None,
                team_id=str(data.get("team_id") or "") or None,
            )
        return OtherEvent(name=name)

    return OtherEvent(name=name)
