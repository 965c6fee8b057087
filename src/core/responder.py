"""Trigger compilation and reply matching (core domain)."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Iterable, List, Optional

DEFAULT_REPLY = "Yes I'm running"
DEFAULT_FALLBACK_REPLY = "I did not understand you!"

DEFAULT_TRIGGERS = [
    {"name": "alive", "keywords": ["alive"], "reply": DEFAULT_REPLY},
    {"name": "up", "keywords": ["up"], "reply": DEFAULT_REPLY},
    {"name": "running", "keywords": ["running"], "reply": DEFAULT_REPLY},
    {"name": "hello", "keywords": ["hello"], "reply": DEFAULT_REPLY},
]


@dataclass(frozen=True)
class Trigger:
    """Compiled trigger used by the responder."""

    name: str
    keywords: List[str]
    reply: str
    patterns: List[re.Pattern]


@dataclass(frozen=True)
class Reply:
    text: str
    trigger_name: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.trigger_name is None


def _word_pattern(keyword: str) -> re.Pattern:
    return re.compile(rf"(?:^|\W){re.escape(keyword)}(?:$|\W)", re.IGNORECASE)


def build_triggers(triggers_config: Iterable[dict]) -> List[Trigger]:
    """Normalize trigger configs and compile word-boundary patterns.

    Order is preserved because the first matching trigger wins.
    """

    compiled: List[Trigger] = []
    for trigger in triggers_config:
        if not trigger.get("enabled", True):
            continue
        keywords = [k.strip().lower() for k in trigger.get("keywords", []) if k and k.strip()]
        if not keywords:
            raise ValueError(f"Trigger '{trigger.get('name', '?')}' has no keywords")
        compiled.append(
            Trigger(
                name=trigger.get("name") or keywords[0],
                keywords=keywords,
                reply=trigger.get("reply") or DEFAULT_REPLY,
                patterns=[_word_pattern(k) for k in keywords],
            )
        )
    return compiled


class MessageResponder:
    """Picks the canned reply for a message body."""

    def __init__(self, triggers: Iterable[Trigger], fallback_reply: str = DEFAULT_FALLBACK_REPLY) -> None:
        self._triggers = list(triggers)
        self._fallback_reply = fallback_reply

    def reply_for(self, body: str) -> Reply:
        for trigger in self._triggers:
            if any(pattern.search(body) for pattern in trigger.patterns):
                return Reply(text=trigger.reply, trigger_name=trigger.name)
        return Reply(text=self._fallback_reply)
