"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Union


@dataclass(frozen=True)
class StaticChannels:
    """Enroll the user into exactly these channels, in order."""

    team: str
    channels: tuple[str, ...]


@dataclass(frozen=True)
class AllPublicChannelsExcept:
    """Enroll the user into every public channel of the team but the excluded ones."""

    team: str
    excluded: tuple[str, ...]


EnrollmentRule = Union[StaticChannels, AllPublicChannelsExcept]


def _ordered_names(values: Iterable[Any], team: str) -> tuple[str, ...]:
    names: list[str] = []
    for value in values:
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"Channel names for team '{team}' must be non-empty strings")
        name = value.strip()
        if name not in names:
            names.append(name)
    return tuple(names)


def _build_rule(entry: Mapping[str, Any]) -> EnrollmentRule:
    team = entry.get("team")
    if not isinstance(team, str) or not team.strip():
        raise ValueError("Enrollment entry is missing a team name")
    team = team.strip()

    has_static = "channels" in entry
    has_expand = "all_public_except" in entry
    if has_static == has_expand:
        raise ValueError(
            f"Enrollment entry for team '{team}' needs exactly one of 'channels' or 'all_public_except'"
        )
    if has_static:
        return StaticChannels(team=team, channels=_ordered_names(entry["channels"] or [], team))
    return AllPublicChannelsExcept(team=team, excluded=_ordered_names(entry["all_public_except"] or [], team))


def build_enrollment_rules(raw: Any) -> List[EnrollmentRule]:
    """Normalize enrollment config into rule variants.

    Accepts either a list of entries or the short mapping form
    ``{"team": ["channel", ...]}``, which always yields static rules in
    mapping order.
    """

    if raw is None:
        return []

    if isinstance(raw, Mapping):
        rules: List[EnrollmentRule] = []
        for team, channels in raw.items():
            if not isinstance(channels, list):
                raise ValueError(f"Channels for team '{team}' must be a list")
            rules.append(_build_rule({"team": team, "channels": channels}))
        return rules

    if not isinstance(raw, list):
        raise ValueError("enrollment must be a list of entries or a team-to-channels mapping")

    rules = []
    for entry in raw:
        if not isinstance(entry, Mapping):
            raise ValueError("Each enrollment entry must be an object")
        if not entry.get("enabled", True):
            continue
        rules.append(_build_rule(entry))

    teams = [rule.team for rule in rules]
    duplicates = sorted({team for team in teams if teams.count(team) > 1})
    if duplicates:
        raise ValueError(f"Teams listed more than once in enrollment: {', '.join(duplicates)}")
    return rules


def describe_rule(rule: EnrollmentRule) -> str:
    """Return a one-line human description of a rule."""

    if isinstance(rule, AllPublicChannelsExcept):
        excluded = ", ".join(rule.excluded) or "nothing"
        return f"{rule.team}: all public channels except {excluded}"
    return f"{rule.team}: {', '.join(rule.channels) or '(team only)'}"
