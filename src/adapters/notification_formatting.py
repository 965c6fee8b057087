"""Shared notification formatting helpers.

Keeping formatting here keeps log channel posts consistent regardless of
which part of the bot sends them.
"""

from __future__ import annotations

from core.models import EnrollmentReport, StepOutcome, StepStatus

_ACTION_LABELS = {
    "user_lookup": "user lookup",
    "team_lookup": "team",
    "team_add": "team",
    "channel_list": "channel list",
    "channel_lookup": "channel",
    "channel_add": "channel",
}

_STATUS_MARKS = {
    StepStatus.OK: "added",
    StepStatus.SKIPPED: "skipped",
    StepStatus.FAILED: "**failed**",
}


def escape_md(value: str) -> str:
    for ch in r"*_`[":
        value = value.replace(ch, f"\\{ch}")
    return value


def format_user_label(report: EnrollmentReport) -> str:
    """Return "@username (id)" or whichever half is known."""

    if report.username and report.user_id:
        return f"@{report.username} ({report.user_id})"
    if report.username:
        return f"@{report.username}"
    return report.user_id or "unknown user"


def format_outcome(outcome: StepOutcome) -> str:
    label = _ACTION_LABELS.get(outcome.action, outcome.action)
    line = f"- {label} `{outcome.target}`: {_STATUS_MARKS[outcome.status]}"
    if outcome.detail:
        line += f" ({escape_md(outcome.detail)})"
    return line


def format_enrollment_report(report: EnrollmentReport) -> str:
    """Create the Markdown summary posted to the log channel."""

    user = escape_md(format_user_label(report))
    if not report.outcomes:
        return f"New user {user} joined; no enrollment rules are configured."

    if report.ok:
        header = f"New user {user} joined and was enrolled."
    else:
        header = f"New user {user} joined; enrollment finished with {len(report.failures)} failure(s)."

    lines = [header, ""]
    lines.extend(format_outcome(outcome) for outcome in report.outcomes)
    return "\n".join(lines)
