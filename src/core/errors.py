"""Error taxonomy shared by the core and the adapters.

Adapters translate library exceptions into these so the core only has to
decide between "fatal at startup" and "log and keep going".
"""

from __future__ import annotations


class BotError(Exception):
    """Base error with the three fields printed for operators."""

    def __init__(self, message: str, *, error_id: str = "", detail: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.error_id = error_id
        self.detail = detail

    def describe(self) -> str:
        """Return a multi-line diagnostic block."""

        lines = [self.message]
        if self.error_id:
            lines.append(f"  id: {self.error_id}")
        if self.detail:
            lines.append(f"  detail: {self.detail}")
        return "\n".join(lines)


class ConfigError(BotError):
    """Missing or malformed configuration."""


class ConnectivityError(BotError):
    """Server or event stream unreachable."""


class AuthError(BotError):
    """Bad credentials or a rejected session."""


class NotFoundError(BotError):
    """Team, channel or user lookup returned nothing."""


class WriteError(BotError):
    """A post, membership or profile write failed."""
