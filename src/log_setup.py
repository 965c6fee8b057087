"""Logging setup for pillarbot.

Driven by the ``logging`` section of config.json. Every handler shares a
formatter that masks secrets (the bot password plus any environment
variables named under ``redact.patterns``).
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Any, Iterable, Mapping, Optional

from settings import PROJECT_ROOT

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LOG_PATH = "logs/pillarbot.log"
MASK = "***"


class RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: Iterable[str], fmt: str = LOG_FORMAT, datefmt: Optional[str] = DATE_FORMAT) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        # Longest first so a secret containing another is masked whole.
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        for secret in self._secrets:
            text = text.replace(secret, MASK)
        return text


def redaction_values(
    config: Mapping[str, Any],
    extra: Iterable[str] = (),
    environ: Optional[Mapping[str, str]] = None,
) -> list[str]:
    """Collect the literal values to mask: ``extra`` plus the named env vars."""

    environ = os.environ if environ is None else environ
    values = [value for value in extra if value]
    redact = config.get("redact") or {}
    if redact.get("enabled", False):
        values.extend(environ[name] for name in redact.get("patterns", []) if environ.get(name))
    return values


def _file_handler(file_cfg: Mapping[str, Any]) -> RotatingFileHandler:
    path = str(file_cfg.get("path") or DEFAULT_LOG_PATH)
    if not os.path.isabs(path):
        path = os.path.join(PROJECT_ROOT, path)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    return RotatingFileHandler(
        path,
        maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
        backupCount=int(file_cfg.get("backup_count", 5)),
        encoding="utf-8",
    )


def build_handlers(config: Mapping[str, Any], formatter: logging.Formatter, level: int) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if config.get("console", True):
        handlers.append(logging.StreamHandler())
    file_cfg = config.get("file") or {}
    if file_cfg.get("enabled", False):
        handlers.append(_file_handler(file_cfg))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def configure_logging(
    config: Optional[Mapping[str, Any]],
    secrets: Iterable[str] = (),
    environ: Optional[Mapping[str, str]] = None,
) -> list[logging.Handler]:
    """Install the configured handlers on the root logger and return them.

    Returns an empty list (and leaves logging untouched) when logging is
    disabled or no handler is enabled.
    """

    config = config or {}
    if not config.get("enabled", True):
        return []

    level = getattr(logging, str(config.get("level", "INFO")).upper(), logging.INFO)
    formatter = RedactingFormatter(redaction_values(config, secrets, environ))
    handlers = build_handlers(config, formatter, level)
    if handlers:
        logging.basicConfig(level=level, handlers=handlers, force=True)
    return handlers
