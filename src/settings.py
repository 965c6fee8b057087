"""Configuration loading for pillarbot.

All user-editable settings (server, bot profile, channels, enrollment rules,
replies, logging) live in a single JSON file. The bot password may instead
come from the environment (or a .env file) so it stays out of the repo.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from core.config import EnrollmentRule, build_enrollment_rules
from core.errors import ConfigError
from core.models import BotProfile
from core.responder import DEFAULT_FALLBACK_REPLY, DEFAULT_TRIGGERS, Trigger, build_triggers

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Default location of the config file; PILLARBOT_CONFIG overrides it.
CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")
CONFIG_PATH_ENV = "PILLARBOT_CONFIG"
PASSWORD_ENV = "MATTERMOST_PASSWORD"

DEFAULT_BOT_NAME = "Pillar Bot"


@dataclass(frozen=True)
class ServerSettings:
    url: str
    scheme: str = "https"
    port: int = 443
    basepath: str = "/api/v4"
    verify: bool = True
    request_timeout: float = 10.0


@dataclass(frozen=True)
class Settings:
    server: ServerSettings
    bot_name: str
    email: str
    password: str
    profile: BotProfile
    team: str
    log_channel: str
    monitored_channels: tuple[str, ...]
    enrollment_rules: tuple[EnrollmentRule, ...]
    triggers: tuple[Trigger, ...]
    fallback_reply: str = DEFAULT_FALLBACK_REPLY
    report_successes: bool = True
    logging: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


def resolve_config_path(environ: Optional[Mapping[str, str]] = None) -> str:
    environ = os.environ if environ is None else environ
    return environ.get(CONFIG_PATH_ENV) or CONFIG_PATH


def _load_json_config(path: str) -> dict:
    """Load the JSON config file with a flat, user-friendly schema."""

    if not os.path.exists(path):
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file is not valid JSON: {path}", detail=str(exc)) from exc
    except OSError as exc:
        raise ConfigError(f"Config file could not be read: {path}", detail=str(exc)) from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a JSON object: {path}")
    return data


def _require_str(section: Mapping[str, Any], key: str, where: str) -> str:
    value = section.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"Missing required setting: {where}{key}")
    return value.strip()


def _section(config: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = config.get(key, {})
    if not isinstance(value, Mapping):
        raise ConfigError(f"Setting '{key}' must be an object")
    return value


def _parse_server(config: Mapping[str, Any]) -> ServerSettings:
    server = _section(config, "server")
    url = _require_str(server, "url", "server.")
    # Accept "https://host:port" and "host:port" as well as a bare host.
    url_scheme, sep, rest = url.partition("://")
    if sep:
        url = rest.rstrip("/")
    scheme = str(server.get("scheme") or (url_scheme if sep else "https")).lower()
    if scheme not in {"http", "https"}:
        raise ConfigError("server.scheme must be 'http' or 'https'")
    host, _, port_text = url.partition(":")
    try:
        port = int(server.get("port") or port_text or (443 if scheme == "https" else 80))
        request_timeout = float(server.get("request_timeout", 10))
    except (TypeError, ValueError) as exc:
        raise ConfigError("server.port and server.request_timeout must be numbers", detail=str(exc)) from exc
    return ServerSettings(
        url=host,
        scheme=scheme,
        port=port,
        basepath=str(server.get("basepath", "/api/v4")),
        verify=bool(server.get("verify", True)),
        request_timeout=request_timeout,
    )


def _parse_monitored_channels(config: Mapping[str, Any]) -> tuple[str, ...]:
    raw = config.get("monitored_channels")
    if raw is None:
        raw = [config["channel"]] if config.get("channel") else []
    if not isinstance(raw, list) or not all(isinstance(name, str) and name.strip() for name in raw):
        raise ConfigError("monitored_channels must be a list of channel names")
    names: list[str] = []
    for name in raw:
        if name.strip() not in names:
            names.append(name.strip())
    return tuple(names)


def _parse_responder(config: Mapping[str, Any]) -> tuple[tuple[Trigger, ...], str]:
    responder = _section(config, "responder")
    raw_triggers = responder.get("triggers", DEFAULT_TRIGGERS)
    if not isinstance(raw_triggers, list):
        raise ConfigError("responder.triggers must be a list")
    try:
        triggers = tuple(build_triggers(raw_triggers))
    except (ValueError, AttributeError) as exc:
        raise ConfigError("Invalid responder trigger", detail=str(exc)) from exc
    fallback = str(responder.get("fallback_reply") or DEFAULT_FALLBACK_REPLY)
    return triggers, fallback


def load_settings(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    require_password: bool = True,
) -> Settings:
    """Load and validate settings. Raises ConfigError on anything unusable."""

    environ = os.environ if environ is None else environ
    config_path = path or resolve_config_path(environ)
    config = _load_json_config(config_path)

    bot = _section(config, "bot")
    email = _require_str(bot, "email", "bot.")
    password = environ.get(PASSWORD_ENV) or bot.get("password") or ""
    if not password and require_password:
        raise ConfigError(f"Missing bot password: set bot.password or {PASSWORD_ENV}")
    profile = BotProfile(
        username=_require_str(bot, "username", "bot."),
        first_name=str(bot.get("first_name", "")),
        last_name=str(bot.get("last_name", "")),
    )

    try:
        rules = tuple(build_enrollment_rules(config.get("enrollment")))
    except ValueError as exc:
        raise ConfigError("Invalid enrollment rules", detail=str(exc)) from exc

    triggers, fallback_reply = _parse_responder(config)
    logging_config = config.get("logging", {})

    return Settings(
        server=_parse_server(config),
        bot_name=str(bot.get("name") or DEFAULT_BOT_NAME),
        email=email,
        password=password,
        profile=profile,
        team=_require_str(config, "team", ""),
        log_channel=_require_str(config, "log_channel", ""),
        monitored_channels=_parse_monitored_channels(config),
        enrollment_rules=rules,
        triggers=triggers,
        fallback_reply=fallback_reply,
        report_successes=bool(config.get("report_successes", True)),
        logging=logging_config if isinstance(logging_config, dict) else {},
    )
