"""Application entry point for the pillarbot enrollment bot."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from art import tprint
from dotenv import load_dotenv

from adapters.log_channel_reporter import LogChannelReporter
from adapters.mattermost_directory import MattermostDirectory
from adapters.mattermost_events import MattermostEventSource, build_websocket_url
from client import build_driver
from core.config import describe_rule
from core.dispatcher import EventDispatcher
from core.enrollment import EnrollmentEngine
from core.errors import BotError
from core.lifecycle import EXIT_FAILURE, EXIT_OK, BotRunner
from core.responder import MessageResponder
from core.session import start_session
from log_setup import configure_logging
from settings import Settings, load_settings

NAME = "PILLARBOT"
FONT = "tarty-1"

LOGGER = logging.getLogger(__name__)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


def _install_signal_handlers(runner: BotRunner) -> None:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, runner.request_stop)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no add_signal_handler.
            signal.signal(signum, lambda *_: loop.call_soon_threadsafe(runner.request_stop))


async def _serve(settings: Settings) -> int:
    """Run the startup sequence, then the event loop until shutdown."""

    directory = MattermostDirectory(build_driver(settings))
    session = await start_session(
        directory,
        email=settings.email,
        password=settings.password,
        profile=settings.profile,
        team_name=settings.team,
        log_channel_name=settings.log_channel,
        monitored_channel_names=settings.monitored_channels,
        bot_name=settings.bot_name,
    )

    reporter = LogChannelReporter(directory, session, report_successes=settings.report_successes)
    engine = EnrollmentEngine(directory, settings.enrollment_rules)
    responder = MessageResponder(settings.triggers, settings.fallback_reply)
    dispatcher = EventDispatcher(session, directory, responder, engine, reporter)
    LOGGER.info("%s enrollment rule(s) and %s reply trigger(s) are loaded", len(engine.rules), len(settings.triggers))

    server = settings.server
    events = MattermostEventSource(
        build_websocket_url(server.url, server.scheme, server.port, server.basepath),
        directory.auth_token or "",
        connect_timeout=server.request_timeout,
        verify_ssl=server.verify,
    )
    runner = BotRunner(events, dispatcher, reporter, settings.bot_name)
    _install_signal_handlers(runner)

    await runner.start()
    return await runner.run()


def _run() -> int:
    _print_banner()
    load_dotenv()

    try:
        settings = load_settings()
    except BotError as exc:
        configure_logging({})
        LOGGER.error("Could not load configuration:\n%s", exc.describe())
        return EXIT_FAILURE

    configure_logging(settings.logging, secrets=[settings.password])
    LOGGER.info("Starting %s", settings.bot_name)

    try:
        return asyncio.run(_serve(settings))
    except BotError as exc:
        LOGGER.error("Startup failed:\n%s", exc.describe())
        return EXIT_FAILURE
    except KeyboardInterrupt:
        LOGGER.info("Interrupted before the bot finished starting")
        return EXIT_FAILURE


def _rules() -> int:
    load_dotenv()
    try:
        settings = load_settings(require_password=False)
    except BotError as exc:
        print(exc.describe(), file=sys.stderr)
        return EXIT_FAILURE

    if not settings.enrollment_rules:
        print("No enrollment rules are configured.")
        return EXIT_OK
    for index, rule in enumerate(settings.enrollment_rules, start=1):
        print(f"{index}. {describe_rule(rule)}")
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="pillarbot")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the bot")
    subparsers.add_parser("rules", help="Print the enrollment plan from the config file and exit")

    args = parser.parse_args(argv)
    if args.command == "rules":
        return _rules()
    return _run()


if __name__ == "__main__":
    sys.exit(main())
