"""Run loop and shutdown for the bot.

The runner consumes the event source one event at a time until the stream
ends or a stop is requested, then shuts down exactly once.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from core.dispatcher import EventDispatcher
from core.errors import BotError
from core.ports import EventSourcePort, ReporterPort

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


class BotRunner:
    """Binds the event source to the dispatcher under a cancellation event."""

    def __init__(
        self,
        events: EventSourcePort,
        dispatcher: EventDispatcher,
        reporter: ReporterPort,
        bot_name: str,
    ) -> None:
        self._events = events
        self._dispatcher = dispatcher
        self._reporter = reporter
        self._bot_name = bot_name
        self._stop = asyncio.Event()
        self._shutdown_started = False
        self.events_handled = 0

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    @property
    def is_shut_down(self) -> bool:
        return self._shutdown_started

    def request_stop(self) -> None:
        """Ask the run loop to finish. Safe to call repeatedly, e.g. from a signal handler."""

        if not self._stop.is_set():
            LOGGER.info("Stop requested")
        self._stop.set()

    async def start(self) -> None:
        """Announce startup (best-effort) and open the event source (fatal on failure)."""

        await self._reporter.announce(f"_{self._bot_name} has **started** running_")
        await self._events.connect()
        LOGGER.info("Event stream connected. Listening for events...")

    async def _consume(self) -> None:
        async for event in self._events.subscribe():
            if self._stop.is_set():
                break
            await self._dispatcher.handle(event)
            self.events_handled += 1

    async def run(self) -> int:
        """Run until stopped or until the stream ends. Returns the process exit code."""

        consumer = asyncio.create_task(self._consume())
        stopper = asyncio.create_task(self._stop.wait())
        try:
            done, _ = await asyncio.wait({consumer, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()

        exit_code = EXIT_OK
        if consumer in done:
            error = consumer.exception()
            if error is not None:
                LOGGER.error("Event stream failed: %s", error)
            elif not self._stop.is_set():
                LOGGER.warning("Event stream closed by the server; reconnection is not attempted")
            if not self._stop.is_set():
                exit_code = EXIT_FAILURE
        else:
            # In-flight dispatch is abandoned, not drained.
            consumer.cancel()
            try:
                await consumer
            except asyncio.CancelledError:
                pass
            except Exception:
                LOGGER.exception("Event consumer failed while stopping")

        await self.shutdown()
        return exit_code

    async def shutdown(self, farewell: Optional[str] = None) -> None:
        """Close the event source and post a farewell. Runs at most once."""

        if self._shutdown_started:
            return
        self._shutdown_started = True
        self._stop.set()

        try:
            await self._events.close()
        except BotError as exc:
            LOGGER.warning("Error while closing the event stream: %s", exc.message)
        await self._reporter.announce(farewell or f"_{self._bot_name} has **stopped** running_")
        LOGGER.info("Shutdown complete")
