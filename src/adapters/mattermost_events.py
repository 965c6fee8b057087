"""Mattermost websocket event source.

Opens the v4 websocket with aiohttp, completes the authentication challenge
and yields core events in delivery order. Once closed it cannot be reused.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections import deque
from typing import Any, AsyncIterator, Optional

import aiohttp

from adapters.mattermost_mapper import map_event
from core.errors import AuthError, BotError, ConnectivityError
from core.models import Event

LOGGER = logging.getLogger(__name__)


def build_websocket_url(host: str, scheme: str, port: int, basepath: str = "/api/v4") -> str:
    """Return the websocket endpoint for a server address."""

    ws_scheme = "wss" if scheme == "https" else "ws"
    return f"{ws_scheme}://{host}:{port}{basepath.rstrip('/')}/websocket"


def _decode_frame(message: aiohttp.WSMessage) -> Optional[Any]:
    try:
        return message.json()
    except ValueError:
        LOGGER.warning("Skipping a websocket frame that is not JSON")
        return None


class MattermostEventSource:
    """EventSourcePort implementation over an aiohttp websocket."""

    def __init__(
        self,
        url: str,
        token: str,
        *,
        connect_timeout: float = 10.0,
        heartbeat: float = 30.0,
        verify_ssl: bool = True,
    ) -> None:
        self._url = url
        self._token = token
        self._connect_timeout = connect_timeout
        self._heartbeat = heartbeat
        self._verify_ssl = verify_ssl
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._seq = itertools.count(1)
        # Events that arrive while waiting for the challenge reply.
        self._pending: deque[Event] = deque()
        self._closed = False

    async def connect(self) -> None:
        """Open the websocket and authenticate. Raises unless the server accepts the token."""

        if self._closed:
            raise ConnectivityError("The event stream was closed and cannot be reopened")
        self._session = aiohttp.ClientSession()
        try:
            self._ws = await asyncio.wait_for(
                self._session.ws_connect(self._url, heartbeat=self._heartbeat, ssl=self._verify_ssl),
                timeout=self._connect_timeout,
            )
            challenge_seq = next(self._seq)
            await self._ws.send_json(
                {
                    "seq": challenge_seq,
                    "action": "authentication_challenge",
                    "data": {"token": self._token},
                }
            )
            await asyncio.wait_for(self._await_challenge_reply(self._ws, challenge_seq), timeout=self._connect_timeout)
        except BotError:
            await self._discard_connection()
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            await self._discard_connection()
            raise ConnectivityError(
                "We failed to connect to the web socket",
                error_id=type(exc).__name__,
                detail=f"{self._url}: {exc}",
            ) from exc
        LOGGER.info("Connected to %s", self._url)

    async def _await_challenge_reply(self, ws: aiohttp.ClientWebSocketResponse, seq: int) -> None:
        async for message in ws:
            if message.type == aiohttp.WSMsgType.ERROR:
                raise ConnectivityError(
                    "The web socket failed during authentication", detail=str(ws.exception())
                )
            if message.type != aiohttp.WSMsgType.TEXT:
                continue
            payload = _decode_frame(message)
            if not isinstance(payload, dict):
                continue
            if payload.get("seq_reply") == seq:
                if payload.get("status") == "OK":
                    return
                error = payload.get("error") or {}
                raise AuthError(
                    "The server rejected the web socket authentication",
                    error_id=str(error.get("id", "")) if isinstance(error, dict) else "",
                    detail=str(error.get("message", "")) if isinstance(error, dict) else str(error),
                )
            event = map_event(payload)
            if event is not None:
                self._pending.append(event)
        raise ConnectivityError("The web socket closed before answering the authentication challenge")

    async def _discard_connection(self) -> None:
        if self._ws is not None:
            await self._ws.close()
        if self._session is not None:
            await self._session.close()
        self._ws = None
        self._session = None
        self._pending.clear()

    async def subscribe(self) -> AsyncIterator[Event]:
        if self._ws is None or self._closed:
            raise ConnectivityError("The event stream is not connected")

        while self._pending:
            yield self._pending.popleft()

        async for message in self._ws:
            if message.type == aiohttp.WSMsgType.TEXT:
                payload = _decode_frame(message)
                if payload is None:
                    continue
                if isinstance(payload, dict) and payload.get("status") == "FAIL":
                    LOGGER.error("Websocket request failed: %s", payload.get("error"))
                    continue
                event = map_event(payload)
                if event is not None:
                    yield event
            elif message.type == aiohttp.WSMsgType.ERROR:
                LOGGER.error("Websocket error: %s", self._ws.exception())
                break

        LOGGER.info("Websocket stream ended")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._ws is not None:
            await self._ws.close()
        if self._session is not None:
            await self._session.close()
        LOGGER.info("Websocket closed")
