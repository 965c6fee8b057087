from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace

import aiohttp
import pytest
from aiohttp import web
from aiohttp import test_utils

from adapters.mattermost_events import MattermostEventSource, build_websocket_url
from core.errors import AuthError, ConnectivityError
from core.models import OtherEvent, PostCreated, UserJoined

WS_PATH = "/api/v4/websocket"

POSTED_FRAME = json.dumps(
    {
        "event": "posted",
        "data": {
            "post": json.dumps(
                {"id": "p1", "channel_id": "welcome-id", "user_id": "U1", "message": "are you alive?"}
            )
        },
        "broadcast": {"channel_id": "welcome-id"},
    }
)
HELLO_FRAME = json.dumps({"event": "hello", "data": {"server_version": "9.5.0"}, "broadcast": {}})
NEW_USER_FRAME = json.dumps({"event": "new_user", "data": {"user_id": "U2"}, "broadcast": {}})


def _ok_reply(challenge: dict) -> str:
    return json.dumps({"status": "OK", "seq_reply": challenge["seq"]})


def _fail_reply(challenge: dict) -> str:
    return json.dumps(
        {
            "status": "FAIL",
            "seq_reply": challenge["seq"],
            "error": {"id": "api.web_socket_router.not_authenticated.app_error", "message": "bad token"},
        }
    )


def _run_against_server(handler, scenario):
    """Serve ``handler`` on the websocket path and run ``scenario(url)`` against it."""

    async def main():
        app = web.Application()
        app.router.add_get(WS_PATH, handler)
        server = test_utils.TestServer(app)
        await server.start_server()
        try:
            return await scenario(str(server.make_url(WS_PATH)))
        finally:
            await server.close()

    return asyncio.run(main())


def _handler(reply, frames=(), received=None, before_reply=()):
    async def handler(request):
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        challenge = await ws.receive_json()
        if received is not None:
            received.append(challenge)
        for frame in before_reply:
            await ws.send_str(frame)
        if reply is None:
            async for _ in ws:
                pass
            return ws
        await ws.send_str(reply(challenge))
        for frame in frames:
            await ws.send_str(frame)
        await ws.close()
        return ws

    return handler


async def _collect(source: MattermostEventSource) -> list:
    events = []
    async for event in source.subscribe():
        events.append(event)
    return events


def test_websocket_url_follows_scheme() -> None:
    assert build_websocket_url("chat.example.com", "https", 443) == "wss://chat.example.com:443/api/v4/websocket"
    assert build_websocket_url("localhost", "http", 8065, "/api/v4/") == "ws://localhost:8065/api/v4/websocket"


def test_handshake_sends_token_and_stream_skips_bad_frames() -> None:
    received: list = []
    frames = [
        "not json",
        json.dumps({"status": "FAIL", "seq_reply": 7, "error": {"id": "x"}}),
        POSTED_FRAME,
        json.dumps({"status": "OK", "seq_reply": 8}),
        NEW_USER_FRAME,
    ]

    async def scenario(url):
        source = MattermostEventSource(url, "tok", connect_timeout=5)
        await source.connect()
        events = await _collect(source)
        await source.close()
        return events

    events = _run_against_server(_handler(_ok_reply, frames, received), scenario)

    assert received == [{"seq": 1, "action": "authentication_challenge", "data": {"token": "tok"}}]
    assert len(events) == 2
    assert isinstance(events[0], PostCreated) and events[0].body == "are you alive?"
    assert events[1] == UserJoined(user_id="U2")


def test_events_before_the_challenge_reply_are_kept() -> None:
    async def scenario(url):
        source = MattermostEventSource(url, "tok", connect_timeout=5)
        await source.connect()
        events = await _collect(source)
        await source.close()
        return events

    handler = _handler(_ok_reply, frames=[POSTED_FRAME], before_reply=[HELLO_FRAME])
    events = _run_against_server(handler, scenario)

    assert events[0] == OtherEvent(name="hello")
    assert isinstance(events[1], PostCreated)


def test_rejected_token_fails_connect() -> None:
    async def scenario(url):
        source = MattermostEventSource(url, "bad", connect_timeout=5)
        with pytest.raises(AuthError) as excinfo:
            await source.connect()
        return excinfo.value

    error = _run_against_server(_handler(_fail_reply), scenario)

    assert error.error_id == "api.web_socket_router.not_authenticated.app_error"
    assert error.detail == "bad token"


def test_unanswered_challenge_times_out() -> None:
    async def scenario(url):
        source = MattermostEventSource(url, "tok", connect_timeout=0.2)
        with pytest.raises(ConnectivityError):
            await source.connect()

    _run_against_server(_handler(None), scenario)


def test_server_closing_before_reply_fails_connect() -> None:
    async def handler(request):
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        await ws.receive_json()
        await ws.close()
        return ws

    async def scenario(url):
        source = MattermostEventSource(url, "tok", connect_timeout=5)
        with pytest.raises(ConnectivityError):
            await source.connect()

    _run_against_server(handler, scenario)


def test_unreachable_server_is_a_connectivity_error() -> None:
    async def scenario():
        source = MattermostEventSource("ws://127.0.0.1:1/api/v4/websocket", "tok", connect_timeout=2)
        with pytest.raises(ConnectivityError):
            await source.connect()

    asyncio.run(scenario())


def test_error_frame_ends_the_stream() -> None:
    class ErroringSocket:
        def __init__(self) -> None:
            self.messages = [
                SimpleNamespace(type=aiohttp.WSMsgType.TEXT, json=lambda: json.loads(NEW_USER_FRAME)),
                SimpleNamespace(type=aiohttp.WSMsgType.ERROR),
                SimpleNamespace(type=aiohttp.WSMsgType.TEXT, json=lambda: json.loads(POSTED_FRAME)),
            ]

        def __aiter__(self):
            return self._iterate()

        async def _iterate(self):
            for message in self.messages:
                yield message

        def exception(self):
            return RuntimeError("connection reset")

    source = MattermostEventSource("ws://unused", "tok")
    source._ws = ErroringSocket()

    assert asyncio.run(_collect(source)) == [UserJoined(user_id="U2")]


def test_closed_source_cannot_be_reused() -> None:
    async def scenario():
        source = MattermostEventSource("ws://unused", "tok")
        await source.close()
        await source.close()
        with pytest.raises(ConnectivityError):
            await source.connect()

    asyncio.run(scenario())
