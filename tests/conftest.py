"""Pytest configuration for all tests."""

from __future__ import annotations

import asyncio
import json
from typing import Any
from urllib.parse import unquote

import pytest
from aiohttp import WSMsgType, web

from cdpconnector.config import ConnectorConfig
from cdpconnector.connector import ChromeConnector
from cdpconnector.events import EventEmitter

FAKE_URL = "ws://fake.invalid/devtools/page/1"


# =============================================================================
# In-memory transport
# =============================================================================

class FakeTransport(EventEmitter):
    """In-memory transport for testing.

    Opens on the next loop iteration (or fails with ``fail_with``), records
    everything sent, and lets tests push inbound messages and closes.
    """

    def __init__(self, url: str, fail_with: Exception | None = None) -> None:
        super().__init__()
        self.url = url
        self.fail_with = fail_with
        self.sent: list[dict[str, Any]] = []
        self.opened = False
        self.closed = False
        self.open_calls = 0

    def open(self) -> None:
        self.open_calls += 1
        loop = asyncio.get_running_loop()
        if self.fail_with is not None:
            loop.call_soon(self.emit, "error", self.fail_with)
        else:
            loop.call_soon(self._do_open)

    def _do_open(self) -> None:
        self.opened = True
        self.emit("open")

    async def send(self, message: str) -> None:
        if not self.opened or self.closed:
            raise ConnectionError("Transport closed")
        self.sent.append(json.loads(message))

    async def close(self) -> None:
        self.closed = True

    # Test helpers

    def deliver(self, message: dict[str, Any] | str) -> None:
        """Push an inbound message as if the target sent it."""
        if not isinstance(message, str):
            message = json.dumps(message)
        self.emit("message", message)

    def respond(self, command_id: int, result: Any = None, error: dict[str, Any] | None = None) -> None:
        if error is not None:
            self.deliver({"id": command_id, "error": error})
        else:
            self.deliver({"id": command_id, "result": {} if result is None else result})

    def server_close(self, code: int = 1000) -> None:
        """Simulate the target closing the connection."""
        self.closed = True
        self.emit("close", code)


class FakeTransportFactory:
    """Transport factory that keeps every transport it built."""

    def __init__(self) -> None:
        self.transports: list[FakeTransport] = []
        self.fail_with: Exception | None = None

    def __call__(self, url: str) -> FakeTransport:
        transport = FakeTransport(url, self.fail_with)
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


async def wait_sent(transport: FakeTransport, count: int = 1) -> None:
    """Let queued send_command coroutines reach the transport."""
    for _ in range(100):
        if len(transport.sent) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"expected {count} sent message(s), got {len(transport.sent)}")


@pytest.fixture
def transports() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def chrome(transports: FakeTransportFactory) -> ChromeConnector:
    return ChromeConnector(FAKE_URL, ConnectorConfig(timeout=5.0), transport_factory=transports)


# =============================================================================
# Fake CDP target over a real WebSocket
# =============================================================================

class FakeCdpServer:
    """aiohttp server that behaves like a (very small) DevTools target.

    Supported commands:
    - Runtime.evaluate: evaluates JSON literals only
    - Page.enable / Page.navigate: navigate emits frameStartedLoading and
      frameStoppedLoading once Page is enabled
    - Test.hang: never answers
    - Test.crash: never answers, emits Inspector.targetCrashed
    - Test.binary: sends an invalid UTF-8 binary frame, then answers
    - Test.close: closes the socket
    Anything else is answered with a "method not found" error.
    """

    def __init__(self) -> None:
        self.port = 0
        self.commands: list[dict[str, Any]] = []
        self.connections = 0
        self.expose_debugger_url = True
        self.fail_http = False
        self._sockets: set[web.WebSocketResponse] = set()
        self._runner: web.AppRunner | None = None

    @property
    def ws_url(self) -> str:
        return f"ws://127.0.0.1:{self.port}/devtools/page/TARGET1"

    async def start(self) -> None:
        app = web.Application()
        app.router.add_get("/devtools/page/{target_id}", self._handle_ws)
        app.router.add_get("/json", self._handle_list)
        app.router.add_get("/json/list", self._handle_list)
        app.router.add_put("/json/new", self._handle_new)
        app.router.add_get("/json/version", self._handle_version)

        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "127.0.0.1", 0)
        await site.start()
        self.port = self._runner.addresses[0][1]

    async def stop(self) -> None:
        for ws in list(self._sockets):
            await ws.close()
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    def _target(self, target_id: str, url: str = "about:blank") -> dict[str, Any]:
        target = {
            "id": target_id,
            "type": "page",
            "title": url,
            "url": url,
        }
        if self.expose_debugger_url:
            target["webSocketDebuggerUrl"] = f"ws://127.0.0.1:{self.port}/devtools/page/{target_id}"
            target["devtoolsFrontendUrl"] = f"/devtools/inspector.html?ws=127.0.0.1:{self.port}/devtools/page/{target_id}"
        return target

    async def _handle_list(self, request: web.Request) -> web.Response:
        if self.fail_http:
            raise web.HTTPInternalServerError()
        return web.json_response([self._target("TARGET1")])

    async def _handle_new(self, request: web.Request) -> web.Response:
        # DevTools takes the whole (percent-encoded) query string as the URL
        url = unquote(request.rel_url.raw_query_string)
        return web.json_response(self._target("TARGET2", url or "about:blank"))

    async def _handle_version(self, request: web.Request) -> web.Response:
        return web.json_response({"Browser": "FakeChrome/1.0", "Protocol-Version": "1.3"})

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self._sockets.add(ws)
        self.connections += 1
        page_enabled = False

        try:
            async for msg in ws:
                if msg.type != WSMsgType.TEXT:
                    continue
                command = json.loads(msg.data)
                self.commands.append(command)
                command_id = command["id"]
                method = command["method"]
                params = command.get("params") or {}

                if method == "Runtime.evaluate":
                    value = json.loads(params["expression"])
                    type_name = "string" if isinstance(value, str) else "number"
                    await ws.send_json({"id": command_id, "result": {"result": {"type": type_name, "value": value}}})
                elif method == "Page.enable":
                    page_enabled = True
                    await ws.send_json({"id": command_id, "result": {}})
                elif method == "Page.navigate":
                    await ws.send_json({"id": command_id, "result": {"frameId": "FRAME1"}})
                    if page_enabled:
                        await ws.send_json({"method": "Page.frameStartedLoading", "params": {"frameId": "FRAME1"}})
                        await ws.send_json({"method": "Page.frameStoppedLoading", "params": {"frameId": "FRAME1"}})
                elif method == "Test.hang":
                    pass
                elif method == "Test.binary":
                    # Not valid UTF-8, then the real answer
                    await ws.send_bytes(b"\xff\xfe")
                    await ws.send_json({"id": command_id, "result": {}})
                elif method == "Test.crash":
                    await ws.send_json({"method": "Inspector.targetCrashed", "params": {}})
                elif method == "Test.close":
                    await ws.close()
                else:
                    await ws.send_json({
                        "id": command_id,
                        "error": {"code": -32601, "message": f"'{method}' wasn't found"},
                    })
        finally:
            self._sockets.discard(ws)
        return ws


@pytest.fixture
async def cdp_server():
    server = FakeCdpServer()
    await server.start()
    try:
        yield server
    finally:
        await server.stop()
