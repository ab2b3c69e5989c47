"""Chrome DevTools Protocol connector.

``ChromeConnector`` multiplexes CDP commands and events over one WebSocket.

In order to connect to a page (tab or webview) the browser must be started in
debugging mode (typically with ``--remote-debugging-port=9222``). Every
inspectable target then exposes a WebSocket endpoint, listed at
``http://localhost:9222/json`` (see ``cdpconnector.discovery``).

Events emitted by the connector:

- ``connect`` - connection established
- ``close(code)`` - connection closed by the other side (NOT by ``disconnect()``)
- ``disconnect`` - any disconnect, ``close`` or ``disconnect()``
- ``event(method, params)`` - every CDP event
- ``event.<Domain>(method, params)`` - CDP events of one domain, e.g. ``event.Page``
- ``<Domain.event>(params)`` - one CDP event, e.g. ``Page.frameStoppedLoading``
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Self

from cdpconnector.config import ConnectorConfig, validate_websocket_url
from cdpconnector.error import CdpError
from cdpconnector.events import EventEmitter
from cdpconnector.transport import Transport, TransportFactory, WebSocketTransport
from cdpconnector.wire import (
    WireCommand,
    WireEvent,
    WireResponse,
    domain_of,
    parse_message,
    serialize_command,
)

logger = logging.getLogger(__name__)


class PendingCommand:
    """A sent command waiting for its response."""
    __slots__ = ('id', 'method', 'params', 'future', 'timer')

    def __init__(
        self,
        id: int,
        method: str,
        params: dict[str, Any],
        future: asyncio.Future[Any],
        timer: asyncio.TimerHandle | None = None,
    ) -> None:
        self.id = id
        self.method = method
        self.params = params
        self.future = future
        self.timer = timer


class ChromeConnector(EventEmitter):
    """Client for the Chrome DevTools Protocol.

    Example:
        ```python
        async with ChromeConnector(ws_url) as chrome:
            chrome.on("Page.loadEventFired", lambda params: print("loaded"))
            await chrome.send_command("Page.enable")
            await chrome.send_command("Page.navigate", {"url": "https://example.com"})
        ```
    """

    def __init__(
        self,
        url: str | None = None,
        config: ConnectorConfig | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        """Initialize the connector. Does not connect.

        Args:
            url: WebSocket debugger URL, as listed by the DevTools HTTP endpoint
            config: Timeouts and cleanup behaviour
            transport_factory: Builds a transport for a URL (defaults to WebSocketTransport)
        """
        super().__init__()
        self.url = url
        self.config = config or ConnectorConfig()
        self._transport_factory = transport_factory or self._default_transport

        # Set once the transport has opened, cleared on any disconnect
        self._transport: Transport | None = None
        self._target: str | None = None
        self._connecting: asyncio.Future[None] | None = None

        # Commands need unique ids; never reset, even across reconnects
        self._next_command_id = 1
        # Command id -> pending entry, removed before the entry is settled
        self._pending: dict[int, PendingCommand] = {}

    def _default_transport(self, url: str) -> Transport:
        return WebSocketTransport(url, self.config.transport)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.disconnect()

    def is_connected(self) -> bool:
        """Return True if a transport is currently held."""
        return self._transport is not None

    def get_stats(self) -> dict[str, int]:
        """Get statistics about the connector.

        Returns:
            Dict with 'pending' command count and the 'next_id' to be used
        """
        return {
            "pending": len(self._pending),
            "next_id": self._next_command_id,
        }

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    async def connect(self, url: str | None = None) -> None:
        """Establish a connection to the CDP target.

        Does nothing if already connected. Concurrent calls share a single
        connection attempt.

        Args:
            url: Override the URL given to the constructor

        Raises:
            ValueError: if the URL is missing or malformed
            Exception: whatever the transport reported while opening
        """
        if self.is_connected():
            return
        if self._connecting is not None:
            await asyncio.shield(self._connecting)
            return

        target = validate_websocket_url(url or self.url)
        loop = asyncio.get_running_loop()
        opened: asyncio.Future[None] = loop.create_future()
        self._connecting = opened
        try:
            transport = self._transport_factory(target)

            def on_open() -> None:
                if opened.done():
                    return
                self._transport = transport
                self._target = target
                logger.info("Connected to %s", target)
                opened.set_result(None)
                self.emit("connect")

            def on_error(exc: BaseException | None) -> None:
                if not opened.done():
                    opened.set_exception(exc or ConnectionError(f"Failed to connect to {target}"))
                else:
                    logger.warning("Transport error on %s: %s", target, exc)

            def on_close(code: int | None = None) -> None:
                if not opened.done():
                    opened.set_exception(ConnectionError(f"Connection to {target} closed while opening"))
                else:
                    self._on_close(transport, code)

            transport.on("open", on_open)
            transport.on("error", on_error)
            transport.on("close", on_close)
            transport.on("message", self._on_message)

            try:
                transport.open()
                await opened
            except BaseException:
                if self._transport is transport:
                    await self.disconnect()
                else:
                    transport.remove_all_listeners()
                    await transport.close()
                raise
        finally:
            self._connecting = None

    async def disconnect(self) -> None:
        """Close the connection and emit ``disconnect``.

        ``close`` is not emitted: it is reserved for disconnects the other
        side initiated. A connection attempt still in flight is aborted, and
        ``connect()`` raises ``ConnectionError``.
        """
        transport = self._transport
        if transport is None:
            connecting = self._connecting
            if connecting is not None and not connecting.done():
                # connect() detaches and closes the half-open transport
                connecting.set_exception(ConnectionError("Disconnected while connecting"))
            return
        # Don't observe our own close
        transport.remove_all_listeners()
        self._transport = None
        logger.info("Disconnecting from %s", self._target)

        if self.config.reject_on_disconnect:
            self._reject_all(CdpError.not_connected)
        self.emit("disconnect")
        await transport.close()

    def _on_close(self, transport: Transport, code: int | None) -> None:
        if self._transport is not transport:
            return
        transport.remove_all_listeners()
        self._transport = None
        logger.info("Connection to %s closed by target (code %s)", self._target, code)

        if self.config.reject_on_disconnect:
            self._reject_all(CdpError.not_connected)
        self.emit("close", code)
        self.emit("disconnect", code)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def send_command(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Send a CDP command and wait for its result.

        This only raises for protocol-level failures. Methods like
        ``Runtime.evaluate`` can succeed with ``exceptionDetails`` in the result.

        Args:
            method: CDP method (e.g. "DOM.resolveNode")
            params: CDP params

        Returns:
            The ``result`` object of the response

        Raises:
            CdpError: NOT_CONNECTED, PROTOCOL, TIMEOUT or TAB_CRASHED
        """
        params = {} if params is None else params
        transport = self._transport
        if transport is None:
            raise CdpError.not_connected(method, params)

        command_id = self._next_command_id
        self._next_command_id += 1
        payload = serialize_command(WireCommand(command_id, method, params))

        loop = asyncio.get_running_loop()
        entry = PendingCommand(command_id, method, params, loop.create_future())
        entry.timer = loop.call_later(self.config.timeout, self._on_timeout, command_id)
        self._pending[command_id] = entry
        # Caller cancellation must not leave the entry behind
        entry.future.add_done_callback(lambda _: self._discard(command_id))

        logger.debug("-> %d %s", command_id, method)
        try:
            await transport.send(payload)
        except ConnectionError as e:
            self._discard(command_id)
            if not entry.future.done():
                raise CdpError.not_connected(method, params) from e
        except BaseException:
            self._discard(command_id)
            raise

        return await entry.future

    def _settle(
        self,
        command_id: int,
        result: Any = None,
        error: BaseException | None = None,
    ) -> bool:
        """Remove a pending entry and complete its future.

        Returns:
            False if the entry was already gone
        """
        entry = self._pending.pop(command_id, None)
        if entry is None:
            return False
        if entry.timer is not None:
            entry.timer.cancel()
        if not entry.future.done():
            if error is not None:
                entry.future.set_exception(error)
            else:
                entry.future.set_result(result)
        return True

    def _discard(self, command_id: int) -> None:
        entry = self._pending.pop(command_id, None)
        if entry is not None and entry.timer is not None:
            entry.timer.cancel()

    def _on_timeout(self, command_id: int) -> None:
        entry = self._pending.get(command_id)
        if entry is None:
            return
        logger.warning("%s (id %d) timed out after %ss", entry.method, command_id, self.config.timeout)
        self._settle(command_id, error=CdpError.timeout(entry.method, entry.params))

    def _reject_all(self, make_error: Callable[[str, dict[str, Any]], CdpError]) -> None:
        """Fail every pending command with ``make_error(method, params)``."""
        for entry in list(self._pending.values()):
            self._settle(entry.id, error=make_error(entry.method, entry.params))

    # -------------------------------------------------------------------------
    # Inbound messages
    # -------------------------------------------------------------------------

    def _on_message(self, data: str) -> None:
        try:
            message = parse_message(data)
        except ValueError:
            logger.exception("Dropping unparseable message")
            return

        match message:
            case WireResponse():
                self._handle_response(message)
            case WireEvent():
                self._handle_event(message)
            case _:
                logger.debug("Dropping message with neither id nor method")

    def _handle_response(self, response: WireResponse) -> None:
        entry = self._pending.get(response.id)
        if entry is None:
            # Already settled by timeout, crash or disconnect
            logger.debug("Dropping late response for id %d", response.id)
            return
        logger.debug("<- %d %s", response.id, entry.method)
        if response.is_error:
            self._settle(
                response.id,
                error=CdpError.protocol(entry.method, entry.params, response.error),
            )
        else:
            self._settle(response.id, result=response.result)

    def _handle_event(self, event: WireEvent) -> None:
        method, params = event.method, event.params
        if method == self.config.crash_event:
            logger.warning("Target crashed with %d command(s) pending", len(self._pending))
            if self.config.reject_on_crash:
                self._reject_all(CdpError.tab_crashed)

        self.emit("event", method, params)
        self.emit(f"event.{domain_of(method)}", method, params)
        self.emit(method, params)
